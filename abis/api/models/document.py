"""Document request model."""
from sqlalchemy import Index

from abis.api import db
from abis.api.models.mixins import ProcessingFieldsMixin, iso
from abis.api.utils.form_fields import NAME_ALIASES, APPOINTMENT_ALIASES, resolve_field
from abis.api.utils.time import utc_now


DOCUMENT_STATUSES = ('pending', 'accepted', 'rejected', 'issued', 'ready_for_pickup')
DOCUMENT_PAYMENT_METHODS = ('gcash', 'cash', 'none')
DOCUMENT_PAYMENT_STATUSES = ('unpaid', 'pending_verification', 'paid')


class Document(ProcessingFieldsMixin, db.Model):
    __tablename__ = 'documents'

    id = db.Column(db.Integer, primary_key=True)

    # Tracking number (unique, never changes once assigned)
    tracking_number = db.Column(db.String(64), unique=True, nullable=False)

    doc_type = db.Column(db.String(100), nullable=False, default='general')
    resident_name = db.Column(db.String(200), nullable=True)

    # Free-form request fields submitted by the resident
    form_data = db.Column(db.JSON, nullable=True)

    status = db.Column(db.String(30), nullable=False, default='pending')
    pickup_code = db.Column(db.String(20), nullable=True)
    remarks = db.Column(db.Text, nullable=True)
    appointment_datetime = db.Column(db.DateTime, nullable=True)
    issued_at = db.Column(db.DateTime, nullable=True)

    # Payment
    payment_method = db.Column(db.String(20), nullable=False, default='none')
    payment_status = db.Column(db.String(30), nullable=False, default='unpaid')
    payment_proof_url = db.Column(db.String(500), nullable=True)

    # Certificate file
    certificate_url = db.Column(db.String(500), nullable=True)
    certificate_filename = db.Column(db.String(255), nullable=True)

    # Certification tracking
    certification_count = db.Column(db.Integer, nullable=False, default=0)
    # 'unknown' until an admin records yes or no
    crime_record_status = db.Column(db.String(10), nullable=False, default='unknown')

    created_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        Index('idx_document_status', 'status'),
        Index('idx_document_created_at', 'created_at'),
    )

    def __repr__(self):
        return f'<Document {self.tracking_number}>'

    def to_dict(self):
        """Convert document to the API shape used by the resident and admin frontends."""
        form = self.form_data or {}
        appointment = self.appointment_datetime.isoformat() if self.appointment_datetime else resolve_field(form, APPOINTMENT_ALIASES)
        data = {
            'id': self.id,
            'trackingNumber': self.tracking_number,
            'requestDate': iso(self.created_at),
            'residentName': self.resident_name or resolve_field(form, NAME_ALIASES) or '',
            'documentType': self.doc_type,
            'status': self.status,
            'pickupCode': self.pickup_code,
            'appointmentDatetime': appointment,
            'remarks': self.remarks,
            'formFields': form,
            'issuedAt': iso(self.issued_at),
        }
        data.update(self.processing_dict())
        return data
