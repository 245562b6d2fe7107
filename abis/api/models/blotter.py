"""Blotter (incident report) model."""
from sqlalchemy import Index

from abis.api import db
from abis.api.models.mixins import ProcessingFieldsMixin, iso
from abis.api.utils.time import utc_now


BLOTTER_STATUSES = ('pending', 'published', 'investigating', 'closed')
BLOTTER_PAYMENT_STATUSES = ('pending', 'paid')
BLOTTER_PAYMENT_METHODS = ('gcash', 'cash', 'none')
BLOTTER_CRIME_RECORD_STATUSES = ('yes', 'no')

ANONYMOUS_REPORTER = 'Anonymous'


def resolve_attachment_url(attachment: dict, base_url: str | None = None) -> str | None:
    """Return the remote URL, or a locally served path derived from the stored filename."""
    if not attachment:
        return None
    if attachment.get('url'):
        return attachment['url']
    filename = attachment.get('filename')
    if filename and base_url is not None:
        return f"{base_url.rstrip('/')}/uploads/{str(filename).lstrip('/')}"
    return None


class Blotter(ProcessingFieldsMixin, db.Model):
    __tablename__ = 'blotter'

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    reporter_name = db.Column(db.String(200), nullable=True, default=ANONYMOUS_REPORTER)
    reporter_contact = db.Column(db.String(200), nullable=True, default='')
    incident_date = db.Column(db.DateTime, default=utc_now)

    # status flow: pending -> published -> investigating -> closed
    status = db.Column(db.String(20), nullable=False, default='pending')

    # Ordered list of {filename, originalname, mimetype, url, public_id, width, height, format}
    attachments = db.Column(db.JSON, nullable=True)

    # Lets the reporter open their own report without an account
    public_token = db.Column(db.String(64), unique=True, nullable=False)

    # Whether reporter identity appears in the public view
    show_reporter = db.Column(db.Boolean, nullable=False, default=False)

    # Payment
    payment_method = db.Column(db.String(20), nullable=False, default='gcash')
    payment_status = db.Column(db.String(20), nullable=False, default='pending')
    payment_proof_url = db.Column(db.String(500), nullable=True)

    # Certificate file
    certificate_url = db.Column(db.String(500), nullable=True)
    certificate_filename = db.Column(db.String(255), nullable=True)

    # Crime record and certification tracking
    crime_record_status = db.Column(db.String(10), nullable=True)
    certification_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        Index('idx_blotter_status', 'status'),
        Index('idx_blotter_created_at', 'created_at'),
    )

    def __repr__(self):
        return f'<Blotter {self.id} {self.status}>'

    def attachments_dict(self, base_url: str | None = None) -> list:
        items = []
        for att in self.attachments or []:
            item = dict(att)
            item['url'] = resolve_attachment_url(att, base_url)
            items.append(item)
        return items

    def to_dict(self, base_url: str | None = None):
        """Full, unredacted record (admin and token holder view)."""
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'reporterName': self.reporter_name,
            'reporterContact': self.reporter_contact,
            'incidentDate': iso(self.incident_date),
            'status': self.status,
            'attachments': self.attachments_dict(base_url),
            'publicToken': self.public_token,
            'showReporter': bool(self.show_reporter),
            'createdAt': iso(self.created_at),
        }
        data.update(self.processing_dict())
        return data
