"""Standalone certificate files keyed by tracking number."""
from sqlalchemy import Index

from abis.api import db
from abis.api.models.mixins import iso
from abis.api.utils.time import utc_now


class Certificate(db.Model):
    __tablename__ = 'certificates'

    id = db.Column(db.Integer, primary_key=True)

    # Several uploads may share a tracking number; the newest one is served
    tracking_number = db.Column(db.String(64), nullable=False)
    filename = db.Column(db.String(500), nullable=False)
    originalname = db.Column(db.String(255), nullable=True)
    uploaded_by = db.Column(db.String(50), nullable=True)

    created_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        Index('idx_certificate_tracking_created', 'tracking_number', 'created_at'),
    )

    def __repr__(self):
        return f'<Certificate {self.tracking_number} {self.filename}>'

    @classmethod
    def latest_for(cls, tracking_number: str):
        """Most recently created certificate for a tracking number, or None."""
        return (
            cls.query.filter_by(tracking_number=tracking_number)
            .order_by(cls.created_at.desc(), cls.id.desc())
            .first()
        )

    def to_dict(self):
        return {
            'id': self.id,
            'trackingNumber': self.tracking_number,
            'filename': self.filename,
            'originalname': self.originalname,
            'uploadedBy': self.uploaded_by,
            'createdAt': iso(self.created_at),
        }
