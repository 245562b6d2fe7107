"""Key-value system settings."""
from abis.api import db
from abis.api.models.mixins import iso
from abis.api.utils.time import utc_now


QR_CODE_SETTING_KEY = 'qrCodeUrl'


class Setting(db.Model):
    __tablename__ = 'settings'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f'<Setting {self.key}>'

    @classmethod
    def upsert(cls, key: str, value):
        """Create the setting if absent, otherwise replace its value. Caller commits."""
        setting = cls.query.filter_by(key=key).first()
        if setting is None:
            setting = cls(key=key)
            db.session.add(setting)
        setting.value = value
        setting.updated_at = utc_now()
        return setting

    @classmethod
    def as_mapping(cls) -> dict:
        return {s.key: s.value for s in cls.query.order_by(cls.key.asc()).all()}

    def to_dict(self):
        return {
            'key': self.key,
            'value': self.value,
            'updatedAt': iso(self.updated_at),
        }
