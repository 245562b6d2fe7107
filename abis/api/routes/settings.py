"""Key-value settings (payment QR code, barangay name, display options)."""
from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import SQLAlchemyError

from abis.api import db
from abis.api.models.setting import Setting, QR_CODE_SETTING_KEY
from abis.api.utils import (
    ValidationError,
    StorageError,
    admin_required,
    discard_uploads,
    error_400,
    error_404,
    error_500,
    error_upstream,
    save_upload,
)
from abis.api.utils.security import QR_MIMES
from abis.api.utils.validators import ALLOWED_QR_EXTENSIONS


settings_bp = Blueprint('settings', __name__, url_prefix='/api/settings')

QR_MAX_FILE_MB = 5


@settings_bp.route('', methods=['GET'])
def get_all_settings():
    """Every setting as one ``{key: value}`` object."""
    try:
        return jsonify(Setting.as_mapping()), 200
    except Exception as e:
        return error_500('Failed to load settings', e)


# Registered before /<key> so "qr" is never treated as a setting key on POST
@settings_bp.route('/qr', methods=['POST'])
@admin_required
def upload_qr_code():
    stored = None
    try:
        stored = save_upload(
            request.files.get('qr'),
            'settings',
            allowed_extensions=ALLOWED_QR_EXTENSIONS,
            max_size_mb=QR_MAX_FILE_MB,
            allowed_mimes=QR_MIMES,
        )
        url = stored.get('url') or f"{request.host_url.rstrip('/')}/uploads/{stored['filename']}"
        setting = Setting.upsert(QR_CODE_SETTING_KEY, url)
        db.session.commit()
        current_app.logger.info("Payment QR code updated")
        return jsonify(setting.to_dict()), 200

    except ValidationError as e:
        return error_400(str(e))
    except StorageError as e:
        db.session.rollback()
        return error_upstream('Failed to upload QR code', e)
    except SQLAlchemyError as e:
        db.session.rollback()
        discard_uploads([stored] if stored else [])
        return error_upstream('Failed to save QR code', e)
    except Exception as e:
        db.session.rollback()
        discard_uploads([stored] if stored else [])
        return error_500('Failed to save QR code', e)


@settings_bp.route('/<key>', methods=['GET'])
def get_setting(key: str):
    setting = Setting.query.filter_by(key=key).first()
    if not setting:
        return error_404('Not found')
    return jsonify(setting.to_dict()), 200


@settings_bp.route('/<key>', methods=['POST', 'PUT'])
@admin_required
def upsert_setting(key: str):
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or 'value' not in data:
            raise ValidationError('value', 'Request body must be an object with a "value" field')
        setting = Setting.upsert(key, data['value'])
        db.session.commit()
        return jsonify(setting.to_dict()), 200
    except ValidationError as e:
        return error_400(str(e))
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_upstream('Failed to save setting', e)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to save setting', e)


@settings_bp.route('/<key>', methods=['DELETE'])
@admin_required
def delete_setting(key: str):
    try:
        setting = Setting.query.filter_by(key=key).first()
        if not setting:
            return error_404('Not found')
        db.session.delete(setting)
        db.session.commit()
        return jsonify({'success': True}), 200
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_upstream('Failed to delete setting', e)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to delete setting', e)
