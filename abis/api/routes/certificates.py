"""Standalone certificate files, looked up by tracking number.

Several certificates may be uploaded for one tracking number; reads always
return the newest. Older uploads stay stored as history.
"""
from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import SQLAlchemyError

from abis.api import db
from abis.api.models.certificate import Certificate
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
    send_stored_file,
    uploader_identity,
)
from abis.api.utils.security import CERTIFICATE_MIMES
from abis.api.utils.validators import ALLOWED_CERTIFICATE_EXTENSIONS


certificates_bp = Blueprint('certificates', __name__, url_prefix='/api/certificates')


@certificates_bp.route('', methods=['POST'])
@admin_required
def upload_certificate():
    stored = None
    try:
        tracking_number = (request.form.get('trackingNumber') or '').strip()
        if not tracking_number:
            raise ValidationError('trackingNumber', 'trackingNumber is required')

        stored = save_upload(
            request.files.get('certificate'),
            'certificates',
            allowed_extensions=ALLOWED_CERTIFICATE_EXTENSIONS,
            max_size_mb=current_app.config.get('CERTIFICATE_MAX_FILE_MB', 10),
            allowed_mimes=CERTIFICATE_MIMES,
        )
        certificate = Certificate(
            tracking_number=tracking_number,
            filename=stored.get('url') or stored['filename'],
            originalname=stored['originalname'],
            uploaded_by=uploader_identity(),
        )
        db.session.add(certificate)
        db.session.commit()
        current_app.logger.info("Certificate uploaded for %s", tracking_number)
        return jsonify(certificate.to_dict()), 201

    except ValidationError as e:
        return error_400(str(e))
    except StorageError as e:
        db.session.rollback()
        return error_upstream('Failed to upload certificate', e)
    except SQLAlchemyError as e:
        db.session.rollback()
        discard_uploads([stored] if stored else [])
        return error_upstream('Failed to save certificate', e)
    except Exception as e:
        db.session.rollback()
        discard_uploads([stored] if stored else [])
        return error_500('Failed to save certificate', e)


@certificates_bp.route('/<tracking_number>', methods=['GET'])
def get_certificate(tracking_number: str):
    certificate = Certificate.latest_for(tracking_number)
    if not certificate:
        return error_404('Not found')
    return jsonify(certificate.to_dict()), 200


@certificates_bp.route('/download/<tracking_number>', methods=['GET'])
def download_certificate(tracking_number: str):
    certificate = Certificate.latest_for(tracking_number)
    if not certificate:
        return error_404('Not found')
    try:
        return send_stored_file(certificate.filename, certificate.originalname or f"{tracking_number}.pdf")
    except PermissionError:
        return jsonify({'error': 'File access denied'}), 403
    except FileNotFoundError:
        return error_404('File not found')


@certificates_bp.route('/id/<int:certificate_id>', methods=['DELETE'])
@admin_required
def delete_certificate(certificate_id: int):
    try:
        certificate = db.session.get(Certificate, certificate_id)
        if not certificate:
            return error_404('Not found')
        db.session.delete(certificate)
        db.session.commit()
        return jsonify({'success': True}), 200
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_upstream('Failed to delete certificate', e)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to delete certificate', e)
