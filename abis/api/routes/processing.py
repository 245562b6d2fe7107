"""Certificate, crime-record, certification and payment handlers.

Documents and blotter entries expose the same processing endpoints; each
blueprint looks up its record and delegates here.
"""
from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from abis.api import db
from abis.api.utils import (
    ValidationError,
    StorageError,
    discard_uploads,
    error_400,
    error_500,
    error_upstream,
    save_upload,
)
from abis.api.utils.lifecycle import (
    apply_payment_update,
    attach_certificate,
    increment_certification,
    set_crime_record_status,
)
from abis.api.utils.notifications import notify_certificate_ready
from abis.api.utils.security import CERTIFICATE_VARIANT_MIMES, PAYMENT_PROOF_MIMES
from abis.api.utils.validators import (
    ALLOWED_CERTIFICATE_VARIANT_EXTENSIONS,
    ALLOWED_PAYMENT_PROOF_EXTENSIONS,
)


def stored_reference(stored: dict) -> str:
    """Remote URL when the store returned one, else the local relative path."""
    return stored.get('url') or stored['filename']


def request_payload() -> dict:
    """JSON body, or the form fields of a multipart request."""
    if request.is_json:
        data = request.get_json(silent=True)
        if data is None:
            raise ValidationError('body', 'Invalid JSON body')
        if not isinstance(data, dict):
            raise ValidationError('body', 'Request body must be an object')
        return data
    return request.form.to_dict()


def upload_certificate(record, serialize):
    """Store the uploaded certificate, update the record, then notify."""
    stored = None
    try:
        stored = save_upload(
            request.files.get('certificate'),
            'certificates',
            allowed_extensions=ALLOWED_CERTIFICATE_VARIANT_EXTENSIONS,
            max_size_mb=current_app.config.get('CERTIFICATE_MAX_FILE_MB', 10),
            allowed_mimes=CERTIFICATE_VARIANT_MIMES,
        )
        attach_certificate(record, stored_reference(stored), stored['originalname'])
        db.session.commit()
    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except StorageError as e:
        db.session.rollback()
        return error_upstream('Failed to upload certificate', e)
    except SQLAlchemyError as e:
        db.session.rollback()
        discard_uploads([stored] if stored else [])
        return error_upstream('Failed to attach certificate', e)
    except Exception as e:
        db.session.rollback()
        discard_uploads([stored] if stored else [])
        return error_500('Failed to attach certificate', e)

    notify_certificate_ready(record)
    return jsonify(serialize(record)), 200


def update_crime_record(record, serialize):
    try:
        data = request_payload()
        set_crime_record_status(record, data.get('crimeRecordStatus', data.get('status')))
        db.session.commit()
        return jsonify(serialize(record)), 200
    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_upstream('Failed to update crime record', e)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to update crime record', e)


def bump_certification(model, record_id: int, serialize):
    try:
        count = increment_certification(model, record_id)
        if count is None:
            return jsonify({'error': 'Not found'}), 404
        record = db.session.get(model, record_id)
        return jsonify(serialize(record)), 200
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_upstream('Failed to increment certification', e)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to increment certification', e)


def update_payment(record, serialize):
    """Partial payment update from JSON or multipart (optional ``paymentProof`` file)."""
    stored = None
    try:
        data = request_payload()
        # Bad enum values are rejected before the proof is stored
        apply_payment_update(record, data)
        proof = request.files.get('paymentProof')
        if proof is not None and proof.filename:
            stored = save_upload(
                proof,
                'payments',
                allowed_extensions=ALLOWED_PAYMENT_PROOF_EXTENSIONS,
                max_size_mb=current_app.config.get('PAYMENT_PROOF_MAX_FILE_MB', 5),
                allowed_mimes=PAYMENT_PROOF_MIMES,
            )
            record.payment_proof_url = stored_reference(stored)
        db.session.commit()
        return jsonify(serialize(record)), 200
    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except StorageError as e:
        db.session.rollback()
        return error_upstream('Failed to upload payment proof', e)
    except SQLAlchemyError as e:
        db.session.rollback()
        discard_uploads([stored] if stored else [])
        return error_upstream('Failed to update payment', e)
    except Exception as e:
        db.session.rollback()
        discard_uploads([stored] if stored else [])
        return error_500('Failed to update payment', e)
