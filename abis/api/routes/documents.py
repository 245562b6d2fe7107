"""Document request routes.

Residents create requests and look them up by tracking number; staff move
them through their statuses and attach certificates.
"""
from flask import Blueprint, jsonify, request, current_app, send_file
from io import BytesIO
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from abis.api import db, limiter
from abis.api.models.document import Document
from abis.api.models.setting import Setting
from abis.api.routes import processing
from abis.api.utils import (
    ValidationError,
    admin_required,
    error_400,
    error_404,
    error_409,
    error_500,
    error_upstream,
    send_stored_file,
)
from abis.api.utils.lifecycle import apply_document_patch, build_document, set_document_status
from abis.api.utils.notifications import notify_document_status
from abis.api.utils.pdf_generator import generate_document_record_pdf


documents_bp = Blueprint('documents', __name__, url_prefix='/api/documents')

LIST_LIMIT = 1000


def _limit(limit_string: str):
    """Apply rate limit if limiter is available."""
    def decorator(f):
        if limiter:
            return limiter.limit(limit_string)(f)
        return f
    return decorator


def _serialize(document):
    return document.to_dict()


def organization_name() -> str:
    """Header printed on generated records: the stored setting wins over config."""
    setting = Setting.query.filter_by(key='barangayName').first()
    if setting and setting.value:
        return str(setting.value)
    return current_app.config.get('BARANGAY_NAME') or 'Barangay Hall'


def render_document_pdf(document, as_attachment: bool = True):
    pdf_bytes = generate_document_record_pdf(document, organization_name())
    return send_file(
        BytesIO(pdf_bytes),
        mimetype='application/pdf',
        as_attachment=as_attachment,
        download_name=f"{document.tracking_number or 'document'}.pdf",
    )


@documents_bp.route('', methods=['GET'])
def list_documents():
    """Newest first."""
    try:
        docs = Document.query.order_by(Document.created_at.desc(), Document.id.desc()).limit(LIST_LIMIT).all()
        return jsonify([d.to_dict() for d in docs]), 200
    except Exception as e:
        return error_500('Failed to list documents', e)


@documents_bp.route('', methods=['POST'])
@_limit("30 per hour")
def create_document():
    try:
        data = request.get_json(silent=True)
        if data is None:
            raise ValidationError('body', 'Request body must be JSON')

        document = build_document(data)
        db.session.add(document)
        db.session.commit()
        current_app.logger.info("Document request created: %s", document.tracking_number)
        return jsonify(document.to_dict()), 201

    except ValidationError as e:
        return error_400(str(e))
    except IntegrityError as e:
        db.session.rollback()
        return error_409('Tracking number already exists', e, code='DUPLICATE_TRACKING_NUMBER')
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_upstream('Failed to create document request', e)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to create document request', e)


@documents_bp.route('/<int:document_id>', methods=['GET'])
def get_document(document_id: int):
    document = db.session.get(Document, document_id)
    if not document:
        return error_404('Not found')
    return jsonify(document.to_dict()), 200


@documents_bp.route('/<int:document_id>', methods=['PATCH'])
def update_document(document_id: int):
    """Partial update; the tracking number cannot change."""
    try:
        document = db.session.get(Document, document_id)
        if not document:
            return error_404('Not found')

        previous_status = document.status
        apply_document_patch(document, processing.request_payload())
        db.session.commit()
    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_upstream('Failed to update document', e)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to update document', e)

    if document.status != previous_status:
        notify_document_status(document)
    return jsonify(document.to_dict()), 200


@documents_bp.route('/<int:document_id>/set_status', methods=['POST'])
def set_status(document_id: int):
    try:
        document = db.session.get(Document, document_id)
        if not document:
            return error_404('Not found')

        data = request.get_json(silent=True) or {}
        set_document_status(document, data.get('status'))
        db.session.commit()
        current_app.logger.info("Document %s status set to %s", document.tracking_number, document.status)
    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_upstream('Failed to update status', e)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to update status', e)

    # Persisted first; notification failures never reach the caller
    notify_document_status(document)
    return jsonify(document.to_dict()), 200


@documents_bp.route('/<int:document_id>', methods=['DELETE'])
@admin_required
def delete_document(document_id: int):
    try:
        document = db.session.get(Document, document_id)
        if not document:
            return error_404('Not found')
        db.session.delete(document)
        db.session.commit()
        return jsonify({'success': True}), 200
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_upstream('Failed to delete document', e)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to delete document', e)


@documents_bp.route('/track/by-number/<tracking_number>', methods=['GET'])
def track_by_number(tracking_number: str):
    document = Document.query.filter_by(tracking_number=tracking_number).first()
    if not document:
        return error_404('Not found')
    return jsonify(document.to_dict()), 200


@documents_bp.route('/<int:document_id>/certificate', methods=['POST'])
@admin_required
def upload_certificate(document_id: int):
    document = db.session.get(Document, document_id)
    if not document:
        return error_404('Not found')
    return processing.upload_certificate(document, _serialize)


@documents_bp.route('/<int:document_id>/crime-record', methods=['POST'])
@admin_required
def set_crime_record(document_id: int):
    document = db.session.get(Document, document_id)
    if not document:
        return error_404('Not found')
    return processing.update_crime_record(document, _serialize)


@documents_bp.route('/<int:document_id>/certification', methods=['POST'])
@admin_required
def increment_certification(document_id: int):
    return processing.bump_certification(Document, document_id, _serialize)


@documents_bp.route('/<int:document_id>/payment', methods=['PATCH'])
def update_payment(document_id: int):
    document = db.session.get(Document, document_id)
    if not document:
        return error_404('Not found')
    return processing.update_payment(document, _serialize)


@documents_bp.route('/download/<tracking_number>', methods=['GET'])
def download_document(tracking_number: str):
    """Serve the attached certificate, or a generated record PDF when there is none."""
    document = Document.query.filter_by(tracking_number=tracking_number).first()
    if not document:
        return error_404('Not found')

    if document.certificate_url:
        try:
            return send_stored_file(
                document.certificate_url,
                document.certificate_filename or f"{tracking_number}.pdf",
            )
        except PermissionError:
            return jsonify({'error': 'File access denied'}), 403
        except FileNotFoundError:
            current_app.logger.warning("Certificate file missing for %s; generating record PDF", tracking_number)

    try:
        return render_document_pdf(document)
    except Exception as e:
        return error_500('Failed to generate PDF', e)
