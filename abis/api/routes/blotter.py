"""Blotter (incident report) routes.

Anyone may file a report with up to three photos. The reporter receives a
public token that unlocks the full record; everyone else sees a redacted
projection unless they hold the admin credential.
"""
import os

from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import SQLAlchemyError

from abis.api import db, limiter
from abis.api.models.blotter import Blotter
from abis.api.routes import processing
from abis.api.utils import (
    ValidationError,
    StorageError,
    admin_required,
    discard_uploads,
    error_400,
    error_403,
    error_404,
    error_500,
    error_upstream,
    save_uploads,
    send_stored_file,
)
from abis.api.utils.lifecycle import apply_blotter_patch, build_blotter
from abis.api.utils.security import ALLOWED_IMAGE_MIMES
from abis.api.utils.validators import ALLOWED_BLOTTER_EXTENSIONS
from abis.api.utils.visibility import is_admin_caller, shape_blotter, supplied_token, token_matches


blotter_bp = Blueprint('blotter', __name__, url_prefix='/api/blotter')

LIST_LIMIT = 1000


def _limit(limit_string: str):
    """Apply rate limit if limiter is available."""
    def decorator(f):
        if limiter:
            return limiter.limit(limit_string)(f)
        return f
    return decorator


def _base_url() -> str:
    return request.host_url.rstrip('/')


def _serialize(blotter):
    return blotter.to_dict(_base_url())


def _incoming_attachments():
    """Validated and stored ``attachments`` files (all-or-nothing)."""
    files = [f for f in request.files.getlist('attachments') if f and f.filename]
    if not files:
        return []
    max_files = current_app.config.get('BLOTTER_MAX_ATTACHMENTS', 3)
    if len(files) > max_files:
        raise ValidationError('attachments', f'Too many files. Maximum is {max_files} attachments.')
    return save_uploads(
        files,
        'blotter',
        allowed_extensions=ALLOWED_BLOTTER_EXTENSIONS,
        max_size_mb=current_app.config.get('BLOTTER_MAX_FILE_MB', 2),
        allowed_mimes=ALLOWED_IMAGE_MIMES,
    )


def _find_attachment(blotter, filename: str):
    """Match on stored path, its basename, original name or storage id."""
    wanted = (filename or '').strip()
    for att in blotter.attachments or []:
        stored = att.get('filename') or ''
        candidates = {
            stored,
            os.path.basename(stored),
            att.get('originalname') or '',
            os.path.basename(att.get('public_id') or ''),
        }
        if wanted and wanted in candidates:
            return att
    return None


@blotter_bp.route('', methods=['POST'])
@_limit("20 per hour")
def create_blotter():
    attachments = []
    try:
        form = request.form.to_dict() if request.form else (request.get_json(silent=True) or {})
        # Reject a bad record before anything is uploaded
        build_blotter(form, [])
        attachments = _incoming_attachments()
        blotter = build_blotter(form, attachments)
        db.session.add(blotter)
        db.session.commit()
        current_app.logger.info("Blotter %s created with %s attachment(s)", blotter.id, len(attachments))
        return jsonify(blotter.to_dict(_base_url())), 201

    except ValidationError as e:
        return error_400(str(e))
    except StorageError as e:
        db.session.rollback()
        return error_upstream('Failed to upload attachments', e)
    except SQLAlchemyError as e:
        db.session.rollback()
        discard_uploads(attachments)
        return error_upstream('Failed to create blotter report', e)
    except Exception as e:
        db.session.rollback()
        discard_uploads(attachments)
        return error_500('Failed to create blotter report', e)


@blotter_bp.route('', methods=['GET'])
@admin_required
def list_blotter():
    try:
        query = Blotter.query
        status = request.args.get('status')
        if status:
            query = query.filter_by(status=status)
        items = query.order_by(Blotter.created_at.desc(), Blotter.id.desc()).limit(LIST_LIMIT).all()
        base_url = _base_url()
        return jsonify([b.to_dict(base_url) for b in items]), 200
    except Exception as e:
        return error_500('Failed to list blotter reports', e)


@blotter_bp.route('/pending', methods=['GET'])
@admin_required
def list_pending():
    try:
        items = (
            Blotter.query.filter_by(status='pending')
            .order_by(Blotter.created_at.desc(), Blotter.id.desc())
            .limit(LIST_LIMIT)
            .all()
        )
        base_url = _base_url()
        return jsonify([b.to_dict(base_url) for b in items]), 200
    except Exception as e:
        return error_500('Failed to list pending reports', e)


@blotter_bp.route('/<int:blotter_id>', methods=['GET'])
def get_blotter(blotter_id: int):
    """Full record for admins and token holders, redacted projection otherwise."""
    blotter = db.session.get(Blotter, blotter_id)
    if not blotter:
        return error_404('Not found')
    return jsonify(shape_blotter(blotter, request, _base_url())), 200


@blotter_bp.route('/<int:blotter_id>', methods=['PATCH'])
@admin_required
def update_blotter(blotter_id: int):
    """Merge known fields; uploaded files are appended to the attachments."""
    new_attachments = []
    try:
        blotter = db.session.get(Blotter, blotter_id)
        if not blotter:
            return error_404('Not found')

        data = processing.request_payload()
        # Validate the field changes before uploading anything
        apply_blotter_patch(blotter, data)
        new_attachments = _incoming_attachments()
        if new_attachments:
            apply_blotter_patch(blotter, {}, new_attachments)
        db.session.commit()
        return jsonify(blotter.to_dict(_base_url())), 200

    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except StorageError as e:
        db.session.rollback()
        return error_upstream('Failed to upload attachments', e)
    except SQLAlchemyError as e:
        db.session.rollback()
        discard_uploads(new_attachments)
        return error_upstream('Failed to update blotter report', e)
    except Exception as e:
        db.session.rollback()
        discard_uploads(new_attachments)
        return error_500('Failed to update blotter report', e)


@blotter_bp.route('/<int:blotter_id>', methods=['DELETE'])
@admin_required
def delete_blotter(blotter_id: int):
    try:
        blotter = db.session.get(Blotter, blotter_id)
        if not blotter:
            return error_404('Not found')
        db.session.delete(blotter)
        db.session.commit()
        return jsonify({'success': True}), 200
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_upstream('Failed to delete blotter report', e)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to delete blotter report', e)


@blotter_bp.route('/download/attachment/<path:filename>', methods=['GET'])
def download_attachment(filename: str):
    """Published reports are open to all; others need the admin credential or the token."""
    blotter_id = request.args.get('blotterId', type=int)
    if not request.args.get('blotterId'):
        return error_400('blotterId required')
    if blotter_id is None:
        return error_400('Invalid blotterId')

    blotter = db.session.get(Blotter, blotter_id)
    if not blotter:
        return error_404('Not found')

    if blotter.status != 'published':
        if not (is_admin_caller(request) or token_matches(blotter, supplied_token(request))):
            return error_403('Not authorized')

    attachment = _find_attachment(blotter, filename)
    if not attachment:
        return error_404('Attachment not found')

    ref = attachment.get('url') or attachment.get('filename')
    try:
        return send_stored_file(ref, attachment.get('originalname') or os.path.basename(filename))
    except PermissionError:
        return jsonify({'error': 'File access denied'}), 403
    except FileNotFoundError:
        return error_404('File not found')


@blotter_bp.route('/<int:blotter_id>/certificate', methods=['POST'])
@admin_required
def upload_certificate(blotter_id: int):
    blotter = db.session.get(Blotter, blotter_id)
    if not blotter:
        return error_404('Not found')
    return processing.upload_certificate(blotter, _serialize)


@blotter_bp.route('/<int:blotter_id>/crime-record', methods=['POST'])
@admin_required
def set_crime_record(blotter_id: int):
    blotter = db.session.get(Blotter, blotter_id)
    if not blotter:
        return error_404('Not found')
    return processing.update_crime_record(blotter, _serialize)


@blotter_bp.route('/<int:blotter_id>/certification', methods=['POST'])
@admin_required
def increment_certification(blotter_id: int):
    return processing.bump_certification(Blotter, blotter_id, _serialize)


@blotter_bp.route('/<int:blotter_id>/payment', methods=['PATCH'])
def update_payment(blotter_id: int):
    blotter = db.session.get(Blotter, blotter_id)
    if not blotter:
        return error_404('Not found')
    return processing.update_payment(blotter, _serialize)
