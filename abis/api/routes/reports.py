"""Admin exports: CSV listings and per-document PDF records."""
from flask import Blueprint, Response

from abis.api import db
from abis.api.models.blotter import Blotter
from abis.api.models.document import Document
from abis.api.routes.documents import render_document_pdf
from abis.api.utils import admin_required, error_404, error_500
from abis.api.utils.reports import (
    BLOTTER_CSV_FIELDS,
    DOCUMENT_CSV_FIELDS,
    EXPORT_LIMIT,
    blotter_row,
    document_row,
    to_csv,
)


reports_bp = Blueprint('reports', __name__, url_prefix='/api/reports')


def _csv_response(body: str, filename: str) -> Response:
    return Response(
        body,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )


@reports_bp.route('/documents/csv', methods=['GET'])
@admin_required
def documents_csv():
    try:
        docs = Document.query.order_by(Document.created_at.desc(), Document.id.desc()).limit(EXPORT_LIMIT).all()
        return _csv_response(to_csv([document_row(d) for d in docs], DOCUMENT_CSV_FIELDS), 'documents-report.csv')
    except Exception as e:
        return error_500('Failed to export documents', e)


@reports_bp.route('/blotter/csv', methods=['GET'])
@admin_required
def blotter_csv():
    try:
        items = Blotter.query.order_by(Blotter.created_at.desc(), Blotter.id.desc()).limit(EXPORT_LIMIT).all()
        return _csv_response(to_csv([blotter_row(b) for b in items], BLOTTER_CSV_FIELDS), 'blotter-report.csv')
    except Exception as e:
        return error_500('Failed to export blotter reports', e)


@reports_bp.route('/document/<int:document_id>/pdf', methods=['GET'])
@admin_required
def document_pdf(document_id: int):
    document = db.session.get(Document, document_id)
    if not document:
        return error_404('Not found')
    try:
        return render_document_pdf(document)
    except Exception as e:
        return error_500('Failed to generate PDF', e)
