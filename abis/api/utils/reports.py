"""CSV exports for documents and blotter entries."""
import csv
from io import StringIO
from typing import Iterable, List, Mapping

from abis.api.models.mixins import iso
from abis.api.utils.form_fields import NAME_ALIASES, resolve_field


DOCUMENT_CSV_FIELDS = [
    'trackingNumber', 'requestDate', 'residentName', 'documentType', 'status', 'pickupCode', 'remarks',
    'paymentMethod', 'paymentStatus', 'certificationCount',
]
BLOTTER_CSV_FIELDS = ['id', 'title', 'description', 'reporterName', 'incidentDate', 'status', 'paymentStatus']

EXPORT_LIMIT = 10000


def to_csv(rows: Iterable[Mapping], fields: List[str]) -> str:
    """Header row plus one line per row; missing values become empty cells."""
    buffer = StringIO()
    writer = csv.DictWriter(buffer, fieldnames=fields, extrasaction='ignore', lineterminator='\n')
    writer.writeheader()
    for row in rows:
        writer.writerow({f: ('' if row.get(f) is None else row.get(f)) for f in fields})
    return buffer.getvalue()


def document_row(document) -> dict:
    return {
        'trackingNumber': document.tracking_number,
        'requestDate': iso(document.created_at) or '',
        'residentName': document.resident_name or resolve_field(document.form_data, NAME_ALIASES) or '',
        'documentType': document.doc_type,
        'status': document.status,
        'pickupCode': document.pickup_code or '',
        'remarks': document.remarks or '',
        'paymentMethod': document.payment_method,
        'paymentStatus': document.payment_status,
        'certificationCount': document.certification_count or 0,
    }


def blotter_row(blotter) -> dict:
    return {
        'id': blotter.id,
        'title': blotter.title,
        # one line per record
        'description': (blotter.description or '').replace('\r\n', ' ').replace('\n', ' '),
        'reporterName': blotter.reporter_name or '',
        'incidentDate': iso(blotter.incident_date) or '',
        'status': blotter.status,
        'paymentStatus': blotter.payment_status,
    }
