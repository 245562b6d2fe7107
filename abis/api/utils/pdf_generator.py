"""
PDF record generator for document requests (template-free).

Uses reportlab to render a one-page A4 record with:
- Organisation header and title
- Bordered sections (Request Details, Purpose/Remarks, Certification Record,
  Payment Information); a section with no values is left out
- A verification QR code for the tracking number

PDFs are built in memory; callers stream the bytes.

Entry point: generate_document_record_pdf(document, organization_name) -> bytes
"""
from __future__ import annotations

import logging
from io import BytesIO
from typing import List, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from abis.api.models.mixins import iso
from abis.api.utils.form_fields import NAME_ALIASES, PURPOSE_ALIASES, resolve_field
from abis.api.utils.qr_generator import build_tracking_url, generate_qr_code_bytes
from abis.api.utils.time import utc_now

logger = logging.getLogger(__name__)

Section = Tuple[str, List[Tuple[str, str]]]

BODY_FONT = "Helvetica"
LABEL_FONT = "Helvetica-Bold"
LINE_HEIGHT = 5.5 * mm
LABEL_WIDTH = 48 * mm


def _safe_text(value: object) -> str:
    """Return PDF-safe text for built-in ReportLab fonts."""
    text = str(value or "")
    try:
        text.encode("latin-1")
        return text
    except UnicodeEncodeError:
        return text.encode("latin-1", "replace").decode("latin-1")


def _rows(pairs) -> List[Tuple[str, str]]:
    return [(label, str(value)) for label, value in pairs if value not in (None, '', 0)]


def build_sections(document) -> List[Section]:
    """Sections with at least one value, in print order."""
    form = document.form_data or {}
    resident = document.resident_name or resolve_field(form, NAME_ALIASES)
    appointment = iso(document.appointment_datetime)

    crime_record = document.crime_record_status if document.crime_record_status not in (None, 'unknown') else None
    payment_method = document.payment_method if document.payment_method not in (None, 'none') else None

    sections: List[Section] = [
        ('Request Details', _rows([
            ('Tracking Number', document.tracking_number),
            ('Requested By', resident),
            ('Document Type', document.doc_type),
            ('Request Date', iso(document.created_at)),
            ('Status', document.status),
            ('Pickup Code', document.pickup_code),
            ('Appointment', appointment),
        ])),
        ('Purpose / Remarks', _rows([
            ('Purpose', resolve_field(form, PURPOSE_ALIASES)),
            ('Remarks', document.remarks),
        ])),
        ('Certification Record', _rows([
            ('Crime Record', crime_record),
            ('Times Certified', document.certification_count),
            ('Issued At', iso(document.issued_at)),
        ])),
        ('Payment Information', _rows([
            ('Payment Method', payment_method),
            ('Payment Status', document.payment_status if payment_method or document.payment_proof_url else None),
            ('Proof of Payment', document.payment_proof_url),
        ])),
    ]
    return [(title, rows) for title, rows in sections if rows]


def _draw_border(c: canvas.Canvas, margin_mm: float = 12.0):
    width, height = A4
    m = margin_mm * mm
    c.setStrokeColor(colors.HexColor("#003399"))
    c.setLineWidth(2)
    c.rect(m, m, width - 2 * m, height - 2 * m, stroke=1, fill=0)


def _draw_header(c: canvas.Canvas, organization_name: str) -> float:
    width, height = A4
    top_y = height - 28 * mm
    c.setFillColor(colors.black)
    c.setFont("Times-Bold", 12)
    c.drawCentredString(width / 2, top_y, "Republic of the Philippines")
    c.setFont("Times-Roman", 12)
    c.drawCentredString(width / 2, top_y - 6 * mm, _safe_text(organization_name))
    c.setFont("Times-Bold", 18)
    c.drawCentredString(width / 2, top_y - 18 * mm, "DOCUMENT REQUEST RECORD")
    return top_y - 30 * mm


def _draw_qr(c: canvas.Canvas, tracking_number: str):
    width, height = A4
    size = 28 * mm
    try:
        png = generate_qr_code_bytes(build_tracking_url(tracking_number), size=300)
        c.drawImage(ImageReader(BytesIO(png)), width - 20 * mm - size, height - 20 * mm - size,
                    width=size, height=size, mask='auto')
    except (OSError, ValueError) as exc:
        # Record stays printable without the code
        logger.warning("QR code skipped for %s: %s", tracking_number, exc)


def _draw_section(c: canvas.Canvas, title: str, rows: List[Tuple[str, str]], y: float) -> float:
    width, _ = A4
    left = 22 * mm
    right = width - 22 * mm
    value_width = right - left - LABEL_WIDTH - 6 * mm

    lines = []
    for label, value in rows:
        wrapped = simpleSplit(_safe_text(value), BODY_FONT, 10, value_width) or ['']
        lines.append((label, wrapped))
    body_height = sum(len(w) for _, w in lines) * LINE_HEIGHT
    box_height = body_height + 12 * mm

    c.setStrokeColor(colors.HexColor("#999999"))
    c.setLineWidth(0.8)
    c.rect(left, y - box_height, right - left, box_height, stroke=1, fill=0)

    c.setFont(LABEL_FONT, 11)
    c.drawString(left + 3 * mm, y - 6 * mm, _safe_text(title))

    cursor = y - 12 * mm
    for label, wrapped in lines:
        c.setFont(LABEL_FONT, 10)
        c.drawString(left + 3 * mm, cursor, _safe_text(label))
        c.setFont(BODY_FONT, 10)
        for part in wrapped:
            c.drawString(left + 3 * mm + LABEL_WIDTH, cursor, part)
            cursor -= LINE_HEIGHT
    return y - box_height - 6 * mm


def generate_document_record_pdf(document, organization_name: str) -> bytes:
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(_safe_text(f"Document Request {document.tracking_number}"))

    _draw_border(c)
    y = _draw_header(c, organization_name)
    _draw_qr(c, document.tracking_number)

    for title, rows in build_sections(document):
        if y < 50 * mm:
            c.showPage()
            _draw_border(c)
            y = A4[1] - 25 * mm
        y = _draw_section(c, title, rows, y)

    c.setFont("Times-Italic", 9)
    c.drawString(22 * mm, 18 * mm, _safe_text(f"Generated {utc_now().strftime('%Y-%m-%d %H:%M UTC')}"))
    c.showPage()
    c.save()
    return buffer.getvalue()
