"""Status rules and record mutations for documents and blotter entries.

Handlers call into these helpers and own the commit; nothing here commits
except ``increment_certification``, which is a single UPDATE statement.

Status transitions are open by default: any known status may follow any
other. With ``STRICT_STATUS_TRANSITIONS`` enabled, the tables below decide.
"""
from __future__ import annotations

from datetime import datetime
from typing import Mapping, Optional

from flask import current_app

from abis.api import db
from abis.api.models.blotter import (
    Blotter,
    ANONYMOUS_REPORTER,
    BLOTTER_STATUSES,
    BLOTTER_PAYMENT_METHODS,
    BLOTTER_PAYMENT_STATUSES,
    BLOTTER_CRIME_RECORD_STATUSES,
)
from abis.api.models.document import (
    Document,
    DOCUMENT_STATUSES,
    DOCUMENT_PAYMENT_METHODS,
    DOCUMENT_PAYMENT_STATUSES,
)
from abis.api.utils.form_fields import APPOINTMENT_ALIASES, resolve_field
from abis.api.utils.identifiers import generate_tracking_number, generate_pickup_code, generate_public_token
from abis.api.utils.time import to_naive_utc, utc_now
from abis.api.utils.validators import (
    ValidationError,
    parse_bool,
    validate_choice,
    validate_required_fields,
    validate_text,
)


ISSUED_STATUSES = ('issued', 'ready_for_pickup')

DOCUMENT_TRANSITIONS = {
    'pending': {'accepted', 'rejected'},
    'accepted': {'issued', 'ready_for_pickup', 'rejected'},
    'issued': {'ready_for_pickup'},
    'ready_for_pickup': {'issued'},
    'rejected': {'pending'},
}

BLOTTER_TRANSITIONS = {
    'pending': {'published', 'investigating', 'closed'},
    'published': {'investigating', 'closed'},
    'investigating': {'published', 'closed'},
    'closed': {'investigating'},
}

# Only documents may be forced into a pickup state by a certificate upload
CERTIFICATE_READY_STATUS = 'ready_for_pickup'

DOCUMENT_PATCHABLE_FIELDS = {
    'residentName': 'resident_name',
    'documentType': 'doc_type',
    'docType': 'doc_type',
    'pickupCode': 'pickup_code',
    'remarks': 'remarks',
}

BLOTTER_PATCHABLE_FIELDS = {
    'title': 'title',
    'description': 'description',
    'reporterName': 'reporter_name',
    'reporterContact': 'reporter_contact',
}

# Columns that may not be cleared
REQUIRED_TEXT_ATTRS = {'doc_type', 'title', 'description'}


def parse_datetime(value, field: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (a trailing ``Z`` is accepted)."""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(field, f"Invalid {field}. Use an ISO-8601 date/time")
    return to_naive_utc(parsed)


def check_transition(current: str, target: str, table: Mapping[str, set]) -> None:
    if not current_app.config.get('STRICT_STATUS_TRANSITIONS'):
        return
    if current == target:
        return
    if target not in table.get(current, set()):
        raise ValidationError('status', f"Cannot change status from '{current}' to '{target}'")


def _stamp_if_issued(document: Document) -> None:
    if document.status in ISSUED_STATUSES:
        document.issued_at = utc_now()


def set_document_status(document: Document, status) -> Document:
    validate_choice(status, DOCUMENT_STATUSES, 'status')
    check_transition(document.status, status, DOCUMENT_TRANSITIONS)
    document.status = status
    # issued_at is never cleared once set
    _stamp_if_issued(document)
    return document


def set_blotter_status(blotter: Blotter, status) -> Blotter:
    validate_choice(status, BLOTTER_STATUSES, 'status')
    check_transition(blotter.status, status, BLOTTER_TRANSITIONS)
    blotter.status = status
    return blotter


def set_crime_record_status(record, value):
    """Both record types accept only ``yes`` or ``no`` from callers."""
    validate_choice(value, BLOTTER_CRIME_RECORD_STATUSES, 'crimeRecordStatus')
    record.crime_record_status = value
    return record


def increment_certification(model, record_id: int) -> Optional[int]:
    """Atomically add one to the certification count. Returns the new count, or None if absent."""
    updated = (
        model.query.filter_by(id=record_id)
        .update({model.certification_count: model.certification_count + 1}, synchronize_session=False)
    )
    if not updated:
        db.session.rollback()
        return None
    db.session.commit()
    record = db.session.get(model, record_id)
    db.session.refresh(record)
    return record.certification_count


def apply_payment_update(record, data: Mapping, proof_url: Optional[str] = None):
    """Partial update: fields absent from ``data`` are left untouched."""
    if isinstance(record, Document):
        methods, statuses = DOCUMENT_PAYMENT_METHODS, DOCUMENT_PAYMENT_STATUSES
    else:
        methods, statuses = BLOTTER_PAYMENT_METHODS, BLOTTER_PAYMENT_STATUSES

    method = data.get('paymentMethod')
    status = data.get('paymentStatus')
    if method not in (None, ''):
        record.payment_method = validate_choice(method, methods, 'paymentMethod')
    if status not in (None, ''):
        record.payment_status = validate_choice(status, statuses, 'paymentStatus')

    if proof_url is not None:
        record.payment_proof_url = proof_url
    elif 'paymentProofUrl' in data:
        record.payment_proof_url = data.get('paymentProofUrl') or None
    return record


def attach_certificate(record, url: str, filename: str):
    """Store the certificate reference; documents move to ready_for_pickup."""
    record.certificate_url = url
    record.certificate_filename = filename
    if isinstance(record, Document):
        record.status = CERTIFICATE_READY_STATUS
        _stamp_if_issued(record)
    return record


def build_document(data: Mapping) -> Document:
    """New document from a resident's request payload (not yet added to the session)."""
    if not isinstance(data, Mapping):
        raise ValidationError('body', 'Request body must be an object')

    form_fields = data.get('formFields') or {}
    if not isinstance(form_fields, Mapping):
        raise ValidationError('formFields', 'formFields must be an object')

    for key in ('documentType', 'docType', 'residentName', 'remarks'):
        validate_text(data.get(key), key)

    form_data = dict(form_fields)
    form_data['purpose'] = data.get('purpose') or form_data.get('purpose') or ''
    form_data['pickup'] = bool(data.get('pickup') or form_data.get('pickup') or False)
    for key in ('contactPhone', 'contactEmail'):
        if data.get(key):
            form_data[key] = data[key]

    status = data.get('status') or 'pending'
    validate_choice(status, DOCUMENT_STATUSES, 'status')

    appointment = data.get('appointmentDatetime') or data.get('appointment_datetime') or resolve_field(form_data, APPOINTMENT_ALIASES)

    document = Document(
        tracking_number=data.get('trackingNumber') or generate_tracking_number(),
        doc_type=data.get('documentType') or data.get('docType') or data.get('doc_type') or 'general',
        resident_name=data.get('residentName') or data.get('name') or '',
        form_data=form_data,
        pickup_code=data.get('pickupCode') or generate_pickup_code(),
        status=status,
        appointment_datetime=parse_datetime(appointment, 'appointmentDatetime'),
        remarks=data.get('remarks') or '',
    )
    _stamp_if_issued(document)
    return document


def apply_document_patch(document: Document, data: Mapping) -> Document:
    for key in ('trackingNumber', 'tracking_number'):
        if key in data and data[key] != document.tracking_number:
            raise ValidationError('trackingNumber', 'Tracking number cannot be changed')

    for key, attr in DOCUMENT_PATCHABLE_FIELDS.items():
        if key in data:
            setattr(document, attr, validate_text(data[key], key, required=attr in REQUIRED_TEXT_ATTRS))

    if 'formFields' in data:
        if not isinstance(data['formFields'], Mapping):
            raise ValidationError('formFields', 'formFields must be an object')
        merged = dict(document.form_data or {})
        merged.update(data['formFields'])
        document.form_data = merged

    for key in ('appointmentDatetime', 'appointment_datetime'):
        if key in data:
            document.appointment_datetime = parse_datetime(data[key], 'appointmentDatetime')

    if 'crimeRecordStatus' in data:
        set_crime_record_status(document, data['crimeRecordStatus'])
    if 'paymentMethod' in data or 'paymentStatus' in data or 'paymentProofUrl' in data:
        apply_payment_update(document, data)
    if 'status' in data:
        set_document_status(document, data['status'])
    return document


def build_blotter(form: Mapping, attachments: list) -> Blotter:
    validate_required_fields(form, ('title', 'description'))
    for key in ('title', 'description', 'reporterName', 'reporterContact'):
        validate_text(form.get(key), key)

    status = form.get('status') or 'pending'
    validate_choice(status, BLOTTER_STATUSES, 'status')

    return Blotter(
        title=form.get('title').strip(),
        description=form.get('description'),
        reporter_name=form.get('reporterName') or ANONYMOUS_REPORTER,
        reporter_contact=form.get('reporterContact') or '',
        incident_date=parse_datetime(form.get('incidentDate'), 'incidentDate') or utc_now(),
        status=status,
        attachments=list(attachments or []),
        public_token=generate_public_token(),
        show_reporter=parse_bool(form.get('showReporter')),
    )


def apply_blotter_patch(blotter: Blotter, data: Mapping, new_attachments: Optional[list] = None) -> Blotter:
    if 'publicToken' in data and data['publicToken'] != blotter.public_token:
        raise ValidationError('publicToken', 'Public token cannot be changed')

    for key, attr in BLOTTER_PATCHABLE_FIELDS.items():
        if key in data:
            setattr(blotter, attr, validate_text(data[key], key, required=attr in REQUIRED_TEXT_ATTRS))

    if 'incidentDate' in data:
        blotter.incident_date = parse_datetime(data['incidentDate'], 'incidentDate') or blotter.incident_date
    if 'showReporter' in data:
        blotter.show_reporter = parse_bool(data['showReporter'])
    if 'crimeRecordStatus' in data:
        set_crime_record_status(blotter, data['crimeRecordStatus'])
    if 'paymentMethod' in data or 'paymentStatus' in data or 'paymentProofUrl' in data:
        apply_payment_update(blotter, data)
    if 'status' in data:
        set_blotter_status(blotter, data['status'])

    if new_attachments:
        # JSON columns only persist on reassignment
        blotter.attachments = list(blotter.attachments or []) + list(new_attachments)
    return blotter
