"""Best-effort notifications for request updates.

Records are always committed before any of these helpers run. Each helper
catches and logs its own failures; nothing here may fail the request that
triggered it.
"""
from __future__ import annotations
from typing import Dict, Any

from flask import current_app

from abis.api.utils.email_sender import send_email, EmailNotConfigured
from abis.api.utils.form_fields import resolve_contact
from abis.api.utils.sms_provider import send_sms


def document_status_message(document) -> Dict[str, str]:
    tn = document.tracking_number
    return {
        'subject': f"Your document request {tn} status: {document.status}",
        'text': f"Your request ({tn}) is now '{document.status}'.",
    }


def certificate_ready_message(tracking_label: str) -> Dict[str, str]:
    return {
        'subject': f"Your certificate for {tracking_label} is ready",
        'text': f"The certificate for your request ({tracking_label}) is ready for pickup.",
    }


def blotter_contact(blotter) -> Dict[str, Any]:
    """Reporter contact is a single free-text field: email if it looks like one, phone otherwise."""
    raw = (blotter.reporter_contact or '').strip()
    if not raw:
        return {'email': None, 'phone': None}
    if '@' in raw:
        return {'email': raw, 'phone': None}
    return {'email': None, 'phone': raw}


def dispatch(contact: Dict[str, Any], subject: str, text: str) -> Dict[str, str]:
    """Send email and SMS to whatever contact details are present.

    Returns a per-channel outcome. Never raises.
    """
    outcome = {'email': 'skipped', 'sms': 'skipped'}

    email = contact.get('email')
    if email:
        try:
            send_email(email, subject, text)
            outcome['email'] = 'sent'
        except EmailNotConfigured as exc:
            current_app.logger.info("Email skipped for %s: %s", email, exc)
        except Exception as exc:
            outcome['email'] = 'failed'
            current_app.logger.warning("Failed to send email notification to %s: %s", email, exc)

    phone = contact.get('phone')
    if phone:
        try:
            result = send_sms([str(phone)], text)
            outcome['sms'] = result.get('status', 'skipped')
        except Exception as exc:
            outcome['sms'] = 'failed'
            current_app.logger.warning("Failed to send SMS notification: %s", exc)

    return outcome


def notify_document_status(document) -> Dict[str, str]:
    try:
        message = document_status_message(document)
        return dispatch(resolve_contact(document.form_data), message['subject'], message['text'])
    except Exception as exc:
        current_app.logger.warning("Failed to send notification for %s: %s", document.tracking_number, exc)
        return {'email': 'failed', 'sms': 'failed'}


def notify_certificate_ready(record) -> Dict[str, str]:
    """Works for both documents (form-field contacts) and blotter entries (reporter contact)."""
    try:
        if hasattr(record, 'tracking_number'):
            contact = resolve_contact(record.form_data)
            label = record.tracking_number
        else:
            contact = blotter_contact(record)
            label = f"blotter #{record.id}"
        message = certificate_ready_message(label)
        return dispatch(contact, message['subject'], message['text'])
    except Exception as exc:
        current_app.logger.warning("Failed to send certificate notification: %s", exc)
        return {'email': 'failed', 'sms': 'failed'}
