"""Outbound SMS for resident notifications.

``SMS_PROVIDER`` picks the transport: ``disabled`` (default), ``console``
(log only) or ``philsms``. PhilSMS does not reach every Philippine network,
so SMS only ever supplements email.
"""
from __future__ import annotations
from typing import List, Dict, Any
import requests
from flask import current_app


PHILSMS_DEFAULT_BASE_URL = 'https://dashboard.philsms.com/api/v3'
SMS_TIMEOUT_SECONDS = 15


def mask_number(number: str) -> str:
    """Keep only the last four digits visible, for logs."""
    digits = ''.join(ch for ch in str(number or '') if ch.isdigit())
    if not digits:
        return '***'
    hidden = len(digits) - 4 if len(digits) > 4 else len(digits)
    return '*' * hidden + digits[hidden:]


def normalize_sms_number(number: str | None) -> str | None:
    """Return a mobile number as ``63XXXXXXXXXX``, or None when it is not one.

    Accepts local ``09XXXXXXXXX``, bare ``9XXXXXXXXX`` and ``+63`` forms with any
    spacing or punctuation.
    """
    digits = ''.join(ch for ch in str(number or '') if ch.isdigit())
    if len(digits) == 12 and digits.startswith('63'):
        return digits
    if len(digits) == 11 and digits.startswith('09'):
        return '63' + digits[1:]
    if len(digits) == 10 and digits.startswith('9'):
        return '63' + digits
    return None


def _branded(text: str) -> str:
    # Carriers drop unbranded texts
    brand = (current_app.config.get('APP_NAME') or '').strip() or 'ABIS'
    body = (text or '').strip()
    if body and not body.lower().startswith(brand.lower()):
        body = f"{brand}: {body}"
    return body


def _post_philsms(recipient: str, body: str) -> str | None:
    """Send one message through PhilSMS. Returns an error string, or None on success."""
    config = current_app.config
    base_url = (config.get('PHILSMS_BASE_URL') or PHILSMS_DEFAULT_BASE_URL).rstrip('/')
    payload: Dict[str, Any] = {'recipient': recipient, 'message': body}
    if config.get('PHILSMS_SENDER_ID'):
        payload['sender_id'] = config['PHILSMS_SENDER_ID']

    try:
        resp = requests.post(
            f"{base_url}/sms/send",
            json=payload,
            headers={'Authorization': f"Bearer {config.get('PHILSMS_API_KEY')}"},
            timeout=SMS_TIMEOUT_SECONDS,
        )
    except requests.exceptions.RequestException as exc:
        current_app.logger.error("PhilSMS network error for %s: %s", mask_number(recipient), exc)
        return str(exc)[:200]

    if resp.status_code in (200, 201, 202):
        return None
    current_app.logger.error(
        "PhilSMS rejected message for %s: status=%s body=%s",
        mask_number(recipient), resp.status_code, resp.text[:200],
    )
    return resp.text[:200]


def send_sms(numbers: List[str], message: str) -> Dict[str, Any]:
    """Send ``message`` to every valid number in ``numbers``.

    Never raises. The result carries ``status`` (``sent``, ``skipped`` or
    ``failed``) plus a ``reason``, ``warning`` or ``error`` where relevant.
    """
    recipients = [n for n in (normalize_sms_number(x) for x in numbers) if n]
    if not recipients:
        return {'status': 'skipped', 'reason': 'no_numbers'}
    body = _branded(message)
    if not body:
        return {'status': 'skipped', 'reason': 'empty_message'}

    provider = (current_app.config.get('SMS_PROVIDER') or 'disabled').lower()
    masked = [mask_number(n) for n in recipients]

    if provider == 'disabled':
        current_app.logger.info("SMS disabled; not texting %s", masked)
        return {'status': 'skipped', 'reason': 'sms_disabled'}
    if provider == 'console':
        current_app.logger.info("[SMS console] to=%s message=%s", masked, body[:240])
        return {'status': 'sent'}
    if provider != 'philsms':
        return {'status': 'skipped', 'reason': 'unknown_provider'}
    if not current_app.config.get('PHILSMS_API_KEY'):
        return {'status': 'skipped', 'reason': 'not_configured'}

    # One recipient per request on PhilSMS v3
    errors = [err for err in (_post_philsms(r, body) for r in recipients) if err]
    if not errors:
        return {'status': 'sent'}
    if len(errors) == len(recipients):
        return {'status': 'failed', 'reason': 'all_failed', 'error': errors[-1]}
    return {'status': 'sent', 'warning': f'{len(errors)} of {len(recipients)} failed'}
