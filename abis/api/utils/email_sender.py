"""Plain-text email for resident notifications.

Transport is picked from config, first match wins:

- ``SENDGRID_API_KEY``: SendGrid v3 HTTP API (hosts that block outbound SMTP)
- ``SMTP_SERVER``: SMTP with STARTTLS

With neither set, ``send_email`` raises ``EmailNotConfigured`` so callers can
tell "skipped" apart from "failed".
"""
import json
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

import requests
from flask import current_app


SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
SEND_TIMEOUT_SECONDS = 30


class EmailNotConfigured(RuntimeError):
    """No email transport is configured."""


def _sender() -> tuple:
    """(display name, from address) for outgoing mail."""
    cfg = current_app.config
    from_email = cfg.get('FROM_EMAIL') or cfg.get('SMTP_USERNAME')
    if not from_email:
        raise RuntimeError("FROM_EMAIL is not configured")
    return cfg.get('APP_NAME') or 'ABIS', from_email


def _send_via_smtp(to_email: str, subject: str, body: str) -> None:
    cfg = current_app.config
    server_name = cfg.get('SMTP_SERVER')
    port = cfg.get('SMTP_PORT', 587)
    username = cfg.get('SMTP_USERNAME')
    password = cfg.get('SMTP_PASSWORD')
    if not username or not password:
        raise RuntimeError("SMTP_USERNAME and SMTP_PASSWORD are required for SMTP")
    name, from_email = _sender()

    msg = MIMEMultipart()
    msg['From'] = f"{name} <{from_email}>"
    msg['To'] = to_email
    msg['Subject'] = subject
    msg.attach(MIMEText(body, 'plain'))

    try:
        with smtplib.SMTP(server_name, port, timeout=SEND_TIMEOUT_SECONDS) as server:
            server.starttls()
            server.login(username, password)
            server.sendmail(from_email, to_email, msg.as_string())
    except smtplib.SMTPAuthenticationError as e:
        raise RuntimeError(f"SMTP authentication failed: {e}") from e
    except (smtplib.SMTPException, OSError) as e:
        raise RuntimeError(f"SMTP error: {e}") from e


def _send_via_sendgrid(to_email: str, subject: str, body: str) -> None:
    name, from_email = _sender()
    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": from_email, "name": name},
        "subject": subject,
        "content": [{"type": "text/plain", "value": body}],
    }
    headers = {"Authorization": f"Bearer {current_app.config.get('SENDGRID_API_KEY')}"}

    try:
        response = requests.post(SENDGRID_URL, headers=headers, json=payload, timeout=SEND_TIMEOUT_SECONDS)
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"SendGrid API request failed: {e}") from e

    # 202 Accepted is the normal answer
    if response.status_code not in (200, 201, 202):
        try:
            detail = json.dumps(response.json())
        except ValueError:
            detail = response.text[:200]
        raise RuntimeError(f"SendGrid API error: {response.status_code} - {detail}")


def send_email(to_email: str, subject: str, body: str) -> None:
    """
    Deliver one message through the configured transport.

    Raises:
        EmailNotConfigured: neither SendGrid nor SMTP is configured
        RuntimeError: the transport rejected or failed to deliver the message
    """
    cfg = current_app.config
    if cfg.get('SENDGRID_API_KEY'):
        transport, send = 'SendGrid', _send_via_sendgrid
    elif cfg.get('SMTP_SERVER'):
        transport, send = 'SMTP', _send_via_smtp
    else:
        raise EmailNotConfigured("No email provider configured. Set SENDGRID_API_KEY or SMTP_SERVER.")

    send(to_email, subject, body)
    current_app.logger.info("Email sent to %s via %s", to_email, transport)
