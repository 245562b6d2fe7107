"""Who is reading a blotter entry, and what they may see.

Precedence: admin, then the reporter holding the entry's public token, then
everyone else (redacted projection).
"""
from __future__ import annotations

import hmac
from typing import Optional

from flask import current_app

from abis.api.models.blotter import resolve_attachment_url
from abis.api.utils.authorization import get_authorizer


ACCESS_ADMIN = 'admin'
ACCESS_TOKEN = 'token'
ACCESS_PUBLIC = 'public'

SHORT_DESCRIPTION_LENGTH = 400
ADMIN_QUERY_VALUES = ('1', 'true')


def supplied_token(req) -> Optional[str]:
    header = current_app.config.get('PUBLIC_TOKEN_HEADER') or 'X-Public-Token'
    return req.args.get('token') or req.headers.get(header) or None


def token_matches(blotter, token: Optional[str]) -> bool:
    if not token or not blotter.public_token:
        return False
    return hmac.compare_digest(str(token).encode('utf-8'), blotter.public_token.encode('utf-8'))


def is_admin_caller(req) -> bool:
    """Admin credential header, or the admin UI's explicit ``?admin=`` flag.

    The query flag carries no secret, so an enforcing authorizer ignores it.
    """
    authorizer = get_authorizer()
    if authorizer.presents_credential(req):
        return True
    if authorizer.enforcing:
        return False
    return (req.args.get('admin') or '').lower() in ADMIN_QUERY_VALUES


def resolve_access(blotter, req) -> str:
    if is_admin_caller(req):
        return ACCESS_ADMIN
    if token_matches(blotter, supplied_token(req)):
        return ACCESS_TOKEN
    return ACCESS_PUBLIC


def _public_attachment(att: dict, base_url: str) -> Optional[dict]:
    url = resolve_attachment_url(att, base_url)
    if not url:
        return None
    return {
        'url': url,
        'originalname': att.get('originalname') or att.get('filename'),
        'format': att.get('format'),
        'public_id': att.get('public_id'),
    }


def public_projection(blotter, base_url: str) -> dict:
    """Redacted view for callers with neither admin rights nor the token."""
    attachments = [
        item for item in (_public_attachment(att, base_url) for att in blotter.attachments or []) if item
    ]
    description = blotter.description or ''
    data = {
        'id': blotter.id,
        'title': blotter.title,
        'description': description,
        'shortDescription': description[:SHORT_DESCRIPTION_LENGTH],
        'incidentDate': blotter.incident_date.isoformat() if blotter.incident_date else None,
        'status': blotter.status,
        'createdAt': blotter.created_at.isoformat() if blotter.created_at else None,
        'attachmentsCount': len(attachments),
        'attachments': attachments,
    }
    if blotter.show_reporter:
        data['reporterName'] = blotter.reporter_name
        data['reporterContact'] = blotter.reporter_contact
    return data


def shape_blotter(blotter, req, base_url: str) -> dict:
    access = resolve_access(blotter, req)
    if access == ACCESS_PUBLIC:
        return public_projection(blotter, base_url)
    return blotter.to_dict(base_url)
