"""Admin authorization strategies.

Every admin-only handler asks the authorizer installed on the app for a
decision instead of hard-coding the gate. ``ADMIN_AUTH_MODE`` selects the
implementation:

- ``disabled``: every caller is admitted (current deployment)
- ``enforced``: the ``X-Admin-Key`` header must exactly match ``ADMIN_API_KEY``

Presenting the credential is checked the same way in both modes, since the
blotter read path and attachment downloads depend on it.
"""
from __future__ import annotations

import hmac
from dataclasses import dataclass
from functools import wraps

from flask import current_app, request

from abis.api.utils.security import error_403


EXTENSION_KEY = 'abis_authorizer'


@dataclass(frozen=True)
class AuthDecision:
    admin: bool
    reason: str


class Authorizer:
    """Base strategy: knows how to recognise the shared admin secret."""

    enforcing = False

    def __init__(self, secret: str | None, header_name: str = 'X-Admin-Key'):
        self.secret = secret or ''
        self.header_name = header_name

    def presents_credential(self, req) -> bool:
        supplied = req.headers.get(self.header_name) or ''
        if not self.secret or not supplied:
            return False
        return hmac.compare_digest(supplied.encode('utf-8'), self.secret.encode('utf-8'))

    def authorize(self, req) -> AuthDecision:
        raise NotImplementedError


class NoopAuthorizer(Authorizer):
    """Admin gating switched off: every request passes."""

    def authorize(self, req) -> AuthDecision:
        return AuthDecision(admin=True, reason='admin_gating_disabled')


class HeaderKeyAuthorizer(Authorizer):
    """Exact match of the admin header against the configured secret."""

    enforcing = True

    def authorize(self, req) -> AuthDecision:
        if not req.headers.get(self.header_name):
            return AuthDecision(admin=False, reason='missing_admin_key')
        if not self.presents_credential(req):
            return AuthDecision(admin=False, reason='invalid_admin_key')
        return AuthDecision(admin=True, reason='admin_key')


AUTHORIZERS = {
    'disabled': NoopAuthorizer,
    'enforced': HeaderKeyAuthorizer,
}


def build_authorizer(config) -> Authorizer:
    mode = (config.get('ADMIN_AUTH_MODE') or 'disabled').strip().lower()
    try:
        cls = AUTHORIZERS[mode]
    except KeyError:
        raise RuntimeError(f"Unknown ADMIN_AUTH_MODE '{mode}'. Use one of: {', '.join(AUTHORIZERS)}")
    if cls.enforcing and not config.get('ADMIN_API_KEY'):
        raise RuntimeError("ADMIN_AUTH_MODE=enforced requires ADMIN_API_KEY to be set")
    return cls(config.get('ADMIN_API_KEY'), config.get('ADMIN_KEY_HEADER') or 'X-Admin-Key')


def init_authorizer(app, authorizer: Authorizer | None = None) -> Authorizer:
    authorizer = authorizer or build_authorizer(app.config)
    app.extensions[EXTENSION_KEY] = authorizer
    app.logger.info("Admin authorization mode: %s", type(authorizer).__name__)
    return authorizer


def get_authorizer() -> Authorizer:
    return current_app.extensions[EXTENSION_KEY]


def admin_required(fn):
    """Reject the request with 403 when the installed authorizer says no."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        decision = get_authorizer().authorize(request)
        if not decision.admin:
            return error_403('Not authorized', code=decision.reason.upper())
        return fn(*args, **kwargs)
    return wrapper


def uploader_identity() -> str:
    """Label recorded on uploaded certificates."""
    return 'admin' if get_authorizer().presents_credential(request) else 'unknown'
