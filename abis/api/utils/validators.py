"""Input validation helpers."""
from __future__ import annotations

import os
from typing import Iterable


ALLOWED_BLOTTER_EXTENSIONS = {'jpg', 'jpeg', 'png', 'heic'}
ALLOWED_CERTIFICATE_EXTENSIONS = {'pdf'}
ALLOWED_CERTIFICATE_VARIANT_EXTENSIONS = {'pdf', 'jpg', 'jpeg', 'png'}
ALLOWED_PAYMENT_PROOF_EXTENSIONS = {'jpg', 'jpeg', 'png', 'heic', 'pdf'}
ALLOWED_QR_EXTENSIONS = {'jpg', 'jpeg', 'png', 'webp'}

TRUTHY_VALUES = {'true', '1', 'yes', 'on'}


class ValidationError(Exception):
    """Raised when request input is rejected before reaching the store."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message

    def __str__(self):
        return self.message


def validate_required_fields(data: dict, required: Iterable[str]) -> None:
    if not isinstance(data, dict):
        raise ValidationError('body', 'Request body must be an object')
    missing = []
    for field in required:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    if missing:
        raise ValidationError(missing[0], f"Missing required field(s): {', '.join(missing)}")


def validate_text(value, field: str, required: bool = False):
    """Text fields must be strings; ``required`` also rejects None and blanks."""
    if value is None and not required:
        return None
    if not isinstance(value, str):
        raise ValidationError(field, f"{field} must be a string")
    if required and not value.strip():
        raise ValidationError(field, f"{field} must not be empty")
    return value


def validate_choice(value, choices: Iterable[str], field: str) -> str:
    """Accept exactly one of ``choices``."""
    allowed = tuple(choices)
    if value not in allowed:
        raise ValidationError(field, f"Invalid {field}. Allowed: {', '.join(allowed)}")
    return value


def validate_file_extension(filename: str, allowed_extensions: Iterable[str]) -> str:
    """Return the lower-cased extension (without dot) or raise."""
    _, ext = os.path.splitext(filename or '')
    ext = ext.lower().lstrip('.')
    allowed = {e.lower() for e in allowed_extensions}
    if not ext or ext not in allowed:
        pretty = ', '.join(sorted(e.upper() for e in allowed))
        raise ValidationError('file', f'Unsupported file type. Allowed: {pretty}')
    return ext


def validate_file_size(file_size: int, max_size_mb: float) -> None:
    if file_size > max_size_mb * 1024 * 1024:
        raise ValidationError('file', f'File too large. Maximum size is {max_size_mb:g}MB per file.')


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() in TRUTHY_VALUES
