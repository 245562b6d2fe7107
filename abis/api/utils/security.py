"""Error responses and upload content-type checks shared by every blueprint."""
import logging
from typing import Optional, Dict, Set

import magic
from flask import jsonify, current_app, has_app_context

from abis.api.utils.validators import ValidationError


# =============================================================================
# Error responses
# =============================================================================

def safe_error_response(
    message: str,
    exception: Optional[Exception] = None,
    status_code: int = 500,
    code: str = None,
    log_level: str = 'error'
) -> tuple:
    """
    Build a ``{"error": ...}`` JSON response and log it.

    ``code`` adds a machine-readable ``code`` key. The exception text rides
    along as ``details``; the app's after_request hook removes it unless DEBUG.

    Returns:
        Tuple of (response, status_code)
    """
    body = {'error': message}
    if code:
        body['code'] = code
    if exception is not None:
        body['details'] = str(exception)

    logger = current_app.logger if has_app_context() else logging.getLogger(__name__)
    log = getattr(logger, log_level, logger.error)
    if exception is not None:
        log("%s: %s: %s", message, type(exception).__name__, exception)
    else:
        log("%s", message)

    return jsonify(body), status_code


def error_400(message: str = "Bad request", exception: Exception = None, code: str = None):
    return safe_error_response(message, exception, 400, code, 'warning')


def error_403(message: str = "Forbidden", exception: Exception = None, code: str = None):
    return safe_error_response(message, exception, 403, code, 'warning')


def error_404(message: str = "Not found", exception: Exception = None, code: str = None):
    return safe_error_response(message, exception, 404, code, 'info')


def error_409(message: str = "Conflict", exception: Exception = None, code: str = None):
    """Unique constraint hit, e.g. a reused tracking number."""
    return safe_error_response(message, exception, 409, code, 'warning')


def error_500(message: str = "Internal server error", exception: Exception = None, code: str = None):
    return safe_error_response(message, exception, 500, code, 'error')


def error_upstream(message: str, exception: Exception, code: str = None):
    """500 for a failed store write or upload; the cause stays in ``error`` outside DEBUG."""
    return safe_error_response(f"{message}: {exception}", exception, 500, code, 'error')


# =============================================================================
# Upload content types
# =============================================================================

JPEG_MIMES = {'image/jpeg', 'image/pjpeg', 'image/jpg'}
PNG_MIMES = {'image/png', 'image/x-png'}
HEIC_MIMES = {'image/heic', 'image/heif', 'image/heif-sequence', 'image/heic-sequence'}

# Declared type(s) each extension may arrive with
MIME_TYPE_MAP: Dict[str, Set[str]] = {
    'jpg': JPEG_MIMES,
    'jpeg': JPEG_MIMES,
    'png': PNG_MIMES,
    'webp': {'image/webp'},
    'heic': HEIC_MIMES,
    'pdf': {'application/pdf'},
}

# Per upload category
ALLOWED_IMAGE_MIMES = JPEG_MIMES | PNG_MIMES | HEIC_MIMES
CERTIFICATE_MIMES = {'application/pdf'}
CERTIFICATE_VARIANT_MIMES = ALLOWED_IMAGE_MIMES | CERTIFICATE_MIMES
PAYMENT_PROOF_MIMES = ALLOWED_IMAGE_MIMES | CERTIFICATE_MIMES
QR_MIMES = JPEG_MIMES | PNG_MIMES | {'image/webp'}

# Client-declared types that say nothing about the content
_GENERIC_MIMES = {'', 'application/octet-stream', 'binary/octet-stream'}
# What libmagic answers when it cannot identify the content
_UNIDENTIFIED_MIMES = {'application/octet-stream', 'binary/octet-stream', 'application/x-empty', 'inode/x-empty'}
# Older libmagic builds cannot identify HEIC; these fall back to the extension
SNIFF_FALLBACK_EXTENSIONS = {'heic'}
SNIFF_BYTES = 2048


def sniff_mime_type(file) -> str:
    """MIME type detected from the first bytes of the upload; the stream is rewound."""
    stream = getattr(file, 'stream', file)
    stream.seek(0)
    header = stream.read(SNIFF_BYTES)
    stream.seek(0)
    return (magic.from_buffer(header, mime=True) or '').lower()


def validate_file_mime_type(file, allowed_mimes: Set[str], extension: str) -> str:
    """
    Check an upload's real content type using magic bytes.

    The declared ``Content-Type`` must be allowed when the client sends a
    specific one, and the sniffed type must be allowed and agree with the
    extension.

    Args:
        file: werkzeug FileStorage (or a seekable file object)
        allowed_mimes: MIME types the upload category accepts
        extension: Extension already validated by the caller (with or without dot)

    Returns:
        The detected MIME type

    Raises:
        ValidationError: the content is not an allowed type or contradicts the extension
    """
    ext = (extension or '').lower().lstrip('.')
    expected = MIME_TYPE_MAP.get(ext, set())

    declared = (getattr(file, 'mimetype', None) or getattr(file, 'content_type', None) or '').lower()
    declared = declared.split(';')[0].strip()
    if declared not in _GENERIC_MIMES and declared not in allowed_mimes:
        raise ValidationError(
            'file',
            f'File type not allowed. Declared: {declared}. '
            f'Allowed: {", ".join(sorted(allowed_mimes))}'
        )

    detected = sniff_mime_type(file)
    if detected in _UNIDENTIFIED_MIMES and ext in SNIFF_FALLBACK_EXTENSIONS:
        usable = expected & allowed_mimes
        if usable:
            current_app.logger.info("MIME detection fallback for .%s", ext)
            return sorted(usable)[0]

    if detected not in allowed_mimes:
        raise ValidationError(
            'file',
            f'File type not allowed. Detected: {detected or "unknown"}. '
            f'Allowed: {", ".join(sorted(allowed_mimes))}'
        )
    if expected and detected not in expected:
        raise ValidationError('file', f'File content does not match extension .{ext}. Detected: {detected}')

    return detected
