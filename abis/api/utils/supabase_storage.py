"""
Supabase Storage over its REST API (``requests``, no SDK).

Objects live in one bucket (``SUPABASE_STORAGE_BUCKET``) under a category
prefix such as ``blotter/`` or ``certificates/``. The bucket is expected to be
public, so the object URL returned on upload is directly downloadable.
"""
from __future__ import annotations

import logging
from typing import Tuple
from urllib.parse import urlparse, unquote

import requests
from flask import current_app

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = 'abis-files'
REQUEST_TIMEOUT_SECONDS = 30
OBJECT_PREFIXES = ('storage/v1/object/public/', 'storage/v1/object/')


class SupabaseStorageError(Exception):
    """Upload to Supabase Storage failed or storage is not configured."""


def is_configured() -> bool:
    cfg = current_app.config
    return bool(cfg.get('SUPABASE_URL') and (cfg.get('SUPABASE_SERVICE_KEY') or cfg.get('SUPABASE_KEY')))


def _settings() -> Tuple[str, str, str]:
    """Project URL, key and bucket from app config."""
    cfg = current_app.config
    base = (cfg.get('SUPABASE_URL') or '').rstrip('/')
    key = cfg.get('SUPABASE_SERVICE_KEY') or cfg.get('SUPABASE_KEY')
    if not base or not key:
        raise SupabaseStorageError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set to use remote storage")
    return base, key, cfg.get('SUPABASE_STORAGE_BUCKET') or DEFAULT_BUCKET


def _auth_headers(key: str) -> dict:
    return {'Authorization': f'Bearer {key}', 'apikey': key}


def object_path(ref: str, bucket: str) -> str:
    """Bucket-relative path for a stored reference (plain path or full object URL)."""
    path = (ref or '').strip()
    if path.startswith(('http://', 'https://')):
        path = urlparse(path).path
    path = unquote(path).lstrip('/')
    for prefix in OBJECT_PREFIXES:
        if path.startswith(prefix):
            path = path[len(prefix):]
            break
    if path.startswith(f"{bucket}/"):
        path = path[len(bucket) + 1:]
    return path


def upload_bytes(data: bytes, storage_path: str, content_type: str = 'application/octet-stream') -> Tuple[str, str]:
    """
    Store ``data`` at ``storage_path`` in the configured bucket.

    Returns:
        Tuple of (storage_path, public_url)

    Raises:
        SupabaseStorageError: not configured, network failure or non-2xx answer
    """
    base, key, bucket = _settings()
    headers = _auth_headers(key)
    headers['Content-Type'] = content_type
    try:
        response = requests.post(
            f"{base}/storage/v1/object/{bucket}/{storage_path}",
            headers=headers,
            data=data,
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    except requests.exceptions.RequestException as e:
        logger.error("Supabase upload of %s failed: %s", storage_path, e)
        raise SupabaseStorageError(f"Upload failed: {e}") from e

    if response.status_code not in (200, 201):
        raise SupabaseStorageError(f"Upload failed: {response.status_code} - {response.text[:200]}")

    logger.info("Stored %s in bucket %s", storage_path, bucket)
    return storage_path, f"{base}/storage/v1/object/public/{bucket}/{storage_path}"


def delete_file(ref: str) -> bool:
    """Remove an object. Returns False instead of raising on any failure."""
    try:
        base, key, bucket = _settings()
        path = object_path(ref, bucket)
        response = requests.delete(
            f"{base}/storage/v1/object/{bucket}/{path}",
            headers=_auth_headers(key),
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    except (SupabaseStorageError, requests.exceptions.RequestException) as e:
        logger.error("Supabase delete of %s failed: %s", ref, e)
        return False

    if response.status_code in (200, 204):
        logger.info("Deleted %s from bucket %s", path, bucket)
        return True
    logger.warning("Supabase delete of %s returned %s: %s", path, response.status_code, response.text[:200])
    return False


def is_supabase_url(url: str) -> bool:
    lowered = (url or '').lower()
    return 'supabase' in lowered and '/storage/' in lowered
