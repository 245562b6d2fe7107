"""
Unified storage handler for ABIS uploads.

- Uses Supabase Storage when it is configured (persistent, cloud-based)
- Falls back to the local filesystem under UPLOAD_FOLDER otherwise
- Keeps only the reference to an upload (URL, storage id, dimensions, format);
  the request body is never retained

Usage:
    from abis.api.utils.storage_handler import (
        validate_upload,
        save_upload,
        save_uploads,
        send_stored_file,
    )
"""
from __future__ import annotations

import os
import uuid
import logging
from io import BytesIO
from pathlib import Path
from typing import Iterable, List, Optional
from urllib.parse import urlencode, urlparse, parse_qsl, urlunparse

from flask import current_app, redirect, send_file
from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

from abis.api.utils import supabase_storage
from abis.api.utils.security import validate_file_mime_type
from abis.api.utils.time import utc_now
from abis.api.utils.validators import ValidationError, validate_file_extension, validate_file_size

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the Attachment Store rejects or fails an upload."""
    pass


def generate_unique_filename(original_filename: str) -> str:
    """Timestamp + short uuid, preserving the extension."""
    _, ext = os.path.splitext(original_filename)
    timestamp = utc_now().strftime('%Y%m%d_%H%M%S')
    return f"{timestamp}_{uuid.uuid4().hex[:8]}{ext.lower()}"


def is_remote(ref: Optional[str]) -> bool:
    return bool(ref) and str(ref).startswith(('http://', 'https://'))


def is_attachment_store_url(url: Optional[str]) -> bool:
    if not is_remote(url):
        return False
    base = (current_app.config.get('SUPABASE_URL') or '').rstrip('/')
    if base and url.startswith(base):
        return True
    return supabase_storage.is_supabase_url(url)


def with_download_hint(url: str, download_name: Optional[str] = None) -> str:
    """Ask the storage CDN to serve the object as an attachment."""
    parsed = urlparse(url)
    query = dict(parse_qsl(parsed.query))
    query['download'] = download_name or ''
    return urlunparse(parsed._replace(query=urlencode(query)))


def _image_metadata(data: bytes, ext: str) -> dict:
    """Width/height/format of an image payload; dimensions are None when unreadable."""
    meta = {'width': None, 'height': None, 'format': ext}
    try:
        with Image.open(BytesIO(data)) as img:
            meta['width'], meta['height'] = img.size
            if img.format:
                meta['format'] = img.format.lower()
    except (UnidentifiedImageError, OSError, ValueError):
        # HEIC and other formats Pillow cannot decode keep the extension only
        pass
    return meta


def validate_upload(
    file,
    allowed_extensions: Iterable[str],
    max_size_mb: float,
    allowed_mimes: Optional[set] = None,
) -> dict:
    """
    Check an upload without storing it.

    Returns:
        dict with the secured filename, extension, size and declared MIME type

    Raises:
        ValidationError: missing file, bad extension, oversize or MIME mismatch
    """
    if file is None or not getattr(file, 'filename', None):
        raise ValidationError('file', 'No file provided')

    original_name = file.filename
    safe_name = secure_filename(original_name) or 'upload'
    ext = validate_file_extension(original_name, allowed_extensions)
    if not safe_name.lower().endswith(f'.{ext}'):
        safe_name = f"{safe_name}.{ext}"

    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    validate_file_size(size, max_size_mb)

    mimetype = getattr(file, 'mimetype', None) or 'application/octet-stream'
    if allowed_mimes:
        mimetype = validate_file_mime_type(file, allowed_mimes, ext)

    return {
        'originalname': original_name,
        'safe_name': safe_name,
        'ext': ext,
        'size': size,
        'mimetype': mimetype,
    }


def _store_bytes(data: bytes, category: str, safe_name: str, mimetype: str) -> dict:
    storage_path = f"{category}/{generate_unique_filename(safe_name)}"

    if supabase_storage.is_configured():
        try:
            public_id, url = supabase_storage.upload_bytes(data, storage_path, content_type=mimetype)
        except supabase_storage.SupabaseStorageError as e:
            raise StorageError(str(e)) from e
        return {'filename': storage_path, 'url': url, 'public_id': public_id}

    upload_root = Path(current_app.config.get('UPLOAD_FOLDER') or 'uploads')
    target = upload_root / storage_path
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    except OSError as e:
        raise StorageError(f"Failed to write upload: {e}") from e
    logger.info("File saved to filesystem: %s", storage_path)
    return {'filename': storage_path, 'url': None, 'public_id': None}


def save_upload(file, category: str, checked: Optional[dict] = None, **validation) -> dict:
    """
    Validate (unless ``checked`` is given) and store a single upload.

    Returns:
        Attachment dict: filename, originalname, mimetype, url, public_id,
        width, height, format
    """
    checked = checked or validate_upload(file, **validation)
    file.stream.seek(0)
    data = file.stream.read()

    stored = _store_bytes(data, category, checked['safe_name'], checked['mimetype'])
    meta = _image_metadata(data, checked['ext']) if checked['mimetype'].startswith('image/') else {
        'width': None, 'height': None, 'format': checked['ext'],
    }
    return {
        'filename': stored['filename'],
        'originalname': checked['originalname'],
        'mimetype': checked['mimetype'],
        'url': stored['url'],
        'public_id': stored['public_id'],
        'width': meta['width'],
        'height': meta['height'],
        'format': meta['format'],
    }


def save_uploads(files: List, category: str, **validation) -> List[dict]:
    """
    Store a batch of uploads all-or-nothing.

    Every file is validated before the first upload. Uploads run one after
    another; if one fails, the ones already stored are removed and the error
    is raised so the caller commits nothing.
    """
    checked = [validate_upload(f, **validation) for f in files]
    saved: List[dict] = []
    try:
        for f, info in zip(files, checked):
            saved.append(save_upload(f, category, checked=info))
    except StorageError:
        discard_uploads(saved)
        raise
    return saved


def discard_uploads(items: List[dict]) -> None:
    """Remove objects stored for a request whose record was never saved."""
    for item in items:
        delete_stored(item.get('public_id') or item.get('filename'))


def delete_stored(ref: Optional[str]) -> bool:
    """Best-effort removal of a stored object (remote id/URL or local relative path)."""
    if not ref:
        return False
    if supabase_storage.is_configured() and (is_remote(ref) or '/' in str(ref)):
        return supabase_storage.delete_file(str(ref))
    upload_root = Path(current_app.config.get('UPLOAD_FOLDER') or 'uploads').resolve()
    local_path = (upload_root / str(ref)).resolve()
    if not str(local_path).startswith(str(upload_root)):
        return False
    try:
        local_path.unlink()
        return True
    except OSError as e:
        logger.warning("Could not delete %s: %s", ref, e)
        return False


def local_path_for(ref: str) -> Path:
    """Resolve a relative storage reference inside UPLOAD_FOLDER."""
    upload_root = Path(current_app.config.get('UPLOAD_FOLDER') or 'uploads').resolve()
    normalized = str(ref).replace('\\', '/').lstrip('/')
    if normalized.startswith('uploads/'):
        normalized = normalized[len('uploads/'):]
    local_path = (upload_root / normalized).resolve()
    if not str(local_path).startswith(str(upload_root)):
        raise PermissionError("Invalid file path")
    return local_path


def send_stored_file(ref: str, download_name: str, as_attachment: bool = True):
    """Redirect to a remote object (with download hint) or stream a local file."""
    if not ref:
        raise FileNotFoundError("Missing file reference")

    if is_remote(ref):
        target = with_download_hint(ref, download_name) if is_attachment_store_url(ref) else ref
        return redirect(target)

    local_path = local_path_for(ref)
    if not local_path.exists():
        raise FileNotFoundError("File not found")
    return send_file(str(local_path), as_attachment=as_attachment, download_name=download_name)
