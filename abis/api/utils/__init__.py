"""Utility functions for the API.

Helpers that depend on the models (lifecycle, visibility, reports, PDF) are
imported from their own modules to keep model imports acyclic.
"""

from .validators import (
    validate_required_fields,
    validate_choice,
    validate_file_extension,
    validate_file_size,
    parse_bool,
    ValidationError,
)

from .security import (
    safe_error_response,
    error_400,
    error_403,
    error_404,
    error_409,
    error_500,
    error_upstream,
)

from .authorization import (
    admin_required,
    get_authorizer,
    uploader_identity,
)

# Storage handler - uses Supabase Storage when configured, filesystem otherwise
from .storage_handler import (
    save_upload,
    save_uploads,
    delete_stored,
    discard_uploads,
    send_stored_file,
    StorageError,
)

from .time import utc_now
