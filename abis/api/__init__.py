"""
ABIS barangay records API: document requests, blotter reports, certificates
and settings for a single barangay office.
"""
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

__version__ = '1.0.0'

# Bound to the app in create_app()
db = SQLAlchemy()
migrate = Migrate()

# Defaults cover every route; public submission routes add tighter per-route limits
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["2000 per day", "500 per hour"],
    storage_uri="memory://",
    strategy="fixed-window"
)

__all__ = ['db', 'migrate', 'limiter']
