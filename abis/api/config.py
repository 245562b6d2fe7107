"""
ABIS Barangay Records - Configuration

Everything is read from the environment (``.env`` is loaded by app.py).
"""
import os
import logging
import tempfile
from pathlib import Path
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

# Repo checkout: <repo>/abis/api/config.py -> BASE_DIR=<repo>
# Flattened container image: /app/config.py -> BASE_DIR=/app
_THIS_DIR = Path(__file__).parent.resolve()
_REPO_ROOT = _THIS_DIR.parent.parent
BASE_DIR = _REPO_ROOT.resolve() if (_REPO_ROOT / 'abis' / 'api').exists() else _THIS_DIR

# Must never fall back to a built-in default in production
PRODUCTION_SECRETS = ('SECRET_KEY',)


def _is_production() -> bool:
    return os.getenv('FLASK_ENV', 'development') == 'production'


def _require_env(name: str, default: str = None) -> str:
    """
    Read ``name`` from the environment.

    Development may use ``default``. Production raises RuntimeError for secrets
    and for variables without a default.
    """
    value = os.getenv(name)
    if value:
        return value
    if _is_production() and (default is None or name in PRODUCTION_SECRETS):
        raise RuntimeError(
            f"SECURITY ERROR: {name} environment variable is required in production. "
            f"Set it in your deployment environment."
        )
    if default is None:
        raise RuntimeError(f"{name} environment variable is required")
    if _is_production():
        logging.warning("Using default value for %s in production - consider setting explicitly", name)
    return default


def _env_flag(name: str, default: str = 'False') -> bool:
    return str(os.getenv(name, default)).strip().lower() in ('1', 'true', 'yes', 'on')


def _with_sslmode(url: str) -> str:
    """Add ``sslmode=require`` unless the URL already sets an sslmode."""
    try:
        parsed = urlparse(url)
        query = parse_qs(parsed.query)
    except ValueError as e:
        # Unescaped characters in the password can defeat urlparse
        logging.warning("Could not parse DATABASE_URL (%s); appending sslmode as text", e)
        if 'sslmode=' in url:
            return url
        return f"{url}{'&' if '?' in url else '?'}sslmode=require"
    query.setdefault('sslmode', ['require'])
    return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))


def get_database_url() -> str:
    """
    ``DATABASE_URL`` normalised for SQLAlchemy.

    ``postgres://`` becomes ``postgresql://`` and hosted PostgreSQL gets
    ``sslmode=require`` (turn off with DATABASE_REQUIRE_SSL=False). Without
    DATABASE_URL a SQLite file next to the repo is used.
    """
    url = os.getenv('DATABASE_URL')
    if not url:
        fallback = f"sqlite:///{BASE_DIR / 'abis.db'}"
        logging.warning("DATABASE_URL not set; using fallback %s", fallback)
        return fallback

    if url.startswith('postgres://'):
        url = 'postgresql://' + url[len('postgres://'):]
    if url.startswith('postgresql://') and _env_flag('DATABASE_REQUIRE_SSL', 'True'):
        url = _with_sslmode(url)
    return url


def get_engine_options() -> dict:
    url = get_database_url()
    if url.startswith('sqlite://'):
        from sqlalchemy.pool import NullPool
        return {'poolclass': NullPool}

    options = {'pool_pre_ping': True}
    if url.startswith('postgresql://'):
        options.update({
            'pool_recycle': 300,
            'pool_timeout': 20,
            'connect_args': {
                'connect_timeout': 20,
                'options': '-c statement_timeout=30000',
                'application_name': 'abis-api',
            },
        })
    return options


class Config:
    """Base configuration"""

    SECRET_KEY = _require_env('SECRET_KEY', 'dev-secret-key-for-local-development-only')
    DEBUG = os.getenv('DEBUG', 'False') == 'True'
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')
    PORT = int(os.getenv('PORT', 8000))

    # Database
    SQLALCHEMY_DATABASE_URI = get_database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = get_engine_options()

    # Admin gate: 'disabled' admits every caller, 'enforced' checks the header
    ADMIN_API_KEY = os.getenv('ADMIN_API_KEY', '')
    ADMIN_AUTH_MODE = os.getenv('ADMIN_AUTH_MODE', 'disabled').strip().lower()
    ADMIN_KEY_HEADER = 'X-Admin-Key'
    PUBLIC_TOKEN_HEADER = 'X-Public-Token'

    # Status transitions are open unless explicitly tightened
    STRICT_STATUS_TRANSITIONS = _env_flag('STRICT_STATUS_TRANSITIONS')

    # Rate Limiting Configuration
    RATELIMIT_ENABLED = os.getenv('RATELIMIT_ENABLED', 'True') == 'True'
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_HEADERS_ENABLED = True

    # File Uploads
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', 16 * 1024 * 1024))
    UPLOAD_FOLDER = BASE_DIR / os.getenv('UPLOAD_FOLDER', 'uploads')
    BLOTTER_MAX_ATTACHMENTS = 3
    BLOTTER_MAX_FILE_MB = 2
    CERTIFICATE_MAX_FILE_MB = 10
    PAYMENT_PROOF_MAX_FILE_MB = 5

    # Attachment Store (Supabase Storage REST). Unset -> local filesystem.
    SUPABASE_URL = os.getenv('SUPABASE_URL', '')
    SUPABASE_KEY = os.getenv('SUPABASE_KEY', '')
    SUPABASE_SERVICE_KEY = os.getenv('SUPABASE_SERVICE_KEY', '')
    SUPABASE_STORAGE_BUCKET = os.getenv('SUPABASE_STORAGE_BUCKET', 'abis-files')

    # Email Configuration
    # SendGrid API (for hosts where SMTP is blocked)
    SENDGRID_API_KEY = os.getenv('SENDGRID_API_KEY', '')
    # SMTP (for development with Gmail)
    SMTP_SERVER = os.getenv('SMTP_SERVER', '')
    SMTP_PORT = int(os.getenv('SMTP_PORT', 587))
    SMTP_USERNAME = os.getenv('SMTP_USERNAME', '')
    SMTP_PASSWORD = os.getenv('SMTP_PASSWORD', '')
    FROM_EMAIL = os.getenv('FROM_EMAIL', '')

    # SMS / Notifications
    SMS_PROVIDER = os.getenv('SMS_PROVIDER', 'disabled')  # philsms | console | disabled
    PHILSMS_API_KEY = os.getenv('PHILSMS_API_KEY', '')
    PHILSMS_SENDER_ID = os.getenv('PHILSMS_SENDER_ID', '')
    PHILSMS_BASE_URL = os.getenv('PHILSMS_BASE_URL', 'https://dashboard.philsms.com/api/v3')

    # Application
    APP_NAME = os.getenv('APP_NAME', 'ABIS')
    BARANGAY_NAME = os.getenv('BARANGAY_NAME', 'Barangay Hall')
    WEB_URL = os.getenv('WEB_URL', 'http://localhost:5173')
    CORS_ALLOWED_ORIGINS = os.getenv('CORS_ALLOWED_ORIGINS', '')

    @staticmethod
    def init_app(app):
        """Create the upload directory, falling back to /tmp when not writable."""
        configured_upload = app.config.get('UPLOAD_FOLDER', Config.UPLOAD_FOLDER)
        upload_dir = Path(configured_upload)
        try:
            upload_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            fallback_dir = Path(tempfile.gettempdir()) / 'abis_uploads'
            fallback_dir.mkdir(parents=True, exist_ok=True)
            app.config['UPLOAD_FOLDER'] = fallback_dir
            app.logger.warning(
                "UPLOAD_FOLDER '%s' is not writable (%s); using fallback '%s'",
                configured_upload,
                exc,
                fallback_dir,
            )
        else:
            app.config['UPLOAD_FOLDER'] = upload_dir


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    SMS_PROVIDER = 'disabled'
    SENDGRID_API_KEY = ''
    SMTP_SERVER = ''
    SUPABASE_URL = ''
    SUPABASE_SERVICE_KEY = ''
    SUPABASE_KEY = ''


config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
