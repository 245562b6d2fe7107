"""API Routes - Import all blueprints here."""

from .documents import documents_bp
from .blotter import blotter_bp
from .certificates import certificates_bp
from .settings import settings_bp
from .reports import reports_bp

__all__ = [
    'documents_bp',
    'blotter_bp',
    'certificates_bp',
    'settings_bp',
    'reports_bp',
]
