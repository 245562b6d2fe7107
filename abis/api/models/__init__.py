"""
ABIS Barangay Records - Database Models
Import all models here for Flask-Migrate to detect them
"""

from .document import Document
from .blotter import Blotter
from .certificate import Certificate
from .setting import Setting

__all__ = [
    'Document',
    'Blotter',
    'Certificate',
    'Setting',
]
