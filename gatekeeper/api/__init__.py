"""
Gatekeeper: API

Surface HTTP (FastAPI) du gatekeeper.
"""

from .app import create_app
from .dependencies import bearer_scheme, get_gatekeeper, get_principal, require_permission

__all__ = [
    "create_app",
    "bearer_scheme",
    "get_gatekeeper",
    "get_principal",
    "require_permission",
]
