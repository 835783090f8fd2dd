"""
=============================================================================
HANDLERS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Dispatcher (dispatch.py)                                            │
    │   route override registered for the path?  → call it                │
    │   otherwise                                → StaticResourceHandler  │
    ├─────────────────────────────────────────────────────────────────────┤
    │ StaticResourceHandler (static.py)                                   │
    │   "/" → "/index.html", fixture lookup, MIME type, CSP, gzip, 404    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .static import StaticResourceHandler, ASSETS_DIR, static_path
from .dispatch import Dispatcher

__all__ = [
    "Dispatcher",
    "StaticResourceHandler",
    "ASSETS_DIR",
    "static_path",
]
