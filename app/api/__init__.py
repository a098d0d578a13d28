"""
Pacchetto per le API JSON.

Contiene:
- api_delivery_notes_bp -> ciclo di vita dei DDT (CRUD, archiviazione, PDF, firma)
- api_blobs_bp          -> download dei blob locali (backend 'local')
"""

from .api_delivery_notes import api_delivery_notes_bp
from .api_blobs import api_blobs_bp

__all__ = [
    "api_delivery_notes_bp",
    "api_blobs_bp",
]
