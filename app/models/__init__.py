"""
Pacchetto per i modelli SQLAlchemy.

Qui vengono esportate le classi modello principali.
User, Client e Project sono anagrafiche referenziate dai DDT e non vengono
mai modificate dal ciclo di vita dei DDT.
"""

from .user import User
from .client import Client
from .project import Project
from .delivery_note import DeliveryNote

__all__ = [
    "User",
    "Client",
    "Project",
    "DeliveryNote",
]
