"""
Package repositories.
Espone i Repository per l'accesso ai dati.
"""

from .base import SqlAlchemyRepository
from .delivery_note_repo import DeliveryNoteRepository
from .user_repo import ClientRepository, ProjectRepository, UserRepository

__all__ = [
    "SqlAlchemyRepository",
    "DeliveryNoteRepository",
    "UserRepository",
    "ClientRepository",
    "ProjectRepository",
]
