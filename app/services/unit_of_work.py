"""
Unit of Work Pattern.
Gestisce la transazione del database atomica e l'accesso ai repository.
"""
from typing import Optional

from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError

from app.extensions import db
from app.services.errors import StoreUnavailableError

# Import Repositories
from app.repositories.delivery_note_repo import DeliveryNoteRepository
from app.repositories.user_repo import ClientRepository, ProjectRepository, UserRepository

class UnitOfWork:
    def __init__(self):
        self.session = db.session
        self._delivery_notes: Optional[DeliveryNoteRepository] = None
        self._users: Optional[UserRepository] = None
        self._clients: Optional[ClientRepository] = None
        self._projects: Optional[ProjectRepository] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.rollback()
            # Errori di connessione / timeout del DB diventano un errore ritentabile
            if issubclass(exc_type, (OperationalError, PoolTimeoutError)):
                raise StoreUnavailableError("Archivio DDT non disponibile") from exc_val
            return False
        # Flask gestisce la chiusura della sessione, non chiudere qui

    @property
    def delivery_notes(self) -> DeliveryNoteRepository:
        if self._delivery_notes is None:
            self._delivery_notes = DeliveryNoteRepository(self.session)
        return self._delivery_notes

    @property
    def users(self) -> UserRepository:
        if self._users is None:
            self._users = UserRepository(self.session)
        return self._users

    @property
    def clients(self) -> ClientRepository:
        if self._clients is None:
            self._clients = ClientRepository(self.session)
        return self._clients

    @property
    def projects(self) -> ProjectRepository:
        if self._projects is None:
            self._projects = ProjectRepository(self.session)
        return self._projects

    def commit(self):
        try:
            self.session.commit()
        except Exception:
            self.rollback()
            raise

    def rollback(self):
        self.session.rollback()
