"""
Repository per le anagrafiche referenziate dai DDT (utenti, clienti, progetti).
Usati solo in lettura dalla validazione delle API e dai test.
"""
from __future__ import annotations

from app.models import Client, Project, User
from app.repositories.base import SqlAlchemyRepository


class UserRepository(SqlAlchemyRepository[User]):
    def __init__(self, session):
        super().__init__(session, User)


class ClientRepository(SqlAlchemyRepository[Client]):
    def __init__(self, session):
        super().__init__(session, Client)


class ProjectRepository(SqlAlchemyRepository[Project]):
    def __init__(self, session):
        super().__init__(session, Project)
