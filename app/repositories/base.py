"""
Repository generico.
Operazioni comuni a DDT e anagrafiche: inserimento e lettura per chiave primaria.
Le transizioni di stato dei DDT restano nel repository specifico.
"""
from typing import Type, TypeVar, Generic, Optional
from app.extensions import db

T = TypeVar("T", bound=db.Model)

class SqlAlchemyRepository(Generic[T]):
    def __init__(self, session, model_cls: Type[T]):
        self.session = session
        self.model_cls = model_cls

    def add(self, entity: T) -> T:
        """Aggiunge l'entità e fa flush per ottenere l'id generato."""
        self.session.add(entity)
        self.session.flush()
        return entity

    def get_by_id(self, id: int) -> Optional[T]:
        return self.session.get(self.model_cls, id)

    def exists(self, id: int) -> bool:
        """Usato dalla validazione dei riferimenti utente/cliente/progetto."""
        return self.get_by_id(id) is not None
