"""
Repository specifico per DeliveryNote.

Le query sono esplicitamente divise fra DDT attivi e archiviati (deleted_at):
nessun filtro implicito globale. Le transizioni concorrenti (firma, cancellazione
fisica) sono UPDATE/DELETE condizionali su una sola riga e restituiscono il
numero di righe toccate: 0 significa che la condizione non era più vera.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.orm import joinedload

from app.models import DeliveryNote
from app.repositories.base import SqlAlchemyRepository


class DeliveryNoteRepository(SqlAlchemyRepository[DeliveryNote]):
    def __init__(self, session):
        super().__init__(session, DeliveryNote)

    def _query(self):
        return self.session.query(DeliveryNote).options(
            joinedload(DeliveryNote.user),
            joinedload(DeliveryNote.client),
            joinedload(DeliveryNote.project),
        )

    @staticmethod
    def _apply_filters(query, user_id=None, client_id=None, project_id=None):
        if user_id:
            query = query.filter(DeliveryNote.user_id == user_id)
        if client_id:
            query = query.filter(DeliveryNote.client_id == client_id)
        if project_id:
            query = query.filter(DeliveryNote.project_id == project_id)
        return query

    # --- Lettura ------------------------------------------------------------

    def get_by_id(self, note_id: int) -> Optional[DeliveryNote]:
        """DDT attivo (non archiviato) con utente/cliente/progetto caricati."""
        return (
            self._query()
            .filter(DeliveryNote.id == note_id, DeliveryNote.deleted_at.is_(None))
            .execution_options(populate_existing=True)
            .one_or_none()
        )

    def get_any_by_id(self, note_id: int) -> Optional[DeliveryNote]:
        """DDT attivo o archiviato."""
        return (
            self._query()
            .filter(DeliveryNote.id == note_id)
            .execution_options(populate_existing=True)
            .one_or_none()
        )

    def find(
        self,
        user_id: Optional[int] = None,
        client_id: Optional[int] = None,
        project_id: Optional[int] = None,
    ) -> List[DeliveryNote]:
        """DDT attivi; i filtri presenti si combinano in AND."""
        query = self._apply_filters(
            self._query().filter(DeliveryNote.deleted_at.is_(None)),
            user_id=user_id,
            client_id=client_id,
            project_id=project_id,
        )
        return query.order_by(DeliveryNote.created_at.desc(), DeliveryNote.id.desc()).all()

    def find_deleted(
        self,
        user_id: Optional[int] = None,
        client_id: Optional[int] = None,
        project_id: Optional[int] = None,
    ) -> List[DeliveryNote]:
        """Solo DDT archiviati, stessi filtri di find()."""
        query = self._apply_filters(
            self._query().filter(DeliveryNote.deleted_at.is_not(None)),
            user_id=user_id,
            client_id=client_id,
            project_id=project_id,
        )
        return query.order_by(DeliveryNote.deleted_at.desc(), DeliveryNote.id.desc()).all()

    # --- Scrittura ----------------------------------------------------------

    def update_fields(self, note_id: int, fields: Dict[str, Any]) -> int:
        """Aggiorna i campi solo se il DDT è attivo e ancora in bozza."""
        if not fields:
            fields = {"updated_at": datetime.utcnow()}
        stmt = (
            update(DeliveryNote)
            .where(
                DeliveryNote.id == note_id,
                DeliveryNote.pending.is_(True),
                DeliveryNote.deleted_at.is_(None),
            )
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount

    def soft_delete(self, note_id: int, when: datetime) -> int:
        """Archivia; un DDT già archiviato non viene toccato."""
        stmt = (
            update(DeliveryNote)
            .where(DeliveryNote.id == note_id, DeliveryNote.deleted_at.is_(None))
            # updated_at invariato: l'archiviazione non è una modifica di contenuto
            .values(deleted_at=when, updated_at=DeliveryNote.updated_at)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount

    def restore(self, note_id: int) -> int:
        stmt = (
            update(DeliveryNote)
            .where(DeliveryNote.id == note_id, DeliveryNote.deleted_at.is_not(None))
            .values(deleted_at=None, updated_at=DeliveryNote.updated_at)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount

    def mark_signed(self, note_id: int, sign_url: str) -> int:
        """Commit provvisorio della firma: vince solo chi trova pending=True."""
        stmt = (
            update(DeliveryNote)
            .where(
                DeliveryNote.id == note_id,
                DeliveryNote.pending.is_(True),
                DeliveryNote.deleted_at.is_(None),
            )
            .values(sign=sign_url, pending=False, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount

    def attach_pdf(self, note_id: int, pdf_url: str) -> int:
        """Commit finale: il PDF si aggancia solo a un DDT già firmato."""
        stmt = (
            update(DeliveryNote)
            .where(
                DeliveryNote.id == note_id,
                DeliveryNote.pending.is_(False),
                DeliveryNote.sign.is_not(None),
            )
            .values(pdf_url=pdf_url, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount

    def delete_signed(self, note_id: int) -> int:
        """Cancellazione fisica condizionata a pending=False."""
        stmt = (
            delete(DeliveryNote)
            .where(DeliveryNote.id == note_id, DeliveryNote.pending.is_(False))
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount
