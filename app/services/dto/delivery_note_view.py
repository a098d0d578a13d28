"""
Vista "risolta" di un DDT: campi del record più i dati di utente, cliente e
progetto uniti in sola lettura.

La vista è un dataclass immutabile staccato dalla sessione SQLAlchemy, quindi
può essere passata al renderer PDF anche fuori dal thread della richiesta.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from app.services.note_states import NoteState, state_of


@dataclass(frozen=True)
class DeliveryNoteView:
    id: int
    user_id: int
    client_id: int
    project_id: int
    format: str
    hours: Optional[Decimal]
    description: Optional[str]
    pending: bool
    sign: Optional[str]
    pdf_url: Optional[str]
    created_at: datetime
    deleted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Dati del join
    user_name: Optional[str] = None
    user_surnames: Optional[str] = None
    user_email: Optional[str] = None
    client_name: Optional[str] = None
    client_cif: Optional[str] = None
    project_name: Optional[str] = None
    project_code: Optional[str] = None

    @classmethod
    def from_model(cls, note) -> "DeliveryNoteView":
        user = note.user
        client = note.client
        project = note.project
        return cls(
            id=note.id,
            user_id=note.user_id,
            client_id=note.client_id,
            project_id=note.project_id,
            format=note.format,
            hours=note.hours,
            description=note.description,
            pending=bool(note.pending),
            sign=note.sign,
            pdf_url=note.pdf_url,
            created_at=note.created_at,
            deleted_at=note.deleted_at,
            updated_at=note.updated_at,
            user_name=user.name if user else None,
            user_surnames=user.surnames if user else None,
            user_email=user.email if user else None,
            client_name=client.name if client else None,
            client_cif=client.cif if client else None,
            project_name=project.name if project else None,
            project_code=project.project_code if project else None,
        )

    @property
    def state(self) -> NoteState:
        return state_of(self)

    @property
    def pdf_filename(self) -> str:
        return f"albaran_{self.id}.pdf"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user": {
                "id": self.user_id,
                "name": self.user_name,
                "surnames": self.user_surnames,
                "email": self.user_email,
            },
            "client": {
                "id": self.client_id,
                "name": self.client_name,
                "cif": self.client_cif,
            },
            "project": {
                "id": self.project_id,
                "name": self.project_name,
                "project_code": self.project_code,
            },
            "format": self.format,
            "hours": float(self.hours) if self.hours is not None else None,
            "description": self.description,
            "pending": self.pending,
            "sign": self.sign,
            "pdf_url": self.pdf_url,
            "state": self.state.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }


@dataclass(frozen=True)
class RenderedDocument:
    filename: str
    content: bytes
    mimetype: str = "application/pdf"


@dataclass(frozen=True)
class SignatureResult:
    sign_url: str
    pdf_url: str
    note: DeliveryNoteView

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sign": self.sign_url,
            "pdf": self.pdf_url,
            "note": self.note.to_dict(),
        }
