"""
Macchina a stati (fissa) del DDT.

Lo stato non è una colonna: si ricava da pending / sign / pdf_url / deleted_at.

| Stato            | pending | sign | pdf_url | deleted_at |
|------------------|---------|------|---------|------------|
| DRAFT            | True    | -    | -       | -          |
| SIGNED_NO_DOC    | False   | sì   | -       | -          |
| SIGNED           | False   | sì   | sì      | -          |
| ARCHIVED_DRAFT   | True    | -    | -       | sì         |
| ARCHIVED_SIGNED  | False   | sì   | ?       | sì         |
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet

from app.services.errors import InvalidTransitionError


class NoteState(str, Enum):
    DRAFT = "draft"
    SIGNED_NO_DOC = "signed_no_doc"
    SIGNED = "signed"
    ARCHIVED_DRAFT = "archived_draft"
    ARCHIVED_SIGNED = "archived_signed"


class Action(str, Enum):
    UPDATE = "update"
    SOFT_DELETE = "soft_delete"
    RESTORE = "restore"
    SIGN = "sign"
    FINISH_SIGNING = "finish_signing"
    HARD_DELETE = "hard_delete"
    RENDER = "render"


class SignStage(str, Enum):
    """Stage della pipeline di firma, riportati negli errori e nei log."""

    SIGNATURE_UPLOAD = "signature_upload"
    PROVISIONAL_COMMIT = "provisional_commit"
    RENDER = "render"
    PDF_UPLOAD = "pdf_upload"
    FINAL_COMMIT = "final_commit"


ARCHIVED_STATES = frozenset({NoteState.ARCHIVED_DRAFT, NoteState.ARCHIVED_SIGNED})

# RESTORE sui non archiviati e SOFT_DELETE sugli archiviati sono no-op ammessi.
ALLOWED_TRANSITIONS: Dict[NoteState, FrozenSet[Action]] = {
    NoteState.DRAFT: frozenset({
        Action.UPDATE, Action.SOFT_DELETE, Action.SIGN, Action.RENDER, Action.RESTORE,
    }),
    NoteState.SIGNED_NO_DOC: frozenset({
        Action.FINISH_SIGNING, Action.SOFT_DELETE, Action.HARD_DELETE, Action.RENDER,
        Action.RESTORE,
    }),
    NoteState.SIGNED: frozenset({
        Action.FINISH_SIGNING, Action.SOFT_DELETE, Action.HARD_DELETE, Action.RENDER,
        Action.RESTORE,
    }),
    NoteState.ARCHIVED_DRAFT: frozenset({Action.RESTORE, Action.SOFT_DELETE}),
    NoteState.ARCHIVED_SIGNED: frozenset({
        Action.RESTORE, Action.SOFT_DELETE, Action.HARD_DELETE,
    }),
}

_REJECTION_MESSAGES = {
    Action.UPDATE: "Il DDT è già firmato e non è modificabile",
    Action.SIGN: "Il DDT è già firmato",
    Action.FINISH_SIGNING: "Il DDT non è ancora firmato",
    Action.HARD_DELETE: "Impossibile eliminare definitivamente un DDT non firmato",
}


def state_of(note) -> NoteState:
    """Ricava lo stato dal record (modello o vista)."""
    archived = note.deleted_at is not None
    if note.pending:
        return NoteState.ARCHIVED_DRAFT if archived else NoteState.DRAFT
    if archived:
        return NoteState.ARCHIVED_SIGNED
    return NoteState.SIGNED if note.pdf_url else NoteState.SIGNED_NO_DOC


def is_allowed(state: NoteState, action: Action) -> bool:
    return action in ALLOWED_TRANSITIONS[state]


def ensure_allowed(state: NoteState, action: Action, *, note_id=None) -> None:
    if not is_allowed(state, action):
        raise InvalidTransitionError(
            _REJECTION_MESSAGES.get(action),
            note_id=note_id,
            state=state,
            action=action,
        )


def check_invariants(note) -> bool:
    """Firma presente se e solo se non pending; PDF presente solo con la firma."""
    if (note.sign is not None) == bool(note.pending):
        return False
    if note.pdf_url is not None and note.sign is None:
        return False
    return True
