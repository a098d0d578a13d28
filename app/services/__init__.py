"""
Pacchetto per i servizi (logica di business) dell'applicazione.

I servizi orchestrano:
- repository (accesso al DB) tramite UnitOfWork
- blob store (ancoraggio di firme e PDF)
- renderer PDF
- macchina a stati e pipeline di firma dei DDT
- logging strutturato
"""

from .delivery_note_service import DeliveryNoteService, get_delivery_note_service
from .errors import (
    DeliveryNoteError,
    NoteNotFoundError,
    InvalidTransitionError,
    ValidationError,
    UpstreamFailure,
    RetryableUpstreamError,
    PermanentUpstreamError,
    UpstreamTimeoutError,
    StoreUnavailableError,
    BlobStoreError,
    RenderError,
    SigningIncompleteError,
)
from .note_states import Action, NoteState, SignStage

__all__ = [
    # Ciclo di vita
    "DeliveryNoteService",
    "get_delivery_note_service",
    # Stati
    "Action",
    "NoteState",
    "SignStage",
    # Errori
    "DeliveryNoteError",
    "NoteNotFoundError",
    "InvalidTransitionError",
    "ValidationError",
    "UpstreamFailure",
    "RetryableUpstreamError",
    "PermanentUpstreamError",
    "UpstreamTimeoutError",
    "StoreUnavailableError",
    "BlobStoreError",
    "RenderError",
    "SigningIncompleteError",
]
