"""DTO dei servizi DDT."""

from .delivery_note_view import DeliveryNoteView, RenderedDocument, SignatureResult
from .note_filters import NoteFilters

__all__ = [
    "DeliveryNoteView",
    "RenderedDocument",
    "SignatureResult",
    "NoteFilters",
]
