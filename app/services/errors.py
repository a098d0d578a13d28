"""
Tassonomia degli errori del ciclo di vita dei DDT.

Ogni errore ha un ``kind`` stabile, usato dalle API per scegliere lo status HTTP,
e un ``to_payload()`` che espone solo informazioni sicure: id del DDT, stage della
pipeline di firma e stato risultante. Il testo degli errori interni (DB, blob
store, reportlab) resta nei log e non arriva mai al chiamante.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


def _value(item: Any) -> Any:
    return getattr(item, "value", item)


class DeliveryNoteError(Exception):
    """Errore base del dominio DDT."""

    kind = "delivery_note_error"
    default_message = "Errore nella gestione del DDT"

    def __init__(self, message: Optional[str] = None, *, note_id: Optional[int] = None):
        self.message = message or self.default_message
        self.note_id = note_id
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.note_id is not None:
            payload["note_id"] = self.note_id
        return payload


class NoteNotFoundError(DeliveryNoteError):
    """Id assente nell'archivio (o archiviato, per le operazioni sui soli attivi)."""

    kind = "not_found"
    default_message = "DDT non trovato"


class InvalidTransitionError(DeliveryNoteError):
    """Transizione non ammessa dallo stato corrente del DDT."""

    kind = "invalid_transition"
    default_message = "Operazione non ammessa nello stato corrente del DDT"

    def __init__(self, message=None, *, note_id=None, state=None, action=None):
        super().__init__(message, note_id=note_id)
        self.state = state
        self.action = action

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.state is not None:
            payload["state"] = _value(self.state)
        if self.action is not None:
            payload["action"] = _value(self.action)
        return payload


class ValidationError(DeliveryNoteError):
    """Input malformato: sollevato dallo strato API, non dal ciclo di vita."""

    kind = "validation_error"
    default_message = "Dati non validi"

    def __init__(self, message=None, *, errors: Optional[Dict[str, str]] = None, note_id=None):
        super().__init__(message, note_id=note_id)
        self.errors = errors or {}

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.errors:
            payload["errors"] = dict(self.errors)
        return payload


class UpstreamFailure(DeliveryNoteError):
    """Fallimento di un collaboratore esterno (blob store, renderer, DB)."""

    kind = "upstream_failure"
    default_message = "Servizio esterno non disponibile"
    retryable = False

    def __init__(self, message=None, *, note_id=None, stage=None, retryable: Optional[bool] = None):
        super().__init__(message, note_id=note_id)
        self.stage = stage
        if retryable is not None:
            self.retryable = retryable

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["retryable"] = self.retryable
        if self.stage is not None:
            payload["stage"] = _value(self.stage)
        return payload


class RetryableUpstreamError(UpstreamFailure):
    """Errore di rete / timeout: l'operazione può essere ripetuta."""

    retryable = True


class PermanentUpstreamError(UpstreamFailure):
    """Errore di contenuto: ripetere l'operazione non cambia l'esito."""

    retryable = False


class UpstreamTimeoutError(RetryableUpstreamError):
    kind = "timeout"
    default_message = "Tempo massimo superato nella chiamata esterna"


class StoreUnavailableError(RetryableUpstreamError):
    default_message = "Archivio DDT non disponibile"


class BlobStoreError(UpstreamFailure):
    """Upload sul blob store fallito; ``retryable`` dipende dalla causa."""

    default_message = "Upload sul blob store fallito"


class RenderError(PermanentUpstreamError):
    """Il DDT non è renderizzabile (dati del join mancanti o errore reportlab)."""

    default_message = "Generazione del PDF fallita"


class SigningIncompleteError(UpstreamFailure):
    """
    Fallimento dopo il commit provvisorio della firma.

    Il DDT resta firmato ma senza PDF (stato SIGNED_NO_DOC, legale): il chiamante
    può ritentare con ``finish_signing`` senza ricaricare la firma.
    """

    kind = "signing_incomplete"
    default_message = "DDT firmato ma PDF non ancora ancorato"
    resumable = True

    def __init__(self, message=None, *, note_id=None, stage=None, retryable=None,
                 state=None, sign_url: Optional[str] = None):
        super().__init__(message, note_id=note_id, stage=stage, retryable=retryable)
        self.state = state
        self.sign_url = sign_url

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["resumable"] = self.resumable
        if self.state is not None:
            payload["state"] = _value(self.state)
        if self.sign_url:
            payload["sign_url"] = self.sign_url
        return payload
