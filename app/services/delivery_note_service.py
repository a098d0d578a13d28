"""
Servizi per la gestione del ciclo di vita dei DDT (albaranes).

Il ciclo di vita è la macchina a stati di ``note_states``:
bozza -> firmato (senza PDF) -> firmato -> archiviato/ripristinato -> eliminato.

La firma è una saga in più stage su due sistemi esterni che non condividono una
transazione (blob store e archivio DDT):

1. SIGNATURE_UPLOAD   upload dell'immagine firma sul blob store
2. PROVISIONAL_COMMIT UPDATE condizionale sign/pending (vince un solo firmatario)
3. RENDER             generazione PDF dalla vista risolta e già firmata
4. PDF_UPLOAD         upload del PDF sul blob store
   FINAL_COMMIT       UPDATE condizionale di pdf_url

Un errore negli stage 1-2 non lascia traccia sul DDT. Un errore dopo lo stage 2
lascia il DDT in SIGNED_NO_DOC (stato legale) e viene riportato come
SigningIncompleteError: ``finish_signing`` riesegue solo gli stage 3-4.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from flask import current_app
from werkzeug.utils import secure_filename

from app.models import DeliveryNote
from app.services.blob_store import BlobStore, StoredBlob
from app.services.dto import DeliveryNoteView, NoteFilters, RenderedDocument, SignatureResult
from app.services.errors import (
    BlobStoreError,
    NoteNotFoundError,
    InvalidTransitionError,
    RenderError,
    SigningIncompleteError,
    UpstreamFailure,
    UpstreamTimeoutError,
    ValidationError,
)
from app.services.logging import log_structured_event
from app.services.note_states import Action, NoteState, SignStage, ensure_allowed, state_of
from app.services.pdf_renderer import render_delivery_note
from app.services.unit_of_work import UnitOfWork

Renderer = Callable[[DeliveryNoteView], bytes]

CREATE_FIELDS = ("user_id", "client_id", "project_id", "format", "hours", "description")
# id, created_at, format e i campi di firma/archiviazione non passano mai da update()
UPDATABLE_FIELDS = ("user_id", "client_id", "project_id", "hours", "description")

DEFAULT_TIMEOUT = 30.0


def call_with_timeout(func: Callable[..., Any], *args: Any, timeout: Optional[float], **kwargs: Any) -> Any:
    """Esegue ``func`` in un worker thread e attende al massimo ``timeout`` secondi."""
    if timeout is None:
        return func(*args, **kwargs)
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        raise UpstreamTimeoutError() from exc
    finally:
        # Non attendiamo il worker: un render bloccato non deve bloccare la richiesta
        executor.shutdown(wait=False)


class DeliveryNoteService:
    """
    Facade per le operazioni sui DDT, usando UnitOfWork.

    Blob store, renderer e timeout sono iniettati: in produzione arrivano da
    ``get_delivery_note_service()``, nei test da fixture.

    Il timeout per chiamata limita renderer e upload sul blob store. Le chiamate
    all'archivio DDT sono limitate dai timeout fissi di engine e driver
    (``SQLALCHEMY_ENGINE_OPTIONS`` in ``config.py``), non da questo valore.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        renderer: Renderer = render_delivery_note,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        uow_factory: Callable[[], UnitOfWork] = UnitOfWork,
    ):
        self.blob_store = blob_store
        self.renderer = renderer
        self.timeout = timeout
        self._uow = uow_factory

    # ------------------------------------------------------------------
    # Lettura
    # ------------------------------------------------------------------

    @staticmethod
    def _load_view(uow: UnitOfWork, note_id: int, include_archived: bool = False) -> DeliveryNoteView:
        repo = uow.delivery_notes
        note = repo.get_any_by_id(note_id) if include_archived else repo.get_by_id(note_id)
        if note is None:
            raise NoteNotFoundError(note_id=note_id)
        return DeliveryNoteView.from_model(note)

    def _read(self, note_id: int, include_archived: bool = False) -> DeliveryNoteView:
        with self._uow() as uow:
            view = self._load_view(uow, note_id, include_archived=include_archived)
            # Chiude la transazione di sola lettura prima di chiamate esterne
            uow.rollback()
            return view

    def get(self, note_id: int) -> DeliveryNoteView:
        """DDT attivo con dati di utente/cliente/progetto, oppure NoteNotFoundError."""
        return self._read(note_id)

    def list(self, filters: Optional[NoteFilters] = None) -> List[DeliveryNoteView]:
        filters = filters or NoteFilters()
        with self._uow() as uow:
            notes = uow.delivery_notes.find(**filters.as_kwargs())
            return [DeliveryNoteView.from_model(note) for note in notes]

    def list_archived(self, filters: Optional[NoteFilters] = None) -> List[DeliveryNoteView]:
        filters = filters or NoteFilters()
        with self._uow() as uow:
            notes = uow.delivery_notes.find_deleted(**filters.as_kwargs())
            return [DeliveryNoteView.from_model(note) for note in notes]

    # ------------------------------------------------------------------
    # CRUD e archiviazione
    # ------------------------------------------------------------------

    def create(self, fields: Mapping[str, Any]) -> DeliveryNoteView:
        """
        Registra un nuovo DDT in bozza (pending=True, senza firma né PDF).
        La coerenza format/hours è responsabilità dello strato di validazione.
        """
        data = {key: fields[key] for key in CREATE_FIELDS if key in fields}
        with self._uow() as uow:
            note = DeliveryNote(**data, pending=True, sign=None, pdf_url=None, deleted_at=None)
            note_id = uow.delivery_notes.add(note).id
            uow.commit()
            view = self._load_view(uow, note_id)

        log_structured_event(
            "delivery_note.created",
            message="DDT creato",
            note_id=view.id,
            user_id=view.user_id,
            client_id=view.client_id,
            project_id=view.project_id,
        )
        return view

    def update(self, note_id: int, fields: Mapping[str, Any]) -> DeliveryNoteView:
        """Aggiorna un DDT in bozza; un DDT firmato non è più modificabile."""
        patch: Dict[str, Any] = {key: fields[key] for key in UPDATABLE_FIELDS if key in fields}
        with self._uow() as uow:
            rows = uow.delivery_notes.update_fields(note_id, patch)
            if rows == 0:
                note = uow.delivery_notes.get_by_id(note_id)
                if note is None:
                    raise NoteNotFoundError(note_id=note_id)
                state = state_of(note)
                ensure_allowed(state, Action.UPDATE, note_id=note_id)
                # Bozza ma nessuna riga aggiornata: lo stato è cambiato nel frattempo
                raise InvalidTransitionError(note_id=note_id, state=state, action=Action.UPDATE)
            uow.commit()
            view = self._load_view(uow, note_id)

        log_structured_event(
            "delivery_note.updated",
            message="DDT aggiornato",
            note_id=note_id,
            fields=sorted(patch),
        )
        return view

    def soft_delete(self, note_id: int) -> DeliveryNoteView:
        """Archivia il DDT. Archiviare un DDT già archiviato non cambia nulla."""
        with self._uow() as uow:
            if uow.delivery_notes.get_any_by_id(note_id) is None:
                raise NoteNotFoundError(note_id=note_id)
            rows = uow.delivery_notes.soft_delete(note_id, datetime.utcnow())
            uow.commit()
            view = self._load_view(uow, note_id, include_archived=True)

        log_structured_event(
            "delivery_note.archived",
            message="DDT archiviato" if rows else "DDT già archiviato",
            note_id=note_id,
            state=view.state,
            changed=bool(rows),
        )
        return view

    def restore(self, note_id: int) -> DeliveryNoteView:
        """Toglie il marcatore di archiviazione senza toccare altri campi."""
        with self._uow() as uow:
            if uow.delivery_notes.get_any_by_id(note_id) is None:
                raise NoteNotFoundError(note_id=note_id)
            rows = uow.delivery_notes.restore(note_id)
            uow.commit()
            view = self._load_view(uow, note_id)

        log_structured_event(
            "delivery_note.restored",
            message="DDT ripristinato" if rows else "DDT non archiviato, nessuna modifica",
            note_id=note_id,
            state=view.state,
            changed=bool(rows),
        )
        return view

    def hard_delete(self, note_id: int) -> None:
        """
        Cancellazione fisica, ammessa solo per DDT firmati (pending=False).
        Il DELETE è condizionale: un DDT non firmato non viene mai rimosso.
        """
        with self._uow() as uow:
            rows = uow.delivery_notes.delete_signed(note_id)
            if rows == 0:
                note = uow.delivery_notes.get_any_by_id(note_id)
                if note is None:
                    raise NoteNotFoundError(note_id=note_id)
                state = state_of(note)
                ensure_allowed(state, Action.HARD_DELETE, note_id=note_id)
                raise InvalidTransitionError(note_id=note_id, state=state, action=Action.HARD_DELETE)
            uow.commit()

        log_structured_event(
            "delivery_note.destroyed",
            message="DDT eliminato definitivamente",
            note_id=note_id,
        )

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        return self.timeout if timeout is None else timeout

    def _render(self, view: DeliveryNoteView, timeout: Optional[float]) -> bytes:
        try:
            content = call_with_timeout(self.renderer, view, timeout=timeout)
        except UpstreamFailure:
            raise
        except Exception as exc:
            raise RenderError(note_id=view.id) from exc
        if not content:
            raise RenderError("Il renderer non ha prodotto alcun byte", note_id=view.id)
        return content

    def render_pdf(self, note_id: int, timeout: Optional[float] = None) -> RenderedDocument:
        """PDF del DDT attivo (firmato o no), senza effetti sull'archivio."""
        view = self._read(note_id)
        ensure_allowed(view.state, Action.RENDER, note_id=note_id)
        try:
            content = self._render(view, self._timeout(timeout))
        except UpstreamFailure as exc:
            exc.stage = SignStage.RENDER
            exc.note_id = note_id
            log_structured_event(
                "delivery_note.render_failed",
                message="Generazione PDF fallita",
                level="error",
                note_id=note_id,
                retryable=exc.retryable,
            )
            raise
        return RenderedDocument(filename=view.pdf_filename, content=content)

    # ------------------------------------------------------------------
    # Pipeline di firma
    # ------------------------------------------------------------------

    def _upload(
        self,
        data: bytes,
        name: str,
        content_type: Optional[str],
        *,
        timeout: Optional[float],
        stage: SignStage,
        note_id: int,
    ) -> StoredBlob:
        try:
            return self.blob_store.put(data, name, content_type=content_type, timeout=timeout)
        except UpstreamFailure as exc:
            exc.stage = stage
            exc.note_id = note_id
            raise
        except Exception as exc:
            raise BlobStoreError(note_id=note_id, stage=stage, retryable=False) from exc

    def sign(
        self,
        note_id: int,
        image: bytes,
        filename: str,
        content_type: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> SignatureResult:
        """
        Firma il DDT: ancoraggio della firma, commit provvisorio, PDF, commit finale.

        Errori:
        - NoteNotFoundError: DDT assente o archiviato
        - InvalidTransitionError: DDT già firmato (anche se perso in una corsa)
        - UpstreamFailure con stage SIGNATURE_UPLOAD/PROVISIONAL_COMMIT: nessuna modifica
        - SigningIncompleteError: DDT firmato senza PDF, ritentare con finish_signing
        """
        if not image:
            raise ValidationError("Immagine della firma mancante", note_id=note_id)
        timeout = self._timeout(timeout)

        # Verifica preliminare: evita upload inutili su DDT già firmati
        view = self._read(note_id)
        ensure_allowed(view.state, Action.SIGN, note_id=note_id)

        # 1. Ancoraggio della firma
        safe_name = secure_filename(filename or "") or "firma"
        try:
            signature = self._upload(
                image,
                f"firma_{note_id}_{safe_name}",
                content_type,
                timeout=timeout,
                stage=SignStage.SIGNATURE_UPLOAD,
                note_id=note_id,
            )
        except UpstreamFailure as exc:
            self._log_sign_failure(exc, note_id, NoteState.DRAFT)
            raise
        log_structured_event(
            "delivery_note.signature_uploaded",
            message="Firma caricata sul blob store",
            note_id=note_id,
            locator=signature.locator,
        )

        # 2. Commit provvisorio: UPDATE ... WHERE pending, un solo vincitore
        try:
            with self._uow() as uow:
                rows = uow.delivery_notes.mark_signed(note_id, signature.url)
                if rows == 0:
                    note = uow.delivery_notes.get_by_id(note_id)
                    if note is None:
                        raise NoteNotFoundError(note_id=note_id)
                    raise InvalidTransitionError(
                        "Il DDT è già firmato",
                        note_id=note_id,
                        state=state_of(note),
                        action=Action.SIGN,
                    )
                uow.commit()
        except UpstreamFailure as exc:
            exc.stage = SignStage.PROVISIONAL_COMMIT
            exc.note_id = note_id
            self._log_sign_failure(exc, note_id, NoteState.DRAFT)
            raise

        log_structured_event(
            "delivery_note.signed",
            message="DDT firmato, generazione PDF in corso",
            note_id=note_id,
            state=NoteState.SIGNED_NO_DOC,
        )

        # 3-4. Documento e ancoraggio finale
        return self._complete_signing(note_id, signature.url, timeout)

    def finish_signing(self, note_id: int, timeout: Optional[float] = None) -> SignatureResult:
        """
        Ripresa idempotente degli stage 3-4 per un DDT firmato senza PDF.
        Su un DDT già completo restituisce il risultato esistente.
        """
        view = self._read(note_id)
        if view.state == NoteState.SIGNED:
            return SignatureResult(sign_url=view.sign, pdf_url=view.pdf_url, note=view)
        ensure_allowed(view.state, Action.FINISH_SIGNING, note_id=note_id)
        return self._complete_signing(note_id, view.sign, self._timeout(timeout))

    def _complete_signing(self, note_id: int, sign_url: str, timeout: Optional[float]) -> SignatureResult:
        # Vista ri-risolta dopo il commit provvisorio: pending=False, sign presente.
        # Anche archiviato nel frattempo il DDT resta firmato e riceve il suo PDF.
        try:
            view = self._read(note_id, include_archived=True)
        except UpstreamFailure as exc:
            raise self._incomplete(exc, note_id, sign_url, SignStage.RENDER) from exc

        # 3. Rendering
        try:
            content = self._render(view, timeout)
        except UpstreamFailure as exc:
            raise self._incomplete(exc, note_id, sign_url, SignStage.RENDER) from exc

        # 4. Ancoraggio del PDF
        try:
            document = self._upload(
                content,
                view.pdf_filename,
                "application/pdf",
                timeout=timeout,
                stage=SignStage.PDF_UPLOAD,
                note_id=note_id,
            )
        except UpstreamFailure as exc:
            raise self._incomplete(exc, note_id, sign_url, SignStage.PDF_UPLOAD) from exc

        try:
            with self._uow() as uow:
                rows = uow.delivery_notes.attach_pdf(note_id, document.url)
                if rows == 0:
                    # Eliminato definitivamente fra commit provvisorio e finale
                    raise NoteNotFoundError(note_id=note_id)
                uow.commit()
                final = self._load_view(uow, note_id, include_archived=True)
        except UpstreamFailure as exc:
            raise self._incomplete(exc, note_id, sign_url, SignStage.FINAL_COMMIT) from exc

        log_structured_event(
            "delivery_note.pdf_anchored",
            message="PDF firmato ancorato",
            note_id=note_id,
            locator=document.locator,
            state=final.state,
        )
        return SignatureResult(sign_url=final.sign, pdf_url=final.pdf_url, note=final)

    def _incomplete(self, exc: UpstreamFailure, note_id: int, sign_url: str, stage: SignStage) -> SigningIncompleteError:
        exc.stage = stage
        exc.note_id = note_id
        self._log_sign_failure(exc, note_id, NoteState.SIGNED_NO_DOC)
        return SigningIncompleteError(
            note_id=note_id,
            stage=stage,
            retryable=exc.retryable,
            state=NoteState.SIGNED_NO_DOC,
            sign_url=sign_url,
        )

    @staticmethod
    def _log_sign_failure(exc: UpstreamFailure, note_id: int, state: NoteState) -> None:
        log_structured_event(
            "delivery_note.sign_failed",
            message="Pipeline di firma interrotta",
            level="error",
            note_id=note_id,
            stage=exc.stage,
            state=state,
            retryable=exc.retryable,
            error_kind=exc.kind,
            cause=repr(exc.__cause__) if exc.__cause__ else None,
        )


def get_delivery_note_service() -> DeliveryNoteService:
    """Servizio configurato per l'app Flask corrente."""
    return DeliveryNoteService(
        blob_store=current_app.extensions["blob_store"],
        timeout=current_app.config.get("EXTERNAL_CALL_TIMEOUT", DEFAULT_TIMEOUT),
    )
