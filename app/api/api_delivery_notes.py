"""
API JSON per i DDT (albaranes).

Endpoint principali:

POST   /api/deliverynote/                  crea un DDT in bozza
GET    /api/deliverynote/                  elenco (filtri user_id, client_id, project_id)
GET    /api/deliverynote/archived          elenco archiviati
GET    /api/deliverynote/<id>              dettaglio
PUT    /api/deliverynote/<id>              modifica (solo bozze)
DELETE /api/deliverynote/<id>              archivia (soft delete)
DELETE /api/deliverynote/<id>/hard         elimina definitivamente (solo firmati)
PATCH  /api/deliverynote/<id>/restore      ripristina un archiviato
GET    /api/deliverynote/pdf/<id>          PDF (albaran_<id>.pdf)
PATCH  /api/deliverynote/sign/<id>         firma (multipart, campo "image")
POST   /api/deliverynote/sign/<id>/finish  completa una firma interrotta

Tutte le risposte usano la busta {"success", "message", "payload"}; gli errori
aggiungono il tipo stabile ("error") e, per la pipeline di firma, stage e stato.
"""

from __future__ import annotations

import io

from flask import Blueprint, current_app, jsonify, request, send_file

from app.api.validators import (
    parse_create_payload,
    parse_timeout,
    parse_update_payload,
    validate_signature_upload,
)
from app.services import (
    DeliveryNoteError,
    InvalidTransitionError,
    NoteNotFoundError,
    UpstreamFailure,
    ValidationError,
    get_delivery_note_service,
)
from app.services.dto import NoteFilters

api_delivery_notes_bp = Blueprint("api_delivery_notes", __name__)


def _ok(message: str, payload, status: int = 200):
    return jsonify({"success": True, "message": message, "payload": payload}), status


def _status_for(error: DeliveryNoteError) -> int:
    if isinstance(error, NoteNotFoundError):
        return 404
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, InvalidTransitionError):
        return 409
    if isinstance(error, UpstreamFailure):
        return 503 if error.retryable else 502
    return 500


@api_delivery_notes_bp.errorhandler(DeliveryNoteError)
def handle_delivery_note_error(error: DeliveryNoteError):
    body = {"success": False, "message": error.message, "payload": None}
    body.update(error.to_payload())
    return jsonify(body), _status_for(error)


def _timeout_arg():
    return parse_timeout(
        request.args.get("timeout"),
        maximum=current_app.config.get("EXTERNAL_CALL_TIMEOUT", 30.0),
    )


@api_delivery_notes_bp.route("/", methods=["POST"])
def api_create_delivery_note():
    fields = parse_create_payload(request.get_json(silent=True))
    note = get_delivery_note_service().create(fields)
    return _ok("DDT creato con successo.", note.to_dict(), 201)


@api_delivery_notes_bp.route("/", methods=["GET"])
def api_list_delivery_notes():
    filters = NoteFilters.from_query_args(request.args)
    notes = get_delivery_note_service().list(filters)
    return _ok("Elenco DDT.", [note.to_dict() for note in notes])


@api_delivery_notes_bp.route("/archived", methods=["GET"])
def api_list_archived_delivery_notes():
    filters = NoteFilters.from_query_args(request.args)
    notes = get_delivery_note_service().list_archived(filters)
    return _ok("Elenco DDT archiviati.", [note.to_dict() for note in notes])


@api_delivery_notes_bp.route("/<int:note_id>", methods=["GET"])
def api_get_delivery_note(note_id: int):
    note = get_delivery_note_service().get(note_id)
    return _ok("Dettaglio DDT.", note.to_dict())


@api_delivery_notes_bp.route("/<int:note_id>", methods=["PUT"])
def api_update_delivery_note(note_id: int):
    service = get_delivery_note_service()
    current = service.get(note_id)
    fields = parse_update_payload(request.get_json(silent=True), note_format=current.format)
    note = service.update(note_id, fields)
    return _ok("DDT aggiornato con successo.", note.to_dict())


@api_delivery_notes_bp.route("/<int:note_id>", methods=["DELETE"])
def api_soft_delete_delivery_note(note_id: int):
    note = get_delivery_note_service().soft_delete(note_id)
    return _ok("DDT archiviato.", note.to_dict())


@api_delivery_notes_bp.route("/<int:note_id>/hard", methods=["DELETE"])
def api_hard_delete_delivery_note(note_id: int):
    get_delivery_note_service().hard_delete(note_id)
    return _ok("DDT eliminato definitivamente.", {"id": note_id})


@api_delivery_notes_bp.route("/<int:note_id>/restore", methods=["PATCH"])
def api_restore_delivery_note(note_id: int):
    note = get_delivery_note_service().restore(note_id)
    return _ok("DDT ripristinato.", note.to_dict())


@api_delivery_notes_bp.route("/pdf/<int:note_id>", methods=["GET"])
def api_delivery_note_pdf(note_id: int):
    document = get_delivery_note_service().render_pdf(note_id, timeout=_timeout_arg())
    return send_file(
        io.BytesIO(document.content),
        mimetype=document.mimetype,
        as_attachment=True,
        download_name=document.filename,
    )


@api_delivery_notes_bp.route("/sign/<int:note_id>", methods=["PATCH"])
def api_sign_delivery_note(note_id: int):
    file = request.files.get("image")
    image = validate_signature_upload(
        file,
        current_app.config.get("SIGNATURE_ALLOWED_EXTENSIONS", ()),
    )
    result = get_delivery_note_service().sign(
        note_id,
        image,
        filename=file.filename,
        content_type=file.mimetype,
        timeout=_timeout_arg(),
    )
    return _ok("Firma caricata e PDF salvato.", result.to_dict())


@api_delivery_notes_bp.route("/sign/<int:note_id>/finish", methods=["POST"])
def api_finish_signing(note_id: int):
    result = get_delivery_note_service().finish_signing(note_id, timeout=_timeout_arg())
    return _ok("PDF firmato salvato.", result.to_dict())
