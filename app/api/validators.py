"""
Validazione degli input delle API DDT.

La validazione è responsabilità dello strato API: il servizio del ciclo di vita
riceve solo payload già puliti. Gli errori sono raccolti per campo e sollevati
come un'unica ValidationError.
"""

from __future__ import annotations

import io
import math
import os
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Mapping, Optional

from PIL import Image, UnidentifiedImageError

from app.models.delivery_note import FORMAT_HOURS, FORMATS
from app.services.errors import ValidationError
from app.services.unit_of_work import UnitOfWork

# Alias camelCase accettati per compatibilità con i client storici
FIELD_ALIASES = {
    "userId": "user_id",
    "clientId": "client_id",
    "projectId": "project_id",
}

REFERENCE_FIELDS = ("user_id", "client_id", "project_id")
IMMUTABLE_FIELDS = ("id", "_id", "format", "pending", "sign", "pdf_url", "pdfUrl",
                    "deleted_at", "deleted", "created_at", "createdAt")


def _normalize(data: Any) -> Dict[str, Any]:
    if not isinstance(data, Mapping):
        raise ValidationError(errors={"body": "Deve essere un oggetto JSON"})
    return {FIELD_ALIASES.get(key, key): value for key, value in data.items()}


def _parse_positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _parse_hours(value: Any) -> Optional[Decimal]:
    if value in (None, "") or isinstance(value, bool):
        return None
    try:
        hours = Decimal(str(value).replace(",", "."))
    except (InvalidOperation, ValueError):
        return None
    if not hours.is_finite() or hours < 0:
        return None
    return hours


def _check_references(uow: UnitOfWork, values: Mapping[str, int], errors: Dict[str, str]) -> None:
    repos = {
        "user_id": uow.users,
        "client_id": uow.clients,
        "project_id": uow.projects,
    }
    for field, value in values.items():
        if field in repos and value is not None and not repos[field].exists(value):
            errors[field] = "Riferimento inesistente"


def _parse_references(data: Mapping[str, Any], fields: Iterable[str], errors: Dict[str, str], required: bool) -> Dict[str, int]:
    parsed: Dict[str, int] = {}
    for field in fields:
        if field not in data:
            if required:
                errors[field] = "Campo obbligatorio"
            continue
        value = _parse_positive_int(data.get(field))
        if value is None:
            errors[field] = "Identificativo non valido"
        else:
            parsed[field] = value
    return parsed


def _parse_description(data: Mapping[str, Any], errors: Dict[str, str]) -> Optional[str]:
    description = data.get("description")
    if description is None:
        return None
    if not isinstance(description, str):
        errors["description"] = "Deve essere un testo"
        return None
    return description.strip() or None


def parse_create_payload(data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Payload di creazione: riferimenti, format, hours (se format=hours), description."""
    data = _normalize({} if data is None else data)
    errors: Dict[str, str] = {}

    cleaned: Dict[str, Any] = _parse_references(data, REFERENCE_FIELDS, errors, required=True)

    note_format = data.get("format")
    if note_format not in FORMATS:
        errors["format"] = f"Valori ammessi: {', '.join(FORMATS)}"
    else:
        cleaned["format"] = note_format

    if note_format == FORMAT_HOURS:
        hours = _parse_hours(data.get("hours"))
        if hours is None:
            errors["hours"] = "Ore obbligatorie e non negative per format=hours"
        else:
            cleaned["hours"] = hours

    if "description" in data:
        cleaned["description"] = _parse_description(data, errors)

    if not errors:
        with UnitOfWork() as uow:
            _check_references(uow, cleaned, errors)

    if errors:
        raise ValidationError(errors=errors)
    return cleaned


def parse_update_payload(data: Optional[Mapping[str, Any]], note_format: str) -> Dict[str, Any]:
    """Patch parziale: solo riferimenti, hours e description sono modificabili."""
    data = _normalize({} if data is None else data)
    errors: Dict[str, str] = {}

    for field in IMMUTABLE_FIELDS:
        if field in data:
            errors[field] = "Campo non modificabile"

    cleaned: Dict[str, Any] = _parse_references(data, REFERENCE_FIELDS, errors, required=False)

    if "hours" in data:
        hours = _parse_hours(data.get("hours"))
        if note_format == FORMAT_HOURS and hours is None:
            errors["hours"] = "Ore obbligatorie e non negative per format=hours"
        elif note_format != FORMAT_HOURS and data.get("hours") not in (None, ""):
            errors["hours"] = "Le ore sono ammesse solo con format=hours"
        else:
            cleaned["hours"] = hours

    if "description" in data:
        cleaned["description"] = _parse_description(data, errors)

    if not errors:
        with UnitOfWork() as uow:
            _check_references(uow, cleaned, errors)

    if errors:
        raise ValidationError(errors=errors)
    return cleaned


def validate_signature_upload(file, allowed_extensions: Iterable[str]) -> bytes:
    """Controlla estensione e contenuto dell'immagine firma; restituisce i byte."""
    if file is None or not getattr(file, "filename", None):
        raise ValidationError("Nessuna immagine caricata", errors={"image": "Campo obbligatorio"})

    suffix = os.path.splitext(file.filename)[1].lower()
    if suffix not in set(allowed_extensions):
        raise ValidationError(errors={"image": f"Estensione non supportata: {suffix or 'nessuna'}"})

    data = file.read()
    if not data:
        raise ValidationError(errors={"image": "File vuoto"})

    try:
        with Image.open(io.BytesIO(data)) as image:
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise ValidationError(errors={"image": "Il file non è un'immagine valida"}) from exc

    return data


def parse_timeout(value: Any, maximum: float) -> Optional[float]:
    """Timeout opzionale richiesto dal chiamante, limitato al massimo configurato."""
    if value in (None, ""):
        return None
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        raise ValidationError(errors={"timeout": "Deve essere un numero di secondi"})
    if not math.isfinite(timeout):
        raise ValidationError(errors={"timeout": "Deve essere un numero finito"})
    if timeout <= 0:
        raise ValidationError(errors={"timeout": "Deve essere positivo"})
    return min(timeout, maximum)
