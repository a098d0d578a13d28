"""
Renderer PDF dell'albarán.

Funzione pura: stessa vista in ingresso, stessi byte in uscita (reportlab in
modalità ``invariant``, metadati fissi). Il contenuto segue quest'ordine:
titolo, id, data, cliente, progetto, utente, formato (+ ore), descrizione,
indicatore di firma.

Se manca un dato del join il renderer solleva RenderError prima di produrre
qualsiasi byte: il chiamante non riceve mai un PDF parziale.
"""

from __future__ import annotations

import io
from typing import List, Tuple

from reportlab.lib.pagesizes import A4  # type: ignore
from reportlab.lib.units import cm  # type: ignore
from reportlab.lib.utils import simpleSplit  # type: ignore
from reportlab.pdfgen import canvas  # type: ignore
from pypdf import PdfReader  # type: ignore
from pypdf.errors import PdfReadError  # type: ignore

from app.models.delivery_note import FORMAT_HOURS
from app.services.dto import DeliveryNoteView
from app.services.errors import RenderError
from app.services.formatting_service import format_date, format_hours

TITLE = "Albarán"
TITLE_FONT = ("Helvetica-Bold", 20)
BODY_FONT = ("Helvetica", 12)
LINE_HEIGHT = 18
MARGIN = 2 * cm

# Campi del join senza i quali il documento non è valido
REQUIRED_FIELDS = (
    "created_at",
    "client_name",
    "client_cif",
    "project_name",
    "project_code",
    "user_name",
    "user_email",
)


def _validate(view: DeliveryNoteView) -> None:
    missing = [name for name in REQUIRED_FIELDS if getattr(view, name) in (None, "")]
    if view.format == FORMAT_HOURS and view.hours is None:
        missing.append("hours")
    if missing:
        raise RenderError(
            f"Dati mancanti per il PDF: {', '.join(missing)}",
            note_id=view.id,
        )


def document_lines(view: DeliveryNoteView) -> List[Tuple[str, str]]:
    """
    Righe del documento come coppie (tipo, testo), nell'ordine di stampa.
    Tipi: 'title', 'text', 'gap'.
    """
    _validate(view)

    user_full_name = " ".join(part for part in (view.user_name, view.user_surnames) if part)
    lines: List[Tuple[str, str]] = [
        ("title", TITLE),
        ("gap", ""),
        ("text", f"ID: {view.id}"),
        ("text", f"Fecha: {format_date(view.created_at)}"),
        ("gap", ""),
        ("text", f"Cliente: {view.client_name} ({view.client_cif})"),
        ("text", f"Proyecto: {view.project_name} ({view.project_code})"),
        ("gap", ""),
        ("text", f"Usuario: {user_full_name} ({view.user_email})"),
        ("gap", ""),
        ("text", f"Formato: {view.format}"),
    ]
    if view.format == FORMAT_HOURS:
        lines.append(("text", f"Horas: {format_hours(view.hours)}"))
    lines.extend(
        [
            ("gap", ""),
            ("text", f"Descripción: {view.description or ''}"),
            ("gap", ""),
            ("text", f"Firmado: {'No' if view.pending else 'Sí'}"),
        ]
    )
    return lines


def render_delivery_note(view: DeliveryNoteView) -> bytes:
    """Genera i byte del PDF; solleva RenderError in caso di problemi."""
    lines = document_lines(view)

    buffer = io.BytesIO()
    try:
        pdf = canvas.Canvas(buffer, pagesize=A4, invariant=1)
        pdf.setTitle(view.pdf_filename)
        pdf.setAuthor(" ".join(p for p in (view.user_name, view.user_surnames) if p))
        pdf.setSubject(f"{TITLE} {view.id}")

        width, height = A4
        usable_width = width - 2 * MARGIN
        y = height - MARGIN

        for kind, text in lines:
            if kind == "gap":
                y -= LINE_HEIGHT / 2
                continue
            if kind == "title":
                pdf.setFont(*TITLE_FONT)
                y -= TITLE_FONT[1]
                pdf.drawCentredString(width / 2, y, text)
                y -= LINE_HEIGHT / 2
                continue

            pdf.setFont(*BODY_FONT)
            # La descrizione può essere lunga: va a capo sulla larghezza utile
            for chunk in simpleSplit(text, BODY_FONT[0], BODY_FONT[1], usable_width) or [""]:
                if y - LINE_HEIGHT < MARGIN:
                    pdf.showPage()
                    pdf.setFont(*BODY_FONT)
                    y = height - MARGIN
                y -= LINE_HEIGHT
                pdf.drawString(MARGIN, y, chunk)

        pdf.showPage()
        pdf.save()
    except Exception as exc:
        raise RenderError(note_id=view.id) from exc

    content = buffer.getvalue()
    _verify(content, view.id)
    return content


def _verify(content: bytes, note_id: int) -> None:
    """Rilegge il PDF generato: un documento illeggibile non deve essere ancorato."""
    try:
        reader = PdfReader(io.BytesIO(content))
        page_count = len(reader.pages)
    except PdfReadError as exc:
        raise RenderError("PDF generato non leggibile", note_id=note_id) from exc
    if page_count < 1:
        raise RenderError("PDF generato senza pagine", note_id=note_id)
