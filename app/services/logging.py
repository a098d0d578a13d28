"""Helper per logging strutturato JSON nei servizi applicativi."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

SERVICE_LOGGER_NAME = "app.delivery_notes"


def _plain(value: Any) -> Any:
    # Stati e stage (Enum) finiscono nel JSON come stringhe semplici
    if isinstance(value, Enum):
        return value.value
    return value


def log_structured_event(
    action: str,
    *,
    message: Optional[str] = None,
    level: str = "info",
    **fields: Any,
) -> None:
    """Registra un evento strutturato sfruttando il logger configurato in ``extensions``.

    Il logging JSON è già configurato a livello di root logger da ``app.extensions``;
    questa funzione è un piccolo wrapper per ridurre la duplicazione di codice nei
    servizi. I campi tipici sono ``note_id``, ``stage`` e ``state``.
    """

    logger = logging.getLogger(SERVICE_LOGGER_NAME)
    log_method = getattr(logger, level.lower(), logger.info)

    payload: Dict[str, Any] = {"action": action}
    payload.update({key: _plain(value) for key, value in fields.items()})

    try:
        log_method(message or "Structured service event", extra=payload)
    except Exception:
        # Il logging non deve mai interrompere il flusso di business
        logger.debug("Logging strutturato fallito", exc_info=True)
