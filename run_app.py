"""
Avvio rapido dell'app Flask con un singolo comando:

    python run_app.py

Usa la factory create_app() e la configurazione di sviluppo di default
(SQLite/MySQL da DATABASE_URL, blob store locale salvo BLOB_STORE_BACKEND).
"""

from __future__ import annotations

import os

from app import create_app
from app.extensions import db
from config import DevConfig


def main() -> None:
    app = create_app(DevConfig)
    host = os.environ.get("FLASK_RUN_HOST", "0.0.0.0")
    port = int(os.environ.get("FLASK_RUN_PORT", "5000"))

    if os.environ.get("CREATE_TABLES", "0") == "1":
        with app.app_context():
            db.create_all()

    app.logger.info("Avvio dell'applicazione tramite run_app.py", extra={"component": "launcher"})
    app.run(host=host, port=port, debug=app.config.get("DEBUG", False))


if __name__ == "__main__":
    main()
