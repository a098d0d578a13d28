"""
Modulo di configurazione per l'applicazione Flask.
"""

import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Configurazione base, comune a tutti gli ambienti."""

    # Chiave segreta: in produzione deve essere sovrascritta da variabile d'ambiente
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # --- CONFIGURAZIONE DATABASE MYSQL --------------------------------------
    DB_USER = os.environ.get("DB_USER", "albaranes")
    DB_PASSWORD = os.environ.get("DB_PASSWORD", "albaranes")
    DB_HOST = os.environ.get("DB_HOST", "localhost")
    DB_PORT = os.environ.get("DB_PORT", "3306")
    DB_NAME = os.environ.get("DB_NAME", "albaranes")

    # Stringa di connessione composta in modo parametrico
    DEFAULT_DB_URL = (
        f"mysql+pymysql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    )

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", DEFAULT_DB_URL)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # --- TIMEOUT CHIAMATE ESTERNE -------------------------------------------
    # Secondi concessi a ogni chiamata verso blob store e renderer (anche per
    # richiesta, ?timeout=). Il DB ha limiti fissi derivati da questo valore.
    EXTERNAL_CALL_TIMEOUT = float(os.environ.get("EXTERNAL_CALL_TIMEOUT", "30"))

    # Limiti fissi del DB: attesa sul pool e timeout del driver PyMySQL
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_timeout": int(EXTERNAL_CALL_TIMEOUT),
        "connect_args": {
            "connect_timeout": int(EXTERNAL_CALL_TIMEOUT),
            "read_timeout": int(EXTERNAL_CALL_TIMEOUT),
            "write_timeout": int(EXTERNAL_CALL_TIMEOUT),
        },
    }

    # --- UPLOAD FIRME --------------------------------------------------------
    # Limite massimo dimensione upload (immagine firma)
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024
    SIGNATURE_ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif"}

    # --- BLOB STORE (ancoraggio firme e PDF) ---------------------------------
    # Valori: 'pinata' (IPFS) oppure 'local' (content-addressed su disco)
    BLOB_STORE_BACKEND = os.environ.get("BLOB_STORE_BACKEND", "pinata")
    PINATA_JWT = os.environ.get("PINATA_JWT", "")
    PINATA_ENDPOINT = os.environ.get(
        "PINATA_ENDPOINT", "https://api.pinata.cloud/pinning/pinFileToIPFS"
    )
    PINATA_GATEWAY_URL = os.environ.get("PINATA_GATEWAY_URL", "gateway.pinata.cloud")
    BLOB_STORAGE_PATH = os.environ.get(
        "BLOB_STORAGE_PATH",
        str(BASE_DIR / "storage" / "blobs"),
    )
    BLOB_PUBLIC_BASE_URL = os.environ.get(
        "BLOB_PUBLIC_BASE_URL", "http://localhost:5000/blobs"
    )
    BLOB_UPLOAD_RETRIES = int(os.environ.get("BLOB_UPLOAD_RETRIES", "2"))

    # --- LOGGING -------------------------------------------------------------
    LOG_DIR = os.environ.get("LOG_DIR", str(BASE_DIR / "logs"))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE_NAME = os.environ.get("LOG_FILE_NAME", "app.log")


class DevConfig(Config):
    """Configurazione per ambiente di sviluppo."""
    DEBUG = True
    ENV = "development"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")
    BLOB_STORE_BACKEND = os.environ.get("BLOB_STORE_BACKEND", "local")


class ProdConfig(Config):
    """Configurazione per ambiente di produzione."""
    DEBUG = False
    ENV = "production"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    """Configurazione per la suite pytest: SQLite in memoria e blob store locale."""
    TESTING = True
    DEBUG = False
    ENV = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    BLOB_STORE_BACKEND = "local"
    EXTERNAL_CALL_TIMEOUT = 5.0
    LOG_LEVEL = "WARNING"
