"""
Download dei blob del LocalBlobStore (solo sviluppo/test).

GET /blobs/<locator>
    Restituisce il contenuto indicizzato dallo SHA-256.
"""

from __future__ import annotations

import os
import re

from flask import Blueprint, abort, current_app, send_file

from app.services.blob_store import LocalBlobStore

api_blobs_bp = Blueprint("api_blobs", __name__)

_LOCATOR_RE = re.compile(r"^[0-9a-f]{64}$")


@api_blobs_bp.route("/<locator>", methods=["GET"])
def api_get_blob(locator: str):
    store = current_app.extensions.get("blob_store")
    if not isinstance(store, LocalBlobStore) or not _LOCATOR_RE.match(locator):
        abort(404)
    path = store.path_for(locator)
    if not os.path.exists(path):
        abort(404)
    return send_file(path, mimetype="application/octet-stream", download_name=locator)
