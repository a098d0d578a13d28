"""
Blob store content-addressed per l'ancoraggio di firme e PDF firmati.

Contratto: ``put(data, name, content_type=None, timeout=None) -> StoredBlob``.
Nessuna modifica né cancellazione: lo stesso contenuto produce sempre lo stesso
locator, quindi un re-upload è innocuo.

Implementazioni:
- PinataBlobStore: pin su IPFS tramite Pinata (HTTP multipart, urllib).
- LocalBlobStore: SHA-256 su disco, per sviluppo e test.
"""

from __future__ import annotations

import hashlib
import json
import logging
import mimetypes
import os
import tempfile
import time
import urllib.error
import urllib.request
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from app.services.errors import BlobStoreError, UpstreamTimeoutError

logger = logging.getLogger(__name__)

# Status HTTP per cui ha senso ritentare l'upload
RETRYABLE_HTTP_STATUSES = {408, 425, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class StoredBlob:
    locator: str  # hash del contenuto (CID IPFS o SHA-256)
    url: str


class BlobStore:
    """Interfaccia minima del blob store."""

    def put(
        self,
        data: bytes,
        name: str,
        content_type: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> StoredBlob:
        raise NotImplementedError


def _now() -> float:
    return time.monotonic()


def guess_content_type(name: str, default: str = "application/octet-stream") -> str:
    guessed, _ = mimetypes.guess_type(name or "")
    return guessed or default


class PinataBlobStore(BlobStore):
    def __init__(
        self,
        *,
        jwt: str,
        endpoint: str,
        gateway: str,
        retries: int = 2,
        default_timeout: float = 30.0,
    ):
        self.jwt = jwt
        self.endpoint = endpoint
        self.gateway = gateway.rstrip("/")
        self.retries = max(0, retries)
        self.default_timeout = default_timeout

    def gateway_url(self, ipfs_hash: str) -> str:
        if self.gateway.startswith(("http://", "https://")):
            return f"{self.gateway}/ipfs/{ipfs_hash}"
        return f"https://{self.gateway}/ipfs/{ipfs_hash}"

    def put(self, data, name, content_type=None, timeout=None) -> StoredBlob:
        """
        Upload con retry. ``timeout`` limita l'intera chiamata, tentativi compresi:
        ogni nuovo tentativo riceve solo il tempo rimasto.
        """
        if not self.jwt:
            raise BlobStoreError("Credenziali Pinata mancanti", retryable=False)

        budget = timeout or self.default_timeout
        deadline = _now() + budget
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            remaining = budget if attempt == 1 else deadline - _now()
            if remaining <= 0:
                raise UpstreamTimeoutError("Timeout upload sul blob store")
            try:
                return self._upload_once(data, name, content_type, remaining)
            except BlobStoreError as exc:
                if not exc.retryable or attempt == attempts:
                    raise
                logger.warning(
                    "Upload Pinata fallito, nuovo tentativo",
                    extra={"blob_name": name, "attempt": attempt, "max_attempts": attempts},
                )
        raise BlobStoreError(retryable=True)  # pragma: no cover

    def _upload_once(self, data: bytes, name: str, content_type: Optional[str], timeout: float) -> StoredBlob:
        content_type = content_type or guess_content_type(name)
        body, boundary = _build_multipart(
            {"pinataMetadata": json.dumps({"name": name})},
            {"file": (name, data, content_type)},
        )
        request = urllib.request.Request(
            self.endpoint,
            data=body,
            headers={
                "Content-Type": f"multipart/form-data; boundary={boundary}",
                "Authorization": f"Bearer {self.jwt}",
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as exc:
            logger.warning(
                "Pinata ha risposto con errore",
                extra={"blob_name": name, "status": exc.code},
            )
            raise BlobStoreError(retryable=exc.code in RETRYABLE_HTTP_STATUSES) from exc
        except TimeoutError as exc:
            raise UpstreamTimeoutError("Timeout upload sul blob store") from exc
        except urllib.error.URLError as exc:
            if isinstance(exc.reason, TimeoutError):
                raise UpstreamTimeoutError("Timeout upload sul blob store") from exc
            raise BlobStoreError(retryable=True) from exc
        except OSError as exc:
            raise BlobStoreError(retryable=True) from exc

        try:
            payload = json.loads(raw.decode("utf-8", errors="replace"))
            ipfs_hash = payload["IpfsHash"]
        except (ValueError, KeyError, TypeError) as exc:
            raise BlobStoreError("Risposta Pinata non valida", retryable=False) from exc

        return StoredBlob(locator=ipfs_hash, url=self.gateway_url(ipfs_hash))


class LocalBlobStore(BlobStore):
    """Blob store su filesystem indicizzato per SHA-256 del contenuto."""

    def __init__(self, base_path: str, public_base_url: str):
        self.base_path = os.path.abspath(base_path)
        self.public_base_url = public_base_url.rstrip("/")
        os.makedirs(self.base_path, exist_ok=True)

    def path_for(self, locator: str) -> str:
        return os.path.join(self.base_path, locator[:2], locator)

    def put(self, data, name, content_type=None, timeout=None) -> StoredBlob:
        locator = hashlib.sha256(data).hexdigest()
        target = self.path_for(locator)
        try:
            if not os.path.exists(target):
                os.makedirs(os.path.dirname(target), exist_ok=True)
                # Scrittura atomica: un lettore non vede mai un file parziale
                fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(target))
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                os.replace(tmp_path, target)
        except OSError as exc:
            raise BlobStoreError(retryable=True) from exc
        return StoredBlob(locator=locator, url=f"{self.public_base_url}/{locator}")

    def read(self, locator: str) -> bytes:
        with open(self.path_for(locator), "rb") as fh:
            return fh.read()


def build_blob_store(config: Mapping[str, Any]) -> BlobStore:
    backend = (config.get("BLOB_STORE_BACKEND") or "pinata").lower()
    if backend == "local":
        return LocalBlobStore(
            base_path=config["BLOB_STORAGE_PATH"],
            public_base_url=config.get("BLOB_PUBLIC_BASE_URL", ""),
        )
    if backend == "pinata":
        return PinataBlobStore(
            jwt=config.get("PINATA_JWT", ""),
            endpoint=config["PINATA_ENDPOINT"],
            gateway=config["PINATA_GATEWAY_URL"],
            retries=int(config.get("BLOB_UPLOAD_RETRIES", 2)),
            default_timeout=float(config.get("EXTERNAL_CALL_TIMEOUT", 30)),
        )
    raise ValueError(f"BLOB_STORE_BACKEND non supportato: {backend}")


def _build_multipart(fields: dict, files: dict) -> tuple[bytes, str]:
    boundary = uuid.uuid4().hex
    lines: list[bytes] = []

    for name, value in fields.items():
        lines.append(f"--{boundary}\r\n".encode("utf-8"))
        lines.append(f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode("utf-8"))
        lines.append(f"{value}\r\n".encode("utf-8"))

    for name, (filename, data, content_type) in files.items():
        lines.append(f"--{boundary}\r\n".encode("utf-8"))
        lines.append(
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'.encode("utf-8")
        )
        lines.append(f"Content-Type: {content_type}\r\n\r\n".encode("utf-8"))
        lines.append(data)
        lines.append(b"\r\n")

    lines.append(f"--{boundary}--\r\n".encode("utf-8"))
    return b"".join(lines), boundary
