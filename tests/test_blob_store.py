"""Blob store: indirizzamento per contenuto (locale) e upload Pinata via urllib."""

import hashlib
import io
import json
import urllib.error

import pytest

from app.services.blob_store import LocalBlobStore, PinataBlobStore, build_blob_store
from app.services.errors import BlobStoreError, UpstreamTimeoutError


class FakeUrlopen:
    """Sostituto di urllib.request.urlopen con risposte programmate."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request, timeout=None):
        self.requests.append((request, timeout))
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return io.BytesIO(json.dumps(response).encode("utf-8"))


def _http_error(code):
    return urllib.error.HTTPError("https://pinata.test", code, "error", {}, None)


@pytest.fixture
def pinata():
    return PinataBlobStore(
        jwt="token",
        endpoint="https://pinata.test/pinning/pinFileToIPFS",
        gateway="gw.example.com",
        retries=2,
    )


def test_local_store_is_content_addressed(tmp_path):
    store = LocalBlobStore(str(tmp_path), "http://blobs.test/")

    first = store.put(b"IMG", "firma.png")
    second = store.put(b"IMG", "altro-nome.png")

    assert first == second
    assert first.locator == hashlib.sha256(b"IMG").hexdigest()
    assert first.url == f"http://blobs.test/{first.locator}"
    assert store.read(first.locator) == b"IMG"
    assert store.put(b"OTHER", "firma.png").locator != first.locator


def test_pinata_upload_returns_gateway_url(monkeypatch, pinata):
    fake = FakeUrlopen({"IpfsHash": "QmHash", "PinSize": 3})
    monkeypatch.setattr("urllib.request.urlopen", fake)

    stored = pinata.put(b"IMG", "firma.png", content_type="image/png", timeout=4)

    assert stored.locator == "QmHash"
    assert stored.url == "https://gw.example.com/ipfs/QmHash"
    request, timeout = fake.requests[0]
    assert timeout == 4
    assert request.get_header("Authorization") == "Bearer token"
    assert b'filename="firma.png"' in request.data
    assert b"Content-Type: image/png" in request.data


def test_pinata_retries_transient_errors(monkeypatch, pinata):
    fake = FakeUrlopen(_http_error(503), urllib.error.URLError("reset"), {"IpfsHash": "QmOk"})
    monkeypatch.setattr("urllib.request.urlopen", fake)

    assert pinata.put(b"PDF", "albaran_1.pdf").locator == "QmOk"
    assert len(fake.requests) == 3


def test_pinata_gives_up_after_retries(monkeypatch, pinata):
    fake = FakeUrlopen(_http_error(502), _http_error(502), _http_error(502))
    monkeypatch.setattr("urllib.request.urlopen", fake)

    with pytest.raises(BlobStoreError) as excinfo:
        pinata.put(b"PDF", "albaran_1.pdf")
    assert excinfo.value.retryable is True
    assert len(fake.requests) == 3


def test_pinata_retries_share_the_call_timeout(monkeypatch, pinata):
    fake = FakeUrlopen(_http_error(503), _http_error(503), {"IpfsHash": "QmOk"})
    monkeypatch.setattr("urllib.request.urlopen", fake)
    ticks = iter([100.0, 103.0, 106.0])
    monkeypatch.setattr("app.services.blob_store._now", lambda: next(ticks))

    pinata.put(b"PDF", "albaran_1.pdf", timeout=10)

    assert [timeout for _, timeout in fake.requests] == [10, 7.0, 4.0]


def test_pinata_stops_retrying_when_time_is_up(monkeypatch, pinata):
    fake = FakeUrlopen(_http_error(503), {"IpfsHash": "QmLate"})
    monkeypatch.setattr("urllib.request.urlopen", fake)
    ticks = iter([100.0, 106.0])
    monkeypatch.setattr("app.services.blob_store._now", lambda: next(ticks))

    with pytest.raises(UpstreamTimeoutError):
        pinata.put(b"PDF", "albaran_1.pdf", timeout=5)
    assert len(fake.requests) == 1


def test_pinata_client_error_is_permanent(monkeypatch, pinata):
    fake = FakeUrlopen(_http_error(401))
    monkeypatch.setattr("urllib.request.urlopen", fake)

    with pytest.raises(BlobStoreError) as excinfo:
        pinata.put(b"IMG", "firma.png")
    assert excinfo.value.retryable is False
    assert len(fake.requests) == 1


@pytest.mark.parametrize("error", [TimeoutError("timed out"), urllib.error.URLError(TimeoutError())])
def test_pinata_timeout_is_retryable(monkeypatch, error):
    store = PinataBlobStore(jwt="token", endpoint="https://pinata.test", gateway="gw", retries=0)
    monkeypatch.setattr("urllib.request.urlopen", FakeUrlopen(error))

    with pytest.raises(UpstreamTimeoutError) as excinfo:
        store.put(b"IMG", "firma.png")
    assert excinfo.value.retryable is True


def test_pinata_invalid_response(monkeypatch, pinata):
    monkeypatch.setattr("urllib.request.urlopen", FakeUrlopen({"unexpected": True}))

    with pytest.raises(BlobStoreError) as excinfo:
        pinata.put(b"IMG", "firma.png")
    assert excinfo.value.retryable is False


def test_pinata_without_credentials():
    store = PinataBlobStore(jwt="", endpoint="https://pinata.test", gateway="gw")
    with pytest.raises(BlobStoreError):
        store.put(b"IMG", "firma.png")


def test_build_blob_store(tmp_path):
    local = build_blob_store(
        {"BLOB_STORE_BACKEND": "local", "BLOB_STORAGE_PATH": str(tmp_path), "BLOB_PUBLIC_BASE_URL": "http://x"}
    )
    assert isinstance(local, LocalBlobStore)

    remote = build_blob_store(
        {
            "BLOB_STORE_BACKEND": "pinata",
            "PINATA_JWT": "t",
            "PINATA_ENDPOINT": "https://pinata.test",
            "PINATA_GATEWAY_URL": "https://gw.example.com/",
            "BLOB_UPLOAD_RETRIES": 1,
        }
    )
    assert isinstance(remote, PinataBlobStore)
    assert remote.gateway_url("Qm") == "https://gw.example.com/ipfs/Qm"

    with pytest.raises(ValueError):
        build_blob_store({"BLOB_STORE_BACKEND": "ftp"})
