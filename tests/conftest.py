"""
Fixture pytest per la suite dei DDT.

Ogni test riceve un'app con SQLite in memoria (TestConfig), tabelle nuove,
anagrafiche di prova e un blob store in memoria che registra gli upload e può
simulare errori o corse concorrenti.
"""

import hashlib
import io
from datetime import datetime
from decimal import Decimal

import pytest
from PIL import Image

from app import create_app
from app.extensions import db
from app.models import Client, DeliveryNote, Project, User
from app.services.blob_store import BlobStore, StoredBlob
from app.services.delivery_note_service import DeliveryNoteService
from app.services.dto import DeliveryNoteView
from app.services.note_states import check_invariants
from config import TestConfig


class RecordingBlobStore(BlobStore):
    """Blob store content-addressed in memoria con iniezione di errori."""

    def __init__(self):
        self.blobs = {}
        self.puts = []
        self._failures = []
        self.before_put = None

    def fail_on(self, prefix, exc, times=1):
        for _ in range(times):
            self._failures.append((prefix, exc))

    def put(self, data, name, content_type=None, timeout=None):
        self.puts.append(name)
        if self.before_put is not None:
            hook, self.before_put = self.before_put, None
            hook(name)
        for entry in list(self._failures):
            prefix, exc = entry
            if name.startswith(prefix):
                self._failures.remove(entry)
                raise exc
        locator = hashlib.sha256(data).hexdigest()
        self.blobs[locator] = data
        return StoredBlob(locator=locator, url=f"https://blobs.test/ipfs/{locator}")

    def count(self, prefix):
        return sum(1 for name in self.puts if name.startswith(prefix))


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        LOG_DIR = str(tmp_path / "logs")
        BLOB_STORAGE_PATH = str(tmp_path / "blobs")
        BLOB_PUBLIC_BASE_URL = "http://blobs.test"

    flask_app = create_app(_Config)
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def refs(app):
    user = User(name="Ana", surnames="García López", email="ana@example.com")
    customer = Client(name="Construcciones Norte", cif="B12345678")
    db.session.add_all([user, customer])
    db.session.flush()
    project = Project(name="Reforma oficina", project_code="PRJ-001", client_id=customer.id)
    db.session.add(project)
    db.session.commit()
    return {"user_id": user.id, "client_id": customer.id, "project_id": project.id}


@pytest.fixture
def blob_store():
    return RecordingBlobStore()


@pytest.fixture
def service(app, blob_store):
    return DeliveryNoteService(blob_store=blob_store, timeout=5.0)


@pytest.fixture
def make_note(service, refs):
    def _make(**overrides):
        fields = dict(refs, format="hours", hours=Decimal("8"), description="Montaje de tabiques")
        fields.update(overrides)
        return service.create(fields)

    return _make


@pytest.fixture
def draft(make_note):
    return make_note()


@pytest.fixture
def signed(service, draft):
    return service.sign(draft.id, b"IMG", "firma.png", content_type="image/png").note


@pytest.fixture
def assert_invariants(app):
    """Coerenza firma/pending/PDF su tutte le righe, archiviate comprese."""

    def _check():
        db.session.expire_all()
        for note in db.session.query(DeliveryNote).all():
            assert check_invariants(note), note

    return _check


@pytest.fixture
def png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (40, 20), color=(255, 255, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


def make_view(**overrides):
    values = dict(
        id=7,
        user_id=1,
        client_id=1,
        project_id=1,
        format="hours",
        hours=Decimal("8.00"),
        description="Montaje de tabiques",
        pending=True,
        sign=None,
        pdf_url=None,
        created_at=datetime(2024, 3, 5, 17, 45, 12),
        user_name="Ana",
        user_surnames="García López",
        user_email="ana@example.com",
        client_name="Construcciones Norte",
        client_cif="B12345678",
        project_name="Reforma oficina",
        project_code="PRJ-001",
    )
    values.update(overrides)
    return DeliveryNoteView(**values)
