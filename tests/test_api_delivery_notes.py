"""
API HTTP dei DDT: busta di risposta, mapping errori -> status, upload firma e PDF.
"""

import io

import pytest

from app.services.errors import BlobStoreError
from tests.conftest import RecordingBlobStore

BASE = "/api/deliverynote"


@pytest.fixture
def note_payload(refs):
    return dict(refs, format="hours", hours=8, description="Montaje de tabiques")


@pytest.fixture
def created(client, note_payload):
    response = client.post(f"{BASE}/", json=note_payload)
    assert response.status_code == 201
    return response.get_json()["payload"]


def _sign(client, note_id, data, filename="firma.png"):
    return client.patch(
        f"{BASE}/sign/{note_id}",
        data={"image": (io.BytesIO(data), filename)},
        content_type="multipart/form-data",
    )


def test_healthcheck(client):
    assert client.get("/health").get_json() == {"status": "ok"}


def test_create_returns_resolved_note(client, created, refs):
    assert created["pending"] is True
    assert created["sign"] is None
    assert created["pdf_url"] is None
    assert created["state"] == "draft"
    assert created["hours"] == 8.0
    assert created["user"]["email"] == "ana@example.com"
    assert created["client"] == {"id": refs["client_id"], "name": "Construcciones Norte", "cif": "B12345678"}
    assert created["project"]["project_code"] == "PRJ-001"


def test_create_accepts_camel_case_references(client, refs):
    response = client.post(
        f"{BASE}/",
        json={
            "userId": refs["user_id"],
            "clientId": refs["client_id"],
            "projectId": refs["project_id"],
            "format": "material",
            "description": "Sacos de cemento",
        },
    )
    assert response.status_code == 201
    assert response.get_json()["payload"]["hours"] is None


def test_create_hours_format_requires_hours(client, note_payload):
    note_payload.pop("hours")
    response = client.post(f"{BASE}/", json=note_payload)

    body = response.get_json()
    assert response.status_code == 400
    assert body["success"] is False
    assert body["error"] == "validation_error"
    assert "hours" in body["errors"]


def test_create_with_unknown_reference(client, note_payload):
    note_payload["project_id"] = 9999
    response = client.post(f"{BASE}/", json=note_payload)

    assert response.status_code == 400
    assert response.get_json()["errors"]["project_id"] == "Riferimento inesistente"


def test_create_with_unknown_format(client, note_payload):
    note_payload["format"] = "kilos"
    response = client.post(f"{BASE}/", json=note_payload)
    assert response.status_code == 400
    assert "format" in response.get_json()["errors"]


def test_get_missing_note(client, app):
    response = client.get(f"{BASE}/424242")

    body = response.get_json()
    assert response.status_code == 404
    assert body["error"] == "not_found"
    assert body["note_id"] == 424242


def test_list_with_filters(client, created, refs):
    response = client.get(f"{BASE}/", query_string={"user_id": refs["user_id"]})
    assert [note["id"] for note in response.get_json()["payload"]] == [created["id"]]

    response = client.get(f"{BASE}/", query_string={"clientId": refs["client_id"] + 1})
    assert response.get_json()["payload"] == []


def test_update_draft(client, created):
    response = client.put(f"{BASE}/{created['id']}", json={"description": "Pintura", "hours": "6,5"})

    payload = response.get_json()["payload"]
    assert response.status_code == 200
    assert payload["description"] == "Pintura"
    assert payload["hours"] == 6.5


def test_update_rejects_immutable_fields(client, created):
    response = client.put(f"{BASE}/{created['id']}", json={"pending": False, "format": "material"})

    errors = response.get_json()["errors"]
    assert response.status_code == 400
    assert set(errors) == {"pending", "format"}


def test_sign_and_download_pdf(client, created, png_bytes):
    response = _sign(client, created["id"], png_bytes)

    body = response.get_json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["payload"]["sign"]
    assert body["payload"]["pdf"]
    assert body["payload"]["note"]["state"] == "signed"

    # Il blob store locale serve la firma caricata
    locator = body["payload"]["sign"].rsplit("/", 1)[-1]
    blob = client.get(f"/blobs/{locator}")
    assert blob.status_code == 200
    assert blob.data == png_bytes

    pdf = client.get(f"{BASE}/pdf/{created['id']}")
    assert pdf.status_code == 200
    assert pdf.mimetype == "application/pdf"
    assert f"albaran_{created['id']}.pdf" in pdf.headers["Content-Disposition"]
    assert pdf.data.startswith(b"%PDF")


def test_sign_twice_conflicts(client, created, png_bytes):
    assert _sign(client, created["id"], png_bytes).status_code == 200

    response = _sign(client, created["id"], png_bytes)
    body = response.get_json()
    assert response.status_code == 409
    assert body["error"] == "invalid_transition"
    assert body["state"] == "signed"


def test_sign_rejects_non_image(client, created):
    response = _sign(client, created["id"], b"not an image")
    assert response.status_code == 400
    assert "image" in response.get_json()["errors"]


def test_sign_rejects_extension(client, created, png_bytes):
    response = _sign(client, created["id"], png_bytes, filename="firma.exe")
    assert response.status_code == 400


def test_sign_without_file(client, created):
    response = client.patch(f"{BASE}/sign/{created['id']}", data={}, content_type="multipart/form-data")
    assert response.status_code == 400


def test_update_signed_note_conflicts(client, created, png_bytes):
    _sign(client, created["id"], png_bytes)
    response = client.put(f"{BASE}/{created['id']}", json={"description": "Cambio"})
    assert response.status_code == 409


def test_hard_delete_rules(client, created, png_bytes):
    note_id = created["id"]

    response = client.delete(f"{BASE}/{note_id}/hard")
    assert response.status_code == 409
    assert client.get(f"{BASE}/{note_id}").status_code == 200

    _sign(client, note_id, png_bytes)
    response = client.delete(f"{BASE}/{note_id}/hard")
    assert response.status_code == 200
    assert response.get_json()["payload"] == {"id": note_id}
    assert client.get(f"{BASE}/{note_id}").status_code == 404
    assert client.delete(f"{BASE}/{note_id}/hard").status_code == 404


def test_archive_and_restore(client, created):
    note_id = created["id"]

    response = client.delete(f"{BASE}/{note_id}")
    assert response.status_code == 200
    assert response.get_json()["payload"]["state"] == "archived_draft"

    assert client.get(f"{BASE}/{note_id}").status_code == 404
    archived = client.get(f"{BASE}/archived").get_json()["payload"]
    assert [note["id"] for note in archived] == [note_id]

    response = client.patch(f"{BASE}/{note_id}/restore")
    assert response.status_code == 200
    assert response.get_json()["payload"]["deleted_at"] is None
    assert client.get(f"{BASE}/archived").get_json()["payload"] == []


def test_finish_signing_on_draft_conflicts(client, created):
    response = client.post(f"{BASE}/sign/{created['id']}/finish")
    assert response.status_code == 409


def test_signature_upload_failure_maps_to_503(app, client, created, png_bytes):
    store = RecordingBlobStore()
    store.fail_on("firma_", BlobStoreError(retryable=True))
    app.extensions["blob_store"] = store

    response = _sign(client, created["id"], png_bytes)

    body = response.get_json()
    assert response.status_code == 503
    assert body["stage"] == "signature_upload"
    assert body["retryable"] is True
    assert client.get(f"{BASE}/{created['id']}").get_json()["payload"]["state"] == "draft"


def test_pdf_upload_failure_then_finish(app, client, created, png_bytes):
    store = RecordingBlobStore()
    store.fail_on("albaran_", BlobStoreError(retryable=True))
    app.extensions["blob_store"] = store

    response = _sign(client, created["id"], png_bytes)

    body = response.get_json()
    assert response.status_code == 503
    assert body["error"] == "signing_incomplete"
    assert body["stage"] == "pdf_upload"
    assert body["state"] == "signed_no_doc"
    assert body["resumable"] is True
    assert body["sign_url"]

    response = client.post(f"{BASE}/sign/{created['id']}/finish")
    assert response.status_code == 200
    assert response.get_json()["payload"]["note"]["state"] == "signed"
    assert store.count("firma_") == 1


def test_permanent_upload_failure_maps_to_502(app, client, created, png_bytes):
    store = RecordingBlobStore()
    store.fail_on("firma_", BlobStoreError(retryable=False))
    app.extensions["blob_store"] = store

    response = _sign(client, created["id"], png_bytes)
    assert response.status_code == 502


def test_invalid_timeout_argument(client, created):
    response = client.get(f"{BASE}/pdf/{created['id']}", query_string={"timeout": "abc"})
    assert response.status_code == 400


@pytest.mark.parametrize("value", ["nan", "inf", "-1", "0"])
def test_non_finite_or_negative_timeout_is_rejected(client, created, value):
    response = client.get(f"{BASE}/pdf/{created['id']}", query_string={"timeout": value})

    body = response.get_json()
    assert response.status_code == 400
    assert body["error"] == "validation_error"
    assert "timeout" in body["errors"]


def test_create_with_array_body(client, refs):
    response = client.post(f"{BASE}/", json=[1, 2])

    body = response.get_json()
    assert response.status_code == 400
    assert body["errors"] == {"body": "Deve essere un oggetto JSON"}


def test_update_with_array_body(client, created):
    response = client.put(f"{BASE}/{created['id']}", json=["hours"])

    assert response.status_code == 400
    assert "body" in response.get_json()["errors"]
    assert client.get(f"{BASE}/{created['id']}").get_json()["payload"]["hours"] == 8.0
