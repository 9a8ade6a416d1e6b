"""Tests for the upload HTTP endpoints."""
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from filelink.config import UploadSettings
from filelink.uploads import UploadField, UploadService, UploadSpec, UploadTag
from filelink.uploads.router import router, upload_service, upload_settings


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def service(store, upload_dir):
    svc = UploadService(store, document_root=str(upload_dir.parent))
    spec = (
        UploadSpec(str(upload_dir / "__ID__.__EXTN__"))
        .db("files", "id", {
            "file_name": UploadTag.FILE_NAME,
            "file_size": UploadTag.FILE_SIZE,
            "web_path": UploadTag.WEB_PATH,
        })
        .allowed_extensions(["png"])
        .db_clean(lambda rows: True)
    )
    svc.register(UploadField(name="image_id", owning_table="users", spec=spec))
    return svc


@pytest.fixture
def client(service, staging_dir):
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[upload_settings] = lambda: UploadSettings(
        staging_dir=str(staging_dir), max_file_size_mb=1
    )
    app.dependency_overrides[upload_service] = lambda: service
    return TestClient(app)


class TestUploadEndpoint:
    def test_upload_success(self, client, upload_dir, staging_dir):
        response = client.post("/upload/image_id", files={"upload": ("photo.png", b"pixels", "image/png")})

        assert response.status_code == 200
        assert response.json() == {
            "upload": {"id": 1},
            "files": {"files": {"1": {
                "id": 1,
                "file_name": "photo.png",
                "file_size": 6,
                "web_path": "/uploads/1.png",
            }}},
            "error": None,
        }
        assert (upload_dir / "1.png").read_bytes() == b"pixels"
        assert list(staging_dir.iterdir()) == []

    def test_rejected_upload_cleans_staging(self, client, upload_dir, staging_dir):
        response = client.post("/upload/image_id", files={"upload": ("virus.exe", b"MZ", "application/x-msdownload")})

        assert response.status_code == 200
        assert response.json()["error"] == "This file type cannot be uploaded"
        assert response.json()["upload"] is None
        assert list(staging_dir.iterdir()) == []
        assert list(upload_dir.iterdir()) == []

    def test_size_limit(self, client, store, staging_dir):
        payload = b"x" * (1024 * 1024 + 1)
        response = client.post("/upload/image_id", files={"upload": ("big.png", payload, "image/png")})

        assert response.json()["error"] == "File exceeds maximum file upload size"
        assert store.count("files") == 0
        assert list(staging_dir.iterdir()) == []

    def test_custom_action_with_table(self, client, service, staging_dir):
        spec = UploadSpec(lambda upload, row_id: f"bucket/{row_id}").db("files", "id", {"file_name": UploadTag.FILE_NAME})
        service.register(UploadField(name="doc_id", owning_table="posts", spec=spec))

        response = client.post("/upload/doc_id", files={"upload": ("notes.txt", b"text", "text/plain")})

        assert response.status_code == 200
        assert response.json() == {
            "upload": {"id": "bucket/1"},
            "files": {"files": {"1": {"id": 1, "file_name": "notes.txt"}}},
            "error": None,
        }
        assert list(staging_dir.iterdir()) == []

    def test_sweep_failure_reported_as_error(self, client, service, store, staging_dir):
        service.get_field("image_id").spec.db_clean(lambda rows: True, "nosuch.col")

        response = client.post("/upload/image_id", files={"upload": ("photo.png", b"pixels", "image/png")})

        assert response.status_code == 200
        assert response.json()["error"].startswith("Database error")
        assert response.json()["upload"] is None
        assert store.count("files") == 0
        assert list(staging_dir.iterdir()) == []

    def test_unknown_field(self, client):
        response = client.post("/upload/nope", files={"upload": ("a.png", b"x", "image/png")})
        assert response.status_code == 404

    def test_service_not_initialised(self, staging_dir):
        app = FastAPI()
        app.include_router(router)
        app.dependency_overrides[upload_settings] = lambda: UploadSettings(staging_dir=str(staging_dir))

        response = TestClient(app).post("/upload/image_id", files={"upload": ("a.png", b"x", "image/png")})
        assert response.status_code == 503


class TestListAndSweepEndpoints:
    def test_list_files(self, client, store):
        store.insert("files", {"id": 7, "file_name": "a.png", "file_size": 1})

        response = client.get("/upload/image_id/files")

        assert response.status_code == 200
        body = response.json()
        assert body["table"] == "files"
        assert body["count"] == 1
        assert body["files"]["7"]["file_name"] == "a.png"

    def test_sweep(self, client, store):
        store.insert("files", {"id": 7, "file_name": "a.png"})
        store.insert("users", {"id": 1, "image_id": None})

        response = client.post("/upload/image_id/sweep")

        assert response.json() == {"orphans": 1, "approved": True, "deleted": 1}
        assert store.count("files") == 0

    def test_sweep_store_failure(self, client, service):
        service.get_field("image_id").spec.db_clean(lambda rows: True, "nosuch.col")

        response = client.post("/upload/image_id/sweep")

        assert response.status_code == 500
        assert response.json()["detail"].startswith("Database error")

    def test_list_store_failure(self, client, service):
        service.get_field("image_id").spec.where(lambda w: w.eq("no_such_column", 1))

        response = client.get("/upload/image_id/files")

        assert response.status_code == 500
        assert response.json()["detail"].startswith("Database error")

    def test_sweep_unknown_field(self, client):
        assert client.post("/upload/nope/sweep").status_code == 404

    def test_list_unknown_field(self, client):
        assert client.get("/upload/nope/files").status_code == 404


class TestHealth:
    def test_health(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
