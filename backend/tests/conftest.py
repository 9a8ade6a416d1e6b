"""Shared test fixtures and configuration for backend tests."""
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

from filelink.main import app
from filelink.store import DuckDBStore
from filelink.uploads import TransferStatus, UploadMetadata


class RecordingStore(DuckDBStore):
    """In-memory DuckDB store that records every write it performs."""

    def __init__(self) -> None:
        super().__init__(":memory:")
        self.calls = []

    def insert(self, table, values, primary_key=None):
        self.calls.append(("insert", table, dict(values)))
        return super().insert(table, values, primary_key)

    def update(self, table, values, where=None):
        self.calls.append(("update", table, dict(values)))
        return super().update(table, values, where)

    def delete(self, table, where=None):
        self.calls.append(("delete", table, where))
        return super().delete(table, where)

    def writes(self, kind: str):
        return [c for c in self.calls if c[0] == kind]


def create_files_table(store: DuckDBStore, start: int = 1) -> None:
    """Create the `files` upload table used across tests."""
    store.sql(f"CREATE SEQUENCE IF NOT EXISTS files_seq START {start}")
    store.sql("""
        CREATE TABLE IF NOT EXISTS files (
            id INTEGER DEFAULT nextval('files_seq') PRIMARY KEY,
            file_name VARCHAR,
            file_size BIGINT,
            extension VARCHAR,
            mime_type VARCHAR,
            system_path VARCHAR NOT NULL DEFAULT '',
            web_path VARCHAR,
            content BLOB,
            note VARCHAR,
            owner VARCHAR
        )
    """)


def create_users_table(store: DuckDBStore) -> None:
    """Create the `users` table whose image_id references files.id."""
    store.sql("""
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY,
            name VARCHAR,
            image_id INTEGER
        )
    """)


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app (lifespan not started)."""
    return TestClient(app)


@pytest.fixture
def store():
    """Recording in-memory store with the files and users tables."""
    s = RecordingStore()
    create_files_table(s)
    create_users_table(s)
    s.calls.clear()
    yield s
    s.close()


@pytest.fixture
def staging_dir(tmp_path) -> Path:
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def stage(staging_dir) -> Callable[..., UploadMetadata]:
    """Factory writing a staged file and returning its UploadMetadata."""
    counter = {"n": 0}

    def _stage(
        name: str,
        content: bytes = b"file-content",
        status: TransferStatus = TransferStatus.OK,
        mime_type: str = "application/octet-stream",
    ) -> UploadMetadata:
        counter["n"] += 1
        tmp = staging_dir / f"upload-{counter['n']}"
        tmp.write_bytes(content)
        return UploadMetadata(
            name=name,
            tmp_path=tmp,
            size=len(content),
            mime_type=mime_type,
            status=status,
        )

    return _stage
