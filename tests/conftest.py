import pytest
import pytest_asyncio
import httpx
from httpx import ASGITransport

from filevault.config import Settings
from filevault.services.chunk_store import ChunkStore
from filevault.services.file_store import FileStore
from filevault.services.session_registry import SessionRegistry
from filevault.services.upload_coordinator import (
    UploadCoordinator,
    init_coordinator,
    shutdown_coordinator,
)


@pytest.fixture
def test_settings(tmp_path):
    """Settings pointing every storage location at a temporary directory."""
    config = Settings()
    config.upload_base_dir = str(tmp_path / "chunks")
    config.storage_dir = str(tmp_path / "files")
    config.database_path = str(tmp_path / "filevault.db")
    config.api_prefix = "/api"
    return config


@pytest.fixture
def chunk_store(test_settings):
    return ChunkStore(test_settings.upload_base_dir)


@pytest.fixture
def file_store(test_settings):
    return FileStore(test_settings.database_path, test_settings.storage_dir)


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def coordinator(registry, chunk_store, file_store, test_settings):
    return UploadCoordinator(registry, chunk_store, file_store, test_settings)


@pytest_asyncio.fixture
async def server_client(test_settings):
    """HTTP client bound to the app with a coordinator on temporary storage."""
    from filevault.main import app

    init_coordinator(test_settings)
    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    shutdown_coordinator()
