"""
Pytest Configuration and Test Fixtures for the Tubely Backend

This module provides the shared fixtures:
- Test Settings with staging and assets directories under tmp_path
- In-memory fakes for VideoRepository, BlobStore and MediaToolRunner
- Upload streams that behave like FastAPI's UploadFile
- JWT tokens for two distinct users
- A wired UploadPipeline and a FastAPI TestClient with dependency overrides
"""

from pathlib import Path
from uuid import UUID, uuid4

import pytest

from fakes import FakeBlobStore, FakeMediaToolRunner, FakeVideoRepository
from fastapi.testclient import TestClient

from tubely.api.v1.videos import get_authenticator, get_upload_pipeline, get_video_repository
from tubely.config import Settings, get_settings
from tubely.core.auth import JWTAuthenticator, create_access_token
from tubely.main import app
from tubely.models.video import VideoRecord
from tubely.services.upload_service import UploadPipeline


# ==============================================================================
# Pytest Configuration
# ==============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """
    Register custom markers for test categorization.

    - integration: Runs the real ffmpeg/ffprobe binaries
    - unit: Isolated tests with no external processes
    - slow: Slow-running tests that may be skipped in quick runs
    """
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "slow: mark test as slow-running")


TEST_JWT_SECRET = "test-secret-key-for-jwt-signing-minimum-32-chars"


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def staging_dir(tmp_path: Path) -> Path:
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def test_settings(tmp_path: Path, staging_dir: Path) -> Settings:
    """
    Create a Settings instance isolated from the environment and .env file.

    Staged uploads and local assets live under the test's tmp_path.
    """
    return Settings(
        _env_file=None,
        app_env="testing",
        debug=True,
        json_logs=False,
        jwt_secret=TEST_JWT_SECRET,
        mongodb_uri="mongodb://localhost:27017",
        mongodb_db_name="tubely_test",
        assets_root=str(tmp_path / "assets"),
        public_base_url="http://testserver",
        s3_bucket_name="tubely-test",
        s3_cf_distribution="https://cdn.test",
        staging_dir=str(staging_dir),
        stream_chunk_size=1024,
        max_thumbnail_upload_mb=1,
        max_video_upload_mb=2,
    )


# ==============================================================================
# Identity Fixtures
# ==============================================================================


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_user_id() -> UUID:
    return uuid4()


@pytest.fixture
def owner_token(test_settings: Settings, owner_id: UUID) -> str:
    return create_access_token(owner_id, test_settings)


@pytest.fixture
def other_user_token(test_settings: Settings, other_user_id: UUID) -> str:
    return create_access_token(other_user_id, test_settings)


# ==============================================================================
# Collaborator Fixtures
# ==============================================================================


@pytest.fixture
def repository() -> FakeVideoRepository:
    return FakeVideoRepository()


@pytest.fixture
def video_store() -> FakeBlobStore:
    return FakeBlobStore("https://cdn.test")


@pytest.fixture
def thumbnail_store() -> FakeBlobStore:
    return FakeBlobStore("http://testserver/assets")


@pytest.fixture
def media_runner() -> FakeMediaToolRunner:
    return FakeMediaToolRunner()


@pytest.fixture
def video_record(repository: FakeVideoRepository, owner_id: UUID) -> VideoRecord:
    """A draft video owned by ``owner_id``."""
    return repository.add(VideoRecord(user_id=owner_id, title="Boots demo"))


@pytest.fixture
def pipeline(
    test_settings: Settings,
    repository: FakeVideoRepository,
    video_store: FakeBlobStore,
    thumbnail_store: FakeBlobStore,
    media_runner: FakeMediaToolRunner,
) -> UploadPipeline:
    return UploadPipeline(
        settings=test_settings,
        authenticator=JWTAuthenticator(test_settings),
        repository=repository,
        video_store=video_store,
        thumbnail_store=thumbnail_store,
        runner=media_runner,
    )


# ==============================================================================
# FastAPI Client Fixtures
# ==============================================================================


@pytest.fixture
def client(
    test_settings: Settings,
    repository: FakeVideoRepository,
    pipeline: UploadPipeline,
):
    """
    TestClient with all infrastructure dependencies overridden.

    The client is not entered as a context manager, so the lifespan (MongoDB,
    S3 client) never runs.
    """
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_authenticator] = lambda: JWTAuthenticator(test_settings)
    app.dependency_overrides[get_video_repository] = lambda: repository
    app.dependency_overrides[get_upload_pipeline] = lambda: pipeline
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
