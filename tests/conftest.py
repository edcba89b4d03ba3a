"""Pytest configuration and fixtures for the photorific tests."""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from flask import Flask
from flask.testing import FlaskClient

import photorific.config
from photorific import create_app, shutdown_app
from photorific.config import Settings
from photorific.services import log_service
from photorific.services.events import EventBroadcaster
from photorific.services.jobs import JobRegistry
from photorific.services.log_service import LogService
from photorific.services.s3_service import ListPage


@pytest.fixture(autouse=True)
def isolated_settings(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    """Point settings at a temporary file and clear environment overrides."""
    for name in (
        photorific.config.ENV_AWS_PROFILE,
        photorific.config.ENV_AWS_REGION,
        photorific.config.ENV_S3_BUCKET,
        photorific.config.ENV_FOLDER_PATH,
        photorific.config.ENV_LOG_DIRECTORY,
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(photorific.config, "SETTINGS_FILE", tmp_path / "settings.json")
    monkeypatch.setattr(photorific.config, "SETTINGS_DEFAULT_FILE", tmp_path / "missing.json")
    Settings._instance = None
    yield
    Settings._instance = None


@pytest.fixture(autouse=True)
def isolated_log_service(tmp_path: Path) -> Generator[LogService, None, None]:
    """Write JSONL events under the test's temporary directory."""
    service = LogService(tmp_path / "logs")
    log_service._log_service = service
    yield service
    log_service._log_service = None


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    """A small library: 4 media files and 2 ignored files across nested folders."""
    root = tmp_path / "vacation"
    (root / "day1").mkdir(parents=True)
    (root / "day2" / "raw").mkdir(parents=True)

    (root / "cover.JPG").write_bytes(b"x" * 10)
    (root / "notes.txt").write_bytes(b"ignored")
    (root / "day1" / "beach.mp4").write_bytes(b"v" * 100)
    (root / "day1" / ".DS_Store").write_bytes(b"ignored")
    (root / "day2" / "sunset.png").write_bytes(b"p" * 20)
    (root / "day2" / "raw" / "sunset.CR2").write_bytes(b"r" * 30)
    return root


@pytest.fixture
def configured_settings(media_root: Path) -> Settings:
    """Settings with a bucket and the media_root library configured."""
    settings = Settings()
    settings.update(
        {
            "aws_profile": "default",
            "aws_region": "us-east-1",
            "s3_bucket": "test-bucket",
            "folder_path": str(media_root),
        }
    )
    return settings


@pytest.fixture
def app() -> Generator[Flask, None, None]:
    """Create application for testing."""
    app = create_app()
    app.config["TESTING"] = True

    yield app

    shutdown_app(app)


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create test client."""
    return app.test_client()


@pytest.fixture
def broadcaster() -> Generator[EventBroadcaster, None, None]:
    broadcaster = EventBroadcaster()
    yield broadcaster
    broadcaster.close()


@pytest.fixture
def registry(broadcaster: EventBroadcaster) -> Generator[JobRegistry, None, None]:
    registry = JobRegistry(broadcaster)
    yield registry
    registry.shutdown()


@pytest.fixture
def mock_gateway() -> MagicMock:
    """Gateway double whose put_object echoes the key and lists nothing."""
    gateway = MagicMock()
    gateway.put_object.side_effect = lambda bucket, key, *args, **kwargs: key
    gateway.list_objects.return_value = ListPage(keys=[], next_token=None)
    return gateway
