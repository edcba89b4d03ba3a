"""Lookups shared by the API blueprints."""

from typing import Any

from flask import current_app

from photorific.config import Settings, get_settings
from photorific.services import s3_service
from photorific.services.events import EventBroadcaster
from photorific.services.jobs import JobRegistry
from photorific.services.s3_service import S3Gateway


def get_registry() -> JobRegistry:
    registry: JobRegistry = current_app.config["JOB_REGISTRY"]
    return registry


def get_broadcaster() -> EventBroadcaster:
    broadcaster: EventBroadcaster = current_app.config["EVENT_BROADCASTER"]
    return broadcaster


def make_gateway(settings: Settings | None = None) -> S3Gateway:
    """Build a gateway for the configured AWS profile and region."""
    settings = settings or get_settings()
    client = s3_service.create_s3_client(settings.aws_profile, settings.aws_region)
    return S3Gateway(client)


def resolve_root_folder(data: dict[str, Any], settings: Settings) -> str:
    """Library root from the request body, falling back to settings."""
    return str(data.get("folder_path") or settings.folder_path)


def error_response(message: str, details: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"error": message}
    if details:
        body["details"] = details
    return body
