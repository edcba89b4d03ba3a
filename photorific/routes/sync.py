"""Sync status API routes for photorific"""

import threading
from typing import Any

from botocore.exceptions import BotoCoreError
from flask import Blueprint, Response, jsonify, request

from photorific.config import get_settings
from photorific.routes.helpers import (
    error_response,
    get_broadcaster,
    get_registry,
    make_gateway,
    resolve_root_folder,
)
from photorific.services.errors import RemoteListingError
from photorific.services.jobs import JobKind
from photorific.services.log_service import get_log_service
from photorific.services.reconciler import SyncReconciler
from photorific.services.scanner import FileEntry
from photorific.services.utils import base_folder_name

sync_bp = Blueprint("sync", __name__)


def _parse_files(data: dict[str, Any]) -> list[FileEntry]:
    """Rebuild FileEntry objects from a request's files list.

    Raises:
        ValueError: If files is not a list of entries with relativePath
    """
    raw_files = data.get("files")
    if not isinstance(raw_files, list):
        raise ValueError("files must be a list")
    try:
        return [FileEntry.from_dict(item) for item in raw_files]
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Invalid file entry: {e}") from e


@sync_bp.route("/check-sync-status-simple", methods=["POST"])
def check_sync_status_simple() -> tuple[Response, int]:
    """Compare files against the bucket and return the report directly.

    Request body:
        files: File entries from a scan
        folder_path: Library root (defaults to the configured folder_path)

    Returns:
        JSON with syncStatus keyed by relative path and remoteObjectCount
    """
    settings = get_settings()
    data = request.get_json(silent=True) or {}

    try:
        files = _parse_files(data)
    except ValueError as e:
        return jsonify(error_response("Invalid files", str(e))), 400

    if not settings.s3_bucket:
        return jsonify(error_response("S3 bucket not configured")), 400

    folder_path = resolve_root_folder(data, settings)
    if not folder_path:
        return jsonify(error_response("Folder path not configured")), 400

    try:
        reconciler = SyncReconciler(make_gateway(settings), settings.s3_bucket)
        report = reconciler.compute_status(files, base_folder_name(folder_path))
    except BotoCoreError as e:
        return jsonify(error_response("Failed to connect to S3", str(e))), 400
    except RemoteListingError as e:
        get_log_service().error(
            "sync",
            "sync_check_failed",
            f"Sync check failed: {e}",
            {"bucket": settings.s3_bucket, "error": str(e)},
        )
        return jsonify(error_response("Failed to check sync status", str(e))), 500

    return jsonify(report.to_dict()), 200


@sync_bp.route("/check-sync-status", methods=["POST"])
def check_sync_status() -> tuple[Response, int]:
    """Start a tracked sync check.

    Returns immediately with the job id (202 Accepted). Progress arrives as
    job_update events and the report as one sync_status_result event on
    /api/events.

    Request body:
        files: File entries from a scan
        folder_path: Library root (defaults to the configured folder_path)
    """
    settings = get_settings()
    data = request.get_json(silent=True) or {}

    try:
        files = _parse_files(data)
    except ValueError as e:
        return jsonify(error_response("Invalid files", str(e))), 400

    if not settings.s3_bucket:
        return jsonify(error_response("S3 bucket not configured")), 400

    folder_path = resolve_root_folder(data, settings)
    if not folder_path:
        return jsonify(error_response("Folder path not configured")), 400

    try:
        gateway = make_gateway(settings)
    except BotoCoreError as e:
        return jsonify(error_response("Failed to connect to S3", str(e))), 400

    registry = get_registry()
    broadcaster = get_broadcaster()
    reconciler = SyncReconciler(gateway, settings.s3_bucket)
    prefix = base_folder_name(folder_path)
    job = registry.create(JobKind.SYNC_CHECK, len(files))

    def run_sync_check() -> None:
        reconciler.run_tracked(job, files, prefix, registry, broadcaster)

    thread = threading.Thread(target=run_sync_check, daemon=True)
    thread.start()

    return jsonify(
        {
            "jobId": job.id,
            "message": f"Sync check started for {len(files)} files",
        }
    ), 202
