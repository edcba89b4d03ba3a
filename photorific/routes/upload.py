"""Upload API routes for photorific"""

import shutil
import tempfile
import threading
from pathlib import Path
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
from photorific.services.errors import TransferError
from photorific.services.jobs import JobKind
from photorific.services.log_service import get_log_service
from photorific.services.scanner import FileEntry, entry_for_path
from photorific.services.transfer import transfer_file
from photorific.services.upload_orchestrator import (
    UploadOrchestrator,
    build_destination_key,
    upload_batch,
)
from photorific.services.utils import base_folder_name

upload_bp = Blueprint("upload", __name__)

FORM_TRUE = {"true", "1", "yes", "on"}
FORM_FALSE = {"false", "0", "no", "off", ""}


def _context_ids(data: dict[str, Any]) -> dict[str, Any]:
    """Caller identifiers echoed back on upload result events."""
    context: dict[str, Any] = {}
    if data.get("folder_path_context") is not None:
        context["folderPathContext"] = data["folder_path_context"]
    if data.get("file_id") is not None:
        context["fileId"] = data["file_id"]
    return context


def _bool_field(data: dict[str, Any], name: str, default: bool) -> bool:
    """Read a JSON boolean.

    Raises:
        ValueError: If the field is present but not true or false
    """
    value = data.get(name, default)
    if not isinstance(value, bool):
        raise ValueError(f"{name} must be true or false")
    return value


def _form_bool(name: str, default: bool) -> bool:
    """Read a boolean from a multipart form field.

    Raises:
        ValueError: If the field is not a recognized boolean word
    """
    value = request.form.get(name)
    if value is None:
        return default
    if value.lower() in FORM_TRUE:
        return True
    if value.lower() in FORM_FALSE:
        return False
    raise ValueError(f"{name} must be true or false")


def _library_entries(paths: list[Any], folder_path: str) -> list[FileEntry]:
    """Entries for posted paths; unreadable files are left to the upload to report.

    Raises:
        ValueError: If a path is outside the library folder
    """
    files: list[FileEntry] = []
    for path in paths:
        try:
            files.append(entry_for_path(str(path), folder_path, strict=False))
        except ValueError as e:
            raise ValueError(f"{path} is not under {folder_path}") from e
    return files


@upload_bp.route("/upload-folder", methods=["POST"])
def upload_folder() -> tuple[Response, int]:
    """Upload local files to the bucket under the library folder name.

    Returns immediately with the job id (202 Accepted) and uploads in a
    background thread. Progress and results arrive on /api/events. A file
    that is missing by then is reported as a failed item of the job.

    Request body:
        paths: Absolute paths of files inside the library root
        folder_path: Library root (defaults to the configured folder_path)
        preserve_structure: Keep relative paths in keys (default true)
        delete_after_upload: Remove local files once uploaded (default false)
        folder_path_context: Echoed back as contextIds.folderPathContext
        file_id: Echoed back as contextIds.fileId
    """
    settings = get_settings()
    data = request.get_json(silent=True) or {}

    paths = data.get("paths")
    if not isinstance(paths, list) or not paths:
        return jsonify(error_response("No files provided")), 400

    try:
        preserve_structure = _bool_field(data, "preserve_structure", True)
        delete_after_upload = _bool_field(data, "delete_after_upload", False)
    except ValueError as e:
        return jsonify(error_response("Invalid request", str(e))), 400

    if not settings.s3_bucket:
        return jsonify(error_response("S3 bucket not configured")), 400

    folder_path = resolve_root_folder(data, settings)
    if not folder_path:
        return jsonify(error_response("Folder path not configured")), 400

    try:
        files = _library_entries(paths, folder_path)
    except ValueError as e:
        return jsonify(error_response("File is outside the library folder", str(e))), 400

    try:
        gateway = make_gateway(settings)
    except BotoCoreError as e:
        return jsonify(error_response("Failed to connect to S3", str(e))), 400

    registry = get_registry()
    orchestrator = UploadOrchestrator(registry, get_broadcaster(), gateway, settings.s3_bucket)
    job = registry.create(JobKind.UPLOAD, len(files))

    context = _context_ids(data)
    prefix = base_folder_name(folder_path)

    def run_upload() -> None:
        orchestrator.run(
            job,
            files,
            prefix,
            preserve_structure=preserve_structure,
            delete_after_upload=delete_after_upload,
            context_ids=context,
        )

    thread = threading.Thread(target=run_upload, daemon=True)
    thread.start()

    return jsonify({"jobId": job.id}), 202


@upload_bp.route("/upload-photos-batch", methods=["POST"])
def upload_photos_batch() -> tuple[Response, int]:
    """Upload local files and wait for every result.

    Unlike /upload-folder no job is created; the response carries one result
    per path, in order. Keys are flattened unless preserve_structure is set.

    Request body:
        paths: Absolute paths of files inside the library root
        folder_path: Library root (defaults to the configured folder_path)
        preserve_structure: Keep relative paths in keys (default false)
        delete_after_upload: Remove local files once uploaded (default false)
    """
    settings = get_settings()
    data = request.get_json(silent=True) or {}

    paths = data.get("paths")
    if not isinstance(paths, list) or not paths:
        return jsonify(error_response("No files provided")), 400

    try:
        preserve_structure = _bool_field(data, "preserve_structure", False)
        delete_after_upload = _bool_field(data, "delete_after_upload", False)
    except ValueError as e:
        return jsonify(error_response("Invalid request", str(e))), 400

    if not settings.s3_bucket:
        return jsonify(error_response("S3 bucket not configured")), 400

    folder_path = resolve_root_folder(data, settings)
    if not folder_path:
        return jsonify(error_response("Folder path not configured")), 400

    try:
        files = _library_entries(paths, folder_path)
    except ValueError as e:
        return jsonify(error_response("File is outside the library folder", str(e))), 400

    try:
        gateway = make_gateway(settings)
    except BotoCoreError as e:
        return jsonify(error_response("Failed to connect to S3", str(e))), 400

    outcomes = upload_batch(
        gateway,
        settings.s3_bucket,
        files,
        base_folder_name(folder_path),
        preserve_structure=preserve_structure,
        delete_after_upload=delete_after_upload,
    )
    return jsonify({"results": [o.to_dict() for o in outcomes]}), 200


@upload_bp.route("/upload-photo", methods=["POST"])
def upload_photo() -> tuple[Response, int]:
    """Upload one file sent as multipart/form-data.

    The file is stored as "<library folder name>/<timestamp>_<filename>".

    Form fields:
        photo: The file
        folder_path: Library root (defaults to the configured folder_path)
        delete_after_upload: "true" to remove original_path once uploaded
        original_path: Local copy of the file inside the library root
    """
    settings = get_settings()
    photo = request.files.get("photo")
    if photo is None or not photo.filename:
        return jsonify(error_response("No photo file provided")), 400

    try:
        delete_after_upload = _form_bool("delete_after_upload", False)
    except ValueError as e:
        return jsonify(error_response("Invalid request", str(e))), 400

    if not settings.s3_bucket:
        return jsonify(error_response("S3 bucket not configured")), 400

    folder_path = request.form.get("folder_path") or settings.folder_path
    if not folder_path:
        return jsonify(error_response("Folder path not configured")), 400

    original: FileEntry | None = None
    original_path = request.form.get("original_path")
    if delete_after_upload and original_path:
        try:
            original = entry_for_path(original_path, folder_path, strict=False)
        except ValueError:
            return jsonify(
                error_response(
                    "File is outside the library folder",
                    f"{original_path} is not under {folder_path}",
                )
            ), 400

    try:
        gateway = make_gateway(settings)
    except BotoCoreError as e:
        return jsonify(error_response("Failed to connect to S3", str(e))), 400

    log = get_log_service()
    filename = Path(photo.filename).name
    key = build_destination_key(base_folder_name(folder_path), filename, filename, False)
    temp_dir = tempfile.mkdtemp(prefix="photorific_upload_")
    try:
        temp_path = Path(temp_dir) / filename
        photo.save(temp_path)
        transfer_file(gateway, settings.s3_bucket, temp_path, key, temp_path.stat().st_size)

        if original is not None:
            Path(original.path).unlink(missing_ok=True)
    except (OSError, TransferError) as e:
        log.error(
            "upload",
            "file_upload_failed",
            f"Failed to upload {filename}: {e}",
            {"s3_key": key, "error": str(e)},
        )
        return jsonify(error_response("Upload failed", str(e))), 500
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    log.info(
        "upload",
        "file_upload_completed",
        f"Uploaded {filename}",
        {"s3_key": key, "deleted_local": original is not None},
    )
    return jsonify({"success": True, "s3Key": key}), 200
