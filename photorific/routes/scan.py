"""Library scan API routes for photorific"""

from flask import Blueprint, Response, jsonify, request

from photorific.config import SCAN_ERROR_POLICIES, get_settings
from photorific.routes.helpers import error_response, resolve_root_folder
from photorific.services.errors import PathNotFoundError, ScanIOError
from photorific.services.log_service import get_log_service
from photorific.services.scanner import ScanErrorPolicy, scan_directory
from photorific.services.utils import format_file_size

scan_bp = Blueprint("scan", __name__)


@scan_bp.route("/scan-photos", methods=["POST"])
def scan_photos() -> tuple[Response, int]:
    """Scan the media library into a folder tree.

    Request body (optional):
        folder_path: Library root (defaults to the configured folder_path)
        on_error: "abort" or "skip" (defaults to the scan_error_policy setting)

    Returns:
        JSON with folderStructure, totalFiles, totalSize, scanTime, errors
    """
    settings = get_settings()
    data = request.get_json(silent=True) or {}

    folder_path = resolve_root_folder(data, settings)
    if not folder_path:
        return jsonify(error_response("Folder path not configured")), 400

    policy_name = data.get("on_error", settings.scan_error_policy)
    if policy_name not in SCAN_ERROR_POLICIES:
        return jsonify(
            error_response(
                "Invalid on_error value",
                f"Expected one of: {', '.join(SCAN_ERROR_POLICIES)}",
            )
        ), 400

    log = get_log_service()
    try:
        result = scan_directory(folder_path, ScanErrorPolicy(policy_name))
    except PathNotFoundError as e:
        log.warning(
            "scan",
            "scan_failed",
            str(e),
            {"folder_path": folder_path, "error": str(e)},
        )
        return jsonify(error_response("Folder path does not exist", str(e))), 400
    except ScanIOError as e:
        log.error(
            "scan",
            "scan_failed",
            f"Scan of {folder_path} aborted: {e}",
            {"folder_path": folder_path, "path": e.path, "error": str(e)},
        )
        return jsonify(error_response("Failed to scan folder", str(e))), 500

    log.info(
        "scan",
        "scan_completed",
        f"Scanned {result.total_files} files ({format_file_size(result.total_size)})",
        {
            "folder_path": folder_path,
            "total_files": result.total_files,
            "total_size": result.total_size,
            "skipped": len(result.errors),
        },
    )
    return jsonify(result.to_dict()), 200
