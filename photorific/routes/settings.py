"""Settings API routes for photorific"""

from botocore.exceptions import BotoCoreError
from flask import Blueprint, Response, jsonify, request

from photorific.config import SCAN_ERROR_POLICIES, get_package_version, get_settings
from photorific.services import s3_service
from photorific.services.errors import ConnectivityError
from photorific.services.log_service import get_log_service
from photorific.services.s3_service import S3Gateway

settings_bp = Blueprint("settings", __name__)

ALLOWED_SETTINGS = {
    "aws_profile",
    "aws_region",
    "s3_bucket",
    "folder_path",
    "scan_error_policy",
    "log_directory",
}


@settings_bp.route("/settings", methods=["GET"])
def get_all_settings() -> tuple[Response, int]:
    """Get all current settings.

    Returns:
        JSON response with all settings
    """
    settings = get_settings()
    return jsonify(settings.all()), 200


@settings_bp.route("/settings", methods=["PUT"])
def update_settings() -> tuple[Response, int]:
    """Update settings.

    Request body:
        JSON object with settings to update; unknown keys are ignored

    Returns:
        JSON response with updated settings
    """
    if not request.is_json:
        return jsonify({"error": "JSON body required"}), 400

    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Empty body"}), 400

    filtered_data = {k: v for k, v in data.items() if k in ALLOWED_SETTINGS}
    if not filtered_data:
        return jsonify({"error": "No valid settings provided"}), 400

    policy = filtered_data.get("scan_error_policy")
    if policy is not None and policy not in SCAN_ERROR_POLICIES:
        return jsonify(
            {
                "error": "Invalid scan_error_policy",
                "details": f"Expected one of: {', '.join(SCAN_ERROR_POLICIES)}",
            }
        ), 400

    settings = get_settings()
    settings.update(filtered_data)

    log = get_log_service()
    log.info(
        "settings",
        "settings_updated",
        f"Updated settings: {', '.join(filtered_data.keys())}",
        {"changed_keys": list(filtered_data.keys())},
    )

    return jsonify(settings.all()), 200


@settings_bp.route("/settings/profiles", methods=["GET"])
def get_profiles() -> tuple[Response, int]:
    """Get list of available AWS profiles."""
    profiles = s3_service.get_available_profiles()
    return jsonify({"profiles": profiles}), 200


@settings_bp.route("/settings/version", methods=["GET"])
def get_version() -> tuple[Response, int]:
    return jsonify({"version": get_package_version()}), 200


@settings_bp.route("/test-connection", methods=["POST"])
def test_connection() -> tuple[Response, int]:
    """Probe the bucket with current or provided settings.

    Request body (optional):
        aws_profile: AWS profile to test
        aws_region: AWS region to test
        s3_bucket: S3 bucket to test

    Returns:
        JSON with success and bucket, or error and details (400)
    """
    settings = get_settings()
    data = request.get_json(silent=True) or {}
    profile = data.get("aws_profile", settings.aws_profile)
    region = data.get("aws_region", settings.aws_region)
    bucket = data.get("s3_bucket", settings.s3_bucket)

    if not bucket:
        return jsonify({"error": "S3 bucket not specified"}), 400

    log = get_log_service()
    try:
        gateway = S3Gateway(s3_service.create_s3_client(profile, region))
        gateway.head_bucket(bucket)
    except (ConnectivityError, BotoCoreError) as e:
        log.warning(
            "settings",
            "connection_test",
            f"Connection test failed for bucket '{bucket}': {e}",
            {"bucket": bucket, "profile": profile, "region": region, "success": False},
        )
        return jsonify({"error": "Failed to connect to S3", "details": str(e)}), 400

    log.info(
        "settings",
        "connection_test",
        f"Connection test succeeded for bucket '{bucket}'",
        {"bucket": bucket, "profile": profile, "region": region, "success": True},
    )
    return jsonify(
        {
            "success": True,
            "bucket": bucket,
            "message": f"Successfully connected to bucket '{bucket}'",
        }
    ), 200
