"""Flask application factory for the Photorific S3 backup server."""

import os

from flask import Flask

from photorific.config import get_package_version, get_settings
from photorific.services.events import EventBroadcaster
from photorific.services.jobs import JobRegistry


def create_app() -> Flask:
    """Create and configure the Flask application.

    Each app owns one job registry and one event broadcaster; call
    shutdown_app() to tear them down.
    """
    app = Flask(__name__)

    settings = get_settings()
    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-key-change-in-production")
    app.config["SETTINGS"] = settings

    broadcaster = EventBroadcaster()
    app.config["EVENT_BROADCASTER"] = broadcaster
    app.config["JOB_REGISTRY"] = JobRegistry(broadcaster)

    from photorific.routes.jobs import jobs_bp
    from photorific.routes.logs import logs_bp
    from photorific.routes.scan import scan_bp
    from photorific.routes.settings import settings_bp
    from photorific.routes.sync import sync_bp
    from photorific.routes.upload import upload_bp

    app.register_blueprint(scan_bp, url_prefix="/api")
    app.register_blueprint(settings_bp, url_prefix="/api")
    app.register_blueprint(sync_bp, url_prefix="/api")
    app.register_blueprint(upload_bp, url_prefix="/api")
    app.register_blueprint(jobs_bp, url_prefix="/api")
    app.register_blueprint(logs_bp, url_prefix="/api/logs")

    from photorific.services.log_service import get_log_service

    log = get_log_service()
    log.info(
        "app",
        "app_started",
        f"Application started (v{get_package_version()})",
        {"version": get_package_version()},
    )

    return app


def shutdown_app(app: Flask) -> None:
    """Disconnect subscribers and drop every tracked job."""
    app.config["JOB_REGISTRY"].shutdown()
    app.config["EVENT_BROADCASTER"].close()
