"""Configuration management for photorific"""

import json
import os
import tomllib
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Base directory for the project
BASE_DIR = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
ENV_FILE = BASE_DIR / ".env"
load_dotenv(ENV_FILE)

# Settings file paths
SETTINGS_FILE = BASE_DIR / "settings.json"
SETTINGS_DEFAULT_FILE = BASE_DIR / "settings.default.json"
PYPROJECT_FILE = BASE_DIR / "pyproject.toml"

# Environment variable names for configuration
ENV_AWS_PROFILE = "PHOTORIFIC_AWS_PROFILE"
ENV_AWS_REGION = "PHOTORIFIC_AWS_REGION"
ENV_S3_BUCKET = "PHOTORIFIC_S3_BUCKET"
ENV_FOLDER_PATH = "PHOTORIFIC_FOLDER_PATH"
ENV_LOG_DIRECTORY = "PHOTORIFIC_LOG_DIRECTORY"

# Seconds a finished job stays visible before it is dropped from the registry
JOB_RETENTION_SECONDS = 30.0

# Tracked sync checks yield briefly every SYNC_PAUSE_EVERY files
SYNC_PAUSE_EVERY = 10
SYNC_PAUSE_SECONDS = 0.01

# Idle seconds before an SSE keep-alive comment is sent
SSE_KEEPALIVE_SECONDS = 15.0

SCAN_ERROR_POLICIES = ("abort", "skip")


def get_package_version() -> str:
    """Get the package version from pyproject.toml."""
    try:
        with open(PYPROJECT_FILE, "rb") as f:
            pyproject = tomllib.load(f)
        return str(pyproject.get("project", {}).get("version", "0.0.0"))
    except (OSError, tomllib.TOMLDecodeError):
        return "0.0.0"


class Settings:
    """Manages application settings stored in JSON format."""

    _instance: "Settings | None" = None
    _settings: dict[str, Any]

    def __new__(cls) -> "Settings":
        """Singleton pattern to ensure only one settings instance exists."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load_settings()
        return cls._instance

    def _load_settings(self) -> None:
        """Load settings from file, with environment variables taking precedence.

        Priority order (highest to lowest):
        1. Environment variables (from .env file or system)
        2. settings.json (user-saved settings)
        3. settings.default.json (template defaults)
        4. Hardcoded defaults
        """
        defaults: dict[str, Any] = {
            "aws_profile": "default",
            "aws_region": "us-east-1",
            "s3_bucket": "",
            "folder_path": "",
            "scan_error_policy": "abort",
            "log_directory": str(BASE_DIR / "logs"),
        }

        if SETTINGS_DEFAULT_FILE.exists():
            with open(SETTINGS_DEFAULT_FILE, encoding="utf-8") as f:
                defaults.update(json.load(f))

        if SETTINGS_FILE.exists():
            with open(SETTINGS_FILE, encoding="utf-8") as f:
                defaults.update(json.load(f))

        env_overrides = {
            "aws_profile": os.environ.get(ENV_AWS_PROFILE),
            "aws_region": os.environ.get(ENV_AWS_REGION),
            "s3_bucket": os.environ.get(ENV_S3_BUCKET),
            "folder_path": os.environ.get(ENV_FOLDER_PATH),
            "log_directory": os.environ.get(ENV_LOG_DIRECTORY),
        }

        for key, value in env_overrides.items():
            if value is not None:
                defaults[key] = value

        self._settings = defaults

    def _save_settings(self) -> None:
        """Save current settings to file."""
        with open(SETTINGS_FILE, "w", encoding="utf-8") as f:
            json.dump(self._settings, f, indent=4)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a setting value by key."""
        return self._settings.get(key, default)

    def update(self, data: dict[str, Any]) -> None:
        """Update multiple settings at once."""
        self._settings.update(data)
        self._save_settings()

    def all(self) -> dict[str, Any]:
        """Get all settings as a dictionary."""
        return self._settings.copy()

    @property
    def aws_profile(self) -> str:
        return str(self._settings.get("aws_profile", "default"))

    @property
    def aws_region(self) -> str:
        return str(self._settings.get("aws_region", "us-east-1"))

    @property
    def s3_bucket(self) -> str:
        return str(self._settings.get("s3_bucket", ""))

    @property
    def folder_path(self) -> str:
        """Root of the local media library."""
        return str(self._settings.get("folder_path", ""))

    @property
    def scan_error_policy(self) -> str:
        """What a scan does on an unreadable entry: 'abort' or 'skip'."""
        policy = str(self._settings.get("scan_error_policy", "abort"))
        return policy if policy in SCAN_ERROR_POLICIES else "abort"

    @property
    def log_directory(self) -> Path:
        return Path(str(self._settings.get("log_directory", BASE_DIR / "logs"))).expanduser()


def get_settings() -> Settings:
    """Get the singleton Settings instance."""
    return Settings()
