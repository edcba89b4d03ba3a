"""Shared utility functions for photorific services."""

from pathlib import Path


def format_file_size(size_bytes: int) -> str:
    """Format a file size in bytes to a human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Human-readable size string (e.g., "1.5 GB")
    """
    size_float = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if abs(size_float) < 1024.0:
            return f"{size_float:.1f} {unit}"
        size_float = size_float / 1024.0
    return f"{size_float:.1f} PB"


def expand_folder_path(folder_path: str) -> Path:
    """Expand a leading ~ in a configured folder path."""
    return Path(folder_path).expanduser()


def base_folder_name(folder_path: str) -> str:
    """Last segment of the library root, used as the bucket key prefix.

    "/Users/me/videos" and "~/videos/" both give "videos".
    """
    return expand_folder_path(folder_path.rstrip("/\\") or folder_path).name
