"""Exceptions raised by the scan, transfer and job services."""


class PhotorificError(Exception):
    """Base exception for photorific service operations."""


class PathNotFoundError(PhotorificError):
    """Raised when a scan root does not exist or is not a directory."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Folder path does not exist: {path}")
        self.path = path


class ScanIOError(PhotorificError):
    """Raised when an entry under the scan root cannot be listed or stat'ed."""

    def __init__(self, path: str, cause: OSError) -> None:
        super().__init__(f"Failed to read {path}: {cause}")
        self.path = path
        self.cause = cause


class ConnectivityError(PhotorificError):
    """Raised when the bucket cannot be reached during a connection probe."""


class TransferError(PhotorificError):
    """Raised when a single object upload fails."""


class RemoteListingError(PhotorificError):
    """Raised when listing remote objects fails."""


class JobStateError(PhotorificError):
    """Raised when a finished job is asked to change state."""
