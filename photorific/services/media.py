"""Recognised photo, RAW and video file types."""

from pathlib import PurePath

IMAGE_EXTENSIONS = frozenset(
    {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".tif", ".webp", ".heic", ".heif"}
)

RAW_EXTENSIONS = frozenset(
    {
        ".cr2", ".cr3", ".crw",  # Canon
        ".nef", ".nrw",  # Nikon
        ".arw", ".srf", ".sr2",  # Sony
        ".dng",  # Adobe, Leica
        ".raf",  # Fujifilm
        ".orf",  # Olympus
        ".rw2", ".raw",  # Panasonic
        ".pef", ".ptx",  # Pentax/Ricoh
        ".rwl",  # Leica
        ".iiq",  # Phase One
        ".3fr",  # Hasselblad
        ".mef",  # Mamiya
        ".dcr", ".kdc",  # Kodak
        ".mrw",  # Minolta
        ".srw",  # Samsung
        ".x3f",  # Sigma
        ".erf",  # Epson
    }
)

VIDEO_CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".wmv": "video/x-ms-wmv",
    ".flv": "video/x-flv",
    ".webm": "video/webm",
    ".m4v": "video/x-m4v",
    ".3gp": "video/3gpp",
    ".mts": "video/mp2t",
    ".m2ts": "video/mp2t",
    ".mpg": "video/mpeg",
    ".mpeg": "video/mpeg",
    ".m2v": "video/mpeg",
    ".asf": "video/x-ms-asf",
    ".rm": "application/vnd.rn-realmedia",
    ".rmvb": "application/vnd.rn-realmedia-vbr",
    ".vob": "video/x-ms-vob",
    ".ts": "video/mp2t",
    ".f4v": "video/x-f4v",
}

IMAGE_CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tiff": "image/tiff",
    ".tif": "image/tiff",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
}

SUPPORTED_EXTENSIONS = IMAGE_EXTENSIONS | RAW_EXTENSIONS | frozenset(VIDEO_CONTENT_TYPES)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _extension(name: str) -> str:
    return PurePath(name).suffix.lower()


def is_media_file(name: str) -> bool:
    """Return True if the filename has a supported image, RAW or video extension."""
    return _extension(name) in SUPPORTED_EXTENSIONS


def content_type_for(name: str) -> str:
    """Pick the ContentType sent with an upload.

    RAW formats and anything unrecognised go up as application/octet-stream.
    """
    ext = _extension(name)
    return IMAGE_CONTENT_TYPES.get(ext) or VIDEO_CONTENT_TYPES.get(ext) or DEFAULT_CONTENT_TYPE
