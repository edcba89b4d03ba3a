"""Inventory scanner that walks a media library into a folder tree."""

import logging
import os
import stat
import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from photorific.services.errors import PathNotFoundError, ScanIOError
from photorific.services.media import is_media_file

logger = logging.getLogger(__name__)


class ScanErrorPolicy(Enum):
    """What a scan does when an entry cannot be read."""

    ABORT = "abort"
    SKIP = "skip"


@dataclass(frozen=True)
class FileEntry:
    """A media file found by a scan.

    Entries are immutable; reconciliation returns an annotated copy via
    with_remote() instead of changing the scanned entry.
    """

    id: str
    name: str
    size: int
    path: str
    relative_path: str
    last_modified: datetime | None = None
    in_remote: bool | None = None
    remote_key: str | None = None

    def with_remote(self, in_remote: bool, remote_key: str) -> "FileEntry":
        """Return a copy carrying the remote presence flag and key."""
        return replace(self, in_remote=in_remote, remote_key=remote_key)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "path": self.path,
            "relativePath": self.relative_path,
            "lastModified": self.last_modified.isoformat() if self.last_modified else None,
        }
        if self.in_remote is not None:
            result["inS3"] = self.in_remote
            result["s3Key"] = self.remote_key
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileEntry":
        """Rebuild an entry from the dictionary produced by to_dict().

        Raises:
            KeyError: If relativePath is missing
        """
        relative_path = str(data["relativePath"]).replace("\\", "/")
        last_modified = data.get("lastModified")
        return cls(
            id=str(data.get("id") or uuid.uuid4()),
            name=str(data.get("name") or relative_path.rsplit("/", 1)[-1]),
            size=int(data.get("size") or 0),
            path=str(data.get("path", "")),
            relative_path=relative_path,
            last_modified=datetime.fromisoformat(last_modified) if last_modified else None,
        )


@dataclass
class FolderNode:
    """A directory in the inventory tree with aggregated counts."""

    name: str
    path: str
    subfolders: dict[str, "FolderNode"] = field(default_factory=dict)
    files: list[FileEntry] = field(default_factory=list)
    file_count: int = 0
    total_size: int = 0

    def iter_files(self) -> Iterator[FileEntry]:
        """Yield every file in this subtree, own files before subfolders."""
        yield from self.files
        for child in self.subfolders.values():
            yield from child.iter_files()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "files": [f.to_dict() for f in self.files],
            "subfolders": {name: child.to_dict() for name, child in self.subfolders.items()},
            "fileCount": self.file_count,
            "totalSize": self.total_size,
        }


@dataclass(frozen=True)
class ScanError:
    """An entry that could not be read during a skip-policy scan."""

    path: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message}


@dataclass
class ScanResult:
    """Outcome of a scan: the best-effort tree plus any per-entry errors."""

    root: FolderNode
    errors: list[ScanError] = field(default_factory=list)
    scanned_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def total_files(self) -> int:
        return self.root.file_count

    @property
    def total_size(self) -> int:
        return self.root.total_size

    def to_dict(self) -> dict[str, Any]:
        return {
            "folderStructure": self.root.to_dict(),
            "totalFiles": self.total_files,
            "totalSize": self.total_size,
            "scanTime": self.scanned_at.isoformat(),
            "errors": [e.to_dict() for e in self.errors],
        }


def _join_relative(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def _normalized(path: str | Path) -> Path:
    """Absolute path with "." and ".." segments collapsed, symlinks kept."""
    return Path(os.path.normpath(Path(path).expanduser().absolute()))


def entry_for_path(path: str | Path, root: str | Path, strict: bool = True) -> FileEntry:
    """Build a FileEntry for one file under a library root.

    With strict=False a file that cannot be stat'ed still gets an entry, with
    size 0 and no timestamp, so the upload itself can report the failure.

    Raises:
        ValueError: If the file is not inside root
        OSError: If strict and the file cannot be stat'ed
    """
    file_path = _normalized(path)
    root_path = _normalized(root)
    relative_path = file_path.relative_to(root_path).as_posix()
    if relative_path == ".":
        raise ValueError(f"{file_path} is the library root, not a file in it")

    size = 0
    last_modified: datetime | None = None
    try:
        file_stat = file_path.stat()
        size = file_stat.st_size
        last_modified = datetime.fromtimestamp(file_stat.st_mtime, tz=UTC)
    except OSError:
        if strict:
            raise
        logger.warning("Cannot stat %s; its upload will be recorded as failed", file_path)

    return FileEntry(
        id=str(uuid.uuid4()),
        name=file_path.name,
        size=size,
        path=str(file_path),
        relative_path=relative_path,
        last_modified=last_modified,
    )


class _Walker:
    """Single-pass recursive walk that builds FolderNodes bottom-up."""

    def __init__(self, policy: ScanErrorPolicy) -> None:
        self.policy = policy
        self.errors: list[ScanError] = []
        self._visited: set[tuple[int, int]] = set()

    def _handle(self, path: Path, exc: OSError) -> None:
        if self.policy is ScanErrorPolicy.ABORT:
            raise ScanIOError(str(path), exc) from exc
        logger.warning("Skipping unreadable entry %s: %s", path, exc)
        self.errors.append(ScanError(path=str(path), message=str(exc)))

    def walk(self, directory: Path, relative_path: str) -> FolderNode:
        node = FolderNode(name=directory.name, path=relative_path)

        try:
            dir_stat = directory.stat()
            # Symlinked directories can form cycles; each real directory is walked once
            key = (dir_stat.st_dev, dir_stat.st_ino)
            if key in self._visited:
                return node
            self._visited.add(key)
            children = list(directory.iterdir())
        except OSError as e:
            self._handle(directory, e)
            return node

        for child in children:
            child_relative = _join_relative(relative_path, child.name)
            try:
                child_stat = child.stat()
            except OSError as e:
                self._handle(child, e)
                continue

            if stat.S_ISDIR(child_stat.st_mode):
                subfolder = self.walk(child, child_relative)
                node.subfolders[child.name] = subfolder
                node.file_count += subfolder.file_count
                node.total_size += subfolder.total_size
            elif stat.S_ISREG(child_stat.st_mode) and is_media_file(child.name):
                node.files.append(
                    FileEntry(
                        id=str(uuid.uuid4()),
                        name=child.name,
                        size=child_stat.st_size,
                        path=str(child.absolute()),
                        relative_path=child_relative,
                        last_modified=datetime.fromtimestamp(child_stat.st_mtime, tz=UTC),
                    )
                )
                node.file_count += 1
                node.total_size += child_stat.st_size

        return node


def scan_directory(
    root_path: str | Path,
    on_error: ScanErrorPolicy = ScanErrorPolicy.ABORT,
) -> ScanResult:
    """Walk a directory tree and collect supported media files.

    Args:
        root_path: Library root; a leading ~ is expanded
        on_error: ABORT raises on the first unreadable entry, SKIP records it
            and keeps going

    Returns:
        ScanResult with the folder tree and any skipped entries

    Raises:
        PathNotFoundError: If the root does not exist or is not a directory
        ScanIOError: On an unreadable entry when the policy is ABORT
    """
    root = Path(root_path).expanduser()
    if not root.is_dir():
        raise PathNotFoundError(str(root_path))

    walker = _Walker(on_error)
    tree = walker.walk(root, "")
    result = ScanResult(root=tree, errors=walker.errors)

    logger.debug(
        "Scanned %s: %d files, %d bytes, %d errors",
        root,
        result.total_files,
        result.total_size,
        len(result.errors),
    )
    return result


def scan(root_path: str | Path) -> FolderNode:
    """Scan with the abort policy and return just the tree."""
    return scan_directory(root_path, ScanErrorPolicy.ABORT).root
