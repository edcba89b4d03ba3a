"""Upload orchestrator for sequential batch uploads under one job."""

import logging
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from photorific.services.events import BatchUploadResult, EventBroadcaster, FileUploadSucceeded
from photorific.services.jobs import Job, JobRegistry
from photorific.services.log_service import get_log_service
from photorific.services.s3_service import ProgressCallback, S3Gateway
from photorific.services.scanner import FileEntry
from photorific.services.transfer import select_strategy, transfer_file

logger = logging.getLogger(__name__)


@dataclass
class TransferOutcome:
    """Result of uploading a single file."""

    success: bool
    path: str
    destination_key: str
    relative_path: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "path": self.path,
            "destinationKey": self.destination_key,
            "relativePath": self.relative_path,
            "error": self.error,
        }


class _MillisecondClock:
    """Wall-clock milliseconds that never repeat or go backwards."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._last = max(time.time_ns() // 1_000_000, self._last + 1)
            return self._last


_clock = _MillisecondClock()


def build_destination_key(
    destination_prefix: str,
    relative_path: str,
    filename: str,
    preserve_structure: bool,
    timestamp: int | None = None,
) -> str:
    """Build the bucket key for a file.

    Preserved structure gives "<prefix>/<relative/path>"; otherwise the file
    is flattened to "<prefix>/<timestamp>_<filename>".
    """
    if preserve_structure:
        posix_path = relative_path.replace("\\", "/")
        return f"{destination_prefix}/{posix_path}"
    stamp = timestamp if timestamp is not None else _clock.next()
    return f"{destination_prefix}/{stamp}_{filename}"


class UploadOrchestrator:
    """Uploads a batch of files one at a time, reporting through a job."""

    def __init__(
        self,
        registry: JobRegistry,
        broadcaster: EventBroadcaster,
        gateway: S3Gateway,
        bucket: str,
    ) -> None:
        self.registry = registry
        self.broadcaster = broadcaster
        self.gateway = gateway
        self.bucket = bucket

    def run(
        self,
        job: Job,
        files: Sequence[FileEntry],
        destination_prefix: str,
        preserve_structure: bool = True,
        delete_after_upload: bool = False,
        context_ids: dict[str, Any] | None = None,
    ) -> list[TransferOutcome]:
        """Upload every file, in order, under the given job.

        A failed file is recorded and the batch moves on; the job still ends
        completed, with failures counted in failed_items. Only an error outside
        the per-file handling fails the job.

        Args:
            job: Running job created for this batch
            files: Files to upload, in the order they should go
            destination_prefix: Key prefix, normally the library folder name
            preserve_structure: Keep relative paths in keys instead of flattening
            delete_after_upload: Remove each local file once it is uploaded
            context_ids: Caller identifiers echoed back on result events

        Returns:
            One TransferOutcome per processed file
        """
        context = context_ids or {}
        log = get_log_service()
        outcomes: list[TransferOutcome] = []

        log.info(
            "upload",
            "upload_job_started",
            f"Starting upload of {len(files)} files",
            {
                "job_id": job.id,
                "total_files": len(files),
                "bucket": self.bucket,
                "destination_prefix": destination_prefix,
                "preserve_structure": preserve_structure,
                "delete_after_upload": delete_after_upload,
            },
        )

        try:
            for index, entry in enumerate(files):
                outcomes.append(
                    self._upload_one(
                        job,
                        index,
                        entry,
                        destination_prefix,
                        preserve_structure,
                        delete_after_upload,
                        context,
                    )
                )

            self.broadcaster.publish(
                BatchUploadResult(
                    job_id=job.id,
                    outcomes=[o.to_dict() for o in outcomes],
                    context_ids=context,
                )
            )
            self.registry.complete(job)
        except Exception as e:
            logger.exception("Upload job %s failed", job.id)
            log.error(
                "upload",
                "upload_job_failed",
                f"Upload job {job.id} failed: {e}",
                {"job_id": job.id, "error": str(e)},
            )
            if not job.status.is_terminal:
                self.broadcaster.publish(
                    BatchUploadResult(
                        job_id=job.id,
                        outcomes=[o.to_dict() for o in outcomes],
                        context_ids=context,
                    )
                )
                self.registry.fail(job, str(e))
            return outcomes

        uploaded = sum(1 for o in outcomes if o.success)
        log.info(
            "upload",
            "upload_job_completed",
            f"Upload complete: {uploaded} uploaded, {len(outcomes) - uploaded} failed",
            {"job_id": job.id, "uploaded": uploaded, "failed": len(outcomes) - uploaded},
        )
        return outcomes

    def _upload_one(
        self,
        job: Job,
        index: int,
        entry: FileEntry,
        destination_prefix: str,
        preserve_structure: bool,
        delete_after_upload: bool,
        context: dict[str, Any],
    ) -> TransferOutcome:
        filename = entry.name
        key = build_destination_key(
            destination_prefix, entry.relative_path, filename, preserve_structure
        )

        self.registry.update_progress(job, index, filename)

        last_percent = -1

        def on_bytes(loaded: int, total: int) -> None:
            nonlocal last_percent
            if total <= 0:
                return
            percent = loaded * 100 // total
            if percent <= last_percent:
                return
            last_percent = percent
            self.registry.update_progress(job, index, f"{filename} ({percent}%)")

        outcome = _upload_entry(
            self.gateway, self.bucket, entry, key, delete_after_upload, job.id, on_bytes
        )
        if not outcome.success:
            self.registry.update_progress(
                job, index + 1, filename, error=f"{filename}: {outcome.error}"
            )
            return outcome

        self.broadcaster.publish(
            FileUploadSucceeded(
                job_id=job.id,
                relative_path=entry.relative_path,
                destination_key=key,
                context_ids=context,
            )
        )
        self.registry.update_progress(job, index + 1, filename)
        return outcome


def _upload_entry(
    gateway: S3Gateway,
    bucket: str,
    entry: FileEntry,
    key: str,
    delete_after_upload: bool,
    job_id: str | None = None,
    progress: ProgressCallback | None = None,
) -> TransferOutcome:
    """Transfer one file, optionally removing it afterwards.

    Any failure, including a file that vanished since it was listed, becomes an
    unsuccessful outcome rather than an exception.
    """
    log = get_log_service()
    filename = entry.name
    try:
        local_path = Path(entry.path)
        file_size = local_path.stat().st_size
        transfer_file(gateway, bucket, local_path, key, file_size, progress)

        if delete_after_upload:
            local_path.unlink()
    except Exception as e:
        message = str(e)
        log.error(
            "upload",
            "file_upload_failed",
            f"Failed to upload {filename}: {message}",
            {"job_id": job_id, "path": entry.path, "s3_key": key, "error": message},
        )
        return TransferOutcome(
            success=False,
            path=entry.path,
            destination_key=key,
            relative_path=entry.relative_path,
            error=message,
        )

    log.info(
        "upload",
        "file_upload_completed",
        f"Uploaded {filename}",
        {
            "job_id": job_id,
            "path": entry.path,
            "s3_key": key,
            "file_size": file_size,
            "strategy": select_strategy(file_size).value,
            "deleted_local": delete_after_upload,
        },
    )
    return TransferOutcome(
        success=True,
        path=entry.path,
        destination_key=key,
        relative_path=entry.relative_path,
    )


def upload_batch(
    gateway: S3Gateway,
    bucket: str,
    files: Sequence[FileEntry],
    destination_prefix: str,
    preserve_structure: bool = False,
    delete_after_upload: bool = False,
) -> list[TransferOutcome]:
    """Upload files in order without a job and return every outcome.

    For callers that wait on the request instead of following the event
    stream. Failed files are reported in their outcome and the batch goes on.
    """
    outcomes: list[TransferOutcome] = []
    for entry in files:
        key = build_destination_key(
            destination_prefix, entry.relative_path, entry.name, preserve_structure
        )
        outcomes.append(_upload_entry(gateway, bucket, entry, key, delete_after_upload))

    uploaded = sum(1 for o in outcomes if o.success)
    get_log_service().info(
        "upload",
        "upload_batch_completed",
        f"Batch upload complete: {uploaded} uploaded, {len(outcomes) - uploaded} failed",
        {"bucket": bucket, "uploaded": uploaded, "failed": len(outcomes) - uploaded},
    )
    return outcomes
