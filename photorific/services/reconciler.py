"""Sync reconciler: which local files already exist in the bucket."""

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from photorific.config import SYNC_PAUSE_EVERY, SYNC_PAUSE_SECONDS
from photorific.services.events import EventBroadcaster, SyncResult
from photorific.services.jobs import Job, JobRegistry
from photorific.services.log_service import get_log_service
from photorific.services.s3_service import S3Gateway
from photorific.services.scanner import FileEntry

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Presence of each local file in the bucket, keyed by relative path."""

    sync_status: dict[str, FileEntry] = field(default_factory=dict)
    remote_object_count: int = 0

    @property
    def present_count(self) -> int:
        return sum(1 for entry in self.sync_status.values() if entry.in_remote)

    def status_dict(self) -> dict[str, dict[str, Any]]:
        return {path: entry.to_dict() for path, entry in self.sync_status.items()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "syncStatus": self.status_dict(),
            "remoteObjectCount": self.remote_object_count,
        }


class SyncReconciler:
    """Compares local inventory against a prefix listing of the bucket."""

    def __init__(self, gateway: S3Gateway, bucket: str) -> None:
        self.gateway = gateway
        self.bucket = bucket

    def list_remote_keys(self, destination_prefix: str) -> set[str]:
        """Collect every key under the prefix, following continuation tokens.

        Keys are returned relative to the prefix so they compare directly with
        local relative paths.

        Raises:
            RemoteListingError: If any page request fails
        """
        key_prefix = f"{destination_prefix}/"
        remote: set[str] = set()
        token: str | None = None
        pages = 0

        while True:
            page = self.gateway.list_objects(self.bucket, key_prefix, token)
            pages += 1
            for key in page.keys:
                remote.add(key.removeprefix(key_prefix))
            token = page.next_token
            if not token:
                break

        logger.debug(
            "Listed %d keys under s3://%s/%s in %d pages",
            len(remote),
            self.bucket,
            key_prefix,
            pages,
        )
        return remote

    @staticmethod
    def _annotate(entry: FileEntry, destination_prefix: str, remote: set[str]) -> FileEntry:
        relative_path = entry.relative_path.replace("\\", "/")
        return entry.with_remote(
            in_remote=relative_path in remote,
            remote_key=f"{destination_prefix}/{relative_path}",
        )

    def compute_status(self, files: Sequence[FileEntry], destination_prefix: str) -> SyncReport:
        """Mark each local file as present in or missing from the bucket.

        The whole listing is read before any file is evaluated.

        Raises:
            RemoteListingError: If listing the bucket fails
        """
        remote = self.list_remote_keys(destination_prefix)
        report = SyncReport(remote_object_count=len(remote))
        for entry in files:
            report.sync_status[entry.relative_path] = self._annotate(
                entry, destination_prefix, remote
            )
        return report

    def run_tracked(
        self,
        job: Job,
        files: Sequence[FileEntry],
        destination_prefix: str,
        registry: JobRegistry,
        broadcaster: EventBroadcaster,
    ) -> SyncReport | None:
        """Reconcile under a job, publishing the full report as one SyncResult.

        Progress is published per file through the job; the report itself only
        travels on the SyncResult event. A listing failure fails the job.

        Returns:
            The report, or None if the job failed
        """
        log = get_log_service()
        log.info(
            "sync",
            "sync_check_started",
            f"Checking sync status of {len(files)} files",
            {"job_id": job.id, "bucket": self.bucket, "prefix": destination_prefix},
        )

        try:
            remote = self.list_remote_keys(destination_prefix)
            report = SyncReport(remote_object_count=len(remote))
            for index, entry in enumerate(files):
                report.sync_status[entry.relative_path] = self._annotate(
                    entry, destination_prefix, remote
                )
                registry.update_progress(job, index + 1, entry.name)
                if index % SYNC_PAUSE_EVERY == 0:
                    # Let other jobs' threads get a turn on large inventories
                    time.sleep(SYNC_PAUSE_SECONDS)

            broadcaster.publish(
                SyncResult(
                    job_id=job.id,
                    sync_status=report.status_dict(),
                    remote_object_count=report.remote_object_count,
                )
            )
            registry.complete(job)
        except Exception as e:
            logger.exception("Sync check %s failed", job.id)
            log.error(
                "sync",
                "sync_check_failed",
                f"Sync check {job.id} failed: {e}",
                {"job_id": job.id, "error": str(e)},
            )
            if not job.status.is_terminal:
                registry.fail(job, str(e))
            return None

        log.info(
            "sync",
            "sync_check_completed",
            f"Sync check complete: {report.present_count} of {len(files)} files in S3",
            {
                "job_id": job.id,
                "present": report.present_count,
                "total": len(files),
                "remote_object_count": report.remote_object_count,
            },
        )
        return report
