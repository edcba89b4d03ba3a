"""Tests for the upload orchestrator."""

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from photorific.services.errors import TransferError
from photorific.services.events import EventBroadcaster
from photorific.services.jobs import JobKind, JobRegistry, JobStatus
from photorific.services.scanner import FileEntry, entry_for_path
from photorific.services.transfer import STREAMING_THRESHOLD_BYTES
from photorific.services.upload_orchestrator import (
    UploadOrchestrator,
    build_destination_key,
    upload_batch,
)
from photorific.services.utils import base_folder_name


def _types(events: list[dict[str, Any]], event_type: str) -> list[dict[str, Any]]:
    return [e for e in events if e["type"] == event_type]


@pytest.fixture
def library_files(media_root: Path) -> list[FileEntry]:
    return [
        entry_for_path(media_root / "cover.JPG", media_root),
        entry_for_path(media_root / "day1" / "beach.mp4", media_root),
        entry_for_path(media_root / "day2" / "sunset.png", media_root),
    ]


@pytest.fixture
def orchestrator(
    registry: JobRegistry, broadcaster: EventBroadcaster, mock_gateway: MagicMock
) -> UploadOrchestrator:
    return UploadOrchestrator(registry, broadcaster, mock_gateway, "test-bucket")


class TestBuildDestinationKey:
    """Tests for build_destination_key()."""

    def test_preserved_structure(self) -> None:
        key = build_destination_key("vacation", "day1/beach.mp4", "beach.mp4", True)
        assert key == "vacation/day1/beach.mp4"

    def test_preserved_structure_normalizes_backslashes(self) -> None:
        key = build_destination_key("vacation", "day1\\beach.mp4", "beach.mp4", True)
        assert key == "vacation/day1/beach.mp4"

    def test_flattened_uses_timestamp(self) -> None:
        key = build_destination_key("vacation", "day1/beach.mp4", "beach.mp4", False, 1700000000000)
        assert key == "vacation/1700000000000_beach.mp4"

    def test_flattened_keys_never_collide(self) -> None:
        """Test that same-named files flattened back to back get distinct keys."""
        keys = [build_destination_key("lib", f"d{i}/a.jpg", "a.jpg", False) for i in range(200)]
        stamps = [int(k.split("/")[1].split("_")[0]) for k in keys]

        assert len(set(keys)) == 200
        assert stamps == sorted(stamps)


class TestUploadOrchestrator:
    """Tests for UploadOrchestrator.run()."""

    def test_uploads_every_file_in_order(
        self,
        orchestrator: UploadOrchestrator,
        registry: JobRegistry,
        mock_gateway: MagicMock,
        library_files: list[FileEntry],
    ) -> None:
        job = registry.create(JobKind.UPLOAD, len(library_files))

        outcomes = orchestrator.run(job, library_files, "vacation")

        keys = [c.args[1] for c in mock_gateway.put_object.call_args_list]
        assert keys == ["vacation/cover.JPG", "vacation/day1/beach.mp4", "vacation/day2/sunset.png"]
        assert all(o.success for o in outcomes)
        assert job.status is JobStatus.COMPLETED
        assert job.completed_items == 3
        assert job.progress == 100

    def test_partial_failure_still_completes(
        self,
        orchestrator: UploadOrchestrator,
        registry: JobRegistry,
        broadcaster: EventBroadcaster,
        mock_gateway: MagicMock,
        library_files: list[FileEntry],
    ) -> None:
        """Test that a failing file is recorded and the batch carries on."""

        def put_object(bucket: str, key: str, *args: Any, **kwargs: Any) -> str:
            if key.endswith("beach.mp4"):
                raise TransferError("Failed to upload vacation/day1/beach.mp4: denied")
            return key

        mock_gateway.put_object.side_effect = put_object
        subscription = broadcaster.subscribe()
        job = registry.create(JobKind.UPLOAD, 3)

        outcomes = orchestrator.run(job, library_files, "vacation")

        assert job.status is JobStatus.COMPLETED
        assert job.completed_items == 3
        assert job.failed_items == 1
        assert len(job.errors) == 1
        assert job.errors[0].startswith("beach.mp4: ")
        assert [o.success for o in outcomes] == [True, False, True]
        assert "denied" in (outcomes[1].error or "")

        events = subscription.drain()
        successes = _types(events, "file_upload_success")
        assert [e["relativePath"] for e in successes] == ["cover.JPG", "day2/sunset.png"]
        results = _types(events, "upload_result")
        assert len(results) == 1
        assert [o["success"] for o in results[0]["outcomes"]] == [True, False, True]

    def test_result_published_before_terminal_update(
        self,
        orchestrator: UploadOrchestrator,
        registry: JobRegistry,
        broadcaster: EventBroadcaster,
        library_files: list[FileEntry],
    ) -> None:
        subscription = broadcaster.subscribe()
        job = registry.create(JobKind.UPLOAD, 3)

        orchestrator.run(job, library_files, "vacation", context_ids={"fileId": "abc"})

        events = subscription.drain()
        assert events[-2]["type"] == "upload_result"
        assert events[-2]["contextIds"] == {"fileId": "abc"}
        assert events[-1]["type"] == "job_update"
        assert events[-1]["job"]["status"] == "completed"

    def test_completed_counter_never_decreases(
        self,
        orchestrator: UploadOrchestrator,
        registry: JobRegistry,
        broadcaster: EventBroadcaster,
        library_files: list[FileEntry],
    ) -> None:
        subscription = broadcaster.subscribe()
        job = registry.create(JobKind.UPLOAD, 3)

        orchestrator.run(job, library_files, "vacation")

        counts = [e["job"]["completedItems"] for e in _types(subscription.drain(), "job_update")]
        assert counts == sorted(counts)
        assert counts[-1] == 3

    def test_missing_local_file_is_a_failed_item(
        self,
        orchestrator: UploadOrchestrator,
        registry: JobRegistry,
        media_root: Path,
        library_files: list[FileEntry],
    ) -> None:
        (media_root / "cover.JPG").unlink()
        job = registry.create(JobKind.UPLOAD, 3)

        outcomes = orchestrator.run(job, library_files, "vacation")

        assert [o.success for o in outcomes] == [False, True, True]
        assert job.failed_items == 1
        assert job.status is JobStatus.COMPLETED

    def test_delete_after_upload(
        self,
        orchestrator: UploadOrchestrator,
        registry: JobRegistry,
        library_files: list[FileEntry],
    ) -> None:
        job = registry.create(JobKind.UPLOAD, 3)

        orchestrator.run(job, library_files, "vacation", delete_after_upload=True)

        assert not any(Path(f.path).exists() for f in library_files)

    def test_failed_file_is_not_deleted(
        self,
        orchestrator: UploadOrchestrator,
        registry: JobRegistry,
        mock_gateway: MagicMock,
        library_files: list[FileEntry],
    ) -> None:
        mock_gateway.put_object.side_effect = TransferError("nope")
        job = registry.create(JobKind.UPLOAD, 3)

        orchestrator.run(job, library_files, "vacation", delete_after_upload=True)

        assert all(Path(f.path).exists() for f in library_files)
        assert job.failed_items == 3

    def test_flattened_keys(
        self,
        orchestrator: UploadOrchestrator,
        registry: JobRegistry,
        mock_gateway: MagicMock,
        library_files: list[FileEntry],
    ) -> None:
        job = registry.create(JobKind.UPLOAD, 3)

        outcomes = orchestrator.run(job, library_files, "vacation", preserve_structure=False)

        for outcome, entry in zip(outcomes, library_files, strict=True):
            prefix, leaf = outcome.destination_key.split("/")
            assert prefix == "vacation"
            assert leaf.endswith(f"_{entry.name}")

    def test_streaming_progress_annotates_current_item(
        self,
        orchestrator: UploadOrchestrator,
        registry: JobRegistry,
        broadcaster: EventBroadcaster,
        mock_gateway: MagicMock,
        library_files: list[FileEntry],
    ) -> None:
        """Test that byte progress on large files shows as 'name (N%)'."""

        def put_object(bucket: str, key: str, *args: Any, **kwargs: Any) -> str:
            progress = kwargs.get("progress")
            if progress:
                progress(STREAMING_THRESHOLD_BYTES // 2 + 1, STREAMING_THRESHOLD_BYTES + 2)
            return key

        mock_gateway.put_object.side_effect = put_object
        subscription = broadcaster.subscribe()
        job = registry.create(JobKind.UPLOAD, 1)

        with patch(
            "photorific.services.upload_orchestrator.transfer_file",
            side_effect=lambda gw, bucket, path, key, size, progress: gw.put_object(
                bucket, key, b"", "video/mp4", size=STREAMING_THRESHOLD_BYTES + 2, progress=progress
            ),
        ):
            orchestrator.run(job, library_files[1:2], "vacation")

        items = [e["job"]["currentItem"] for e in _types(subscription.drain(), "job_update")]
        assert "beach.mp4 (50%)" in items

    def test_streaming_progress_never_goes_backwards(
        self,
        orchestrator: UploadOrchestrator,
        registry: JobRegistry,
        broadcaster: EventBroadcaster,
        mock_gateway: MagicMock,
        library_files: list[FileEntry],
    ) -> None:
        """Test that stale or repeated byte counts publish no label update."""

        def put_object(bucket: str, key: str, *args: Any, **kwargs: Any) -> str:
            for loaded in (60, 40, 60, 80):
                kwargs["progress"](loaded, 100)
            return key

        mock_gateway.put_object.side_effect = put_object
        subscription = broadcaster.subscribe()
        job = registry.create(JobKind.UPLOAD, 1)

        with patch(
            "photorific.services.upload_orchestrator.transfer_file",
            side_effect=lambda gw, bucket, path, key, size, progress: gw.put_object(
                bucket, key, b"", "video/mp4", progress=progress
            ),
        ):
            orchestrator.run(job, library_files[1:2], "vacation")

        items = [e["job"]["currentItem"] for e in _types(subscription.drain(), "job_update")]
        annotated = [i for i in items if i and "%" in i]
        assert annotated == ["beach.mp4 (60%)", "beach.mp4 (80%)"]

    def test_unexpected_error_fails_job(
        self,
        orchestrator: UploadOrchestrator,
        registry: JobRegistry,
        broadcaster: EventBroadcaster,
        library_files: list[FileEntry],
    ) -> None:
        """Test that an error outside per-file handling fails the job."""
        subscription = broadcaster.subscribe()
        job = registry.create(JobKind.UPLOAD, 3)

        with patch.object(
            orchestrator, "_upload_one", side_effect=RuntimeError("registry exploded")
        ):
            outcomes = orchestrator.run(job, library_files, "vacation")

        assert outcomes == []
        assert job.status is JobStatus.FAILED
        assert job.errors == ["registry exploded"]
        types = [e["type"] for e in subscription.drain()]
        assert types[-2:] == ["upload_result", "job_update"]

    def test_writes_jsonl_events(
        self,
        orchestrator: UploadOrchestrator,
        registry: JobRegistry,
        isolated_log_service: Any,
        library_files: list[FileEntry],
    ) -> None:
        job = registry.create(JobKind.UPLOAD, 3)

        orchestrator.run(job, library_files, "vacation")

        result = isolated_log_service.read_log_entries(category="upload")
        events = {e["event"] for e in result["entries"]}
        assert {"upload_job_started", "file_upload_completed", "upload_job_completed"} <= events


class TestUploadBatch:
    """Tests for upload_batch()."""

    def test_uploads_without_a_job(
        self,
        registry: JobRegistry,
        mock_gateway: MagicMock,
        media_root: Path,
        library_files: list[FileEntry],
    ) -> None:
        missing = entry_for_path(media_root / "gone.jpg", media_root, strict=False)
        files = [library_files[0], missing, library_files[2]]

        outcomes = upload_batch(mock_gateway, "test-bucket", files, "vacation")

        assert [o.success for o in outcomes] == [True, False, True]
        assert outcomes[1].relative_path == "gone.jpg"
        assert all(o.destination_key.startswith("vacation/") for o in outcomes)
        assert mock_gateway.put_object.call_count == 2
        assert registry.list_jobs() == []

    def test_preserve_structure_and_delete(
        self, mock_gateway: MagicMock, library_files: list[FileEntry]
    ) -> None:
        outcomes = upload_batch(
            mock_gateway,
            "test-bucket",
            library_files,
            "vacation",
            preserve_structure=True,
            delete_after_upload=True,
        )

        assert [o.destination_key for o in outcomes] == [
            "vacation/cover.JPG",
            "vacation/day1/beach.mp4",
            "vacation/day2/sunset.png",
        ]
        assert not any(Path(f.path).exists() for f in library_files)

    def test_logs_batch_summary(
        self,
        mock_gateway: MagicMock,
        isolated_log_service: Any,
        library_files: list[FileEntry],
    ) -> None:
        mock_gateway.put_object.side_effect = TransferError("nope")

        upload_batch(mock_gateway, "test-bucket", library_files, "vacation")

        entries = isolated_log_service.read_log_entries(category="upload")["entries"]
        summary = [e for e in entries if e["event"] == "upload_batch_completed"]
        assert summary[0]["metadata"] == {"bucket": "test-bucket", "uploaded": 0, "failed": 3}


class TestBaseFolderName:
    """Tests for the destination prefix derived from the library root."""

    @pytest.mark.parametrize(
        "folder_path,expected",
        [
            ("/Users/me/vacation", "vacation"),
            ("/Users/me/vacation/", "vacation"),
            ("photos", "photos"),
        ],
    )
    def test_last_segment(self, folder_path: str, expected: str) -> None:
        assert base_folder_name(folder_path) == expected

    def test_expands_home(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("HOME", str(tmp_path / "me"))
        assert base_folder_name("~") == "me"
