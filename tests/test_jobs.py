"""Tests for the job registry."""

import time

import pytest

from photorific.services.errors import JobStateError
from photorific.services.events import EventBroadcaster
from photorific.services.jobs import Job, JobKind, JobRegistry, JobStatus


class TestJobProgress:
    """Tests for Job.progress and serialization."""

    @pytest.mark.parametrize(
        "completed,total,expected",
        [(0, 3, 0), (1, 3, 33), (2, 3, 66), (3, 3, 100), (999, 1000, 99)],
    )
    def test_progress_rounds_down(self, completed: int, total: int, expected: int) -> None:
        job = Job(id="j", kind=JobKind.UPLOAD, total_items=total, completed_items=completed)
        assert job.progress == expected

    def test_zero_items_is_done(self) -> None:
        job = Job(id="j", kind=JobKind.SYNC_CHECK, total_items=0)
        assert job.progress == 100

    def test_to_dict_keys(self) -> None:
        job = Job(id="j", kind=JobKind.SYNC_CHECK, total_items=2)
        data = job.to_dict()

        assert data["type"] == "sync_check"
        assert data["status"] == "running"
        assert data["totalItems"] == 2
        assert data["completedItems"] == 0
        assert data["failedItems"] == 0
        assert data["currentItem"] is None
        assert data["errors"] == []
        assert isinstance(data["duration"], int)


class TestJobRegistry:
    """Tests for JobRegistry state transitions."""

    def test_create_registers_running_job(self, registry: JobRegistry) -> None:
        job = registry.create(JobKind.UPLOAD, 3)

        assert job.status is JobStatus.RUNNING
        assert registry.get(job.id) is job
        assert [j["id"] for j in registry.snapshot()] == [job.id]

    def test_create_issues_unique_ids(self, registry: JobRegistry) -> None:
        ids = {registry.create(JobKind.UPLOAD, 1).id for _ in range(50)}
        assert len(ids) == 50

    def test_update_progress_records_failures(self, registry: JobRegistry) -> None:
        job = registry.create(JobKind.UPLOAD, 3)

        registry.update_progress(job, 1, "a.jpg")
        registry.update_progress(job, 2, "b.jpg", error="b.jpg: boom")

        assert job.completed_items == 2
        assert job.failed_items == 1
        assert job.current_item == "b.jpg"
        assert job.errors == ["b.jpg: boom"]
        assert job.progress == 66

    def test_complete_sets_progress_100(self, registry: JobRegistry) -> None:
        job = registry.create(JobKind.UPLOAD, 3)
        registry.update_progress(job, 1, "a.jpg")

        registry.complete(job)

        assert job.status is JobStatus.COMPLETED
        assert job.progress == 100
        assert job.current_item is None
        assert job.finished_at is not None

    def test_fail_appends_error(self, registry: JobRegistry) -> None:
        job = registry.create(JobKind.SYNC_CHECK, 5)

        registry.fail(job, "listing failed")

        assert job.status is JobStatus.FAILED
        assert job.errors == ["listing failed"]

    @pytest.mark.parametrize("finish", ["complete", "fail"])
    def test_terminal_jobs_are_immutable(self, registry: JobRegistry, finish: str) -> None:
        job = registry.create(JobKind.UPLOAD, 2)
        if finish == "complete":
            registry.complete(job)
        else:
            registry.fail(job, "x")
        before = job.to_dict()

        with pytest.raises(JobStateError):
            registry.update_progress(job, 2, "late.jpg")
        with pytest.raises(JobStateError):
            registry.complete(job)
        with pytest.raises(JobStateError):
            registry.fail(job, "again")

        after = job.to_dict()
        before.pop("duration")
        after.pop("duration")
        assert after == before

    def test_every_change_is_published(
        self, registry: JobRegistry, broadcaster: EventBroadcaster
    ) -> None:
        subscription = broadcaster.subscribe()
        job = registry.create(JobKind.UPLOAD, 2)

        registry.update_progress(job, 1, "a.jpg")
        registry.complete(job)

        events = subscription.drain()
        assert [e["type"] for e in events] == ["jobs_list", "job_update", "job_update"]
        assert events[1]["job"]["completedItems"] == 1
        assert events[2]["job"]["status"] == "completed"
        assert events[2]["job"]["progress"] == 100


class TestJobRetirement:
    """Tests for retention of finished jobs."""

    def test_finished_job_is_retired(self) -> None:
        broadcaster = EventBroadcaster()
        registry = JobRegistry(broadcaster, retention_seconds=0.05)
        try:
            job = registry.create(JobKind.UPLOAD, 1)
            registry.complete(job)
            assert registry.get(job.id) is job

            deadline = time.monotonic() + 2
            while registry.get(job.id) is not None and time.monotonic() < deadline:
                time.sleep(0.01)

            assert registry.get(job.id) is None
            assert registry.snapshot() == []
        finally:
            registry.shutdown()

    def test_running_job_is_not_retired(self) -> None:
        registry = JobRegistry(EventBroadcaster(), retention_seconds=0.01)
        try:
            job = registry.create(JobKind.UPLOAD, 1)
            time.sleep(0.05)
            assert registry.get(job.id) is job
        finally:
            registry.shutdown()

    def test_shutdown_cancels_pending_retirements(self) -> None:
        registry = JobRegistry(EventBroadcaster(), retention_seconds=60)
        job = registry.create(JobKind.UPLOAD, 1)
        registry.complete(job)

        registry.shutdown()

        assert registry.list_jobs() == []
        assert registry._timers == {}
