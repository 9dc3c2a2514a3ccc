"""Tests for job lifecycle rules and the in-memory job registry."""

from datetime import datetime, timedelta

import pytest

from stock_video_assembler.errors import InvalidStateTransitionError, NotFoundError
from stock_video_assembler.models import AssemblySettings, Job, JobResult, JobStatusEnum
from stock_video_assembler.services.job_registry import JobRegistry
from stock_video_assembler.state import can_transition_job, is_job_terminal, validate_job_transition


def _result() -> JobResult:
    return JobResult(
        filename="video.mp4",
        path="/tmp/video.mp4",
        download_url="/output/video.mp4",
        duration=10,
        file_size_bytes=100,
        file_size="100 Bytes",
        scenes=2,
        clips=2,
    )


def _set(**changes):
    def apply(job):
        for name, value in changes.items():
            setattr(job, name, value)
    return apply


@pytest.fixture
def registry():
    registry = JobRegistry()
    registry.create(Job(job_id="job-1", scenes=2, settings=AssemblySettings()))
    return registry


class TestJobStateMachine:

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (JobStatusEnum.CREATED, JobStatusEnum.SEARCHING),
            (JobStatusEnum.SEARCHING, JobStatusEnum.PROCESSING),
            (JobStatusEnum.PROCESSING, JobStatusEnum.COMPLETED),
            (JobStatusEnum.CREATED, JobStatusEnum.FAILED),
            (JobStatusEnum.SEARCHING, JobStatusEnum.FAILED),
            (JobStatusEnum.PROCESSING, JobStatusEnum.FAILED),
            (JobStatusEnum.SEARCHING, JobStatusEnum.SEARCHING),
        ],
    )
    def test_allowed(self, from_status, to_status):
        assert can_transition_job(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (JobStatusEnum.CREATED, JobStatusEnum.PROCESSING),
            (JobStatusEnum.CREATED, JobStatusEnum.COMPLETED),
            (JobStatusEnum.SEARCHING, JobStatusEnum.COMPLETED),
            (JobStatusEnum.PROCESSING, JobStatusEnum.SEARCHING),
            (JobStatusEnum.COMPLETED, JobStatusEnum.FAILED),
            (JobStatusEnum.FAILED, JobStatusEnum.FAILED),
        ],
    )
    def test_rejected(self, from_status, to_status):
        assert not can_transition_job(from_status, to_status)
        with pytest.raises(InvalidStateTransitionError):
            validate_job_transition(from_status, to_status)

    def test_terminal_states(self):
        assert is_job_terminal(JobStatusEnum.COMPLETED)
        assert is_job_terminal(JobStatusEnum.FAILED)
        assert not is_job_terminal(JobStatusEnum.PROCESSING)


class TestJobRegistry:

    def test_create_rejects_duplicate(self, registry):
        with pytest.raises(ValueError):
            registry.create(Job(job_id="job-1", scenes=1, settings=AssemblySettings()))

    def test_get_returns_snapshot(self, registry):
        snapshot = registry.get("job-1")
        snapshot.progress = 99

        assert registry.get("job-1").progress == 0
        assert registry.get("missing") is None

    def test_mutate_unknown_job(self, registry):
        with pytest.raises(NotFoundError):
            registry.mutate("missing", _set(progress=5))

    def test_progress_never_regresses(self, registry):
        registry.mutate("job-1", _set(status=JobStatusEnum.SEARCHING, progress=20))
        job = registry.mutate("job-1", _set(progress=10))

        assert job.progress == 20

    def test_illegal_transition_leaves_record_untouched(self, registry):
        with pytest.raises(InvalidStateTransitionError):
            registry.mutate("job-1", _set(status=JobStatusEnum.COMPLETED, result=_result()))

        assert registry.get("job-1").status == JobStatusEnum.CREATED

    def test_completed_requires_result(self, registry):
        registry.mutate("job-1", _set(status=JobStatusEnum.SEARCHING))
        registry.mutate("job-1", _set(status=JobStatusEnum.PROCESSING))

        with pytest.raises(InvalidStateTransitionError):
            registry.mutate("job-1", _set(status=JobStatusEnum.COMPLETED))

        job = registry.mutate("job-1", _set(status=JobStatusEnum.COMPLETED, result=_result()))
        assert job.progress == 100
        assert job.completed_at is not None
        assert job.error is None

    def test_failed_requires_error_and_no_result(self, registry):
        with pytest.raises(InvalidStateTransitionError):
            registry.mutate("job-1", _set(status=JobStatusEnum.FAILED))
        with pytest.raises(InvalidStateTransitionError):
            registry.mutate("job-1", _set(status=JobStatusEnum.FAILED, error="x", result=_result()))

        job = registry.mutate("job-1", _set(status=JobStatusEnum.FAILED, error="boom"))
        assert job.failed_at is not None

    def test_terminal_record_is_frozen(self, registry):
        registry.mutate("job-1", _set(status=JobStatusEnum.FAILED, error="boom"))

        with pytest.raises(InvalidStateTransitionError):
            registry.mutate("job-1", _set(message="late update"))
        assert registry.get("job-1").message == ""

    def test_non_terminal_cannot_carry_error(self, registry):
        with pytest.raises(InvalidStateTransitionError):
            registry.mutate("job-1", _set(error="premature"))

    def test_list_orders_by_creation(self, registry):
        registry.create(Job(job_id="job-0", scenes=1, settings=AssemblySettings(), created_at=datetime(2020, 1, 1)))

        assert [job.job_id for job in registry.list()] == ["job-0", "job-1"]

    def test_prune_only_removes_old_terminal_jobs(self, registry):
        registry.create(Job(job_id="job-2", scenes=1, settings=AssemblySettings()))
        registry.mutate("job-2", _set(status=JobStatusEnum.FAILED, error="boom"))

        later = datetime.now() + timedelta(hours=2)
        assert registry.prune(60 * 60, now=later) == 1
        assert registry.get("job-2") is None
        assert registry.get("job-1") is not None

    def test_prune_keeps_recent_terminal_jobs(self, registry):
        registry.mutate("job-1", _set(status=JobStatusEnum.FAILED, error="boom"))

        assert registry.prune(60 * 60) == 0
