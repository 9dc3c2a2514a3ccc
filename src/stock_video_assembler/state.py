"""
State transition validation for assembly jobs.

Job lifecycle: CREATED → SEARCHING → PROCESSING → COMPLETED | FAILED.
A job may fail from any non-terminal state. Terminal states are immutable:
once a job is COMPLETED or FAILED, no further transition is allowed.
"""

from typing import FrozenSet, Set, Tuple

from .errors import InvalidStateTransitionError
from .models import JobStatusEnum


TERMINAL_JOB_STATES: FrozenSet[JobStatusEnum] = frozenset({
    JobStatusEnum.COMPLETED,
    JobStatusEnum.FAILED,
})


_JOB_TRANSITIONS: Set[Tuple[JobStatusEnum, JobStatusEnum]] = {
    (JobStatusEnum.CREATED, JobStatusEnum.SEARCHING),
    (JobStatusEnum.SEARCHING, JobStatusEnum.PROCESSING),
    (JobStatusEnum.PROCESSING, JobStatusEnum.COMPLETED),

    (JobStatusEnum.CREATED, JobStatusEnum.FAILED),
    (JobStatusEnum.SEARCHING, JobStatusEnum.FAILED),
    (JobStatusEnum.PROCESSING, JobStatusEnum.FAILED),
}


def is_job_terminal(status: JobStatusEnum) -> bool:
    """Check if a job status is terminal (immutable)."""
    return status in TERMINAL_JOB_STATES


def can_transition_job(from_status: JobStatusEnum, to_status: JobStatusEnum) -> bool:
    """Check whether a job may move from one status to another.

    Staying in the same non-terminal status is always allowed, so progress
    and message updates within a stage pass validation.
    """
    if is_job_terminal(from_status):
        return False
    if from_status == to_status:
        return True
    return (from_status, to_status) in _JOB_TRANSITIONS


def validate_job_transition(from_status: JobStatusEnum, to_status: JobStatusEnum) -> None:
    """Raise InvalidStateTransitionError if the transition is illegal."""
    if not can_transition_job(from_status, to_status):
        raise InvalidStateTransitionError(
            f"Invalid job state transition: {from_status.value} → {to_status.value}"
        )
