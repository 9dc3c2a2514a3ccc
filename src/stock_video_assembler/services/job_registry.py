from __future__ import annotations

import copy
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..errors import InvalidStateTransitionError, NotFoundError
from ..models import Job, JobStatusEnum
from ..state import is_job_terminal, validate_job_transition


def _snapshot(job: Job) -> Job:
    return copy.deepcopy(job)


class JobRegistry:
    """In-memory job records shared by the HTTP layer and background tasks.

    Readers always receive snapshots. Writers go through ``mutate`` which
    applies a change to a copy and swaps it in atomically after checking the
    lifecycle rules.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, job: Job) -> Job:
        with self._lock:
            if job.job_id in self._jobs:
                raise ValueError(f"Job {job.job_id} already exists")
            self._jobs[job.job_id] = _snapshot(job)
            return _snapshot(job)

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return _snapshot(job) if job else None

    def mutate(self, job_id: str, change: Callable[[Job], None]) -> Job:
        """
        Apply ``change`` to a copy of a job record and store the result.

        Raises:
            NotFoundError: If the job does not exist
            InvalidStateTransitionError: If the record is terminal, the status
                change is illegal, or result and error are not exclusive
        """
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise NotFoundError(f"Job {job_id} not found")
            if is_job_terminal(current.status):
                raise InvalidStateTransitionError(
                    f"Job {job_id} is already {current.status.value} and cannot change"
                )

            updated = _snapshot(current)
            change(updated)
            validate_job_transition(current.status, updated.status)

            # Progress never moves backwards.
            updated.progress = max(current.progress, min(100, int(updated.progress)))
            now = datetime.now()
            updated.updated_at = now

            if updated.status == JobStatusEnum.COMPLETED:
                if updated.result is None or updated.error is not None:
                    raise InvalidStateTransitionError("A completed job needs a result and no error")
                updated.progress = 100
                updated.completed_at = updated.completed_at or now
            elif updated.status == JobStatusEnum.FAILED:
                if updated.error is None or updated.result is not None:
                    raise InvalidStateTransitionError("A failed job needs an error and no result")
                updated.failed_at = updated.failed_at or now
            elif updated.result is not None or updated.error is not None:
                raise InvalidStateTransitionError("Only terminal jobs carry a result or an error")

            self._jobs[job_id] = updated
            return _snapshot(updated)

    def list(self) -> List[Job]:
        with self._lock:
            jobs = [_snapshot(job) for job in self._jobs.values()]
        return sorted(jobs, key=lambda job: job.created_at)

    def prune(self, max_age_seconds: float, now: Optional[datetime] = None) -> int:
        """Forget terminal jobs that finished more than ``max_age_seconds`` ago."""
        cutoff = (now or datetime.now()) - timedelta(seconds=max_age_seconds)
        with self._lock:
            expired = [
                job_id
                for job_id, job in self._jobs.items()
                if is_job_terminal(job.status) and (job.finished_at or job.updated_at) < cutoff
            ]
            for job_id in expired:
                self._jobs.pop(job_id, None)
        return len(expired)
