"""
Error taxonomy for the stock video assembler.

Per-scene provider errors are absorbed by the scene and assembly pipelines;
transcode and merge failures end the job in the ``failed`` state.
"""

from typing import Optional


class AssemblerError(Exception):
    """Base class for all assembler errors."""


class ValidationError(AssemblerError):
    """Raised when a job submission is rejected before a job is created."""


class NotFoundError(AssemblerError):
    """Raised when a job identifier is unknown."""


class ProviderError(AssemblerError):
    """Raised when the stock video provider cannot search or fetch."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


class TranscodeFailure(AssemblerError):
    """Raised when a clip cannot be normalized."""


class MergeFailure(AssemblerError):
    """Raised when normalized clips cannot be merged into the output."""


class TransitionPlanError(AssemblerError):
    """Raised for invalid transition configuration (unknown style, bad durations)."""


class InvalidStateTransitionError(AssemblerError):
    """Raised when a job record mutation breaks the lifecycle rules."""
