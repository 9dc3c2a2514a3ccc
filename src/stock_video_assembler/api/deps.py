from __future__ import annotations

import threading
from typing import Optional

from ..config import Settings, get_settings
from ..services.job_orchestrator import JobOrchestrator

_orchestrator: Optional[JobOrchestrator] = None
_lock = threading.Lock()


def get_app_settings() -> Settings:
    return get_settings()


def get_orchestrator() -> JobOrchestrator:
    global _orchestrator
    with _lock:
        if _orchestrator is None:
            _orchestrator = JobOrchestrator(get_settings())
        return _orchestrator


def reset_orchestrator() -> None:
    """Shut down and forget the shared orchestrator."""
    global _orchestrator
    with _lock:
        if _orchestrator is not None:
            _orchestrator.shutdown(wait=False)
        _orchestrator = None
