from __future__ import annotations

import threading
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import Settings, create_directories, get_settings
from ..logging_config import get_logger, setup_logging
from ..utils.file_utils import check_disk_usage, cleanup_temp_files, emergency_cleanup
from .deps import get_orchestrator, reset_orchestrator
from .routers import files as files_router
from .routers import system as system_router
from .routers import video as video_router

logger = get_logger(__name__)


def run_cleanup(settings: Settings) -> None:
    """One cleanup pass: stale staging files, expired outputs and finished jobs.

    When the staging and output directories together exceed ``disk_limit_mb``
    an emergency cleanup also drops every staging file and outputs older
    than an hour.
    """
    cleanup_temp_files(settings)
    if settings.disk_limit_mb:
        usage = check_disk_usage(settings.temp_dir, settings.output_dir)
        if usage["total"]["size"] > settings.disk_limit_mb * 1024 * 1024:
            emergency_cleanup(settings)
    get_orchestrator().prune_jobs(settings.job_retention_hours * 60 * 60)


def _cleanup_loop(settings: Settings, stop: threading.Event) -> None:
    interval = settings.cleanup_interval_minutes * 60
    while not stop.wait(interval):
        try:
            run_cleanup(settings)
        except Exception as exc:
            logger.error("Scheduled cleanup failed", error=str(exc), error_type=type(exc).__name__)


def create_app(settings: Optional[Settings] = None, start_cleanup: bool = True) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)
    create_directories(settings)

    app = FastAPI(title="Stock Video Assembler", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(system_router.router)
    app.include_router(video_router.router)
    app.include_router(files_router.router)

    stop = threading.Event()
    app.state.cleanup_stop = stop

    @app.on_event("shutdown")
    def shutdown_workers() -> None:
        stop.set()
        reset_orchestrator()

    if start_cleanup:
        threading.Thread(target=_cleanup_loop, args=(settings, stop), daemon=True).start()
        logger.info("Cleanup scheduler started", interval_minutes=settings.cleanup_interval_minutes)

    return app
