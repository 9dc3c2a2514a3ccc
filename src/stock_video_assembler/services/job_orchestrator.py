"""Job orchestration for stock video assembly.

Submission validates input and returns at once; the work runs as a
background task on a thread pool:
1. Scene search (progress 0-30)
2. Clip fetch and normalization (progress 40-70)
3. Merge with transitions (progress 70-100)

Callers poll ``get_job_status`` for progress and the final result.
"""

import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Any, Dict, List, Optional, Sequence

from ..config import get_settings
from ..errors import AssemblerError, NotFoundError, ValidationError
from ..logging_config import LoggerMixin
from ..models import AssemblySettings, Job, JobStatusEnum, SceneRequest
from ..state import is_job_terminal
from .assembly_pipeline import AssemblyPipeline
from .job_registry import JobRegistry
from .media_provider import PexelsVideoProvider, SearchConstraints
from .scene_pipeline import ScenePipeline
from .transcoder import FfmpegTranscoder

SEARCH_SPAN = 30


def estimate_time(scene_count: int) -> str:
    """Rough wall-clock estimate shown to the caller at submission."""
    return f"{scene_count * 15}-{scene_count * 30} seconds"


class JobOrchestrator(LoggerMixin):
    """Coordinate scene search, assembly and job bookkeeping."""

    def __init__(
        self,
        settings=None,
        provider=None,
        transcoder=None,
        registry: Optional[JobRegistry] = None,
    ):
        """Initialize the job orchestrator.

        Args:
            settings: Optional settings object (uses default if not provided)
            provider: Stock video provider (Pexels by default)
            transcoder: Media transcoder (ffmpeg by default)
            registry: Job registry (a fresh in-memory one by default)
        """
        self.settings = settings or get_settings()
        self.provider = provider or PexelsVideoProvider(self.settings)
        self.transcoder = transcoder or FfmpegTranscoder(self.settings)
        self.registry = registry or JobRegistry()
        self.scene_pipeline = ScenePipeline(self.provider, self.settings)
        self.assembly_pipeline = AssemblyPipeline(self.provider, self.transcoder, self.settings)

        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.max_concurrent_jobs,
            thread_name_prefix="assembly-job",
        )
        self._futures: Dict[str, Future] = {}
        self._futures_lock = threading.Lock()
        self.logger.info("JobOrchestrator initialized", max_concurrent_jobs=self.settings.max_concurrent_jobs)

    # ---------------------------
    # Job Management
    # ---------------------------

    def submit_job(self, scenes: Any, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Validate a submission, record the job and start it in the background.

        Args:
            scenes: List of scene objects, each with a ``prompt``
            options: Optional output settings (duration, resolution, fps,
                transition, backgroundColor)

        Returns:
            Dict with job_id, status, message and estimated_time

        Raises:
            ValidationError: If the submission is invalid; no job is created
        """
        scene_requests, job_settings = self._validate(scenes, options)

        job_id = str(uuid.uuid4())
        self.registry.create(Job(job_id=job_id, scenes=len(scene_requests), settings=job_settings))
        self.logger.info("Job submitted", job_id=job_id, scenes=len(scene_requests), **job_settings.to_dict())

        with self._futures_lock:
            future = self._executor.submit(self.process_job, job_id, scene_requests, job_settings)
            self._futures[job_id] = future
        future.add_done_callback(partial(self._on_job_done, job_id))

        return {
            "job_id": job_id,
            "status": JobStatusEnum.CREATED.value,
            "message": "Video creation started",
            "estimated_time": estimate_time(len(scene_requests)),
        }

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        """Get the current record of a job.

        Raises:
            NotFoundError: If the job id is unknown
        """
        job = self.registry.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job.to_dict()

    def list_jobs(self) -> List[Dict[str, Any]]:
        """Get every known job, oldest first."""
        return [job.to_dict() for job in self.registry.list()]

    def prune_jobs(self, max_age_seconds: Optional[float] = None) -> int:
        """Forget finished jobs older than the retention window."""
        if max_age_seconds is None:
            max_age_seconds = self.settings.job_retention_hours * 60 * 60
        pruned = self.registry.prune(max_age_seconds)
        if pruned:
            self.logger.info("Finished jobs pruned", count=pruned)
        return pruned

    def provider_status(self) -> Dict[str, Any]:
        """Report the stock provider's API usage."""
        return self.provider.check_api_usage()

    def popular_videos(self, per_page: int = 15) -> List[Dict[str, Any]]:
        """List the provider's currently popular videos."""
        candidates = self.provider.popular(SearchConstraints(per_page=per_page))
        return [candidate.to_dict() for candidate in candidates]

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs; optionally wait for running ones to finish."""
        self.logger.info("JobOrchestrator shutting down", wait=wait)
        self._executor.shutdown(wait=wait)

    # ---------------------------
    # Processing
    # ---------------------------

    def process_job(self, job_id: str, scenes: Sequence[SceneRequest], job_settings: AssemblySettings) -> None:
        """Run one job from search to a terminal state.

        Failures of any stage are recorded on the job; this method only
        raises if the failure itself cannot be recorded.
        """
        self.logger.info("Processing job", job_id=job_id)
        try:
            self._update(job_id, status=JobStatusEnum.SEARCHING, message="Searching for videos...")

            def on_scene_searched(done: int, total: int) -> None:
                self._update(
                    job_id,
                    progress=round(done / total * SEARCH_SPAN),
                    message=f"Searched {done}/{total} scenes",
                )

            scene_results = self.scene_pipeline.search_scenes(scenes, job_settings, on_scene_searched)
            scene_errors = [f"Scene {result.index + 1}: {result.error}" for result in scene_results if result.error]

            if not any(result.has_selection for result in scene_results):
                self._update(job_id, scene_errors=scene_errors)
                raise AssemblerError("No suitable videos found for any scene")

            self._update(
                job_id,
                status=JobStatusEnum.PROCESSING,
                progress=SEARCH_SPAN,
                message="Processing videos...",
                scene_errors=scene_errors,
            )

            def on_progress(percent: int, message: str) -> None:
                self._update(job_id, progress=percent, message=message)

            assembly = self.assembly_pipeline.assemble(job_id, scene_results, job_settings, on_progress)

            def complete(job: Job) -> None:
                job.status = JobStatusEnum.COMPLETED
                job.progress = 100
                job.message = "Video created successfully"
                job.result = assembly.output
                job.scene_errors = job.scene_errors + assembly.scene_errors

            self.registry.mutate(job_id, complete)
            self.logger.info("Job completed", job_id=job_id, output=assembly.output.filename)
        except Exception as exc:
            self.logger.error("Job failed", job_id=job_id, error=str(exc), error_type=type(exc).__name__, exc_info=True)
            self._fail(job_id, exc)

    def _on_job_done(self, job_id: str, future: Future) -> None:
        with self._futures_lock:
            self._futures.pop(job_id, None)
        if future.cancelled():
            exc: Optional[BaseException] = AssemblerError("Job was cancelled")
        else:
            exc = future.exception()
        if exc is None:
            return
        job = self.registry.get(job_id)
        if job is not None and not is_job_terminal(job.status):
            self.logger.error("Background task escaped with an error", job_id=job_id, error=str(exc))
            self._fail(job_id, exc)

    def _fail(self, job_id: str, exc: BaseException) -> None:
        def fail(job: Job) -> None:
            job.status = JobStatusEnum.FAILED
            job.message = "Video creation failed"
            job.error = str(exc) or type(exc).__name__
            job.error_type = type(exc).__name__
            job.result = None

        self.registry.mutate(job_id, fail)

    def _update(self, job_id: str, **changes: Any) -> None:
        def apply(job: Job) -> None:
            for name, value in changes.items():
                setattr(job, name, value)

        self.registry.mutate(job_id, apply)

    # ---------------------------
    # Validation
    # ---------------------------

    def _validate(self, scenes: Any, options: Any):
        if not isinstance(scenes, list) or not scenes:
            raise ValidationError("Scenes array is required and must not be empty")

        scene_requests = []
        for index, scene in enumerate(scenes):
            try:
                scene_requests.append(SceneRequest.from_dict(scene))
            except ValueError as exc:
                raise ValidationError(f"Scene {index + 1}: {exc}") from exc

        try:
            job_settings = AssemblySettings.from_options(options, self.settings)
        except ValueError as exc:
            raise ValidationError(f"Invalid settings: {exc}") from exc

        if job_settings.has_transition and len(scene_requests) > 1:
            minimum = self.settings.transition_duration
            for index, scene in enumerate(scene_requests):
                if scene.effective_duration(job_settings.duration) <= minimum:
                    raise ValidationError(
                        f"Scene {index + 1}: duration must be longer than the {minimum}s transition"
                    )

        return scene_requests, job_settings
