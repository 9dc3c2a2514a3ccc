"""
Assembly of searched scenes into one output video.

Phases: fetch selected clips, normalize them, plan and merge, describe the
output, then remove every staged artifact whatever the outcome.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..config import get_settings
from ..errors import AssemblerError, ProviderError
from ..logging_config import LoggerMixin
from ..models import AssemblySettings, JobResult, NormalizedClip, SceneResult
from ..utils.file_utils import ensure_directory, format_file_size, get_file_size, remove_files
from .transition_plan import TransitionPlan, build_transition_plan

ProgressCallback = Callable[[int, str], None]

FETCH_START = 40
MERGE_START = 70


@dataclass
class AssemblyResult:
    """Output of a finished assembly plus the scenes dropped on the way."""
    output: JobResult
    clips: Tuple[NormalizedClip, ...]
    plan: TransitionPlan
    dropped_scenes: List[int] = field(default_factory=list)
    scene_errors: List[str] = field(default_factory=list)


class _UnitProgress:
    """Maps completed fetch/normalize units onto the 40-70 progress span."""

    def __init__(self, total_units: int, on_progress: Optional[ProgressCallback]):
        self.total = max(1, total_units)
        self.done = 0
        self.on_progress = on_progress
        self._lock = threading.Lock()

    def complete(self, units: int, message: str) -> None:
        with self._lock:
            self.done = min(self.total, self.done + units)
            percent = FETCH_START + round(self.done / self.total * (MERGE_START - FETCH_START))
            if self.on_progress:
                self.on_progress(percent, message)


class AssemblyPipeline(LoggerMixin):
    """Turns scene search results into a merged video file."""

    def __init__(self, provider, transcoder, settings=None):
        self.provider = provider
        self.transcoder = transcoder
        self.settings = settings or get_settings()

    def assemble(
        self,
        job_id: str,
        scene_results: Sequence[SceneResult],
        job_settings: AssemblySettings,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AssemblyResult:
        """
        Fetch, normalize and merge the selected clip of every scene.

        Args:
            job_id: Job identifier used to name staged files
            scene_results: Search results in timeline order
            job_settings: Output resolution, fps, duration and transition
            on_progress: Called with (percent, message)

        Returns:
            AssemblyResult describing the output file

        Raises:
            AssemblerError: When no clip could be fetched
            TranscodeFailure: When any clip fails to normalize
            TransitionPlanError: When clip durations cannot hold the transition
            MergeFailure: When the final merge fails
        """
        selected = [result for result in scene_results if result.has_selection]
        if not selected:
            raise AssemblerError("No video clips were selected for any scene")

        temp_dir = ensure_directory(self.settings.temp_dir)
        output_dir = ensure_directory(self.settings.output_dir)
        staged: List[Path] = []
        output_path: Optional[Path] = None
        succeeded = False
        progress = _UnitProgress(2 * len(selected), on_progress)
        durations = {result.index: result.scene.effective_duration(job_settings.duration) for result in selected}
        dropped: List[int] = []
        errors: List[str] = []

        self.logger.info("Assembly started", job_id=job_id, scenes=len(scene_results), selected=len(selected))
        try:
            if on_progress:
                on_progress(FETCH_START, "Downloading videos")
            fetched = self._fetch_all(job_id, selected, temp_dir, staged, progress, dropped, errors)
            if not fetched:
                raise AssemblerError("No video clips could be downloaded")

            clips = self._normalize_all(job_id, fetched, durations, job_settings, temp_dir, staged, progress)

            plan = build_transition_plan(
                [clip.duration for clip in clips],
                job_settings.transition,
                self.settings.transition_duration,
            )
            self.logger.info("Transition plan built", job_id=job_id, **plan.to_dict())

            filename = f"video_{job_id}_{int(time.time() * 1000)}.mp4"
            output_path = output_dir / filename
            if on_progress:
                on_progress(MERGE_START, "Merging videos")

            def merge_progress(percent: int) -> None:
                if on_progress:
                    on_progress(MERGE_START + round(percent * 0.3), f"Merging videos {percent}%")

            self.transcoder.merge(
                [clip.path for clip in clips],
                plan,
                output_path,
                fps=job_settings.fps,
                on_progress=merge_progress,
            )

            duration = self.transcoder.probe(output_path)
            size_bytes = get_file_size(output_path)
            output = JobResult(
                filename=filename,
                path=str(output_path),
                download_url=f"{self.settings.output_route_prefix.rstrip('/')}/{filename}",
                duration=round(duration) if duration is not None else None,
                file_size_bytes=size_bytes,
                file_size=format_file_size(size_bytes),
                scenes=len(scene_results),
                clips=len(clips),
            )
            succeeded = True
            self.logger.info("Assembly finished", job_id=job_id, output=filename, size=output.file_size)
            return AssemblyResult(
                output=output,
                clips=tuple(clips),
                plan=plan,
                dropped_scenes=dropped,
                scene_errors=errors,
            )
        finally:
            removed = remove_files(staged)
            if not succeeded and output_path is not None:
                removed += remove_files([output_path])
            self.logger.info("Staged files cleaned up", job_id=job_id, removed=removed)

    def _fetch_all(
        self,
        job_id: str,
        selected: Sequence[SceneResult],
        temp_dir: Path,
        staged: List[Path],
        progress: _UnitProgress,
        dropped: List[int],
        errors: List[str],
    ) -> Dict[int, Path]:
        """Download every selected clip; a failed download drops its scene."""
        fetched: Dict[int, Path] = {}
        destinations = {
            result.index: temp_dir / f"scene_{result.index + 1}_{job_id}.mp4" for result in selected
        }
        staged.extend(destinations.values())
        workers = max(1, min(self.settings.fetch_concurrency, len(selected)))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="clip-fetch") as pool:
            futures = {
                pool.submit(self.provider.fetch, result.selected.locator, destinations[result.index]): result
                for result in selected
            }
            for future in as_completed(futures):
                result = futures[future]
                try:
                    fetched[result.index] = Path(future.result())
                except Exception as exc:
                    if isinstance(exc, ProviderError):
                        self.logger.warning("Dropping scene after failed download", scene=result.index, error=str(exc))
                    else:
                        self.logger.error(
                            "Dropping scene after unexpected download error", scene=result.index, error=str(exc)
                        )
                    dropped.append(result.index)
                    errors.append(f"Scene {result.index + 1}: {exc}")
                    # Dropped scenes also complete their normalize unit.
                    progress.complete(2, f"Skipped scene {result.index + 1}")
                    continue
                progress.complete(1, f"Downloaded clip for scene {result.index + 1}")

        dropped.sort()
        return dict(sorted(fetched.items()))

    def _normalize_all(
        self,
        job_id: str,
        fetched: Dict[int, Path],
        durations: Dict[int, float],
        job_settings: AssemblySettings,
        temp_dir: Path,
        staged: List[Path],
        progress: _UnitProgress,
    ) -> List[NormalizedClip]:
        """Normalize every fetched clip; all normalizations are drained before a failure is raised."""
        destinations = {index: temp_dir / f"normalized_{index}_{job_id}.mp4" for index in fetched}
        staged.extend(destinations.values())
        workers = max(1, min(self.settings.normalize_concurrency, len(fetched)))

        clips: Dict[int, NormalizedClip] = {}
        failures: Dict[int, BaseException] = {}
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="clip-normalize") as pool:
            futures = {
                pool.submit(
                    self.transcoder.normalize,
                    source,
                    job_settings,
                    durations[index],
                    destinations[index],
                ): index
                for index, source in fetched.items()
            }
            for future in as_completed(futures):
                index = futures[future]
                try:
                    path = future.result()
                except Exception as exc:
                    self.logger.error("Clip normalization failed", job_id=job_id, scene=index, error=str(exc))
                    failures[index] = exc
                    progress.complete(1, f"Normalization failed for scene {index + 1}")
                    continue
                clips[index] = NormalizedClip(scene_index=index, path=Path(path), duration=durations[index])
                progress.complete(1, f"Normalized clip for scene {index + 1}")

        if failures:
            raise failures[min(failures)]
        return [clips[index] for index in sorted(clips)]
