"""Per-scene stock footage search with a single fallback query."""

import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence

from ..config import get_settings
from ..errors import ProviderError
from ..logging_config import LoggerMixin
from ..models import AssemblySettings, SceneRequest, SceneResult
from .media_provider import SearchConstraints

SceneProgressCallback = Callable[[int, int], None]

MAX_SEARCH_DURATION = 60


class ScenePipeline(LoggerMixin):
    """Finds a stock clip for every scene of a job.

    Provider failures never abort the job: the scene is recorded with no
    selection and an error note, and later stages drop it.
    """

    def __init__(self, provider, settings=None):
        self.provider = provider
        self.settings = settings or get_settings()

    def constraints_for(self, scene: SceneRequest, job_settings: AssemblySettings, per_page: int) -> SearchConstraints:
        """Build search constraints so candidates are long enough for the scene.

        The resolution floor stays at the provider default (1920x1080) for every
        job; smaller or larger outputs are scaled during normalization.
        """
        min_duration = max(1, math.ceil(scene.effective_duration(job_settings.duration)))
        return SearchConstraints(
            per_page=per_page,
            min_duration=min_duration,
            max_duration=max(MAX_SEARCH_DURATION, min_duration),
        )

    def search_scene(self, index: int, scene: SceneRequest, job_settings: AssemblySettings) -> SceneResult:
        """Search one scene, falling back once to a generic query on zero results."""
        used_fallback = False
        try:
            candidates = self.provider.search(
                scene.prompt,
                self.constraints_for(scene, job_settings, self.settings.search_per_page),
            )
            if not candidates:
                self.logger.info("No results, using fallback query", scene=index, prompt=scene.prompt)
                used_fallback = True
                candidates = self.provider.search(
                    self.settings.fallback_query,
                    self.constraints_for(scene, job_settings, self.settings.fallback_per_page),
                )
        except ProviderError as exc:
            self.logger.warning("Scene search failed", scene=index, prompt=scene.prompt, error=str(exc))
            return SceneResult(index=index, scene=scene, used_fallback=used_fallback, error=str(exc))
        except Exception as exc:
            self.logger.error("Unexpected scene search error", scene=index, prompt=scene.prompt, error=str(exc))
            return SceneResult(index=index, scene=scene, used_fallback=used_fallback, error=f"Search failed: {exc}")

        retained = tuple(candidates[: self.settings.max_candidates])
        if not retained:
            self.logger.warning("No footage found for scene", scene=index, prompt=scene.prompt)
            return SceneResult(
                index=index,
                scene=scene,
                used_fallback=used_fallback,
                error=f'No videos found for "{scene.prompt}"',
            )

        return SceneResult(
            index=index,
            scene=scene,
            candidates=retained,
            selected=retained[0],
            used_fallback=used_fallback,
        )

    def search_scenes(
        self,
        scenes: Sequence[SceneRequest],
        job_settings: AssemblySettings,
        on_scene_searched: Optional[SceneProgressCallback] = None,
    ) -> List[SceneResult]:
        """
        Search every scene with bounded parallelism.

        Args:
            scenes: Scenes in timeline order
            job_settings: Job output settings (resolution, duration)
            on_scene_searched: Called with (scenes_done, total) after each search

        Returns:
            One SceneResult per scene, in input order
        """
        total = len(scenes)
        results: List[Optional[SceneResult]] = [None] * total
        workers = max(1, min(self.settings.search_concurrency, total))

        self.logger.info("Searching scenes", scenes=total, workers=workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scene-search") as pool:
            futures = {
                pool.submit(self.search_scene, index, scene, job_settings): index
                for index, scene in enumerate(scenes)
            }
            done = 0
            for future in as_completed(futures):
                index = futures[future]
                results[index] = future.result()
                done += 1
                if on_scene_searched:
                    on_scene_searched(done, total)

        found = sum(1 for result in results if result.has_selection)
        self.logger.info("Scene search finished", scenes=total, selected=found)
        return results
