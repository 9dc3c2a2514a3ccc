"""
Service modules for the stock video assembler.
"""

from .media_provider import PexelsVideoProvider, SearchConstraints
from .transcoder import FfmpegTranscoder
from .transition_plan import TransitionPlan, PlanKind, build_transition_plan
from .scene_pipeline import ScenePipeline
from .assembly_pipeline import AssemblyPipeline, AssemblyResult
from .job_registry import JobRegistry
from .job_orchestrator import JobOrchestrator

__all__ = [
    "PexelsVideoProvider",
    "SearchConstraints",
    "FfmpegTranscoder",
    "TransitionPlan",
    "PlanKind",
    "build_transition_plan",
    "ScenePipeline",
    "AssemblyPipeline",
    "AssemblyResult",
    "JobRegistry",
    "JobOrchestrator",
]
