"""
Stock Video Assembler

Turns a list of text scene prompts into one stitched video built from
stock footage, with transitions between scenes.
"""

__version__ = "0.1.0"

from .models import (
    AssemblySettings,
    Job,
    JobResult,
    JobStatusEnum,
    SceneRequest,
    SceneResult,
    VideoCandidate,
)

__all__ = [
    "AssemblySettings",
    "Job",
    "JobResult",
    "JobStatusEnum",
    "SceneRequest",
    "SceneResult",
    "VideoCandidate",
]
