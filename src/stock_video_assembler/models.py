"""
Core data models for the stock video assembler.
"""

import math
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .logging_config import get_logger

logger = get_logger(__name__)


NO_TRANSITION = "none"

# Transition style accepted from callers -> ffmpeg xfade transition name
TRANSITION_KINDS: Dict[str, str] = {
    "fade": "fade",
    "slide": "slideleft",
    "dissolve": "dissolve",
    "wipe": "wipeleft",
}

TRANSITION_STYLES: Tuple[str, ...] = (NO_TRANSITION,) + tuple(TRANSITION_KINDS)

_RESOLUTION_RE = re.compile(r"^\s*(\d{2,5})\s*[xX]\s*(\d{2,5})\s*$")
_HEX_COLOR_RE = re.compile(r"^(#|0x)?[0-9a-fA-F]{6}([0-9a-fA-F]{2})?$")
_NAMED_COLOR_RE = re.compile(r"^[A-Za-z]+$")


class JobStatusEnum(Enum):
    """Enumeration of job lifecycle statuses."""
    CREATED = "created"
    SEARCHING = "searching"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def parse_resolution(value: str) -> Tuple[int, int]:
    """Parse a ``WxH`` string into a (width, height) tuple."""
    match = _RESOLUTION_RE.match(str(value))
    if not match:
        raise ValueError(f"Resolution must look like 1920x1080, got {value!r}")
    width, height = int(match.group(1)), int(match.group(2))
    if width % 2 or height % 2:
        raise ValueError("Resolution width and height must be even numbers")
    return width, height


@dataclass(frozen=True)
class SceneRequest:
    """One input scene: a search prompt plus optional per-scene overrides."""
    prompt: str
    duration: Optional[float] = None  # seconds, overrides the job duration

    def __post_init__(self):
        """Validate data after initialization."""
        if not isinstance(self.prompt, str) or not self.prompt.strip():
            raise ValueError("Scene prompt must be a non-empty string")
        if self.duration is not None:
            if isinstance(self.duration, bool) or not isinstance(self.duration, (int, float)):
                raise ValueError("Scene duration must be a number")
            if not math.isfinite(self.duration) or self.duration <= 0:
                raise ValueError("Scene duration must be a positive, finite number of seconds")

    def effective_duration(self, default: float) -> float:
        """Get the scene's timeline length given the job default."""
        return float(self.duration) if self.duration is not None else float(default)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> "SceneRequest":
        """Create instance from a submitted scene object."""
        if not isinstance(data, dict):
            raise ValueError("Scene must be an object with a prompt")
        return cls(prompt=data.get("prompt"), duration=data.get("duration"))


@dataclass(frozen=True)
class AssemblySettings:
    """Output settings shared read-only by every stage of a job."""
    width: int = 1920
    height: int = 1080
    fps: int = 30
    duration: float = 5.0  # per-scene seconds
    transition: str = "fade"
    background_color: str = "black"

    def __post_init__(self):
        """Validate data after initialization."""
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Width and height must be positive")
        if isinstance(self.fps, bool) or not isinstance(self.fps, int) or not 1 <= self.fps <= 120:
            raise ValueError("FPS must be an integer between 1 and 120")
        if (
            isinstance(self.duration, bool)
            or not isinstance(self.duration, (int, float))
            or not math.isfinite(self.duration)
            or self.duration <= 0
        ):
            raise ValueError("Duration must be a positive number of seconds")
        if self.transition not in TRANSITION_STYLES:
            raise ValueError(
                f"Unknown transition {self.transition!r}; expected one of {', '.join(TRANSITION_STYLES)}"
            )
        color = str(self.background_color)
        if not (_HEX_COLOR_RE.match(color) or _NAMED_COLOR_RE.match(color)):
            raise ValueError(f"Invalid background color: {self.background_color!r}")

    @property
    def resolution(self) -> str:
        """Get resolution as ``WxH``."""
        return f"{self.width}x{self.height}"

    @property
    def has_transition(self) -> bool:
        return self.transition != NO_TRANSITION

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "duration": self.duration,
            "resolution": self.resolution,
            "fps": self.fps,
            "transition": self.transition,
            "background_color": self.background_color,
        }

    @classmethod
    def from_options(cls, options: Optional[Dict[str, Any]], defaults: Any = None) -> "AssemblySettings":
        """Build settings from a submitted options object.

        Missing options fall back to ``defaults`` (an application Settings
        object) or to the dataclass defaults.
        """
        if options is None:
            options = {}
        if not isinstance(options, dict):
            raise ValueError("Settings must be an object")

        def default(name: str, fallback: Any) -> Any:
            return getattr(defaults, name, fallback) if defaults is not None else fallback

        resolution = options.get("resolution") or default("default_resolution", "1920x1080")
        width, height = parse_resolution(resolution)

        duration = options.get("duration")
        if duration is None:
            duration = default("default_duration", 5.0)

        fps = options.get("fps")
        if fps is None:
            fps = default("default_fps", 30)
        if isinstance(fps, float) and fps.is_integer():
            fps = int(fps)

        transition = options.get("transition")
        if transition is None:
            transition = default("default_transition", "fade")
        transition = str(transition).strip().lower()

        color = options.get("backgroundColor", options.get("background_color"))
        if color is None:
            color = default("default_background_color", "black")

        resolved = cls(
            width=width,
            height=height,
            fps=fps,
            duration=duration,
            transition=transition,
            background_color=str(color),
        )
        logger.debug("Assembly settings resolved", **resolved.to_dict())
        return resolved


@dataclass(frozen=True)
class VideoFile:
    """A single downloadable rendition of a stock video."""
    file_id: Optional[int]
    quality: Optional[str]
    file_type: Optional[str]
    width: int
    height: int
    link: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass(frozen=True)
class VideoCandidate:
    """A provider-returned stock clip matching a scene query."""
    video_id: int
    width: int
    height: int
    duration: float
    url: Optional[str]
    image: Optional[str]
    video_file: VideoFile
    user_name: Optional[str] = None
    user_url: Optional[str] = None
    tags: Tuple[str, ...] = ()

    @property
    def locator(self) -> str:
        """Get the fetch locator for the selected rendition."""
        return self.video_file.link

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = asdict(self)
        data["tags"] = list(self.tags)
        return data


@dataclass(frozen=True)
class SceneResult:
    """Outcome of searching stock footage for one scene."""
    index: int
    scene: SceneRequest
    candidates: Tuple[VideoCandidate, ...] = ()
    selected: Optional[VideoCandidate] = None
    used_fallback: bool = False
    error: Optional[str] = None

    @property
    def has_selection(self) -> bool:
        return self.selected is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "index": self.index,
            "scene": self.scene.to_dict(),
            "candidates": [candidate.to_dict() for candidate in self.candidates],
            "selected": self.selected.to_dict() if self.selected else None,
            "used_fallback": self.used_fallback,
            "error": self.error,
        }


@dataclass(frozen=True)
class NormalizedClip:
    """A local clip conformed to the job's resolution, fps and duration."""
    scene_index: int
    path: Path
    duration: float


@dataclass(frozen=True)
class JobResult:
    """Output descriptor recorded on a completed job."""
    filename: str
    path: str
    download_url: str
    duration: Optional[int]  # seconds, None when the probe failed
    file_size_bytes: int
    file_size: str
    scenes: int
    clips: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass
class Job:
    """Complete job record tracked from submission to a terminal state."""
    job_id: str
    scenes: int
    settings: AssemblySettings
    status: JobStatusEnum = JobStatusEnum.CREATED
    progress: int = 0  # 0 to 100
    message: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    result: Optional[JobResult] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    scene_errors: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.job_id:
            raise ValueError("Job ID cannot be empty")
        if not 0 <= self.progress <= 100:
            raise ValueError("Progress must be between 0 and 100")
        if self.scenes < 1:
            raise ValueError("Job must have at least one scene")

    @property
    def is_completed(self) -> bool:
        return self.status == JobStatusEnum.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == JobStatusEnum.FAILED

    @property
    def finished_at(self) -> Optional[datetime]:
        return self.completed_at or self.failed_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "progress": self.progress,
            "message": self.message,
            "scenes": self.scenes,
            "settings": self.settings.to_dict(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "error_type": self.error_type,
            "scene_errors": list(self.scene_errors),
        }
