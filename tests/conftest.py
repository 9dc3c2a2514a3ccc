"""
Pytest configuration and fixtures for the stock video assembler tests.
"""

import shutil
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional

import pytest

from stock_video_assembler.config import Settings
from stock_video_assembler.errors import ProviderError, TranscodeFailure
from stock_video_assembler.models import AssemblySettings, SceneRequest, VideoCandidate, VideoFile


def build_candidate(video_id: int, width: int = 1920, height: int = 1080, duration: float = 12.0) -> VideoCandidate:
    return VideoCandidate(
        video_id=video_id,
        width=width,
        height=height,
        duration=duration,
        url=f"https://www.pexels.com/video/{video_id}/",
        image=f"https://images.pexels.com/videos/{video_id}/preview.jpg",
        video_file=VideoFile(
            file_id=video_id * 10,
            quality="hd",
            file_type="video/mp4",
            width=width,
            height=height,
            link=f"https://player.vimeo.com/external/{video_id}.hd.mp4",
        ),
    )


class FakeProvider:
    """Provider double: canned search results keyed by query, file writes on fetch."""

    def __init__(self, results: Optional[Dict[str, object]] = None, default: Optional[List[VideoCandidate]] = None):
        self.results = results or {}
        self.default = default
        self.search_calls: List[tuple] = []
        self.fetch_calls: List[tuple] = []
        self.failing_locators = set()
        self.fetch_errors: Dict[str, Exception] = {}
        self.popular_results: List[VideoCandidate] = [build_candidate(900)]
        self._lock = threading.Lock()

    def search(self, query, constraints=None):
        with self._lock:
            self.search_calls.append((query, constraints))
            call_number = len(self.search_calls)
        outcome = self.results.get(query, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return [build_candidate(call_number)]
        return list(outcome)

    def fetch(self, locator, destination):
        with self._lock:
            self.fetch_calls.append((locator, destination))
        if locator in self.fetch_errors:
            raise self.fetch_errors[locator]
        if locator in self.failing_locators:
            raise ProviderError(f"download failed for {locator}")
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"fetched " + locator.encode())
        return destination

    def popular(self, constraints=None):
        return list(self.popular_results)

    def check_api_usage(self):
        return {"status": "active", "rate_limit": "200", "remaining": "199", "reset": "0"}


class FakeTranscoder:
    """Transcoder double that writes small files instead of running ffmpeg."""

    def __init__(self):
        self.normalize_calls: List[tuple] = []
        self.merge_calls: List[tuple] = []
        self.failing_sources = set()
        self.merge_error: Optional[Exception] = None
        self.probe_result: Optional[float] = None
        self._lock = threading.Lock()

    def normalize(self, source, target, duration, destination, on_progress=None):
        with self._lock:
            self.normalize_calls.append((Path(source), target, duration, Path(destination)))
        if any(token in Path(source).name for token in self.failing_sources):
            raise TranscodeFailure(f"cannot normalize {Path(source).name}")
        Path(destination).write_bytes(b"normalized")
        return Path(destination)

    def merge(self, clips, plan, destination, fps=None, on_progress=None):
        self.merge_calls.append((list(clips), plan, Path(destination), fps))
        Path(destination).write_bytes(b"x" * 2048)
        if on_progress:
            on_progress(50)
            on_progress(100)
        if self.merge_error is not None:
            raise self.merge_error
        return Path(destination)

    def probe(self, file_path):
        if self.probe_result is not None:
            return self.probe_result
        return self.merge_calls[-1][1].output_duration if self.merge_calls else None


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """Create test settings with temporary directories."""
    settings = Settings(
        temp_dir=temp_dir / "temp",
        output_dir=temp_dir / "output",
        logs_dir=temp_dir / "logs",
        pexels_api_key="test-key",
        max_concurrent_jobs=2,
        log_level="DEBUG",
    )

    settings.temp_dir.mkdir(parents=True, exist_ok=True)
    settings.output_dir.mkdir(parents=True, exist_ok=True)
    settings.logs_dir.mkdir(parents=True, exist_ok=True)

    return settings


@pytest.fixture
def make_candidate() -> Callable[..., VideoCandidate]:
    return build_candidate


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def fake_transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def job_settings() -> AssemblySettings:
    return AssemblySettings(width=1280, height=720, fps=24, duration=5.0, transition="fade")


@pytest.fixture
def three_scenes() -> List[SceneRequest]:
    return [
        SceneRequest(prompt="city skyline at dusk"),
        SceneRequest(prompt="ocean waves"),
        SceneRequest(prompt="forest trail"),
    ]


@pytest.fixture
def mock_video_file(temp_dir: Path) -> Path:
    """Create a mock video file for testing."""
    video_file = temp_dir / "test_video.mp4"
    video_file.write_bytes(b"fake video content")
    return video_file

