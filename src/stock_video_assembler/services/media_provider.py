"""Stock video search and download through the Pexels video API."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import get_settings
from ..errors import ProviderError
from ..logging_config import LoggerMixin
from ..models import VideoCandidate, VideoFile

_CHUNK_SIZE = 1024 * 256


def _content_length(headers) -> int:
    """Declared body size, or 0 when the header is missing or malformed."""
    try:
        return max(0, int(headers.get("Content-Length") or 0))
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class SearchConstraints:
    """Filters sent with a provider search."""
    per_page: int = 15
    page: int = 1
    min_width: int = 1920
    min_height: int = 1080
    min_duration: int = 5
    max_duration: int = 60
    orientation: str = "landscape"

    def to_params(self) -> Dict[str, Any]:
        return {
            "per_page": self.per_page,
            "page": self.page,
            "min_width": self.min_width,
            "min_height": self.min_height,
            "min_duration": self.min_duration,
            "max_duration": self.max_duration,
            "orientation": self.orientation,
        }


def select_rendition(video_files: List[Dict[str, Any]], min_width: int = 1920, min_height: int = 1080) -> Optional[Dict[str, Any]]:
    """Pick the rendition to download for a video.

    Prefers the first ``hd`` rendition at or above the minimum resolution and
    falls back to the rendition with the largest pixel area.
    """
    files = [f for f in video_files if isinstance(f, dict) and f.get("link")]
    if not files:
        return None

    for item in files:
        if (
            item.get("quality") == "hd"
            and (item.get("width") or 0) >= min_width
            and (item.get("height") or 0) >= min_height
        ):
            return item

    best = files[0]
    for item in files[1:]:
        if (item.get("width") or 0) * (item.get("height") or 0) > (best.get("width") or 0) * (best.get("height") or 0):
            best = item
    return best


def parse_candidate(video: Dict[str, Any], min_width: int = 1920, min_height: int = 1080) -> Optional[VideoCandidate]:
    """Convert a raw Pexels video object into a candidate, or None if it has no usable rendition."""
    rendition = select_rendition(video.get("video_files") or [], min_width, min_height)
    if rendition is None:
        return None

    user = video.get("user") if isinstance(video.get("user"), dict) else {}
    tags = video.get("tags") if isinstance(video.get("tags"), list) else []
    return VideoCandidate(
        video_id=video.get("id"),
        width=video.get("width") or 0,
        height=video.get("height") or 0,
        duration=float(video.get("duration") or 0),
        url=video.get("url"),
        image=video.get("image"),
        video_file=VideoFile(
            file_id=rendition.get("id"),
            quality=rendition.get("quality"),
            file_type=rendition.get("file_type"),
            width=rendition.get("width") or 0,
            height=rendition.get("height") or 0,
            link=rendition["link"],
        ),
        user_name=user.get("name"),
        user_url=user.get("url"),
        tags=tuple(str(tag) for tag in tags),
    )


class PexelsVideoProvider(LoggerMixin):
    """Search stock clips by text and download a chosen rendition."""

    def __init__(self, settings=None, session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.base_url = str(getattr(self.settings, "pexels_base_url", "https://api.pexels.com/videos")).rstrip("/")
        self.timeout = int(getattr(self.settings, "provider_timeout", 30))
        self.download_timeout = int(getattr(self.settings, "download_timeout", 300))

        if session is None:
            retries = Retry(
                total=3,
                connect=3,
                read=2,
                status=2,
                backoff_factor=0.5,
                status_forcelist=(500, 502, 503, 504),
                allowed_methods=frozenset(["GET"]),
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retries)
            session = requests.Session()
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session

    # ---------------------------
    # Search
    # ---------------------------

    def search(self, query: str, constraints: Optional[SearchConstraints] = None) -> List[VideoCandidate]:
        """
        Search stock videos matching a text query.

        Args:
            query: Natural language search text
            constraints: Resolution, duration and orientation filters

        Returns:
            Candidates in provider ranking order

        Raises:
            ProviderError: Missing API key, rate limiting, or transport failure
        """
        constraints = constraints or SearchConstraints()
        params = {"query": query, **constraints.to_params()}
        self.logger.info("Searching videos", query=query, **constraints.to_params())

        payload = self._get_json("/search", params, context=f'search "{query}"')
        candidates = self._parse_videos(payload, constraints)

        self.logger.info("Videos found", query=query, count=len(candidates))
        return candidates

    def popular(self, constraints: Optional[SearchConstraints] = None) -> List[VideoCandidate]:
        """List currently popular videos under the given constraints."""
        constraints = constraints or SearchConstraints()
        params = {
            "per_page": constraints.per_page,
            "page": constraints.page,
            "min_width": constraints.min_width,
            "min_height": constraints.min_height,
            "min_duration": constraints.min_duration,
        }
        payload = self._get_json("/popular", params, context="popular videos")
        candidates = self._parse_videos(payload, constraints)
        self.logger.info("Popular videos fetched", count=len(candidates))
        return candidates

    def check_api_usage(self) -> Dict[str, Any]:
        """Probe the API with a minimal search and report rate-limit headers."""
        try:
            response = self.session.get(
                f"{self.base_url}/search",
                params={"query": "test", "per_page": 1},
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except (ProviderError, requests.RequestException) as exc:
            return {"status": "error", "message": str(exc)}

        return {
            "status": "active",
            "rate_limit": response.headers.get("X-Ratelimit-Limit"),
            "remaining": response.headers.get("X-Ratelimit-Remaining"),
            "reset": response.headers.get("X-Ratelimit-Reset"),
        }

    # ---------------------------
    # Fetch
    # ---------------------------

    def fetch(self, locator: str, destination: Path) -> Path:
        """
        Download a rendition to a local file.

        Args:
            locator: Rendition download URL
            destination: Target file path (parent directories are created)

        Returns:
            Path to the downloaded file

        Raises:
            ProviderError: If the download fails; no partial file is left behind
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        self.logger.info("Downloading video", url=locator, destination=str(destination))

        try:
            with self.session.get(
                locator,
                stream=True,
                timeout=self.download_timeout,
                headers={"User-Agent": self.settings.provider_user_agent},
            ) as response:
                response.raise_for_status()
                total = _content_length(response.headers)
                written = 0
                next_mark = 25
                with open(destination, "wb") as handle:
                    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                        if not chunk:
                            continue
                        handle.write(chunk)
                        written += len(chunk)
                        if total and written * 100 // total >= next_mark:
                            self.logger.debug("Download progress", file=destination.name, percent=next_mark)
                            next_mark += 25
        except (requests.RequestException, OSError) as exc:
            destination.unlink(missing_ok=True)
            self.logger.error("Video download failed", url=locator, error=str(exc))
            raise ProviderError(f"Video download failed: {exc}") from exc

        self.logger.info("Video downloaded", file=destination.name, size_bytes=written)
        return destination

    # ---------------------------
    # Internal
    # ---------------------------

    def _headers(self) -> Dict[str, str]:
        api_key = getattr(self.settings, "pexels_api_key", None)
        if not api_key:
            raise ProviderError("PEXELS_API_KEY is not configured")
        return {"Authorization": api_key, "Content-Type": "application/json"}

    def _get_json(self, path: str, params: Dict[str, Any], context: str) -> Dict[str, Any]:
        headers = self._headers()
        try:
            response = self.session.get(f"{self.base_url}{path}", params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            self.logger.error("Provider request failed", context=context, error=str(exc))
            raise ProviderError(f"Video {context} failed: {exc}") from exc

        if response.status_code == 429:
            self.logger.warning("Provider rate limit exceeded", context=context)
            raise ProviderError("API rate limit exceeded, please wait", status_code=429)
        if response.status_code >= 400:
            self.logger.error("Provider returned an error", context=context, status=response.status_code)
            raise ProviderError(
                f"Video {context} failed: HTTP {response.status_code}", status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(f"Video {context} returned invalid JSON") from exc
        return payload if isinstance(payload, dict) else {}

    def _parse_videos(self, payload: Dict[str, Any], constraints: SearchConstraints) -> List[VideoCandidate]:
        videos = payload.get("videos")
        if not isinstance(videos, list):
            return []
        candidates: List[VideoCandidate] = []
        for video in videos:
            if not isinstance(video, dict):
                continue
            try:
                candidate = parse_candidate(video, constraints.min_width, constraints.min_height)
            except (TypeError, ValueError, KeyError) as exc:
                self.logger.warning("Skipping malformed video entry", video_id=video.get("id"), error=str(exc))
                continue
            if candidate is not None:
                candidates.append(candidate)
        return candidates
