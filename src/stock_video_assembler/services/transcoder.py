"""
FFmpeg transcode adapter: clip normalization, merging and probing.
"""

import re
import shutil
import subprocess
import threading
from collections import deque
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Type

from ..config import get_settings
from ..errors import AssemblerError, MergeFailure, TranscodeFailure
from ..logging_config import LoggerMixin
from ..models import AssemblySettings
from .transition_plan import ClipInput, PlanKind, PlanInput, TransitionPlan

ProgressCallback = Callable[[int], None]

_OUT_TIME_RE = re.compile(r"^out_time=(\d+):(\d{2}):(\d{2}(?:\.\d+)?)$")
_ERROR_TAIL_LINES = 20


def _num(value: float) -> str:
    """Format seconds for filter arguments (``4.5``, ``9``)."""
    return f"{float(value):.3f}".rstrip("0").rstrip(".")


def parse_out_time(line: str) -> Optional[float]:
    """Parse an ``out_time=HH:MM:SS.micro`` progress line into seconds."""
    match = _OUT_TIME_RE.match(line.strip())
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


class FfmpegTranscoder(LoggerMixin):
    """Runs ffmpeg and ffprobe for every media operation of a job."""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()
        self.ffmpeg = self.settings.ffmpeg_binary
        self.ffprobe = self.settings.ffprobe_binary

    # ---------------------------
    # Normalize
    # ---------------------------

    def normalize(
        self,
        source: Path,
        target: AssemblySettings,
        duration: float,
        destination: Path,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Path:
        """
        Conform a fetched clip to the job's output format.

        Scales into the target frame keeping the aspect ratio, pads with the
        background color, extends short clips by cloning the last frame and
        trims to ``duration``. Sources without audio get a silent track.

        Returns:
            Path to the normalized clip

        Raises:
            TranscodeFailure: If ffmpeg fails or times out
        """
        source = Path(source)
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        width, height = target.width, target.height
        sample_rate = self.settings.audio_sample_rate

        self.logger.info(
            "Normalizing clip",
            source=source.name,
            resolution=target.resolution,
            fps=target.fps,
            duration=duration,
        )

        video_filter = ",".join([
            f"scale={width}:{height}:force_original_aspect_ratio=decrease",
            f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:color={target.background_color}",
            "setsar=1",
            f"fps={target.fps}",
            f"tpad=stop_mode=clone:stop_duration={_num(duration)}",
        ])

        command = [self.ffmpeg, "-y", "-hide_banner", "-i", str(source)]
        if self.has_audio(source):
            audio_map = "0:a:0"
            command += ["-af", f"aresample={sample_rate},apad"]
        else:
            audio_map = "1:a:0"
            command += ["-f", "lavfi", "-i", f"anullsrc=channel_layout=stereo:sample_rate={sample_rate}"]

        command += [
            "-vf", video_filter,
            "-map", "0:v:0",
            "-map", audio_map,
            "-t", _num(duration),
            "-c:v", self.settings.video_codec,
            "-preset", self.settings.encoder_preset,
            "-crf", str(self.settings.crf),
            "-pix_fmt", "yuv420p",
            "-r", str(target.fps),
            "-c:a", self.settings.audio_codec,
            "-ar", str(sample_rate),
            "-ac", "2",
            "-movflags", "+faststart",
        ]
        command += self._progress_args()
        command.append(str(destination))

        self._run_ffmpeg(command, duration, on_progress, TranscodeFailure, f"normalize {source.name}")

        if not destination.exists():
            raise TranscodeFailure(f"Normalization produced no output for {source.name}")
        self.logger.info("Clip normalized", output=destination.name)
        return destination

    # ---------------------------
    # Merge
    # ---------------------------

    def merge(
        self,
        clips: Sequence[Path],
        plan: TransitionPlan,
        destination: Path,
        fps: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Path:
        """
        Combine normalized clips into the final output according to a plan.

        Raises:
            MergeFailure: If the inputs do not match the plan or ffmpeg fails
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        if len(clips) != plan.clip_count:
            raise MergeFailure(f"Plan expects {plan.clip_count} clips, got {len(clips)}")

        self.logger.info("Merging clips", clips=len(clips), plan=plan.kind.value, style=plan.style)

        if plan.is_passthrough:
            try:
                shutil.copyfile(clips[0], destination)
            except OSError as exc:
                raise MergeFailure(f"Failed to copy single clip: {exc}") from exc
            if on_progress:
                on_progress(100)
            self.logger.info("Single clip copied", output=destination.name)
            return destination

        filter_text, video_label, audio_label = self.filter_graph(plan)

        command = [self.ffmpeg, "-y", "-hide_banner"]
        for clip in clips:
            command += ["-i", str(clip)]
        command += [
            "-filter_complex", filter_text,
            "-map", video_label,
            "-map", audio_label,
            "-c:v", self.settings.video_codec,
            "-preset", self.settings.encoder_preset,
            "-crf", str(self.settings.crf),
            "-pix_fmt", "yuv420p",
            "-c:a", self.settings.audio_codec,
            "-movflags", "+faststart",
        ]
        if fps:
            command += ["-r", str(fps)]
        command += self._progress_args()
        command.append(str(destination))

        self._run_ffmpeg(command, plan.output_duration, on_progress, MergeFailure, "merge")

        if not destination.exists():
            raise MergeFailure("Merge produced no output file")
        self.logger.info("Clips merged", output=destination.name, expected_duration=plan.output_duration)
        return destination

    def filter_graph(self, plan: TransitionPlan) -> Tuple[str, str, str]:
        """
        Serialize a plan into ffmpeg filter_complex syntax.

        Returns:
            Tuple of (filter text, final video label, final audio label)
        """
        if plan.kind == PlanKind.CONCAT and plan.concat is not None:
            pads = "".join(f"[{ref.index}:v][{ref.index}:a]" for ref in plan.concat.inputs)
            filter_text = f"{pads}concat=n={len(plan.concat.inputs)}:v=1:a=1[v][a]"
            return filter_text, "[v]", "[a]"

        if plan.kind == PlanKind.CHAIN and plan.nodes:
            parts: List[str] = []
            for node in plan.nodes:
                left_v, left_a = self._labels(node.left)
                right_v, right_a = self._labels(node.right)
                parts.append(
                    f"{left_v}{right_v}xfade=transition={node.kind}"
                    f":duration={_num(node.duration)}:offset={_num(node.offset)}[v{node.index}]"
                )
                parts.append(f"{left_a}{right_a}acrossfade=d={_num(node.duration)}[a{node.index}]")
            last = plan.terminal.index
            return ";".join(parts), f"[v{last}]", f"[a{last}]"

        raise MergeFailure(f"Plan of kind {plan.kind.value} has no filter graph")

    @staticmethod
    def _labels(ref: PlanInput) -> Tuple[str, str]:
        if isinstance(ref, ClipInput):
            return f"[{ref.index}:v]", f"[{ref.index}:a]"
        return f"[v{ref.index}]", f"[a{ref.index}]"

    # ---------------------------
    # Probe
    # ---------------------------

    def probe(self, file_path: Path) -> Optional[float]:
        """Get a media file's duration in seconds, or None if probing fails."""
        command = [
            self.ffprobe,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(file_path),
        ]
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.settings.probe_timeout,
            )
            return float(result.stdout.strip())
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError, ValueError) as exc:
            self.logger.warning("Failed to probe duration", file=str(file_path), error=str(exc))
            return None

    def has_audio(self, file_path: Path) -> bool:
        """Check whether a media file carries at least one audio stream."""
        command = [
            self.ffprobe,
            "-v", "error",
            "-select_streams", "a",
            "-show_entries", "stream=index",
            "-of", "csv=p=0",
            str(file_path),
        ]
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.settings.probe_timeout,
            )
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
            self.logger.warning("Failed to probe audio streams", file=str(file_path), error=str(exc))
            return False
        return bool(result.stdout.strip())

    # ---------------------------
    # Process handling
    # ---------------------------

    @staticmethod
    def _progress_args() -> List[str]:
        return ["-progress", "pipe:1", "-nostats", "-loglevel", "error"]

    def _run_ffmpeg(
        self,
        command: List[str],
        expected_duration: float,
        on_progress: Optional[ProgressCallback],
        error_cls: Type[AssemblerError],
        operation: str,
    ) -> None:
        """
        Run ffmpeg, translating ``-progress`` output into percentages.

        The process is killed when it exceeds ``ffmpeg_timeout``.
        """
        timeout = self.settings.ffmpeg_timeout
        self.logger.debug("Running ffmpeg", operation=operation, command=" ".join(command))

        try:
            proc = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as exc:
            raise error_cls(f"ffmpeg {operation} could not start: {exc}") from exc

        timed_out = threading.Event()

        def kill() -> None:
            timed_out.set()
            proc.kill()

        timer = threading.Timer(timeout, kill)
        timer.daemon = True
        timer.start()

        tail = deque(maxlen=_ERROR_TAIL_LINES)
        last_percent = -1
        try:
            if proc.stdout:
                for line in proc.stdout:
                    line = line.strip()
                    if not line:
                        continue
                    if line == "progress=end":
                        percent = 100
                    else:
                        seconds = parse_out_time(line)
                        if seconds is None:
                            if "=" not in line:
                                tail.append(line)
                            continue
                        if expected_duration <= 0:
                            continue
                        percent = min(100, int(seconds / expected_duration * 100))
                    if percent > last_percent:
                        last_percent = percent
                        if on_progress:
                            on_progress(percent)
            code = proc.wait()
        finally:
            timer.cancel()

        if timed_out.is_set():
            self.logger.error("ffmpeg timed out", operation=operation, timeout=timeout)
            raise error_cls(f"ffmpeg {operation} timed out after {timeout}s")
        if code != 0:
            detail = " | ".join(tail) or f"exit code {code}"
            self.logger.error("ffmpeg failed", operation=operation, code=code, detail=detail)
            raise error_cls(f"ffmpeg {operation} failed: {detail}")
