"""Media Toolkit - single blocking entry point for ffmpeg and ffprobe."""

import json
import subprocess
import time
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from reel_assembler.core.config import Settings
from reel_assembler.core.exceptions import ToolkitError


class ToolkitResult(BaseModel):
    """Structured outcome of one ffmpeg invocation."""

    returncode: int
    stderr: str
    output_path: Optional[Path]
    command: list[str] = Field(default_factory=list)
    elapsed: float = 0.0


class MediaProbe(BaseModel):
    """Subset of ffprobe output the pipeline relies on."""

    width: int = 0
    height: int = 0
    duration: float = 0.0
    has_video: bool = False
    has_audio: bool = False
    video_codec: Optional[str] = None
    frame_rate: Optional[float] = None

    @property
    def is_landscape(self) -> bool:
        return self.width > self.height


def _parse_rate(value: Optional[str]) -> Optional[float]:
    if not value or value in ("0/0", "N/A"):
        return None
    if "/" in value:
        num, den = value.split("/", 1)
        try:
            return float(num) / float(den) if float(den) else None
        except ValueError:
            return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class MediaToolkit:
    """Runs ffmpeg/ffprobe as subprocesses and returns structured results."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize toolkit.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.ffmpeg = settings.ffmpeg_binary
        self.ffprobe = settings.ffprobe_binary
        self.timeout = settings.toolkit_timeout_seconds

    def run(self, args: list[str], description: str = "", output_path: Optional[Path] = None) -> ToolkitResult:
        """
        Run ffmpeg with ``args`` and wait for it to exit.

        Args:
            args: Arguments after the binary name (``-y`` is prepended)
            description: Human-readable description for logging
            output_path: File the command is expected to write

        Returns:
            ToolkitResult on success

        Raises:
            ToolkitError: On non-zero exit, missing binary, timeout, or missing output
        """
        cmd = [self.ffmpeg, "-y", "-hide_banner", *[str(a) for a in args]]
        self.logger.debug(f"ffmpeg ({description}): {' '.join(cmd)}")
        start = time.time()

        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise ToolkitError(f"ffmpeg binary not found: {self.ffmpeg}") from e
        except subprocess.TimeoutExpired as e:
            raise ToolkitError(f"ffmpeg timed out after {self.timeout:.0f}s ({description})") from e

        result = ToolkitResult(
            returncode=proc.returncode,
            stderr=proc.stderr or "",
            output_path=output_path,
            command=cmd,
            elapsed=time.time() - start,
        )

        if proc.returncode != 0:
            self.logger.error(f"ffmpeg stderr ({description}): {result.stderr[-1000:]}")
            raise ToolkitError(f"ffmpeg failed ({description}): {result.stderr[-500:].strip()}", result=result)

        if output_path is not None and not Path(output_path).exists():
            raise ToolkitError(f"ffmpeg produced no output ({description}): {output_path}", result=result)

        self.logger.debug(f"ffmpeg ({description}) finished in {result.elapsed:.2f}s")
        return result

    def probe(self, path: Path) -> MediaProbe:
        """
        Read dimensions, duration and stream layout of a media file.

        Raises:
            ToolkitError: If ffprobe fails or returns unparseable output
        """
        cmd = [
            self.ffprobe,
            "-v", "error",
            "-show_entries", "format=duration:stream=codec_type,codec_name,width,height,duration,r_frame_rate",
            "-of", "json",
            str(path),
        ]
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=60)
        except FileNotFoundError as e:
            raise ToolkitError(f"ffprobe binary not found: {self.ffprobe}") from e
        except subprocess.TimeoutExpired as e:
            raise ToolkitError(f"ffprobe timed out on {path}") from e

        if proc.returncode != 0:
            raise ToolkitError(f"ffprobe failed on {path}: {(proc.stderr or '').strip()[-300:]}")

        try:
            data = json.loads(proc.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ToolkitError(f"ffprobe returned invalid JSON for {path}") from e

        return self._parse_probe(data)

    @staticmethod
    def _parse_probe(data: dict) -> MediaProbe:
        streams = data.get("streams", [])
        video = next((s for s in streams if s.get("codec_type") == "video"), None)
        audio = next((s for s in streams if s.get("codec_type") == "audio"), None)

        duration = _parse_float(data.get("format", {}).get("duration"))
        if not duration and video:
            duration = _parse_float(video.get("duration"))

        return MediaProbe(
            width=int(video.get("width") or 0) if video else 0,
            height=int(video.get("height") or 0) if video else 0,
            duration=duration,
            has_video=video is not None,
            has_audio=audio is not None,
            video_codec=video.get("codec_name") if video else None,
            frame_rate=_parse_rate(video.get("r_frame_rate")) if video else None,
        )

    def extract_frame(self, video_path: Path, output_path: Path, at_seconds: float) -> ToolkitResult:
        """Write a single frame of ``video_path`` at ``at_seconds`` as an image."""
        return self.run(
            ["-ss", f"{max(at_seconds, 0.0):.3f}", "-i", str(video_path), "-frames:v", "1", "-q:v", "2", str(output_path)],
            description="thumbnail frame",
            output_path=output_path,
        )
