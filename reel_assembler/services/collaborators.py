"""Collaborator contracts consumed by the orchestrator, plus file-backed implementations."""

import json
import shutil
import threading
from pathlib import Path
from typing import Any, Optional, Protocol

from reel_assembler.core.exceptions import ReelAssemblyError
from reel_assembler.models.schemas import ReelJob, ReelStatus, ReelTone, SceneTimeline
from reel_assembler.utils.temp_assets import TempAssetTracker


class ScriptAnalyzer(Protocol):
    def analyze(self, script: str, tone: ReelTone) -> SceneTimeline:
        ...


class VoiceSynthesizer(Protocol):
    def synthesize(self, script: str, voice_id: str, tone: ReelTone, tracker: TempAssetTracker) -> Path:
        ...


class Captioner(Protocol):
    def caption(self, voice_path: Path, tone: ReelTone, tracker: TempAssetTracker) -> Path:
        ...


class MusicSource(Protocol):
    def fetch(self, tone: ReelTone, mood: str, tracker: TempAssetTracker) -> Optional[Path]:
        ...


class StatusSink(Protocol):
    def emit(self, job: ReelJob) -> None:
        ...


# ============================================================================
# Analysis
# ============================================================================


def parse_timeline(data: dict) -> SceneTimeline:
    """
    Build a SceneTimeline from analysis output.

    Accepts the flat form (``scenes``, ``mood``) as well as the analysis
    service form where mood lives under ``contextAnalysis``.
    """
    data = dict(data)
    context = data.get("contextAnalysis") or {}
    if "mood" not in data and context.get("mood"):
        data["mood"] = context["mood"]
    return SceneTimeline.model_validate(data)


class FixedTimelineAnalyzer:
    """Returns a timeline that was computed ahead of time."""

    def __init__(self, timeline: SceneTimeline):
        self.timeline = timeline

    def analyze(self, script: str, tone: ReelTone) -> SceneTimeline:
        return self.timeline


class TimelineFileAnalyzer:
    """Reads a timeline JSON file written by the analysis service."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def analyze(self, script: str, tone: ReelTone) -> SceneTimeline:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ReelAssemblyError(f"Could not read timeline {self.path}: {e}") from e
        return parse_timeline(data)


# ============================================================================
# Voice, captions, music from local files
# ============================================================================


def _copy_into_job(source: Path, tracker: TempAssetTracker, prefix: str) -> Path:
    """Copy a user-supplied file into tracked temp space so cleanup never touches the original."""
    source = Path(source)
    if not source.exists():
        raise ReelAssemblyError(f"{prefix} file not found: {source}")
    target = tracker.create_path(prefix, source.suffix)
    shutil.copyfile(source, target)
    return target


class PrerecordedVoice:
    """Uses an existing voiceover file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def synthesize(self, script: str, voice_id: str, tone: ReelTone, tracker: TempAssetTracker) -> Path:
        return _copy_into_job(self.path, tracker, "voiceover")


class PrerecordedCaptions:
    """Uses an existing, already styled subtitle file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def caption(self, voice_path: Path, tone: ReelTone, tracker: TempAssetTracker) -> Path:
        return _copy_into_job(self.path, tracker, "captions")


class LocalMusicFile:
    """Uses a local music file; a missing file means "no music"."""

    def __init__(self, path: Path, logger: Any):
        self.path = Path(path)
        self.logger = logger

    def fetch(self, tone: ReelTone, mood: str, tracker: TempAssetTracker) -> Optional[Path]:
        if not self.path.exists():
            self.logger.warning(f"Music file not found, continuing without music: {self.path}")
            return None
        return _copy_into_job(self.path, tracker, "music")


# ============================================================================
# Status sinks
# ============================================================================


class LoggingStatusSink:
    """Writes every transition to the log."""

    def __init__(self, logger: Any):
        self.logger = logger

    def emit(self, job: ReelJob) -> None:
        message = f"Job {job.id}: {job.status.value} ({job.progress:.0%})"
        if job.status == ReelStatus.FAILED:
            self.logger.error(f"{message} - {job.error}")
        else:
            self.logger.info(message)


class InMemoryStatusSink:
    """Records (status, progress) tuples; used by the API registry and tests."""

    def __init__(self):
        self.events: list[tuple[ReelStatus, float]] = []
        self._lock = threading.Lock()

    def emit(self, job: ReelJob) -> None:
        with self._lock:
            self.events.append((job.status, job.progress))

    @property
    def statuses(self) -> list[ReelStatus]:
        with self._lock:
            return [status for status, _ in self.events]
