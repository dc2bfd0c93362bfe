"""Pydantic models and schemas for the reel assembly pipeline."""

import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from reel_assembler.core.exceptions import InvalidStatusTransition


# ============================================================================
# Enums
# ============================================================================


class ReelStatus(str, Enum):
    """Job status. The first seven values form a linear chain; the last two are absorbing."""

    PROCESSING = "processing"
    ANALYZING = "analyzing"
    GENERATING_VOICEOVER = "generatingVoiceover"
    GATHERING_VISUALS = "gatheringVisuals"
    ASSEMBLING_VIDEO = "assemblingVideo"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


STATUS_CHAIN: list[ReelStatus] = [
    ReelStatus.PROCESSING,
    ReelStatus.ANALYZING,
    ReelStatus.GENERATING_VOICEOVER,
    ReelStatus.GATHERING_VISUALS,
    ReelStatus.ASSEMBLING_VIDEO,
    ReelStatus.FINALIZING,
    ReelStatus.COMPLETED,
]

STATUS_PROGRESS: dict[ReelStatus, float] = {
    ReelStatus.PROCESSING: 0.0,
    ReelStatus.ANALYZING: 0.1,
    ReelStatus.GENERATING_VOICEOVER: 0.3,
    ReelStatus.GATHERING_VISUALS: 0.5,
    ReelStatus.ASSEMBLING_VIDEO: 0.7,
    ReelStatus.FINALIZING: 0.9,
    ReelStatus.COMPLETED: 1.0,
}

TERMINAL_STATUSES = frozenset({ReelStatus.COMPLETED, ReelStatus.FAILED, ReelStatus.CANCELLED})


class ReelTone(str, Enum):
    """Narration tone; drives caption styling and music selection."""

    PROFESSIONAL = "professional"
    CASUAL = "casual"
    DRAMATIC = "dramatic"


class VisualType(str, Enum):
    """What kind of visual a scene wants."""

    B_ROLL = "b-roll"
    STATIC = "static"
    TALKING = "talking"
    OVERLAY = "overlay"


class TransitionType(str, Enum):
    """Scene-to-scene transition requested by the analysis service."""

    FADE = "fade"
    CROSSFADE = "crossfade"
    ZOOM_IN = "zoom_in"
    ZOOM_OUT = "zoom_out"
    SLIDE_LEFT = "slide_left"
    SLIDE_RIGHT = "slide_right"
    PUSH_LEFT = "push_left"
    PUSH_RIGHT = "push_right"
    BLUR = "blur"
    FLASH_WHITE = "flash_white"
    GLITCH = "glitch"
    NONE = "none"


class EffectType(str, Enum):
    """Per-scene visual effect."""

    KEN_BURNS = "ken_burns"
    ZOOM_IN = "zoom_in"
    ZOOM_OUT = "zoom_out"
    PAN_LEFT = "pan_left"
    PAN_RIGHT = "pan_right"
    TILT_UP = "tilt_up"
    TILT_DOWN = "tilt_down"
    BLUR_EDGES = "blur_edges"
    VIGNETTE = "vignette"
    COLOR_BOOST = "color_boost"
    DRAMATIC = "dramatic"
    NONE = "none"


class MediaKind(str, Enum):
    """Stock asset kind."""

    VIDEO = "video"
    IMAGE = "image"


# ============================================================================
# Scene Plan Models
# ============================================================================


class TransitionConfig(BaseModel):
    """Transition into the next scene."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: TransitionType = Field(default=TransitionType.FADE, description="Transition type")
    duration_sec: float = Field(
        default=0.5,
        ge=0.0,
        validation_alias=AliasChoices("duration_sec", "durationSec", "duration"),
        description="Requested duration (the compositor applies a fixed duration)",
    )


class EffectConfig(BaseModel):
    """Visual effect applied to a scene."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: EffectType = Field(default=EffectType.NONE, description="Effect type")
    intensity: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="Effect intensity (0-1)")
    duration_sec: Optional[float] = Field(
        default=None,
        ge=0.0,
        validation_alias=AliasChoices("duration_sec", "durationSec", "duration"),
        description="How long the effect runs",
    )


class SceneDescriptor(BaseModel):
    """One scene as produced by the script analysis service. Immutable once created."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Scene identifier")
    start_time: float = Field(
        default=0.0,
        ge=0.0,
        validation_alias=AliasChoices("start_time", "startTime"),
        description="Planned start time in seconds",
    )
    duration: float = Field(..., gt=0.0, description="Planned duration in seconds")
    description: str = Field(default="", description="What the scene shows")
    primary_keywords: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("primary_keywords", "primaryKeywords"),
        description="Most relevant search terms",
    )
    secondary_keywords: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("secondary_keywords", "secondaryKeywords"),
        description="Alternative search terms",
    )
    mood: str = Field(default="neutral", description="Scene mood")
    visual_type: VisualType = Field(
        default=VisualType.B_ROLL,
        validation_alias=AliasChoices("visual_type", "visualType"),
        description="Kind of visual wanted",
    )
    transition: TransitionConfig = Field(default_factory=TransitionConfig, description="Transition to next scene")
    effect: EffectConfig = Field(default_factory=EffectConfig, description="Visual effect")


class SceneTimeline(BaseModel):
    """Ordered scene plan plus the theme summary returned by analysis."""

    model_config = ConfigDict(populate_by_name=True)

    scenes: list[SceneDescriptor] = Field(..., min_length=1, description="Scenes in playback order")
    mood: str = Field(default="neutral", description="Overall mood, used for music selection")
    main_visual_theme: str = Field(
        default="",
        validation_alias=AliasChoices("main_visual_theme", "mainVisualTheme"),
        description="Theme summary",
    )
    music_mood: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("music_mood", "musicMood"),
        description="Optional explicit music mood",
    )

    @property
    def planned_duration(self) -> float:
        return sum(scene.duration for scene in self.scenes)


class ScheduledScene(BaseModel):
    """A scene with its reconciled, authoritative timing."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0, description="Position in the reel")
    descriptor: SceneDescriptor = Field(..., description="Original scene plan")
    start_time: float = Field(..., ge=0.0, description="Reconciled start time")
    duration: float = Field(..., gt=0.0, description="Reconciled duration")

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def transition(self) -> TransitionConfig:
        return self.descriptor.transition

    @property
    def effect(self) -> EffectConfig:
        return self.descriptor.effect


# ============================================================================
# Media & Render Artifacts
# ============================================================================


class MediaAsset(BaseModel):
    """A stock asset bound to exactly one scene."""

    kind: MediaKind = Field(..., description="video or image")
    source_url: str = Field(..., description="Where it was downloaded from")
    width: int = Field(..., ge=0, description="Native width")
    height: int = Field(..., ge=0, description="Native height")
    local_path: Optional[Path] = Field(default=None, description="Local file once downloaded")
    provider: str = Field(default="unknown", description="Provider that supplied the asset")
    asset_id: Optional[str] = Field(default=None, description="Provider-side asset id")
    duration: Optional[float] = Field(default=None, description="Native duration for video")

    @property
    def is_landscape(self) -> bool:
        return self.width > self.height


class RenderedClip(BaseModel):
    """A normalized 1080x1920 scene segment, consumed once by the compositor."""

    path: Path = Field(..., description="Encoded clip")
    scene: ScheduledScene = Field(..., description="Scene it was rendered for")


class CompositeVideo(BaseModel):
    """Silent video track with all scenes and transitions."""

    path: Path = Field(..., description="Composited file")
    duration: float = Field(..., ge=0.0, description="Expected duration")
    clip_count: int = Field(..., ge=1, description="Number of scenes")


class FinalVideo(BaseModel):
    """The deliverable."""

    path: Path = Field(..., description="Muxed output file")
    duration: float = Field(..., ge=0.0, description="Probed duration")
    voiceover_duration: float = Field(..., ge=0.0, description="Authoritative duration")
    has_music: bool = Field(default=False, description="Whether background music was mixed in")


# ============================================================================
# Job Models
# ============================================================================


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReelRequest(BaseModel):
    """Everything needed to start a job."""

    script: str = Field(default="", description="Raw narration script")
    tone: ReelTone = Field(default=ReelTone.PROFESSIONAL, description="Narration tone")
    voice_id: str = Field(default="default", description="Voice identifier for synthesis")
    timeline: Optional[SceneTimeline] = Field(default=None, description="Pre-computed scene timeline")
    voiceover_path: Optional[Path] = Field(default=None, description="Pre-recorded voiceover")
    captions_path: Optional[Path] = Field(default=None, description="Pre-built subtitle track (.ass/.srt)")
    music_path: Optional[Path] = Field(default=None, description="Optional local background music")


class ReelJob(BaseModel):
    """A single reel job and its status state machine."""

    id: str = Field(default_factory=lambda: f"reel_{uuid.uuid4().hex[:12]}", description="Job identifier")
    status: ReelStatus = Field(default=ReelStatus.PROCESSING, description="Current status")
    progress: float = Field(default=0.0, ge=0.0, le=1.0, description="Progress 0..1")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    tone: ReelTone = Field(default=ReelTone.PROFESSIONAL)
    voiceover_path: Optional[Path] = Field(default=None)
    captions_path: Optional[Path] = Field(default=None)
    music_path: Optional[Path] = Field(default=None)
    output_path: Optional[Path] = Field(default=None)
    thumbnail_path: Optional[Path] = Field(default=None)
    error: Optional[str] = Field(default=None, description="Human-readable failure message")

    _cancel_event: threading.Event = PrivateAttr(default_factory=threading.Event)
    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    @field_validator("progress")
    @classmethod
    def _round_progress(cls, value: float) -> float:
        return round(value, 4)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def request_cancel(self) -> bool:
        """Set the cooperative cancellation flag. Returns False if the job already finished."""
        with self._lock:
            if self.is_terminal:
                return False
            self._cancel_event.set()
            return True

    def advance(self, status: ReelStatus) -> None:
        """Move forward along the linear chain; progress never decreases."""
        with self._lock:
            if self.is_terminal:
                raise InvalidStatusTransition(f"Job {self.id} is already {self.status.value}")
            if status not in STATUS_PROGRESS:
                raise InvalidStatusTransition(f"{status.value} is not part of the linear chain; use fail() or cancel()")
            if STATUS_CHAIN.index(status) <= STATUS_CHAIN.index(self.status):
                raise InvalidStatusTransition(
                    f"Job {self.id} cannot move from {self.status.value} to {status.value}"
                )
            self.status = status
            self.progress = max(self.progress, STATUS_PROGRESS[status])
            self.updated_at = _utcnow()

    def fail(self, message: str) -> None:
        self._terminate(ReelStatus.FAILED, message)

    def cancel(self) -> None:
        self._terminate(ReelStatus.CANCELLED, None)

    def _terminate(self, status: ReelStatus, message: Optional[str]) -> None:
        with self._lock:
            if self.is_terminal:
                raise InvalidStatusTransition(f"Job {self.id} is already {self.status.value}")
            self.status = status
            self.error = message
            self.updated_at = _utcnow()


class ReelJobResponse(BaseModel):
    """Public view of a job returned by the API."""

    id: str
    status: ReelStatus
    progress: float
    error: Optional[str] = None
    output_path: Optional[str] = None
    thumbnail_path: Optional[str] = None
    updated_at: datetime

    @classmethod
    def from_job(cls, job: ReelJob) -> "ReelJobResponse":
        return cls(
            id=job.id,
            status=job.status,
            progress=job.progress,
            error=job.error,
            output_path=str(job.output_path) if job.output_path else None,
            thumbnail_path=str(job.thumbnail_path) if job.thumbnail_path else None,
            updated_at=job.updated_at,
        )
