"""Scene Compositor - normalizes rendered clips and chains them with cross-transitions."""

from pathlib import Path
from typing import Any

from reel_assembler.core.config import Settings
from reel_assembler.core.exceptions import CompositionError, ToolkitError
from reel_assembler.models.schemas import CompositeVideo, RenderedClip, TransitionType
from reel_assembler.services.media_toolkit import MediaToolkit
from reel_assembler.utils.temp_assets import TempAssetTracker

# Scene transition type -> ffmpeg xfade transition name
XFADE_TRANSITIONS: dict[TransitionType, str] = {
    TransitionType.FADE: "fade",
    TransitionType.CROSSFADE: "fade",
    TransitionType.NONE: "fade",
    TransitionType.ZOOM_IN: "circleclose",
    TransitionType.ZOOM_OUT: "circleopen",
    TransitionType.SLIDE_LEFT: "slideleft",
    TransitionType.SLIDE_RIGHT: "slideright",
    TransitionType.PUSH_LEFT: "wipeleft",
    TransitionType.PUSH_RIGHT: "wiperight",
    TransitionType.BLUR: "pixelize",
    TransitionType.GLITCH: "pixelize",
    TransitionType.FLASH_WHITE: "fadewhite",
}


def transition_offsets(durations: list[float], transition_duration: float) -> list[float]:
    """
    Start offset of each transition in the output timeline.

    The transition between clip ``k`` and clip ``k + 1`` starts at
    ``sum(durations[j] - transition_duration for j <= k)``.

    Args:
        durations: Clip durations in playback order
        transition_duration: Fixed overlap between adjacent clips

    Returns:
        ``len(durations) - 1`` offsets
    """
    offsets = []
    cumulative = 0.0
    for duration in durations[:-1]:
        cumulative += duration - transition_duration
        offsets.append(cumulative)
    return offsets


def composite_duration(durations: list[float], transition_duration: float) -> float:
    if not durations:
        return 0.0
    return sum(durations) - (len(durations) - 1) * transition_duration


class SceneCompositor:
    """Two-pass compositor: constant-frame-rate normalization, then an xfade chain."""

    def __init__(self, settings: Settings, logger: Any, toolkit: MediaToolkit, tracker: TempAssetTracker):
        """
        Initialize compositor.

        Args:
            settings: Application settings
            logger: Logger instance
            toolkit: Media toolkit
            tracker: Job's temp asset tracker
        """
        self.settings = settings
        self.logger = logger
        self.toolkit = toolkit
        self.tracker = tracker
        self.transition_duration = settings.transition_duration

    def _encoder_args(self) -> list[str]:
        s = self.settings
        return [
            "-c:v", s.video_codec,
            "-preset", s.encoder_preset,
            "-crf", str(s.encoder_crf),
            "-maxrate", s.encoder_maxrate,
            "-bufsize", s.encoder_bufsize,
            "-pix_fmt", s.pixel_format,
            "-r", str(s.video_fps),
            "-movflags", "+faststart",
        ]

    def normalize(self, clip: RenderedClip) -> Path:
        """Re-encode one clip at constant frame rate with the shared time base."""
        s = self.settings
        output_path = self.tracker.create_path(f"scene_{clip.scene.index:02d}_norm", ".mp4")
        self.toolkit.run(
            [
                "-i", str(clip.path),
                "-vf", f"fps={s.video_fps},format={s.pixel_format},setsar=1",
                "-an",
                *self._encoder_args(),
                "-fps_mode", "cfr",
                "-video_track_timescale", str(s.video_timescale),
                str(output_path),
            ],
            description=f"normalize scene {clip.scene.index}",
            output_path=output_path,
        )
        return output_path

    def build_transition_graph(self, clips: list[RenderedClip]) -> tuple[str, str]:
        """
        Filter graph chaining every adjacent pair with xfade.

        The transition into clip ``i + 1`` uses clip ``i``'s transition type.

        Returns:
            (filter_complex string, label of the final output)
        """
        durations = [clip.scene.duration for clip in clips]
        offsets = transition_offsets(durations, self.transition_duration)

        parts = []
        previous = "[0:v]"
        for i, offset in enumerate(offsets, start=1):
            transition = XFADE_TRANSITIONS.get(clips[i - 1].scene.transition.type, "fade")
            label = f"[v{i}]"
            parts.append(
                f"{previous}[{i}:v]xfade=transition={transition}:"
                f"duration={self.transition_duration}:offset={offset:.3f}{label}"
            )
            previous = label
        return ";".join(parts), previous

    def combine(self, clips: list[RenderedClip]) -> CompositeVideo:
        """
        Join rendered clips into one silent video.

        Rendered clips are consumed: each is released as soon as its
        normalized copy exists. Normalized intermediates are released on
        failure and after a successful chain.

        Args:
            clips: Rendered clips in scene index order

        Returns:
            CompositeVideo whose duration is sum(d) - (n - 1) * transition

        Raises:
            CompositionError: Normalization or chaining failed
        """
        if not clips:
            raise CompositionError("No clips to combine")

        clips = sorted(clips, key=lambda c: c.scene.index)
        durations = [clip.scene.duration for clip in clips]
        if len(clips) > 1 and min(durations) <= self.transition_duration:
            raise CompositionError(
                f"Scene shorter than the {self.transition_duration}s transition: {min(durations):.3f}s"
            )

        normalized: list[Path] = []
        try:
            for clip in clips:
                normalized.append(self.normalize(clip))
                self.tracker.release(clip.path)

            expected = composite_duration(durations, self.transition_duration)

            if len(normalized) == 1:
                self.logger.debug("Single scene; skipping transition chain")
                return CompositeVideo(path=normalized[0], duration=expected, clip_count=1)

            graph, output_label = self.build_transition_graph(clips)
            output_path = self.tracker.create_path("composite", ".mp4")
            inputs: list[str] = []
            for path in normalized:
                inputs += ["-i", str(path)]

            self.logger.info(f"Compositing {len(clips)} scenes ({expected:.2f}s with transitions)")
            try:
                self.toolkit.run(
                    [*inputs, "-filter_complex", graph, "-map", output_label, "-an", *self._encoder_args(), str(output_path)],
                    description="transition chain",
                    output_path=output_path,
                )
            except ToolkitError:
                self.tracker.release(output_path)
                raise
        except ToolkitError as e:
            for path in normalized:
                self.tracker.release(path)
            raise CompositionError(f"Scene composition failed: {e}") from e

        for path in normalized:
            self.tracker.release(path)
        return CompositeVideo(path=output_path, duration=expected, clip_count=len(clips))
