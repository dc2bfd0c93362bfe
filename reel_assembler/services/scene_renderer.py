"""Scene Renderer - turns one stock asset into a fixed-format 1080x1920 clip."""

import math
from typing import Any

from reel_assembler.core.config import Settings
from reel_assembler.core.exceptions import RenderError, ToolkitError
from reel_assembler.models.schemas import EffectConfig, EffectType, MediaAsset, MediaKind, RenderedClip, ScheduledScene
from reel_assembler.services.media_toolkit import MediaProbe, MediaToolkit
from reel_assembler.utils.temp_assets import TempAssetTracker


class SceneRenderer:
    """Renders scenes with crop/scale normalization, effects, looping, trimming and fades."""

    def __init__(self, settings: Settings, logger: Any, toolkit: MediaToolkit, tracker: TempAssetTracker):
        """
        Initialize scene renderer.

        Args:
            settings: Application settings
            logger: Logger instance
            toolkit: Media toolkit used for probing and encoding
            tracker: Job's temp asset tracker; rendered clips are registered here
        """
        self.settings = settings
        self.logger = logger
        self.toolkit = toolkit
        self.tracker = tracker
        self.width = settings.video_width
        self.height = settings.video_height
        self.fps = settings.video_fps

    # ------------------------------------------------------------------
    # Filter construction
    # ------------------------------------------------------------------

    def vertical_format_filter(self, width: int, height: int) -> str:
        """
        Crop-then-scale rule to reach exactly the output frame.

        Landscape sources are center-cropped to 9:16 at full height; portrait
        sources taller than 9:16 lose height from the center; everything else
        (including square and unknown sizes) is scaled to fit and padded.
        """
        w, h = self.width, self.height
        fit = f"scale={w}:{h}:force_original_aspect_ratio=decrease,pad={w}:{h}:(ow-iw)/2:(oh-ih)/2"
        if not width or not height:
            return fit

        if width > height:
            crop_width = round(height * w / h)
            x_offset = round((width - crop_width) / 2)
            return f"crop={crop_width}:{height}:{x_offset}:0,scale={w}:{h}"

        target_height = round(width * h / w)
        if height > target_height:
            y_offset = round((height - target_height) / 2)
            return f"crop={width}:{target_height}:0:{y_offset},scale={w}:{h}"

        return fit

    def effect_filter(self, effect: EffectConfig, duration: float) -> str:
        """Filter for the scene effect; empty string for ``none``."""
        frames = max(1, round(duration * self.fps))
        size = f"{self.width}x{self.height}"
        center = "x='iw/2-(iw/zoom/2)':y='ih/2-(ih/zoom/2)'"
        pan_span = "(iw-iw/zoom)"
        tilt_span = "(ih-ih/zoom)"

        effect_type = effect.type
        if effect_type in (EffectType.KEN_BURNS, EffectType.ZOOM_IN):
            return f"zoompan=z='min(1+0.002*on,1.3)':d=1:{center}:s={size}:fps={self.fps}"
        if effect_type == EffectType.ZOOM_OUT:
            return f"zoompan=z='max(1.3-0.002*on,1)':d=1:{center}:s={size}:fps={self.fps}"
        if effect_type == EffectType.PAN_LEFT:
            return f"zoompan=z=1.2:d=1:x='{pan_span}*(1-on/{frames})':y='ih/2-(ih/zoom/2)':s={size}:fps={self.fps}"
        if effect_type == EffectType.PAN_RIGHT:
            return f"zoompan=z=1.2:d=1:x='{pan_span}*on/{frames}':y='ih/2-(ih/zoom/2)':s={size}:fps={self.fps}"
        if effect_type == EffectType.TILT_UP:
            return f"zoompan=z=1.2:d=1:x='iw/2-(iw/zoom/2)':y='{tilt_span}*(1-on/{frames})':s={size}:fps={self.fps}"
        if effect_type == EffectType.TILT_DOWN:
            return f"zoompan=z=1.2:d=1:x='iw/2-(iw/zoom/2)':y='{tilt_span}*on/{frames}':s={size}:fps={self.fps}"
        if effect_type == EffectType.BLUR_EDGES:
            return (
                "split[bg][fg];[bg]boxblur=20:20[blurred];"
                "[fg]scale=iw*0.9:ih*0.9[inner];[blurred][inner]overlay=(W-w)/2:(H-h)/2"
            )
        if effect_type == EffectType.COLOR_BOOST:
            return "eq=saturation=1.2:contrast=1.1:brightness=0.05"
        if effect_type == EffectType.DRAMATIC:
            return "eq=contrast=1.2:saturation=1.1:brightness=-0.05,unsharp=3:3:1"
        if effect_type == EffectType.VIGNETTE:
            return "vignette=PI/4"
        return ""

    def fade_duration(self, duration: float) -> float:
        return min(self.settings.fade_max_seconds, duration * self.settings.fade_ratio)

    def build_filter_chain(self, scene: ScheduledScene, asset: MediaAsset, probe: MediaProbe) -> str:
        """
        Full per-scene video filter chain.

        Order: pixel format (video only), vertical format, constant frame rate,
        effect, trim to the scene duration, timestamp reset, fade in/out.
        """
        duration = scene.duration
        parts: list[str] = []
        if asset.kind == MediaKind.VIDEO:
            parts.append(f"format={self.settings.pixel_format}")
        parts.append(self.vertical_format_filter(probe.width, probe.height))
        parts.append(f"fps={self.fps}")
        parts.append(self.effect_filter(scene.effect, duration))
        parts.append(f"trim=duration={duration:.3f}")
        parts.append("setpts=PTS-STARTPTS")

        fade = self.fade_duration(duration)
        if fade > 0:
            parts.append(f"fade=t=in:st=0:d={fade:.3f}")
            parts.append(f"fade=t=out:st={duration - fade:.3f}:d={fade:.3f}")

        parts.append(f"format={self.settings.pixel_format}")
        return ",".join(p for p in parts if p)

    def loop_count(self, source_duration: float, scene_duration: float) -> int:
        """Extra plays needed so a short source covers the scene (0 when long enough)."""
        if source_duration <= 0 or source_duration >= scene_duration:
            return 0
        return math.ceil(scene_duration / source_duration) - 1

    def build_command(
        self, scene: ScheduledScene, asset: MediaAsset, probe: MediaProbe, output_path: Any
    ) -> list[str]:
        duration = f"{scene.duration:.3f}"
        if asset.kind == MediaKind.IMAGE:
            # Still images repeat at the demuxer; the trim below bounds them
            inputs = ["-loop", "1", "-framerate", str(self.fps), "-t", duration, "-i", str(asset.local_path)]
        else:
            loops = self.loop_count(probe.duration, scene.duration)
            inputs = (["-stream_loop", str(loops)] if loops else []) + ["-i", str(asset.local_path)]

        s = self.settings
        return [
            *inputs,
            "-filter_complex", f"[0:v]{self.build_filter_chain(scene, asset, probe)}[vout]",
            "-map", "[vout]",
            "-an",
            "-t", duration,
            "-c:v", s.video_codec,
            "-preset", s.encoder_preset,
            "-crf", str(s.encoder_crf),
            "-maxrate", s.encoder_maxrate,
            "-bufsize", s.encoder_bufsize,
            "-pix_fmt", s.pixel_format,
            "-r", str(self.fps),
            "-movflags", "+faststart",
            str(output_path),
        ]

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, scene: ScheduledScene, asset: MediaAsset) -> RenderedClip:
        """
        Render one scene.

        Args:
            scene: Scene with reconciled timing
            asset: Downloaded media for the scene

        Returns:
            RenderedClip pointing at a tracked 1080x1920 / 25fps file

        Raises:
            RenderError: On probe failure, toolkit failure or invalid output
        """
        log = self.logger.bind(scene_id=scene.id, scene_index=scene.index)
        if asset.local_path is None or not asset.local_path.exists():
            raise RenderError(f"Input file not found for scene {scene.index}: {asset.local_path}")

        try:
            probe = self.toolkit.probe(asset.local_path)
        except ToolkitError as e:
            raise RenderError(f"Failed to probe input for scene {scene.index}: {e}") from e

        output_path = self.tracker.create_path(f"scene_{scene.index:02d}_render", ".mp4")
        command = self.build_command(scene, asset, probe, output_path)
        log.debug(f"Rendering scene {scene.index} ({asset.kind.value}, {scene.duration:.2f}s, effect={scene.effect.type.value})")

        try:
            self.toolkit.run(command, description=f"render scene {scene.index}", output_path=output_path)
            self._validate_output(scene, output_path, log)
        except (ToolkitError, RenderError) as e:
            self.tracker.release(output_path)
            if isinstance(e, RenderError):
                raise
            raise RenderError(f"Scene {scene.index} processing failed: {e}") from e

        return RenderedClip(path=output_path, scene=scene)

    def _validate_output(self, scene: ScheduledScene, output_path: Any, log: Any) -> None:
        probe = self.toolkit.probe(output_path)
        if not probe.has_video or probe.width != self.width or probe.height != self.height:
            raise RenderError(
                f"Scene {scene.index} output has incorrect dimensions: {probe.width}x{probe.height}, "
                f"expected {self.width}x{self.height}"
            )
        if probe.frame_rate is not None and abs(probe.frame_rate - self.fps) > 0.01:
            raise RenderError(f"Scene {scene.index} output runs at {probe.frame_rate:.2f}fps, expected {self.fps}")

        drift = abs(probe.duration - scene.duration)
        if drift > self.settings.render_duration_tolerance:
            log.warning(
                f"Scene {scene.index} duration mismatch: expected {scene.duration:.3f}s, got {probe.duration:.3f}s"
            )
