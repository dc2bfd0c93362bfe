"""Audio/Caption Mixer - trims to the voiceover, burns captions and mixes ducked music."""

from pathlib import Path
from typing import Any, Optional

from reel_assembler.core.config import Settings
from reel_assembler.core.exceptions import MixError, ToolkitError
from reel_assembler.models.schemas import CompositeVideo, FinalVideo
from reel_assembler.services.media_toolkit import MediaToolkit

VOICE_COMPAND = (
    "compand=attacks=0.3|0.8:decays=1|1.2:points=-90/-60|-60/-40|-40/-30|-30/-20"
    ":soft-knee=6:gain=0:volume=0:delay=0"
)


def escape_filter_path(path: Path) -> str:
    """Quote a file path for use as a filter option value."""
    text = str(path).replace("\\", "/")
    text = text.replace(":", "\\:").replace("'", "\\'")
    return f"'{text}'"


class AudioCaptionMixer:
    """Produces the deliverable: composite video + captions + voice (+ ducked music)."""

    def __init__(self, settings: Settings, logger: Any, toolkit: MediaToolkit):
        """
        Initialize mixer.

        Args:
            settings: Application settings
            logger: Logger instance
            toolkit: Media toolkit
        """
        self.settings = settings
        self.logger = logger
        self.toolkit = toolkit

    def caption_filter(self, captions_path: Path) -> str:
        name = "ass" if captions_path.suffix.lower() == ".ass" else "subtitles"
        return f"{name}=filename={escape_filter_path(captions_path)}"

    def build_filter_graph(
        self, voice_duration: float, captions_path: Optional[Path], with_music: bool
    ) -> str:
        """
        Filter graph for inputs ``0`` (composite), ``1`` (voice) and optionally ``2`` (music).

        Outputs are labelled ``[vout]`` and ``[aout]``.
        """
        s = self.settings
        duration = f"{voice_duration:.3f}"

        video = f"[0:v]trim=duration={duration},setpts=PTS-STARTPTS"
        if captions_path is not None:
            video += f",{self.caption_filter(captions_path)}"
        video += "[vout]"

        voice = (
            f"[1:a]aresample={s.audio_sample_rate},"
            f"aformat=sample_fmts=fltp:channel_layouts=mono,"
            f"{VOICE_COMPAND},volume={s.voice_volume}"
        )
        normalize = "dynaudnorm=f=150:g=15"

        if not with_music:
            return ";".join([video, f"{voice},{normalize}[aout]"])

        fade_start = max(0.0, voice_duration - s.music_fade_out_seconds)
        music = (
            f"[2:a]aresample={s.audio_sample_rate},"
            f"aformat=sample_fmts=fltp:channel_layouts=stereo,"
            f"atrim=duration={duration},asetpts=PTS-STARTPTS,"
            f"lowpass=f={s.music_lowpass_hz},volume={s.music_volume},"
            f"afade=t=out:st={fade_start:.3f}:d={s.music_fade_out_seconds}[music]"
        )
        duck = (
            f"[music][sidechain]sidechaincompress=threshold={s.duck_threshold}:ratio={s.duck_ratio}:"
            f"attack={s.duck_attack_ms:g}:release={s.duck_release_ms:g}[ducked]"
        )
        merge = f"[voice][ducked]amerge=inputs=2,{normalize}[aout]"
        return ";".join([video, f"{voice},asplit=2[voice][sidechain]", music, duck, merge])

    def finalize(
        self,
        composite: CompositeVideo,
        voiceover_path: Path,
        captions_path: Optional[Path],
        output_path: Path,
        music_path: Optional[Path] = None,
    ) -> FinalVideo:
        """
        Mux the final reel.

        Args:
            composite: Silent composite video
            voiceover_path: Voice track; its duration is authoritative
            captions_path: Subtitle file (.ass or .srt) to burn in
            output_path: Where to write the deliverable
            music_path: Optional background music

        Returns:
            FinalVideo

        Raises:
            MixError: Probe, mix or validation failure
        """
        for label, path in (("voiceover", voiceover_path), ("captions", captions_path), ("music", music_path)):
            if path is not None and not Path(path).exists():
                raise MixError(f"{label} file not found: {path}")

        try:
            voice_duration = self.toolkit.probe(voiceover_path).duration
        except ToolkitError as e:
            raise MixError(f"Could not probe voiceover: {e}") from e
        if voice_duration <= 0:
            raise MixError(f"Voiceover has no measurable duration: {voiceover_path}")

        with_music = music_path is not None
        s = self.settings
        inputs = ["-i", str(composite.path), "-i", str(voiceover_path)]
        if with_music:
            inputs += ["-stream_loop", "-1", "-i", str(music_path)]

        args = [
            *inputs,
            "-filter_complex", self.build_filter_graph(voice_duration, captions_path, with_music),
            "-map", "[vout]",
            "-map", "[aout]",
            "-c:v", s.video_codec,
            "-preset", s.encoder_preset,
            "-crf", str(s.encoder_crf),
            "-pix_fmt", s.pixel_format,
            "-r", str(s.video_fps),
            "-c:a", s.audio_codec,
            "-b:a", s.audio_bitrate,
            "-ac", "2",
            "-ar", str(s.audio_sample_rate),
            "-shortest",
            "-movflags", "+faststart",
            str(output_path),
        ]

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Mixing final reel ({voice_duration:.2f}s, music={'yes' if with_music else 'no'})")
        try:
            self.toolkit.run(args, description="final mix", output_path=output_path)
            probe = self.toolkit.probe(output_path)
        except ToolkitError as e:
            Path(output_path).unlink(missing_ok=True)
            raise MixError(f"Final mix failed: {e}") from e

        if not probe.has_video or not probe.has_audio:
            Path(output_path).unlink(missing_ok=True)
            raise MixError(
                f"Final output is missing a stream (video={probe.has_video}, audio={probe.has_audio})"
            )

        drift = abs(probe.duration - voice_duration)
        if drift > s.final_duration_tolerance:
            self.logger.warning(
                f"Final duration {probe.duration:.2f}s differs from voiceover {voice_duration:.2f}s by {drift:.2f}s"
            )

        return FinalVideo(
            path=Path(output_path),
            duration=probe.duration,
            voiceover_duration=voice_duration,
            has_music=with_music,
        )
