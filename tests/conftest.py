"""Shared pytest fixtures and configuration."""

from pathlib import Path
from typing import Optional

import pytest
from PIL import Image

from reel_assembler.core.config import Settings
from reel_assembler.core.exceptions import ToolkitError
from reel_assembler.core.logging_config import get_logger
from reel_assembler.models.schemas import (
    MediaAsset,
    MediaKind,
    ReelRequest,
    ReelTone,
    SceneDescriptor,
    SceneTimeline,
    ScheduledScene,
)
from reel_assembler.services.media_toolkit import MediaProbe, ToolkitResult
from reel_assembler.utils.temp_assets import TempAssetTracker

AUDIO_SUFFIXES = (".wav", ".mp3", ".m4a", ".aac")


class FakeToolkit:
    """
    Stand-in for MediaToolkit that never spawns ffmpeg.

    ``run`` records the arguments and writes a small file at ``output_path``.
    Files it wrote probe as 1080x1920 / 25fps with the duration passed via
    ``-t`` (or ``output_duration``); audio files probe as ``voice_duration``;
    anything else probes as ``source_probe``.
    """

    def __init__(self):
        self.calls: list[dict] = []
        self.probes: dict[str, MediaProbe] = {}
        self.outputs: dict[str, float] = {}
        self.fail_on: set[str] = set()
        self.voice_duration = 12.0
        self.output_duration: Optional[float] = None
        self.output_probe_overrides: dict[str, dict] = {}
        self.source_probe = MediaProbe(
            width=1080, height=1920, duration=20.0, has_video=True, has_audio=False, video_codec="h264", frame_rate=25.0
        )

    def run(self, args, description="", output_path=None):
        args = [str(a) for a in args]
        self.calls.append({"args": args, "description": description, "output_path": output_path})
        if any(marker in description for marker in self.fail_on):
            raise ToolkitError(f"ffmpeg failed ({description}): simulated")

        if output_path is not None:
            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            Path(output_path).write_bytes(b"\x00" * 64)
            if "-t" in args:
                duration = float(args[args.index("-t") + 1])
            else:
                duration = self.output_duration if self.output_duration is not None else self.voice_duration
            self.outputs[str(output_path)] = duration
        return ToolkitResult(returncode=0, stderr="", output_path=output_path, command=["ffmpeg", *args])

    def probe(self, path):
        key = str(path)
        if key in self.probes:
            return self.probes[key]
        if key in self.outputs:
            overrides = next(
                (values for marker, values in self.output_probe_overrides.items() if marker in Path(key).name), {}
            )
            values = dict(
                width=1080,
                height=1920,
                duration=self.outputs[key],
                has_video=True,
                has_audio=True,
                video_codec="h264",
                frame_rate=25.0,
            )
            values.update(overrides)
            return MediaProbe(**values)
        if Path(key).suffix.lower() in AUDIO_SUFFIXES:
            return MediaProbe(duration=self.voice_duration, has_audio=True)
        return self.source_probe

    def extract_frame(self, video_path, output_path, at_seconds):
        args = ["-ss", f"{at_seconds:.3f}", "-i", str(video_path)]
        self.calls.append({"args": args, "description": "thumbnail frame", "output_path": output_path})
        if any(marker in "thumbnail frame" for marker in self.fail_on):
            raise ToolkitError("ffmpeg failed (thumbnail frame): simulated")
        Image.new("RGB", (108, 192), color=(40, 80, 120)).save(output_path)
        return ToolkitResult(returncode=0, stderr="", output_path=output_path)

    def descriptions(self) -> list[str]:
        return [call["description"] for call in self.calls]


@pytest.fixture
def settings(tmp_path):
    """Create test settings instance with scratch and output dirs under tmp_path."""
    return Settings(
        _env_file=None,
        pexels_api_key=None,
        pixabay_api_key=None,
        jamendo_api_key=None,
        enable_rate_limiting=False,
        provider_backoff_seconds=0.0,
        min_asset_bytes=16,
        temp_dir=str(tmp_path / "scratch"),
        output_dir=str(tmp_path / "outputs"),
        max_parallel_scene_fetches=2,
        max_parallel_scene_renders=2,
    )


@pytest.fixture
def logger():
    """Create test logger instance."""
    return get_logger(__name__)


@pytest.fixture
def toolkit():
    """Create fake media toolkit."""
    return FakeToolkit()


@pytest.fixture
def tracker(settings, logger):
    """Create a job-scoped temp asset tracker that is cleaned after the test."""
    with TempAssetTracker(logger, base_dir=settings.temp_dir, job_id="test") as t:
        yield t


def make_scene(index=0, duration=5.0, start_time=0.0, **descriptor_fields) -> ScheduledScene:
    """Build a ScheduledScene with sensible descriptor defaults."""
    fields = {
        "id": f"s{index + 1}",
        "duration": duration,
        "description": "city skyline at dusk",
        "primaryKeywords": ["city skyline"],
        "secondaryKeywords": ["sunset"],
        "mood": "calm",
    }
    fields.update(descriptor_fields)
    descriptor = SceneDescriptor.model_validate(fields)
    return ScheduledScene(index=index, descriptor=descriptor, start_time=start_time, duration=duration)


@pytest.fixture
def scene_factory():
    """Expose make_scene to tests."""
    return make_scene


class FakeMediaSource:
    """Scene media source that writes a placeholder clip into the job tracker."""

    def __init__(self, tracker, on_fetch=None):
        self.tracker = tracker
        self.on_fetch = on_fetch
        self.fetched: list[str] = []

    def fetch(self, scene):
        if self.on_fetch is not None:
            self.on_fetch(scene)
        path = self.tracker.create_path(f"scene_{scene.index:02d}_fake", ".mp4")
        path.write_bytes(b"\x00" * 64)
        self.fetched.append(scene.id)
        return MediaAsset(
            kind=MediaKind.VIDEO,
            source_url=f"https://cdn.example/{scene.id}.mp4",
            width=1080,
            height=1920,
            local_path=path,
            provider="fake",
            asset_id=scene.id,
            duration=20.0,
        )


@pytest.fixture
def reel_request(tmp_path):
    """A three-scene request (10s planned) with voiceover and captions on disk."""
    inputs = tmp_path / "inputs"
    inputs.mkdir()
    voiceover = inputs / "voiceover.mp3"
    voiceover.write_bytes(b"ID3" + b"\x00" * 64)
    captions = inputs / "captions.ass"
    captions.write_text("[Script Info]\nScriptType: v4.00+\n", encoding="utf-8")
    timeline = SceneTimeline.model_validate(
        {
            "scenes": [
                {"id": "s1", "duration": 3, "primaryKeywords": ["sunrise"], "transition": {"type": "slide_left"}},
                {"id": "s2", "duration": 4, "primaryKeywords": ["coffee"], "effect": {"type": "ken_burns"}},
                {"id": "s3", "duration": 3, "primaryKeywords": ["laptop"], "visualType": "static"},
            ],
            "mood": "upbeat",
        }
    )
    return ReelRequest(
        script="Mornings matter.", tone=ReelTone.CASUAL, timeline=timeline, voiceover_path=voiceover, captions_path=captions
    )


@pytest.fixture
def media_source_cls():
    """Expose FakeMediaSource to tests."""
    return FakeMediaSource
