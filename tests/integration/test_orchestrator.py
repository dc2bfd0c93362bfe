"""End-to-end tests for ReelOrchestrator with a fake toolkit and media source."""

from pathlib import Path

import pytest

from reel_assembler.core.exceptions import AcquisitionError
from reel_assembler.models.schemas import STATUS_CHAIN, ReelStatus, ReelTone
from reel_assembler.pipelines.orchestrator import ReelOrchestrator
from reel_assembler.services.collaborators import InMemoryStatusSink, LocalMusicFile


@pytest.fixture
def sink():
    return InMemoryStatusSink()


@pytest.fixture
def make_orchestrator(settings, logger, toolkit, sink, media_source_cls):
    """Factory for orchestrators wired to fakes; on_fetch hooks into every scene fetch."""

    def factory(music=None, on_fetch=None, status_sink=None):
        return ReelOrchestrator(
            settings,
            logger,
            music=music,
            status_sink=status_sink or sink,
            toolkit=toolkit,
            media_source_factory=lambda tracker: media_source_cls(tracker, on_fetch=on_fetch),
        )

    return factory


def _work_dir(settings, job):
    return Path(settings.temp_dir) / f"reel_{job.id}"


def _output_files(settings):
    root = Path(settings.output_dir)
    return [p for p in root.rglob("*") if p.is_file()] if root.exists() else []


def _final_mix_args(toolkit):
    return next(call["args"] for call in toolkit.calls if call["description"] == "final mix")


def test_happy_path_completes(make_orchestrator, reel_request, settings, toolkit, sink):
    job = make_orchestrator().run(reel_request)

    assert job.status == ReelStatus.COMPLETED
    assert job.progress == 1.0
    assert job.error is None
    assert job.output_path.exists()
    assert job.output_path.name == "reel.mp4"
    assert job.thumbnail_path.exists()
    assert sink.statuses == STATUS_CHAIN
    progress = [p for _, p in sink.events]
    assert progress == sorted(progress)


def test_happy_path_uses_reconciled_durations(make_orchestrator, reel_request, toolkit):
    """10s planned against a 12s voiceover renders 3.6s / 4.8s / 3.6s scenes."""
    make_orchestrator().run(reel_request)

    render_calls = [c for c in toolkit.calls if c["description"].startswith("render scene")]
    durations = sorted(float(c["args"][c["args"].index("-t") + 1]) for c in render_calls)
    assert durations == pytest.approx([3.6, 3.6, 4.8])
    assert "transition chain" in toolkit.descriptions()


def test_happy_path_removes_temp_files(make_orchestrator, reel_request, settings):
    job = make_orchestrator().run(reel_request)

    assert not _work_dir(settings, job).exists()
    assert reel_request.voiceover_path.exists()
    assert job.voiceover_path == reel_request.voiceover_path
    assert job.captions_path == reel_request.captions_path


def test_local_music_is_mixed(make_orchestrator, reel_request, toolkit, logger, tmp_path):
    music_file = tmp_path / "inputs" / "bed.mp3"
    music_file.write_bytes(b"ID3music")

    job = make_orchestrator(music=LocalMusicFile(music_file, logger)).run(reel_request)

    assert job.status == ReelStatus.COMPLETED
    assert "-stream_loop" in _final_mix_args(toolkit)
    assert music_file.exists()


def test_music_failure_degrades_to_voice_only(make_orchestrator, reel_request, toolkit):
    class BrokenMusic:
        def fetch(self, tone, mood, tracker):
            raise RuntimeError("music service exploded")

    job = make_orchestrator(music=BrokenMusic()).run(reel_request)

    assert job.status == ReelStatus.COMPLETED
    assert "-stream_loop" not in _final_mix_args(toolkit)


def test_cancellation_during_gathering_visuals(make_orchestrator, reel_request, settings, toolkit, sink):
    orchestrator = make_orchestrator(on_fetch=lambda scene: job.request_cancel())
    job = orchestrator.create_job(reel_request)

    orchestrator.run(reel_request, job)

    assert job.status == ReelStatus.CANCELLED
    assert job.progress == pytest.approx(0.5)
    assert job.output_path is None
    assert sink.statuses[-1] == ReelStatus.CANCELLED
    assert ReelStatus.ASSEMBLING_VIDEO not in sink.statuses
    assert not any(d.startswith("render scene") for d in toolkit.descriptions())
    assert not _work_dir(settings, job).exists()
    assert _output_files(settings) == []


def test_cancel_before_start(make_orchestrator, reel_request, sink):
    orchestrator = make_orchestrator()
    job = orchestrator.create_job(reel_request)
    job.request_cancel()

    orchestrator.run(reel_request, job)

    assert job.status == ReelStatus.CANCELLED
    assert sink.statuses == [ReelStatus.PROCESSING, ReelStatus.CANCELLED]


def test_render_failure_fails_job(make_orchestrator, reel_request, settings, toolkit, sink):
    toolkit.fail_on.add("render scene 1")

    job = make_orchestrator().run(reel_request)

    assert job.status == ReelStatus.FAILED
    assert job.progress == pytest.approx(0.7)
    assert "Stage assemblingVideo failed" in job.error
    assert "RenderError" in job.error
    assert sink.statuses[-1] == ReelStatus.FAILED
    assert not _work_dir(settings, job).exists()
    assert _output_files(settings) == []


def test_acquisition_failure_fails_with_suggestion(make_orchestrator, reel_request, settings):
    def no_media(scene):
        raise AcquisitionError(f"No suitable media found for scene {scene.id}", scene_id=scene.id)

    job = make_orchestrator(on_fetch=no_media).run(reel_request)

    assert job.status == ReelStatus.FAILED
    assert "Stage gatheringVisuals failed" in job.error
    assert "Suggestion:" in job.error
    assert not _work_dir(settings, job).exists()


def test_final_mix_failure_leaves_no_output(make_orchestrator, reel_request, settings, toolkit):
    toolkit.fail_on.add("final mix")

    job = make_orchestrator().run(reel_request)

    assert job.status == ReelStatus.FAILED
    assert "MixError" in job.error
    assert _output_files(settings) == []


def test_missing_voiceover_fails_before_analysis(make_orchestrator, reel_request, sink):
    request = reel_request.model_copy(update={"voiceover_path": None})

    job = make_orchestrator().run(request)

    assert job.status == ReelStatus.FAILED
    assert job.progress == 0.0
    assert "voiceover" in job.error
    assert sink.statuses == [ReelStatus.PROCESSING, ReelStatus.FAILED]


def test_status_sink_errors_do_not_fail_job(make_orchestrator, reel_request):
    class BrokenSink:
        def emit(self, job):
            raise ConnectionError("status store offline")

    job = make_orchestrator(status_sink=BrokenSink()).run(reel_request)

    assert job.status == ReelStatus.COMPLETED


def test_job_keeps_request_tone(make_orchestrator, reel_request):
    job = make_orchestrator().run(reel_request)

    assert job.tone == ReelTone.CASUAL


def test_unused_music_file_is_not_reported(make_orchestrator, reel_request, tmp_path):
    class BrokenMusic:
        def fetch(self, tone, mood, tracker):
            raise RuntimeError("music service exploded")

    request = reel_request.model_copy(update={"music_path": tmp_path / "inputs" / "bed.mp3"})

    job = make_orchestrator(music=BrokenMusic()).run(request)

    assert job.status == ReelStatus.COMPLETED
    assert job.music_path is None
