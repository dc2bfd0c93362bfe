"""Reel orchestrator - drives one job through the status state machine."""

import time
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from reel_assembler.core.config import Settings
from reel_assembler.core.exceptions import JobCancelled, ReelAssemblyError
from reel_assembler.models.schemas import (
    CompositeVideo,
    MediaAsset,
    ReelJob,
    ReelRequest,
    ReelStatus,
    SceneDescriptor,
    ScheduledScene,
)
from reel_assembler.services.audio_mixer import AudioCaptionMixer
from reel_assembler.services.collaborators import (
    Captioner,
    FixedTimelineAnalyzer,
    LoggingStatusSink,
    MusicSource,
    PrerecordedCaptions,
    PrerecordedVoice,
    ScriptAnalyzer,
    StatusSink,
    VoiceSynthesizer,
)
from reel_assembler.services.media_acquisition import MediaAcquisition
from reel_assembler.services.media_providers import MediaProvider, build_default_providers
from reel_assembler.services.media_toolkit import MediaToolkit
from reel_assembler.services.scene_compositor import SceneCompositor
from reel_assembler.services.scene_renderer import SceneRenderer
from reel_assembler.services.thumbnail_generator import ThumbnailGenerator
from reel_assembler.utils.error_handler import format_error_message, get_fallback_suggestion
from reel_assembler.utils.io_utils import create_run_output_dir, slugify
from reel_assembler.utils.parallel_executor import ParallelExecutor
from reel_assembler.utils.temp_assets import TempAssetTracker


class SceneMediaSource(Protocol):
    def fetch(self, scene: ScheduledScene) -> MediaAsset:
        ...


def reconcile_scenes(descriptors: list[SceneDescriptor], voiceover_duration: float) -> list[ScheduledScene]:
    """
    Rescale planned scene durations so they exactly span the voiceover.

    Every duration is multiplied by ``voiceover_duration / sum(planned)`` and
    start times are recomputed back to back. The last scene absorbs
    floating-point residue so the sum matches the voiceover exactly.

    Args:
        descriptors: Scenes in playback order
        voiceover_duration: Probed voiceover length in seconds

    Returns:
        ScheduledScene list, index-aligned with ``descriptors``

    Raises:
        ReelAssemblyError: Empty plan or non-positive durations
    """
    if not descriptors:
        raise ReelAssemblyError("Scene timeline is empty")
    planned = sum(d.duration for d in descriptors)
    if planned <= 0 or voiceover_duration <= 0:
        raise ReelAssemblyError(
            f"Cannot reconcile {planned:.2f}s of scenes to a {voiceover_duration:.2f}s voiceover"
        )

    ratio = voiceover_duration / planned
    scheduled = []
    start = 0.0
    last = len(descriptors) - 1
    for index, descriptor in enumerate(descriptors):
        duration = voiceover_duration - start if index == last else descriptor.duration * ratio
        scheduled.append(ScheduledScene(index=index, descriptor=descriptor, start_time=start, duration=duration))
        start += duration
    return scheduled


class ReelOrchestrator:
    """
    Runs a reel job end to end.

    processing -> analyzing -> generatingVoiceover -> gatheringVisuals ->
    assemblingVideo -> finalizing -> completed, with failed/cancelled
    reachable from any non-terminal state. This is the only place that
    catches stage errors; temp files are cleaned on every exit path.
    """

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        analyzer: Optional[ScriptAnalyzer] = None,
        voice: Optional[VoiceSynthesizer] = None,
        captioner: Optional[Captioner] = None,
        music: Optional[MusicSource] = None,
        status_sink: Optional[StatusSink] = None,
        toolkit: Optional[MediaToolkit] = None,
        providers: Optional[list[MediaProvider]] = None,
        media_source_factory: Optional[Callable[[TempAssetTracker], SceneMediaSource]] = None,
        output_dir: Optional[Path] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Application settings
            logger: Logger instance
            analyzer: Script analysis collaborator (default: timeline carried by the request)
            voice: Voice synthesis collaborator (default: request's voiceover file)
            captioner: Captioning collaborator (default: request's caption file)
            music: Background music source; None means voice-only
            status_sink: Receives the job on every transition
            toolkit: Media toolkit (default: ffmpeg/ffprobe from settings)
            providers: Stock media providers in priority order
            media_source_factory: Builds the per-job scene media source from the job tracker
            output_dir: Where finished reels go (default: settings.output_dir)
        """
        self.settings = settings
        self.logger = logger
        self.analyzer = analyzer
        self.voice = voice
        self.captioner = captioner
        self.music = music
        self.status_sink = status_sink or LoggingStatusSink(logger)
        self.toolkit = toolkit or MediaToolkit(settings, logger)
        self.providers = providers
        self.media_source_factory = media_source_factory
        self.output_dir = Path(output_dir or settings.output_dir)
        self.executor = ParallelExecutor(settings, logger)

    # ------------------------------------------------------------------
    # State machine helpers
    # ------------------------------------------------------------------

    def _emit(self, job: ReelJob) -> None:
        try:
            self.status_sink.emit(job)
        except Exception as e:  # sink is fire-and-forget
            self.logger.warning(f"Status sink failed for job {job.id}: {e}")

    def _check_cancel(self, job: ReelJob) -> None:
        if job.cancel_requested:
            raise JobCancelled(f"Job {job.id} cancelled during {job.status.value}")

    def _advance(self, job: ReelJob, status: ReelStatus, log: Any) -> None:
        self._check_cancel(job)
        job.advance(status)
        log.info(f"Stage: {status.value} ({job.progress:.0%})")
        self._emit(job)

    # ------------------------------------------------------------------
    # Collaborator resolution
    # ------------------------------------------------------------------

    def _resolve_collaborators(self, request: ReelRequest) -> tuple[ScriptAnalyzer, VoiceSynthesizer, Captioner]:
        analyzer = self.analyzer
        if analyzer is None:
            if request.timeline is None:
                raise ReelAssemblyError("No scene timeline supplied and no script analyzer configured")
            analyzer = FixedTimelineAnalyzer(request.timeline)

        voice = self.voice
        if voice is None:
            if request.voiceover_path is None:
                raise ReelAssemblyError("No voiceover supplied and no voice synthesizer configured")
            voice = PrerecordedVoice(request.voiceover_path)

        captioner = self.captioner
        if captioner is None:
            if request.captions_path is None:
                raise ReelAssemblyError("No caption track supplied and no captioner configured")
            captioner = PrerecordedCaptions(request.captions_path)

        return analyzer, voice, captioner

    def _media_source(self, tracker: TempAssetTracker, log: Any) -> SceneMediaSource:
        if self.media_source_factory is not None:
            return self.media_source_factory(tracker)
        providers = self.providers if self.providers is not None else build_default_providers(self.settings, log)
        return MediaAcquisition(self.settings, log, providers, self.toolkit, tracker)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _gather_visuals(
        self, job: ReelJob, scenes: list[ScheduledScene], tracker: TempAssetTracker, log: Any
    ) -> list[MediaAsset]:
        source = self._media_source(tracker, log)
        return self.executor.map_ordered(
            [lambda scene=scene: source.fetch(scene) for scene in scenes],
            task_names=[f"fetch scene {scene.index} ({scene.id})" for scene in scenes],
            max_workers=self.settings.max_parallel_scene_fetches,
            should_cancel=lambda: job.cancel_requested,
        )

    def _fetch_music(self, job: ReelJob, mood: str, tracker: TempAssetTracker, log: Any) -> Optional[Path]:
        if self.music is None:
            return None
        try:
            return self.music.fetch(job.tone, mood, tracker)
        except Exception as e:  # music degrades to voice-only, never fails the job
            log.warning(f"Background music failed, continuing without music: {e}")
            return None

    def _assemble(
        self, job: ReelJob, scenes: list[ScheduledScene], assets: list[MediaAsset], tracker: TempAssetTracker, log: Any
    ) -> CompositeVideo:
        renderer = SceneRenderer(self.settings, log, self.toolkit, tracker)
        clips = self.executor.map_ordered(
            [lambda scene=scene, asset=asset: renderer.render(scene, asset) for scene, asset in zip(scenes, assets)],
            task_names=[f"render scene {scene.index} ({scene.id})" for scene in scenes],
            max_workers=self.settings.max_parallel_scene_renders,
            should_cancel=lambda: job.cancel_requested,
        )
        for asset in assets:
            if asset.local_path is not None:
                tracker.release(asset.local_path)
        self._check_cancel(job)
        return SceneCompositor(self.settings, log, self.toolkit, tracker).combine(clips)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def create_job(self, request: ReelRequest) -> ReelJob:
        return ReelJob(tone=request.tone)

    def run(self, request: ReelRequest, job: Optional[ReelJob] = None) -> ReelJob:
        """
        Run a job to a terminal state.

        Args:
            request: Job inputs
            job: Pre-created job (lets callers hold a handle for cancellation)

        Returns:
            The job, in completed, failed or cancelled state
        """
        job = job or self.create_job(request)
        log = self.logger.bind(job_id=job.id)
        tracker = TempAssetTracker(log, base_dir=self.settings.temp_dir, job_id=job.id)
        output_path: Optional[Path] = None
        start_time = time.time()

        self._emit(job)
        try:
            analyzer, voice, captioner = self._resolve_collaborators(request)

            self._advance(job, ReelStatus.ANALYZING, log)
            timeline = analyzer.analyze(request.script, job.tone)
            log.info(f"Timeline: {len(timeline.scenes)} scenes, {timeline.planned_duration:.2f}s planned, mood={timeline.mood}")

            self._advance(job, ReelStatus.GENERATING_VOICEOVER, log)
            job.voiceover_path = voice.synthesize(request.script, request.voice_id, job.tone, tracker)
            self._check_cancel(job)
            job.captions_path = captioner.caption(job.voiceover_path, job.tone, tracker)
            voice_duration = self.toolkit.probe(job.voiceover_path).duration
            scenes = reconcile_scenes(timeline.scenes, voice_duration)
            log.info(
                f"Reconciled {len(scenes)} scenes to {voice_duration:.2f}s voiceover "
                f"(ratio {voice_duration / timeline.planned_duration:.3f})"
            )

            self._advance(job, ReelStatus.GATHERING_VISUALS, log)
            assets = self._gather_visuals(job, scenes, tracker, log)
            self._check_cancel(job)
            job.music_path = self._fetch_music(job, timeline.music_mood or timeline.mood, tracker, log)

            self._advance(job, ReelStatus.ASSEMBLING_VIDEO, log)
            composite = self._assemble(job, scenes, assets, tracker, log)

            self._advance(job, ReelStatus.FINALIZING, log)
            run_dir = create_run_output_dir(str(self.output_dir), slugify(job.id))
            output_path = run_dir / "reel.mp4"
            final = AudioCaptionMixer(self.settings, log, self.toolkit).finalize(
                composite,
                job.voiceover_path,
                job.captions_path,
                output_path,
                music_path=job.music_path,
            )
            tracker.release(composite.path)
            job.output_path = final.path
            self._check_cancel(job)
            job.thumbnail_path = ThumbnailGenerator(self.settings, log, self.toolkit).generate(final, tracker)

            self._advance(job, ReelStatus.COMPLETED, log)
            log.info(f"Reel completed in {time.time() - start_time:.2f}s: {final.path}")

        except JobCancelled:
            self._discard_output(job, output_path)
            job.cancel()
            log.warning(f"Job cancelled after {time.time() - start_time:.2f}s")
            self._emit(job)
        except ReelAssemblyError as e:
            self._discard_output(job, output_path)
            stage = job.status.value
            job.fail(format_error_message(f"Stage {stage}", e, suggestion=get_fallback_suggestion(stage, e)))
            log.error(job.error)
            self._emit(job)
        except Exception as e:
            self._discard_output(job, output_path)
            job.fail(format_error_message(f"Stage {job.status.value}", e))
            log.exception(f"Unexpected failure: {e}")
            self._emit(job)
        finally:
            removed = tracker.cleanup_all()
            log.debug(f"Temp cleanup removed {removed} file(s)")
            # Scratch copies are gone; point the record back at the caller's own files
            job.voiceover_path = request.voiceover_path
            job.captions_path = request.captions_path
            # Only a mixed music bed stays on the record
            job.music_path = request.music_path if job.music_path is not None else None

        return job

    def _discard_output(self, job: ReelJob, output_path: Optional[Path]) -> None:
        """A job that does not complete leaves nothing in the output directory."""
        job.output_path = None
        job.thumbnail_path = None
        if output_path is None:
            return
        for path in (output_path, output_path.with_name(f"{output_path.stem}_thumbnail.jpg")):
            path.unlink(missing_ok=True)
        try:
            output_path.parent.rmdir()
        except OSError:
            pass
