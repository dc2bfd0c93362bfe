"""FastAPI routes for reel jobs."""

import threading
from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from reel_assembler.core.config import Settings, settings
from reel_assembler.core.logging_config import get_logger
from reel_assembler.models.schemas import ReelJob, ReelJobResponse, ReelRequest
from reel_assembler.pipelines.orchestrator import ReelOrchestrator
from reel_assembler.services.collaborators import LocalMusicFile
from reel_assembler.services.music_service import BackgroundMusicFetcher

router = APIRouter(prefix="/reels", tags=["reels"])


def build_orchestrator(
    logger: Any, request: ReelRequest, app_settings: Optional[Settings] = None, **kwargs: Any
) -> ReelOrchestrator:
    """A request's own music file wins over Jamendo; with neither the reel is voice-only."""
    app_settings = app_settings or settings
    if request.music_path is not None:
        music = LocalMusicFile(request.music_path, logger)
    elif app_settings.jamendo_api_key:
        music = BackgroundMusicFetcher(app_settings, logger)
    else:
        music = None
    return ReelOrchestrator(app_settings, logger, music=music, **kwargs)


class ReelJobRegistry:
    """In-memory job table; each job runs on its own background thread."""

    def __init__(self, orchestrator_factory: Callable[[Any, ReelRequest], ReelOrchestrator] = build_orchestrator):
        self.orchestrator_factory = orchestrator_factory
        self._jobs: dict[str, ReelJob] = {}
        self._threads: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    def submit(self, request: ReelRequest) -> ReelJob:
        logger = get_logger(__name__)
        orchestrator = self.orchestrator_factory(logger, request)
        job = orchestrator.create_job(request)
        thread = threading.Thread(target=orchestrator.run, args=(request, job), name=f"reel-{job.id}", daemon=True)
        with self._lock:
            self._jobs[job.id] = job
            self._threads[job.id] = thread
        thread.start()
        logger.bind(job_id=job.id).info("Reel job submitted")
        return job

    def get(self, job_id: str) -> Optional[ReelJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> None:
        with self._lock:
            thread = self._threads.get(job_id)
        if thread is not None:
            thread.join(timeout)


_registry = ReelJobRegistry()


def get_registry() -> ReelJobRegistry:
    return _registry


@router.post("", response_model=ReelJobResponse, status_code=status.HTTP_202_ACCEPTED)
def create_reel(request: ReelRequest, registry: ReelJobRegistry = Depends(get_registry)) -> ReelJobResponse:
    """
    Start a reel job.

    The request must carry the scene timeline and local voiceover/caption
    paths; the job runs in the background and is polled via GET /reels/{id}.
    """
    missing = [
        name
        for name, value in (
            ("timeline", request.timeline),
            ("voiceover_path", request.voiceover_path),
            ("captions_path", request.captions_path),
        )
        if value is None
    ]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")

    job = registry.submit(request)
    return ReelJobResponse.from_job(job)


@router.get("/{job_id}", response_model=ReelJobResponse)
def get_reel(job_id: str, registry: ReelJobRegistry = Depends(get_registry)) -> ReelJobResponse:
    job = registry.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Reel job not found: {job_id}")
    return ReelJobResponse.from_job(job)


@router.post("/{job_id}/cancel", response_model=ReelJobResponse)
def cancel_reel(job_id: str, registry: ReelJobRegistry = Depends(get_registry)) -> ReelJobResponse:
    """Request cooperative cancellation; 409 if the job already finished."""
    job = registry.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Reel job not found: {job_id}")
    if not job.request_cancel():
        raise HTTPException(status_code=409, detail=f"Reel job already {job.status.value}")
    return ReelJobResponse.from_job(job)
