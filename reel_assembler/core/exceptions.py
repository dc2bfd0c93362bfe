"""Exception taxonomy for reel assembly.

Every stage raises one of these and lets it propagate; the orchestrator is the
only place that catches them, records the message on the job and triggers
temp-file cleanup.
"""

from typing import Any, Optional


class ReelAssemblyError(Exception):
    """Base class for all job-level failures."""


class ProviderError(ReelAssemblyError):
    """A stock-media or music provider call failed."""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        status_code: Optional[int] = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable


class RateLimitedError(ProviderError):
    """Provider answered 429; always worth another attempt after backing off."""

    def __init__(self, message: str, provider: str = "unknown", retry_after: Optional[float] = None):
        super().__init__(message, provider=provider, status_code=429, retryable=True)
        self.retry_after = retry_after


class AcquisitionError(ReelAssemblyError):
    """No usable media for a scene after every strategy and provider was tried."""

    def __init__(self, message: str, scene_id: Optional[str] = None, attempts: int = 0):
        super().__init__(message)
        self.scene_id = scene_id
        self.attempts = attempts


NoMediaFound = AcquisitionError


class ToolkitError(ReelAssemblyError):
    """ffmpeg/ffprobe exited non-zero, timed out or is not installed."""

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result


class RenderError(ReelAssemblyError):
    """A single scene could not be rendered or failed output validation."""


SceneRenderError = RenderError


class CompositionError(ReelAssemblyError):
    """Normalization or transition chaining of the scene clips failed."""


class MixError(ReelAssemblyError):
    """Audio mixing, caption burn-in or final muxing failed."""


class JobCancelled(ReelAssemblyError):
    """Raised at a stage boundary once cancellation has been requested."""


class InvalidStatusTransition(ReelAssemblyError):
    """A job status change that the state machine does not allow."""
