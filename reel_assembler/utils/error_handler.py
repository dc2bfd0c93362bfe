"""Error Handler - user-facing failure messages for job records and logs."""

from typing import Optional

from reel_assembler.core.exceptions import (
    AcquisitionError,
    CompositionError,
    MixError,
    ProviderError,
    RateLimitedError,
    RenderError,
    ToolkitError,
)


def format_error_message(
    operation: str,
    error: Exception,
    context: Optional[dict] = None,
    suggestion: Optional[str] = None,
) -> str:
    """
    Format a user-friendly error message.

    Args:
        operation: What was being done (e.g., "Rendering scene 3")
        error: The exception that occurred
        context: Additional context (e.g., {"job_id": "reel_abc", "scene": "s3"})
        suggestion: Optional hint for how to fix the issue

    Returns:
        Formatted error message
    """
    context_str = ""
    if context:
        context_str = " (" + ", ".join(f"{k}={v}" for k, v in context.items()) + ")"

    message = f"{operation} failed{context_str}: {type(error).__name__}: {error}"
    if suggestion:
        message += f" | Suggestion: {suggestion}"
    return message


def get_fallback_suggestion(stage: str, error: Exception) -> Optional[str]:
    """
    Suggest a remedy for a stage failure.

    Args:
        stage: Pipeline stage value (e.g., "gatheringVisuals", "assemblingVideo")
        error: The exception

    Returns:
        Suggestion string or None
    """
    error_msg = str(error).lower()

    if isinstance(error, RateLimitedError):
        return "A media provider rate-limited the job. Wait a few minutes and resubmit."

    if isinstance(error, AcquisitionError):
        return "No stock media matched a scene. Try broader keywords or configure a second provider key."

    if isinstance(error, ProviderError):
        if error.status_code in (401, 403) or "api key" in error_msg:
            return f"Check the {error.provider} API key in the .env file."
        return f"{error.provider} is unavailable. Retry later."

    if isinstance(error, ToolkitError):
        if "not found" in error_msg or "no such file" in error_msg:
            return "ffmpeg/ffprobe is not installed or not on PATH. Set FFMPEG_BINARY / FFPROBE_BINARY."
        if "timed out" in error_msg:
            return "A media toolkit call timed out. Raise TOOLKIT_TIMEOUT_SECONDS for long reels."
        return "The media toolkit rejected an input file. Check the logs for its stderr."

    if isinstance(error, RenderError):
        return "A scene clip did not come out as 1080x1920. The source media may be corrupt."

    if isinstance(error, CompositionError):
        return "Scene clips could not be joined. Check that every clip rendered with the same format."

    if isinstance(error, MixError):
        if stage == "finalizing" and ("caption" in error_msg or "subtitle" in error_msg):
            return "The caption file could not be burned in. Validate the .ass/.srt file."
        return "The voiceover or music track could not be mixed. Check the audio files."

    return None
