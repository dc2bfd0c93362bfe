"""I/O utility functions for file and directory operations."""

import re
from datetime import datetime
from pathlib import Path
from typing import Optional


def slugify(text: str, max_length: int = 60) -> str:
    """
    Convert text to a filesystem-safe slug.

    Args:
        text: Input text to slugify.
        max_length: Upper bound on the slug length.

    Returns:
        Filesystem-safe slug string ("reel" when nothing usable remains).
    """
    text = re.sub(r"[^\w\s-]", "", text.lower())
    text = re.sub(r"[-\s_]+", "-", text).strip("-")
    if len(text) > max_length:
        text = text[:max_length].rstrip("-")
    return text or "reel"


def create_run_output_dir(base_dir: str, slug: str, now: Optional[datetime] = None) -> Path:
    """
    Create a timestamped output directory for one reel.

    Args:
        base_dir: Base directory for outputs (e.g., "outputs/reels").
        slug: Slugified identifier for the run (job id or script opening).
        now: Timestamp override.

    Returns:
        Path to the created directory.
    """
    timestamp = (now or datetime.now()).strftime("%Y-%m-%d_%H%M%S")
    output_dir = Path(base_dir) / f"{timestamp}_{slug}"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def file_size(path: Path) -> int:
    """Size in bytes, or 0 if the file does not exist."""
    try:
        return Path(path).stat().st_size
    except OSError:
        return 0
