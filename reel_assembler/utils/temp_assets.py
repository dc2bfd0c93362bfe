"""Temp Asset Tracker - owns every intermediate file a job creates."""

import shutil
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Any, Optional


class TempAssetTracker:
    """
    Thread-safe registry of job-scoped temporary files.

    Every download, rendered clip, normalized clip and composite goes through
    ``create_path`` or ``register`` so that ``cleanup_all`` can remove them on
    every exit path (success, failure or cancellation). Cleanup is idempotent
    and never raises; removal failures are logged and skipped.
    """

    def __init__(self, logger: Any, base_dir: Optional[Path] = None, job_id: str = "job"):
        """
        Initialize tracker.

        Args:
            logger: Logger instance
            base_dir: Parent directory for scratch files (default: system temp)
            job_id: Used to name the scratch directory
        """
        self.logger = logger
        root = Path(base_dir) if base_dir else Path(tempfile.gettempdir())
        self.work_dir = root / f"reel_{job_id}"
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self._paths: set[Path] = set()
        self._lock = threading.Lock()

    def create_path(self, prefix: str, suffix: str) -> Path:
        """
        Allocate a unique path inside the job's scratch directory and register it.

        The file itself is not created; the caller (a download or a toolkit call) writes it.

        Args:
            prefix: Human-readable prefix (e.g. "scene_03_media")
            suffix: File extension including the dot

        Returns:
            Registered path
        """
        path = self.work_dir / f"{prefix}_{uuid.uuid4().hex[:8]}{suffix}"
        self.register(path)
        return path

    def register(self, path: Path) -> Path:
        with self._lock:
            self._paths.add(Path(path))
        return Path(path)

    def release(self, path: Path, delete: bool = True) -> None:
        """Stop tracking a path, removing it from disk unless ``delete`` is False."""
        path = Path(path)
        with self._lock:
            self._paths.discard(path)
        if delete:
            self._remove(path)

    def tracked(self) -> list[Path]:
        with self._lock:
            return sorted(self._paths)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return Path(path) in self._paths  # type: ignore[arg-type]

    def cleanup_all(self) -> int:
        """
        Remove every tracked file and the scratch directory.

        Returns:
            Number of files removed
        """
        with self._lock:
            paths = list(self._paths)
            self._paths.clear()

        removed = 0
        for path in paths:
            if self._remove(path):
                removed += 1

        if self.work_dir.exists():
            shutil.rmtree(self.work_dir, ignore_errors=True)

        if removed:
            self.logger.debug(f"Removed {removed} temporary file(s) from {self.work_dir}")
        return removed

    def _remove(self, path: Path) -> bool:
        try:
            if path.exists():
                path.unlink()
                return True
        except OSError as e:
            self.logger.warning(f"Could not remove temporary file {path}: {e}")
        return False

    def __enter__(self) -> "TempAssetTracker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup_all()
