"""Thumbnail Generator - grabs the middle frame of a finished reel."""

from pathlib import Path
from typing import Any, Optional

from PIL import Image

from reel_assembler.core.config import Settings
from reel_assembler.core.exceptions import ToolkitError
from reel_assembler.models.schemas import FinalVideo
from reel_assembler.services.media_toolkit import MediaToolkit
from reel_assembler.utils.temp_assets import TempAssetTracker


class ThumbnailGenerator:
    """Extracts a frame at 50% of the reel and fits it to the thumbnail size."""

    def __init__(self, settings: Settings, logger: Any, toolkit: MediaToolkit):
        """
        Initialize thumbnail generator.

        Args:
            settings: Application settings
            logger: Logger instance
            toolkit: Media toolkit for frame extraction
        """
        self.settings = settings
        self.logger = logger
        self.toolkit = toolkit
        self.enabled = settings.thumbnail_enabled
        self.size = (settings.thumbnail_width, settings.thumbnail_height)

    def generate(self, video: FinalVideo, tracker: TempAssetTracker) -> Optional[Path]:
        """
        Write ``<output stem>_thumbnail.jpg`` next to the reel.

        Returns:
            Thumbnail path, or None when disabled or extraction failed
        """
        if not self.enabled:
            self.logger.debug("Thumbnail generation is disabled")
            return None

        frame_path = tracker.create_path("thumbnail_frame", ".png")
        thumbnail_path = video.path.with_name(f"{video.path.stem}_thumbnail.jpg")
        try:
            self.toolkit.extract_frame(video.path, frame_path, at_seconds=video.duration * 0.5)
            with Image.open(frame_path) as frame:
                thumbnail = fit_to_size(frame.convert("RGB"), self.size)
            thumbnail.save(thumbnail_path, "JPEG", quality=90)
        except (ToolkitError, OSError) as e:
            self.logger.warning(f"Thumbnail generation failed: {e}")
            return None
        finally:
            tracker.release(frame_path)

        self.logger.info(f"Thumbnail saved: {thumbnail_path}")
        return thumbnail_path


def fit_to_size(img: Image.Image, target_size: tuple[int, int]) -> Image.Image:
    """Center-crop ``img`` to the target aspect ratio, then resize to exactly ``target_size``."""
    target_width, target_height = target_size
    img_width, img_height = img.size
    target_aspect = target_width / target_height

    if img_width / img_height > target_aspect:
        new_width = int(img_height * target_aspect)
        left = (img_width - new_width) // 2
        img = img.crop((left, 0, left + new_width, img_height))
    else:
        new_height = int(img_width / target_aspect)
        top = (img_height - new_height) // 2
        img = img.crop((0, top, img_width, top + new_height))

    return img.resize(target_size, Image.Resampling.LANCZOS)
