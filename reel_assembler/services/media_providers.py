"""Stock media providers - Pexels (primary) and Pixabay (secondary)."""

import math
from typing import Any, Optional

import requests
from pydantic import BaseModel, Field

from reel_assembler.core.config import Settings
from reel_assembler.core.exceptions import ProviderError, RateLimitedError
from reel_assembler.models.schemas import MediaKind, ScheduledScene, VisualType
from reel_assembler.utils.rate_limiter import get_provider_limiter

VIDEO_VISUAL_TYPES = (VisualType.B_ROLL, VisualType.TALKING)


class MediaCandidate(BaseModel):
    """A search hit before download."""

    provider: str = Field(..., description="Provider name")
    asset_id: str = Field(..., description="Provider-side id")
    kind: MediaKind = Field(..., description="video or image")
    url: str = Field(..., description="Direct download URL")
    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)
    duration: Optional[float] = Field(default=None, description="Video duration in seconds")

    @property
    def key(self) -> str:
        return f"{self.provider}:{self.asset_id}"

    @property
    def is_vertical(self) -> bool:
        return self.height > self.width


class MediaProvider:
    """Base class: HTTP plumbing, rate limiting and status-code mapping."""

    name = "provider"

    def __init__(self, settings: Settings, logger: Any, api_key: Optional[str], rate_limit: int = 60):
        """
        Initialize provider.

        Args:
            settings: Application settings
            logger: Logger instance
            api_key: Provider API key (provider is unavailable without one)
            rate_limit: Calls per minute shared by every job in the process
        """
        self.settings = settings
        self.logger = logger
        self.api_key = api_key
        self.rate_limit = rate_limit

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def search(self, keywords: list[str], scene: ScheduledScene) -> list[MediaCandidate]:
        """
        Search for media matching ``keywords`` for ``scene``.

        Returns:
            Candidates in provider preference order (may be empty)

        Raises:
            RateLimitedError: Provider answered 429
            ProviderError: Any other HTTP or transport failure
        """
        raise NotImplementedError

    def _get_json(self, url: str, params: dict, headers: Optional[dict] = None) -> dict:
        if self.settings.enable_rate_limiting:
            get_provider_limiter(self.name, max_calls=self.rate_limit).wait_if_needed(url)

        try:
            response = requests.get(
                url,
                params=params,
                headers=headers or {},
                timeout=self.settings.http_timeout_seconds,
            )
        except requests.RequestException as e:
            raise ProviderError(f"{self.name} request failed: {e}", provider=self.name, retryable=True) from e

        status = response.status_code
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitedError(
                f"{self.name} rate limit reached",
                provider=self.name,
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if status >= 500:
            raise ProviderError(f"{self.name} server error: {status}", provider=self.name, status_code=status)
        if status >= 400:
            raise ProviderError(
                f"{self.name} rejected the request: {status} - {response.text[:200]}",
                provider=self.name,
                status_code=status,
                retryable=False,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.name} returned invalid JSON", provider=self.name, status_code=status, retryable=False
            ) from e


class PexelsProvider(MediaProvider):
    """Pexels videos and photos. Requests portrait orientation."""

    name = "pexels"

    def __init__(self, settings: Settings, logger: Any):
        super().__init__(settings, logger, settings.pexels_api_key, settings.pexels_rate_limit)
        self.base_url = settings.pexels_base_url.rstrip("/")

    @property
    def headers(self) -> dict:
        return {"Authorization": self.api_key or ""}

    def search(self, keywords: list[str], scene: ScheduledScene) -> list[MediaCandidate]:
        if not keywords:
            return []
        if scene.descriptor.visual_type in VIDEO_VISUAL_TYPES:
            candidates = self._search_videos(keywords)
            if not candidates and len(keywords) > 2:
                self.logger.debug("Pexels: retrying with reduced keywords")
                candidates = self._search_videos(keywords[:2])
            return candidates
        return self._search_photos(keywords)

    def _search_videos(self, keywords: list[str]) -> list[MediaCandidate]:
        data = self._get_json(
            f"{self.base_url}/videos/search",
            params={"query": " ".join(keywords), "orientation": "portrait", "size": "large", "per_page": 30},
            headers=self.headers,
        )

        candidates = []
        for video in data.get("videos") or []:
            video_file = next(
                (
                    f
                    for f in video.get("video_files", [])
                    if f.get("quality") in ("hd", "sd") and (f.get("width") or 0) >= 1080
                ),
                None,
            )
            if video_file is None:
                continue
            candidates.append(
                MediaCandidate(
                    provider=self.name,
                    asset_id=str(video["id"]),
                    kind=MediaKind.VIDEO,
                    url=video_file["link"],
                    width=video.get("width") or video_file.get("width") or 0,
                    height=video.get("height") or video_file.get("height") or 0,
                    duration=float(video.get("duration") or 0),
                )
            )
        return candidates

    def _search_photos(self, keywords: list[str]) -> list[MediaCandidate]:
        data = self._get_json(
            f"{self.base_url}/v1/search",
            params={"query": " ".join(keywords), "orientation": "portrait", "size": "large", "per_page": 15},
            headers=self.headers,
        )

        candidates = []
        for photo in data.get("photos") or []:
            if (photo.get("height") or 0) < self.settings.video_height:
                continue
            src = photo.get("src") or {}
            url = src.get("large2x") or src.get("large")
            if not url:
                continue
            candidates.append(
                MediaCandidate(
                    provider=self.name,
                    asset_id=str(photo["id"]),
                    kind=MediaKind.IMAGE,
                    url=url,
                    width=photo.get("width") or 0,
                    height=photo.get("height") or 0,
                )
            )
        return candidates


class PixabayProvider(MediaProvider):
    """Pixabay videos and images. API key travels as a query parameter."""

    name = "pixabay"
    duration_buffer = 2.0

    def __init__(self, settings: Settings, logger: Any):
        super().__init__(settings, logger, settings.pixabay_api_key, settings.pixabay_rate_limit)
        self.base_url = settings.pixabay_base_url.rstrip("/")

    def search(self, keywords: list[str], scene: ScheduledScene) -> list[MediaCandidate]:
        if not keywords:
            return []
        visual_type = scene.descriptor.visual_type
        if visual_type in VIDEO_VISUAL_TYPES:
            category = "people" if visual_type == VisualType.TALKING else None
            return self._search_videos(keywords, scene.duration, category)
        return self._search_images(keywords)

    def _search_videos(self, keywords: list[str], duration: float, category: Optional[str]) -> list[MediaCandidate]:
        params = {
            "key": self.api_key,
            "q": " ".join(keywords),
            "per_page": 20,
            "min_duration": max(1, math.floor(duration - self.duration_buffer)),
            "max_duration": math.ceil(duration + self.duration_buffer),
            "order": "relevance",
            "min_width": 1920,
            "safesearch": "true",
            "video_type": "film,animation",
        }
        if category:
            params["category"] = category

        data = self._get_json(f"{self.base_url}/videos/", params=params)

        candidates = []
        for hit in data.get("hits") or []:
            large = (hit.get("videos") or {}).get("large") or {}
            if not large.get("url"):
                continue
            candidates.append(
                MediaCandidate(
                    provider=self.name,
                    asset_id=str(hit["id"]),
                    kind=MediaKind.VIDEO,
                    url=large["url"],
                    width=large.get("width") or hit.get("width") or 0,
                    height=large.get("height") or hit.get("height") or 0,
                    duration=float(hit["duration"]) if hit.get("duration") is not None else None,
                )
            )
        return candidates

    def _search_images(self, keywords: list[str]) -> list[MediaCandidate]:
        data = self._get_json(
            f"{self.base_url}/",
            params={
                "key": self.api_key,
                "q": " ".join(keywords),
                "per_page": 10,
                "image_type": "photo",
                "orientation": "horizontal",
                "order": "relevance",
                "min_width": 1920,
                "safesearch": "true",
            },
        )

        return [
            MediaCandidate(
                provider=self.name,
                asset_id=str(hit["id"]),
                kind=MediaKind.IMAGE,
                url=hit["largeImageURL"],
                width=hit.get("imageWidth") or 0,
                height=hit.get("imageHeight") or 0,
            )
            for hit in data.get("hits") or []
            if hit.get("largeImageURL")
        ]


def build_default_providers(settings: Settings, logger: Any) -> list[MediaProvider]:
    """Primary then secondary; providers without a key are left out."""
    providers: list[MediaProvider] = [PexelsProvider(settings, logger), PixabayProvider(settings, logger)]
    available = [p for p in providers if p.available]
    for provider in providers:
        if not provider.available:
            logger.warning(f"{provider.name} API key not configured; provider disabled")
    return available
