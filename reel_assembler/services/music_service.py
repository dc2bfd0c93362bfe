"""Background music - Jamendo track search and a fetcher that degrades to "no music"."""

import random
from pathlib import Path
from typing import Any, Optional

import requests
from pydantic import BaseModel, Field

from reel_assembler.core.config import Settings
from reel_assembler.core.exceptions import ProviderError, RateLimitedError, ReelAssemblyError
from reel_assembler.models.schemas import ReelTone
from reel_assembler.utils.rate_limiter import get_provider_limiter
from reel_assembler.utils.temp_assets import TempAssetTracker

TONE_TAGS: dict[ReelTone, list[str]] = {
    ReelTone.DRAMATIC: ["dramatic", "instrumental", "epic"],
    ReelTone.PROFESSIONAL: ["corporate", "instrumental", "background"],
    ReelTone.CASUAL: ["upbeat", "instrumental", "positive"],
}


class MusicTrack(BaseModel):
    """A downloadable Jamendo track."""

    id: str
    name: str = ""
    duration: float = Field(default=0.0, ge=0.0)
    url: str


class JamendoMusicService:
    """Searches Jamendo for an instrumental track matching tone and mood."""

    name = "jamendo"
    top_tracks = 10

    def __init__(self, settings: Settings, logger: Any, rng: Optional[random.Random] = None):
        self.settings = settings
        self.logger = logger
        self.api_key = settings.jamendo_api_key
        self.base_url = settings.jamendo_base_url.rstrip("/")
        self.rng = rng or random.Random()

    @staticmethod
    def tag_strategies(tone: ReelTone, mood: str) -> list[list[str]]:
        strategies = [TONE_TAGS.get(tone, ["instrumental", "background"])]
        if mood and mood.strip():
            strategies.append([mood.strip().lower(), "instrumental"])
        strategies.append(["instrumental", "background"])
        return strategies

    def find_track(self, tone: ReelTone, mood: str) -> Optional[MusicTrack]:
        """
        Try tone tags, then mood, then generic instrumental.

        Returns:
            A track chosen at random from the top matches, or None

        Raises:
            ProviderError: Jamendo is not configured or answered with an error
        """
        if not self.api_key:
            raise ProviderError("Jamendo API key is not configured", provider=self.name, retryable=False)

        for tags in self.tag_strategies(tone, mood):
            track = self._search(tags)
            if track is not None:
                self.logger.info(f"Selected music track {track.id} '{track.name}' ({track.duration:.0f}s) via {tags}")
                return track
            self.logger.debug(f"No Jamendo track for tags {tags}")
        return None

    def _search(self, tags: list[str]) -> Optional[MusicTrack]:
        if self.settings.enable_rate_limiting:
            get_provider_limiter(self.name, max_calls=self.settings.jamendo_rate_limit).wait_if_needed("tracks")

        params = {
            "client_id": self.api_key,
            "format": "json",
            "limit": 100,
            "include": "musicinfo",
            "orderby": "popularity_total",
            "audioformat": "mp32",
            "tags": "+".join(tags),
        }
        try:
            response = requests.get(
                f"{self.base_url}/tracks/", params=params, timeout=self.settings.http_timeout_seconds
            )
        except requests.RequestException as e:
            raise ProviderError(f"Jamendo request failed: {e}", provider=self.name) from e

        if response.status_code == 429:
            raise RateLimitedError("Jamendo rate limit reached", provider=self.name)
        if response.status_code != 200:
            raise ProviderError(
                f"Jamendo API error: {response.status_code}",
                provider=self.name,
                status_code=response.status_code,
                retryable=response.status_code >= 500,
            )

        min_seconds = self.settings.music_min_track_seconds
        max_seconds = self.settings.music_max_track_seconds
        valid = [
            track
            for track in response.json().get("results") or []
            if (track.get("audiodownload") or track.get("audio"))
            and min_seconds <= float(track.get("duration") or 0) <= max_seconds
        ]
        if not valid:
            return None

        chosen = self.rng.choice(valid[: self.top_tracks])
        return MusicTrack(
            id=str(chosen.get("id")),
            name=chosen.get("name") or "",
            duration=float(chosen.get("duration") or 0),
            url=chosen.get("audiodownload") or chosen.get("audio"),
        )


class BackgroundMusicFetcher:
    """
    Finds and downloads background music into the job's temp space.

    Music is optional: every failure is logged and turned into ``None`` so the
    job continues with voice-only audio.
    """

    def __init__(self, settings: Settings, logger: Any, service: Optional[JamendoMusicService] = None):
        self.settings = settings
        self.logger = logger
        self.service = service or JamendoMusicService(settings, logger)

    def fetch(self, tone: ReelTone, mood: str, tracker: TempAssetTracker) -> Optional[Path]:
        attempts = max(1, self.settings.music_download_attempts)
        for attempt in range(1, attempts + 1):
            path: Optional[Path] = None
            try:
                track = self.service.find_track(tone, mood)
                if track is None:
                    self.logger.warning("No suitable background music found; continuing without music")
                    return None
                path = tracker.create_path("music", ".mp3")
                self._download(track.url, path)
                return path
            except ProviderError as e:
                if path is not None:
                    tracker.release(path)
                if not e.retryable:
                    self.logger.warning(f"Background music unavailable: {e}")
                    return None
                self.logger.warning(f"Background music attempt {attempt}/{attempts} failed: {e}")
            except (ReelAssemblyError, requests.RequestException, OSError) as e:
                if path is not None:
                    tracker.release(path)
                self.logger.warning(f"Background music attempt {attempt}/{attempts} failed: {e}")
        self.logger.warning("Background music failed after all attempts; continuing without music")
        return None

    def _download(self, url: str, path: Path) -> None:
        with requests.get(url, stream=True, timeout=self.settings.download_timeout_seconds) as response:
            if response.status_code != 200:
                raise ProviderError(
                    f"music download failed with status {response.status_code}",
                    provider=self.service.name,
                    status_code=response.status_code,
                )
            with open(path, "wb") as f:
                for chunk in response.iter_content(chunk_size=1024 * 64):
                    if chunk:
                        f.write(chunk)
        if path.stat().st_size == 0:
            raise ProviderError("music download was empty", provider=self.service.name)
