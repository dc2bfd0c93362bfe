"""Media Acquisition - finds, downloads and validates one stock asset per scene."""

import random
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Callable, Optional

import requests
from PIL import Image

from reel_assembler.core.config import Settings
from reel_assembler.core.exceptions import AcquisitionError, ProviderError, RateLimitedError, ToolkitError
from reel_assembler.models.schemas import MediaAsset, MediaKind, ScheduledScene, VisualType
from reel_assembler.services.media_providers import MediaCandidate, MediaProvider
from reel_assembler.services.media_toolkit import MediaToolkit
from reel_assembler.utils.io_utils import file_size
from reel_assembler.utils.temp_assets import TempAssetTracker
from reel_assembler.utils.text_utils import clean_search_terms, query_similarity

# Generic last-resort terms per visual type
VISUAL_TYPE_TERMS: dict[VisualType, list[str]] = {
    VisualType.B_ROLL: ["footage", "scene", "action"],
    VisualType.STATIC: ["scene", "environment"],
    VisualType.TALKING: ["person", "professional"],
    VisualType.OVERLAY: ["background", "texture"],
}


class RecentMediaRegistry:
    """
    Job-scoped, bounded memory of selected stock assets.

    An entry blocks an asset while it is younger than ``ttl_seconds`` unless the
    new query is a near-duplicate of the one that selected it. Expired entries
    are dropped; once ``max_entries`` is reached the oldest entry is evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        similarity_threshold: float = 0.3,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.similarity_threshold = similarity_threshold
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[float, str]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def mark(self, asset_key: str, query: str) -> None:
        with self._lock:
            self._entries.pop(asset_key, None)
            self._entries[asset_key] = (self._clock(), query)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def is_blocked(self, asset_key: str, query: str) -> bool:
        with self._lock:
            entry = self._entries.get(asset_key)
            if entry is None:
                return False
            marked_at, previous_query = entry
            if self._clock() - marked_at > self.ttl_seconds:
                del self._entries[asset_key]
                return False
            return query_similarity(query, previous_query) <= self.similarity_threshold

    def evict_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, (marked_at, _) in self._entries.items() if now - marked_at > self.ttl_seconds]
            for key in expired:
                del self._entries[key]
            return len(expired)


class MediaAcquisition:
    """
    Resolves a scene to a downloaded, validated MediaAsset.

    Search strategies are tried in priority order. For each strategy every
    provider is asked in turn (primary first) before moving to the next
    strategy, so the whole search is one flat list of (strategy, provider)
    attempts evaluated by a single loop.
    """

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        providers: list[MediaProvider],
        toolkit: MediaToolkit,
        tracker: TempAssetTracker,
        registry: Optional[RecentMediaRegistry] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize acquisition layer.

        Args:
            settings: Application settings
            logger: Logger instance
            providers: Providers in priority order
            toolkit: Media toolkit for probing and landscape cropping
            tracker: Job's temp asset tracker; every download is registered here
            registry: Recently-used registry (one per job)
            rng: Random source for picking among top candidates
            sleep: Backoff sleep function
        """
        self.settings = settings
        self.logger = logger
        self.providers = providers
        self.toolkit = toolkit
        self.tracker = tracker
        self.registry = registry or RecentMediaRegistry(
            ttl_seconds=settings.recent_media_ttl_seconds,
            similarity_threshold=settings.query_similarity_threshold,
            max_entries=settings.recent_media_max_entries,
        )
        self.rng = rng or random.Random()
        self._sleep = sleep

    @staticmethod
    def build_strategies(scene: ScheduledScene) -> list[list[str]]:
        """
        Ordered keyword strategies for a scene.

        Primary keywords; secondary keywords; the first two of each combined;
        mood plus a generic visual-type term; generic visual-type terms alone.
        Empty and duplicate strategies are dropped.
        """
        descriptor = scene.descriptor
        primary = clean_search_terms(descriptor.primary_keywords)
        secondary = clean_search_terms(descriptor.secondary_keywords)
        generic = VISUAL_TYPE_TERMS[descriptor.visual_type]

        raw = [
            primary,
            secondary,
            primary[:2] + secondary[:2] if primary and secondary else [],
            clean_search_terms([descriptor.mood, generic[0]]) if descriptor.mood else [],
            list(generic),
        ]

        strategies: list[list[str]] = []
        for strategy in raw:
            strategy = clean_search_terms(strategy)
            if strategy and strategy not in strategies:
                strategies.append(strategy)
        return strategies

    def fetch(self, scene: ScheduledScene) -> MediaAsset:
        """
        Acquire media for one scene.

        Args:
            scene: Scene with reconciled duration

        Returns:
            MediaAsset with ``local_path`` registered in the job tracker

        Raises:
            AcquisitionError: Every (strategy, provider) attempt was exhausted
        """
        log = self.logger.bind(scene_id=scene.id, scene_index=scene.index)
        attempts = [
            (strategy, provider)
            for strategy in self.build_strategies(scene)
            for provider in self.providers
            if provider.available
        ]
        if not attempts:
            raise AcquisitionError(
                f"No media provider configured for scene {scene.id}", scene_id=scene.id, attempts=0
            )

        for number, (strategy, provider) in enumerate(attempts, start=1):
            query = " ".join(strategy)
            candidates = self._search_with_retry(provider, strategy, scene, log)
            if not candidates:
                log.debug(f"Attempt {number}/{len(attempts)}: {provider.name} had nothing for '{query}'")
                continue

            asset = self._select_and_download(candidates, query, scene, log)
            if asset is not None:
                log.info(f"Scene {scene.id}: {asset.kind.value} from {provider.name} via '{query}'")
                return asset

        raise AcquisitionError(
            f"No suitable media found for scene {scene.id} ({scene.descriptor.description!r}) "
            f"after {len(attempts)} attempts",
            scene_id=scene.id,
            attempts=len(attempts),
        )

    def _search_with_retry(
        self, provider: MediaProvider, strategy: list[str], scene: ScheduledScene, log: Any
    ) -> list[MediaCandidate]:
        max_attempts = max(1, self.settings.provider_max_attempts)
        for attempt in range(1, max_attempts + 1):
            try:
                return provider.search(strategy, scene)
            except ProviderError as e:
                if not e.retryable or attempt == max_attempts:
                    log.warning(f"{provider.name} search failed for '{' '.join(strategy)}': {e}")
                    return []
                delay = self.settings.provider_backoff_seconds * (2 ** (attempt - 1))
                if isinstance(e, RateLimitedError) and e.retry_after:
                    delay = max(delay, e.retry_after)
                log.debug(f"{provider.name} attempt {attempt} failed ({e}); retrying in {delay:.1f}s")
                self._sleep(delay)
        return []

    def _rank(self, candidates: list[MediaCandidate], query: str, scene: ScheduledScene) -> list[MediaCandidate]:
        tolerance = self.settings.duration_match_tolerance
        usable = []
        for candidate in candidates:
            if self.registry.is_blocked(candidate.key, query):
                continue
            if (
                candidate.kind == MediaKind.VIDEO
                and candidate.duration is not None
                and abs(candidate.duration - scene.duration) > tolerance
            ):
                continue
            usable.append(candidate)

        # Portrait first, then closest duration; sort is stable so provider order breaks ties
        return sorted(
            usable,
            key=lambda c: (
                not c.is_vertical,
                abs(c.duration - scene.duration) if c.duration is not None else 0.0,
            ),
        )

    def _select_and_download(
        self, candidates: list[MediaCandidate], query: str, scene: ScheduledScene, log: Any
    ) -> Optional[MediaAsset]:
        ranked = self._rank(candidates, query, scene)
        if not ranked:
            return None

        pool = ranked[: max(1, self.settings.video_candidate_pool)]
        first = self.rng.choice(pool) if ranked[0].kind == MediaKind.VIDEO else ranked[0]
        ordered = [first] + [c for c in ranked if c is not first]

        for candidate in ordered:
            try:
                asset = self._download_and_validate(candidate, scene)
            except (ProviderError, ToolkitError) as e:
                log.warning(f"Discarding {candidate.key}: {e}")
                continue
            self.registry.mark(candidate.key, query)
            return asset
        return None

    def _download_and_validate(self, candidate: MediaCandidate, scene: ScheduledScene) -> MediaAsset:
        suffix = ".mp4" if candidate.kind == MediaKind.VIDEO else ".jpg"
        path = self.tracker.create_path(f"scene_{scene.index:02d}_{candidate.provider}", suffix)
        self._download(candidate, path)

        size = file_size(path)
        if size < self.settings.min_asset_bytes:
            self.tracker.release(path)
            raise ProviderError(
                f"download too small ({size} bytes), treated as corrupt", provider=candidate.provider, retryable=False
            )

        if candidate.kind == MediaKind.IMAGE:
            width, height = self._validate_image(path, candidate)
            return MediaAsset(
                kind=MediaKind.IMAGE,
                source_url=candidate.url,
                width=width,
                height=height,
                local_path=path,
                provider=candidate.provider,
                asset_id=candidate.asset_id,
            )

        try:
            probe = self.toolkit.probe(path)
        except ToolkitError:
            self.tracker.release(path)
            raise
        if not probe.has_video or probe.duration <= 0:
            self.tracker.release(path)
            raise ProviderError("downloaded file has no playable video stream", provider=candidate.provider, retryable=False)

        width, height = probe.width, probe.height
        if probe.is_landscape:
            path, width, height = self._crop_to_portrait(path, probe.width, probe.height, scene)

        return MediaAsset(
            kind=MediaKind.VIDEO,
            source_url=candidate.url,
            width=width,
            height=height,
            local_path=path,
            provider=candidate.provider,
            asset_id=candidate.asset_id,
            duration=probe.duration,
        )

    def _download(self, candidate: MediaCandidate, path: Path) -> None:
        try:
            with requests.get(candidate.url, stream=True, timeout=self.settings.download_timeout_seconds) as response:
                if response.status_code != 200:
                    raise ProviderError(
                        f"download failed with status {response.status_code}",
                        provider=candidate.provider,
                        status_code=response.status_code,
                        retryable=response.status_code >= 500,
                    )
                with open(path, "wb") as f:
                    for chunk in response.iter_content(chunk_size=1024 * 256):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            self.tracker.release(path)
            raise ProviderError(f"download failed: {e}", provider=candidate.provider) from e
        except OSError as e:
            self.tracker.release(path)
            raise ProviderError(
                f"could not write download to {path}: {e}", provider=candidate.provider, retryable=False
            ) from e
        except ProviderError:
            self.tracker.release(path)
            raise

    def _validate_image(self, path: Path, candidate: MediaCandidate) -> tuple[int, int]:
        try:
            with Image.open(path) as img:
                img.verify()
            with Image.open(path) as img:
                return img.size
        except (OSError, SyntaxError) as e:
            self.tracker.release(path)
            raise ProviderError(f"image failed validation: {e}", provider=candidate.provider, retryable=False) from e

    def _crop_to_portrait(self, path: Path, width: int, height: int, scene: ScheduledScene) -> tuple[Path, int, int]:
        """Center-crop a landscape clip to 9:16 (even width) at full height; the uncropped file is released."""
        cropped = self.tracker.create_path(f"scene_{scene.index:02d}_portrait", ".mp4")
        try:
            self.toolkit.run(
                [
                    "-i", str(path),
                    "-vf", "crop=trunc(ih*9/32)*2:ih:(in_w-trunc(ih*9/32)*2)/2:0",
                    "-c:v", self.settings.video_codec,
                    "-preset", self.settings.encoder_preset,
                    "-crf", "23",
                    "-an",
                    str(cropped),
                ],
                description=f"portrait crop scene {scene.index}",
                output_path=cropped,
            )
        except ToolkitError:
            self.tracker.release(cropped)
            self.tracker.release(path)
            raise
        self.tracker.release(path)
        return cropped, (height * 9 // 32) * 2, height
