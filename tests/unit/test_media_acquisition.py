"""Tests for MediaAcquisition and the recently-used registry."""

import builtins
import io
import random
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from reel_assembler.core.exceptions import AcquisitionError, ProviderError, RateLimitedError
from reel_assembler.models.schemas import MediaKind
from reel_assembler.services.media_acquisition import MediaAcquisition, RecentMediaRegistry
from reel_assembler.services.media_providers import MediaCandidate
from reel_assembler.services.media_toolkit import MediaProbe

DOWNLOAD_PATCH = "reel_assembler.services.media_acquisition.requests.get"


class FakeProvider:
    """Answers searches from a query -> outcome table and records every query."""

    def __init__(self, name, results=None, available=True):
        self.name = name
        self.available = available
        self.results = results or {}
        self.calls: list[str] = []

    def search(self, keywords, scene):
        query = " ".join(keywords)
        self.calls.append(query)
        outcome = self.results.get(query, [])
        if isinstance(outcome, list) and outcome and isinstance(outcome[0], Exception):
            outcome = outcome.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _video(provider, asset_id, duration=6.0, width=1080, height=1920):
    return MediaCandidate(
        provider=provider,
        asset_id=asset_id,
        kind=MediaKind.VIDEO,
        url=f"https://cdn.example/{provider}/{asset_id}.mp4",
        width=width,
        height=height,
        duration=duration,
    )


def _download(body=b"\x00" * 256, status=200):
    response = MagicMock()
    response.status_code = status
    response.iter_content.return_value = [body]
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_acquisition(settings, logger, toolkit, tracker, sleeps):
    """Factory building MediaAcquisition over fake providers."""
    settings.video_candidate_pool = 1

    def factory(*providers, registry=None):
        return MediaAcquisition(
            settings,
            logger,
            list(providers),
            toolkit,
            tracker,
            registry=registry,
            rng=random.Random(7),
            sleep=sleeps.append,
        )

    return factory


@pytest.fixture
def scene(scene_factory):
    return scene_factory(
        duration=5.0,
        primaryKeywords=["city skyline", "night traffic"],
        secondaryKeywords=["sunset", "urban"],
        mood="calm",
    )


def test_build_strategies_order(scene):
    strategies = MediaAcquisition.build_strategies(scene)

    assert strategies == [
        ["city skyline", "night traffic"],
        ["sunset", "urban"],
        ["city skyline", "night traffic", "sunset", "urban"],
        ["calm", "footage"],
        ["footage", "scene", "action"],
    ]


def test_build_strategies_drops_empty_and_name_terms(scene_factory):
    scene = scene_factory(primaryKeywords=["his office"], secondaryKeywords=[], mood="", visualType="talking")

    assert MediaAcquisition.build_strategies(scene) == [["person", "professional"]]


@patch(DOWNLOAD_PATCH)
def test_secondary_keywords_succeed_after_primary_misses(mock_get, make_acquisition, scene, tracker):
    """Primary strategy is tried on every provider before the secondary one."""
    mock_get.return_value = _download()
    pexels = FakeProvider("pexels", {"sunset urban": [_video("pexels", "42")]})
    pixabay = FakeProvider("pixabay")

    asset = make_acquisition(pexels, pixabay).fetch(scene)

    assert pexels.calls == ["city skyline night traffic", "sunset urban"]
    assert pixabay.calls == ["city skyline night traffic"]
    assert asset.provider == "pexels"
    assert asset.asset_id == "42"
    assert asset.kind == MediaKind.VIDEO
    assert asset.local_path in tracker
    assert asset.local_path.exists()


@patch(DOWNLOAD_PATCH)
def test_secondary_provider_used_within_same_strategy(mock_get, make_acquisition, scene):
    mock_get.return_value = _download()
    pexels = FakeProvider("pexels")
    pixabay = FakeProvider("pixabay", {"city skyline night traffic": [_video("pixabay", "7")]})

    asset = make_acquisition(pexels, pixabay).fetch(scene)

    assert asset.provider == "pixabay"
    assert len(pexels.calls) == 1


@patch(DOWNLOAD_PATCH)
def test_secondary_provider_succeeds_on_second_strategy(mock_get, make_acquisition, scene):
    mock_get.return_value = _download()
    pexels = FakeProvider("pexels")
    pixabay = FakeProvider("pixabay", {"sunset urban": [_video("pixabay", "11")]})

    asset = make_acquisition(pexels, pixabay).fetch(scene)

    assert asset.provider == "pixabay"
    assert asset.asset_id == "11"
    assert pexels.calls == ["city skyline night traffic", "sunset urban"]
    assert pixabay.calls == ["city skyline night traffic", "sunset urban"]


def test_exhaustion_raises_acquisition_error(make_acquisition, scene):
    pexels, pixabay = FakeProvider("pexels"), FakeProvider("pixabay")

    with pytest.raises(AcquisitionError) as excinfo:
        make_acquisition(pexels, pixabay).fetch(scene)

    assert excinfo.value.scene_id == "s1"
    assert excinfo.value.attempts == 10
    assert len(pexels.calls) == 5


def test_no_available_provider_raises(make_acquisition, scene):
    with pytest.raises(AcquisitionError):
        make_acquisition(FakeProvider("pexels", available=False)).fetch(scene)


@patch(DOWNLOAD_PATCH)
def test_rate_limit_is_retried_with_backoff(mock_get, make_acquisition, scene, sleeps):
    mock_get.return_value = _download()
    pexels = FakeProvider(
        "pexels",
        {
            "city skyline night traffic": [
                RateLimitedError("slow down", provider="pexels", retry_after=2.0),
                _video("pexels", "1"),
            ]
        },
    )

    asset = make_acquisition(pexels).fetch(scene)

    assert asset.asset_id == "1"
    assert len(pexels.calls) == 2
    assert sleeps == [2.0]


def test_non_retryable_error_moves_on(make_acquisition, scene, sleeps):
    pexels = FakeProvider(
        "pexels", {"city skyline night traffic": ProviderError("bad key", provider="pexels", retryable=False)}
    )

    with pytest.raises(AcquisitionError):
        make_acquisition(pexels).fetch(scene)

    assert pexels.calls.count("city skyline night traffic") == 1
    assert sleeps == []


def test_retryable_error_gives_up_after_max_attempts(make_acquisition, settings, scene, sleeps):
    settings.provider_max_attempts = 3
    settings.provider_backoff_seconds = 0.5
    pexels = FakeProvider("pexels", {"city skyline night traffic": ProviderError("503", provider="pexels")})

    with pytest.raises(AcquisitionError):
        make_acquisition(pexels).fetch(scene)

    assert pexels.calls.count("city skyline night traffic") == 3
    assert sleeps[:2] == [0.5, 1.0]


@patch(DOWNLOAD_PATCH)
def test_too_small_download_falls_through_to_next_candidate(mock_get, make_acquisition, scene, tracker):
    mock_get.side_effect = lambda url, **kwargs: _download(b"tiny" if url.endswith("/1.mp4") else b"\x00" * 256)
    pexels = FakeProvider(
        "pexels", {"city skyline night traffic": [_video("pexels", "1"), _video("pexels", "2", duration=7.0)]}
    )

    asset = make_acquisition(pexels).fetch(scene)

    assert asset.asset_id == "2"
    assert len(tracker.tracked()) == 1


@patch(DOWNLOAD_PATCH)
def test_candidates_far_from_scene_duration_are_skipped(mock_get, make_acquisition, scene):
    mock_get.return_value = _download()
    pexels = FakeProvider(
        "pexels", {"city skyline night traffic": [_video("pexels", "long", duration=40.0), _video("pexels", "ok")]}
    )

    asset = make_acquisition(pexels).fetch(scene)

    assert asset.asset_id == "ok"
    assert mock_get.call_count == 1


@patch(DOWNLOAD_PATCH)
def test_landscape_video_is_cropped_to_portrait(mock_get, make_acquisition, scene, toolkit, tracker):
    mock_get.return_value = _download()
    toolkit.source_probe = MediaProbe(width=1920, height=1080, duration=6.0, has_video=True, frame_rate=25.0)
    pexels = FakeProvider("pexels", {"city skyline night traffic": [_video("pexels", "9", width=1920, height=1080)]})

    asset = make_acquisition(pexels).fetch(scene)

    assert (asset.width, asset.height) == (606, 1080)
    assert "portrait" in asset.local_path.name
    assert toolkit.descriptions() == ["portrait crop scene 0"]
    assert tracker.tracked() == [asset.local_path]


@patch(DOWNLOAD_PATCH)
def test_image_candidate_is_validated_with_pillow(mock_get, make_acquisition, scene_factory):
    buffer = io.BytesIO()
    Image.new("RGB", (1200, 2000), color="navy").save(buffer, "JPEG")
    mock_get.return_value = _download(buffer.getvalue())
    scene = scene_factory(visualType="static", primaryKeywords=["desk"])
    candidate = MediaCandidate(
        provider="pexels", asset_id="p1", kind=MediaKind.IMAGE, url="https://cdn.example/p1.jpg", width=1200, height=2000
    )

    asset = make_acquisition(FakeProvider("pexels", {"desk": [candidate]})).fetch(scene)

    assert asset.kind == MediaKind.IMAGE
    assert (asset.width, asset.height) == (1200, 2000)
    assert asset.local_path.suffix == ".jpg"


@patch(DOWNLOAD_PATCH)
def test_corrupt_image_is_rejected(mock_get, make_acquisition, scene_factory):
    mock_get.return_value = _download(b"not a jpeg at all" * 4)
    scene = scene_factory(visualType="static", primaryKeywords=["desk"], secondaryKeywords=[], mood="")
    candidate = MediaCandidate(
        provider="pexels", asset_id="p1", kind=MediaKind.IMAGE, url="https://cdn.example/p1.jpg", width=1200, height=2000
    )

    with pytest.raises(AcquisitionError):
        make_acquisition(FakeProvider("pexels", {"desk": [candidate]})).fetch(scene)


@patch(DOWNLOAD_PATCH)
def test_selected_asset_is_blocked_for_dissimilar_scene(mock_get, make_acquisition, scene_factory):
    mock_get.return_value = _download()
    shared = _video("pexels", "same")
    pexels = FakeProvider("pexels", {"city skyline": [shared], "mountain lake": [shared, _video("pexels", "other")]})
    acquisition = make_acquisition(pexels)

    first = acquisition.fetch(scene_factory(index=0, primaryKeywords=["city skyline"], secondaryKeywords=[]))
    second = acquisition.fetch(scene_factory(index=1, primaryKeywords=["mountain lake"], secondaryKeywords=[]))

    assert first.asset_id == "same"
    assert second.asset_id == "other"


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_registry_blocks_only_dissimilar_queries():
    registry = RecentMediaRegistry(ttl_seconds=300, similarity_threshold=0.3, clock=_Clock())
    registry.mark("pexels:1", "city skyline night")

    assert registry.is_blocked("pexels:1", "mountain lake")
    assert not registry.is_blocked("pexels:1", "city skyline night")
    assert not registry.is_blocked("pexels:2", "mountain lake")


def test_registry_entries_expire():
    clock = _Clock()
    registry = RecentMediaRegistry(ttl_seconds=300, clock=clock)
    registry.mark("pexels:1", "city")

    clock.now = 301.0

    assert not registry.is_blocked("pexels:1", "ocean")
    assert len(registry) == 0


def test_registry_evict_expired():
    clock = _Clock()
    registry = RecentMediaRegistry(ttl_seconds=10, clock=clock)
    registry.mark("a", "x")
    clock.now = 5.0
    registry.mark("b", "y")
    clock.now = 12.0

    assert registry.evict_expired() == 1
    assert len(registry) == 1


def test_registry_is_bounded():
    registry = RecentMediaRegistry(max_entries=2, clock=_Clock())
    for key in ("a", "b", "c"):
        registry.mark(key, "query")

    assert len(registry) == 2
    assert not registry.is_blocked("a", "different words")


@patch(DOWNLOAD_PATCH)
def test_disk_write_failure_discards_candidate(mock_get, make_acquisition, scene, tracker):
    mock_get.return_value = _download()
    pexels = FakeProvider(
        "pexels", {"city skyline night traffic": [_video("pexels", "1"), _video("pexels", "2", duration=7.0)]}
    )
    real_open = builtins.open
    writes = []

    def full_disk_once(path, mode="r", *args, **kwargs):
        if "w" in mode and not writes:
            writes.append(path)
            raise OSError(28, "No space left on device")
        return real_open(path, mode, *args, **kwargs)

    with patch("reel_assembler.services.media_acquisition.open", side_effect=full_disk_once, create=True):
        asset = make_acquisition(pexels).fetch(scene)

    assert asset.asset_id == "2"
    assert writes[0] not in tracker.tracked()
    assert tracker.tracked() == [asset.local_path]


@patch(DOWNLOAD_PATCH)
def test_disk_write_failure_everywhere_raises_acquisition_error(mock_get, make_acquisition, scene, tracker):
    mock_get.return_value = _download()
    pexels = FakeProvider("pexels", {"city skyline night traffic": [_video("pexels", "1")]})

    with patch("reel_assembler.services.media_acquisition.open", side_effect=OSError(28, "No space left"), create=True):
        with pytest.raises(AcquisitionError):
            make_acquisition(pexels).fetch(scene)

    assert tracker.tracked() == []
