"""Tests for TempAssetTracker."""

import threading

import pytest

from reel_assembler.utils.temp_assets import TempAssetTracker


@pytest.fixture
def job_tracker(tmp_path, logger):
    """Create tracker rooted in tmp_path."""
    return TempAssetTracker(logger, base_dir=tmp_path, job_id="abc123")


def test_create_path_registers_inside_work_dir(job_tracker, tmp_path):
    """Allocated paths live in the job's scratch dir and are tracked."""
    path = job_tracker.create_path("scene_00_pexels", ".mp4")

    assert path.parent == tmp_path / "reel_abc123"
    assert path.name.startswith("scene_00_pexels_")
    assert path.suffix == ".mp4"
    assert path in job_tracker
    assert not path.exists()


def test_create_path_is_unique(job_tracker):
    """Two allocations with the same prefix never collide."""
    first = job_tracker.create_path("clip", ".mp4")
    second = job_tracker.create_path("clip", ".mp4")

    assert first != second
    assert len(job_tracker.tracked()) == 2


def test_cleanup_all_removes_files_and_work_dir(job_tracker):
    """cleanup_all deletes every tracked file plus the scratch dir."""
    paths = [job_tracker.create_path(f"f{i}", ".bin") for i in range(3)]
    for path in paths:
        path.write_bytes(b"data")

    removed = job_tracker.cleanup_all()

    assert removed == 3
    assert all(not p.exists() for p in paths)
    assert not job_tracker.work_dir.exists()
    assert job_tracker.tracked() == []


def test_cleanup_all_is_idempotent(job_tracker):
    """Second cleanup finds nothing and does not raise."""
    job_tracker.create_path("f", ".bin").write_bytes(b"x")

    assert job_tracker.cleanup_all() == 1
    assert job_tracker.cleanup_all() == 0


def test_cleanup_skips_paths_that_were_never_written(job_tracker):
    """Registered-but-unwritten paths are not counted as removed."""
    job_tracker.create_path("pending", ".mp4")

    assert job_tracker.cleanup_all() == 0


def test_release_deletes_by_default(job_tracker):
    """release() stops tracking and removes the file."""
    path = job_tracker.create_path("clip", ".mp4")
    path.write_bytes(b"x")

    job_tracker.release(path)

    assert path not in job_tracker
    assert not path.exists()


def test_release_without_delete_keeps_file(job_tracker, tmp_path):
    """Ownership hand-off: file stays, tracker forgets it."""
    path = job_tracker.register(tmp_path / "keep.mp4")
    path.write_bytes(b"x")

    job_tracker.release(path, delete=False)
    job_tracker.cleanup_all()

    assert path.exists()


def test_register_external_path_is_cleaned(job_tracker, tmp_path):
    """Files outside work_dir are removed too once registered."""
    path = tmp_path / "external.tmp"
    path.write_bytes(b"x")
    job_tracker.register(path)

    job_tracker.cleanup_all()

    assert not path.exists()


def test_concurrent_registration_loses_nothing(job_tracker):
    """Parallel scene workers registering at once are all tracked."""

    def worker(n):
        for i in range(50):
            job_tracker.create_path(f"w{n}_{i}", ".tmp")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(job_tracker.tracked()) == 400


def test_context_manager_cleans_on_exit(tmp_path, logger):
    """Leaving the with-block runs cleanup_all."""
    with TempAssetTracker(logger, base_dir=tmp_path, job_id="ctx") as t:
        path = t.create_path("f", ".bin")
        path.write_bytes(b"x")

    assert not path.exists()
    assert not (tmp_path / "reel_ctx").exists()
