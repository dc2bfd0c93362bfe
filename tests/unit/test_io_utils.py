"""Tests for I/O utilities."""

from datetime import datetime

from reel_assembler.utils.io_utils import create_run_output_dir, file_size, slugify


def test_slugify_basic():
    assert slugify("Why Cats Sleep 16 Hours!") == "why-cats-sleep-16-hours"


def test_slugify_truncates_and_falls_back():
    assert len(slugify("word " * 40, max_length=20)) <= 20
    assert slugify("!!!") == "reel"


def test_create_run_output_dir(tmp_path):
    run_dir = create_run_output_dir(str(tmp_path), "reel_abc", now=datetime(2024, 5, 1, 13, 45, 7))

    assert run_dir == tmp_path / "2024-05-01_134507_reel_abc"
    assert run_dir.is_dir()


def test_file_size(tmp_path):
    path = tmp_path / "f.bin"
    path.write_bytes(b"12345")

    assert file_size(path) == 5
    assert file_size(tmp_path / "missing") == 0
