import os
import time

from src.filedock.uploads.upload_cleanup import sweep_stale_uploads

HOUR = 60 * 60


def _chunk_dir(storage, upload_id: str, *, age_seconds: float, now: float):
    directory = storage.resolve(f".chunks/{upload_id}")
    directory.mkdir(parents=True)
    chunk = directory / "000000"
    chunk.write_bytes(b"x")
    stamp = now - age_seconds
    os.utime(chunk, (stamp, stamp))
    os.utime(directory, (stamp, stamp))
    return directory


def test_only_idle_uploads_are_removed(storage) -> None:
    now = time.time()
    stale = _chunk_dir(storage, "old", age_seconds=3 * HOUR, now=now)
    fresh = _chunk_dir(storage, "new", age_seconds=60, now=now)

    removed = sweep_stale_uploads(storage, max_age_seconds=HOUR, reference_time=now)

    assert removed == ["old"]
    assert not stale.exists()
    assert fresh.is_dir()


def test_recent_chunk_keeps_upload_alive(storage) -> None:
    now = time.time()
    directory = _chunk_dir(storage, "slow", age_seconds=3 * HOUR, now=now)
    (directory / "000001").write_bytes(b"y")

    assert sweep_stale_uploads(storage, max_age_seconds=HOUR, reference_time=now) == []
    assert directory.is_dir()


def test_dry_run_and_missing_root(storage) -> None:
    assert sweep_stale_uploads(storage, max_age_seconds=HOUR) == []

    now = time.time()
    directory = _chunk_dir(storage, "old", age_seconds=3 * HOUR, now=now)

    assert sweep_stale_uploads(storage, max_age_seconds=HOUR, reference_time=now, dry_run=True) == ["old"]
    assert directory.is_dir()
