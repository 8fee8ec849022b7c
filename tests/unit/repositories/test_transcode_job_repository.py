from datetime import datetime, timedelta, timezone

import pytest

from src.filedock.db.db_models import TranscodeJobModel
from src.filedock.repositories.transcode_job_repository import TranscodeJobRepository
from src.filedock.transcode.transcode_errors import TranscodeJobNotFoundError
from src.filedock.transcode.transcode_models import TranscodeStatus


@pytest.fixture
def repo(session_factory) -> TranscodeJobRepository:
    return TranscodeJobRepository(session_factory)


def test_create_pending_records_job(repo: TranscodeJobRepository, session_factory) -> None:
    job = repo.create_pending(file_id="f1", output_path=".hls/f1")

    with session_factory() as session:
        row = session.get(TranscodeJobModel, job.id)
        assert row is not None
        assert row.status == "pending"
        assert row.progress == 0
        assert row.output_path == ".hls/f1"


def test_find_active_ignores_terminal_jobs(repo: TranscodeJobRepository) -> None:
    failed = repo.create_pending(file_id="f1", output_path=".hls/f1")
    repo.fail(failed.id, "boom")

    assert repo.find_active("f1") is None

    pending = repo.create_pending(file_id="f1", output_path=".hls/f1")
    assert repo.find_active("f1").id == pending.id


def test_next_pending_is_oldest_first(repo: TranscodeJobRepository, session_factory) -> None:
    first = repo.create_pending(file_id="a", output_path=".hls/a")
    second = repo.create_pending(file_id="b", output_path=".hls/b")
    with session_factory() as session:
        session.get(TranscodeJobModel, second.id).created_at = datetime.now(timezone.utc) - timedelta(minutes=5)
        session.commit()

    assert repo.next_pending().id == second.id
    assert repo.mark_processing(second.id) is True
    assert repo.next_pending().id == first.id


def test_mark_processing_only_from_pending(repo: TranscodeJobRepository) -> None:
    job = repo.create_pending(file_id="f1", output_path=".hls/f1")

    assert repo.mark_processing(job.id) is True
    assert repo.mark_processing(job.id) is False
    assert repo.get_job(job.id).status is TranscodeStatus.PROCESSING


def test_cancel_pending_is_conditional(repo: TranscodeJobRepository) -> None:
    pending = repo.create_pending(file_id="a", output_path=".hls/a")
    running = repo.create_pending(file_id="b", output_path=".hls/b")
    repo.mark_processing(running.id)

    assert repo.cancel_pending(pending.id, "Cancelled by user") is True
    assert repo.cancel_pending(running.id, "Cancelled by user") is False

    cancelled = repo.get_job(pending.id)
    assert cancelled.status is TranscodeStatus.FAILED
    assert cancelled.error == "Cancelled by user"
    assert repo.get_job(running.id).status is TranscodeStatus.PROCESSING


def test_complete_sets_progress_and_timestamp(repo: TranscodeJobRepository) -> None:
    job = repo.create_pending(file_id="f1", output_path=".hls/f1")
    repo.mark_processing(job.id)
    repo.set_progress(job.id, 140)
    assert repo.get_job(job.id).progress == 100

    repo.set_progress(job.id, 42)
    repo.complete(job.id)

    done = repo.get_job(job.id)
    assert done.status is TranscodeStatus.COMPLETED
    assert done.progress == 100
    assert done.completed_at is not None
    assert done.error is None
    assert done.created_at.tzinfo is timezone.utc
    assert done.completed_at.tzinfo is timezone.utc
    assert done.completed_at >= done.created_at


def test_fail_interrupted_only_touches_processing(repo: TranscodeJobRepository) -> None:
    running = repo.create_pending(file_id="a", output_path=".hls/a")
    waiting = repo.create_pending(file_id="b", output_path=".hls/b")
    repo.mark_processing(running.id)

    assert repo.fail_interrupted("Interrupted by server restart") == 1
    assert repo.get_job(running.id).status is TranscodeStatus.FAILED
    assert repo.get_job(waiting.id).status is TranscodeStatus.PENDING
    assert [job.id for job in repo.list_active()] == [waiting.id]


def test_latest_for_file_and_missing_job(repo: TranscodeJobRepository, session_factory) -> None:
    old = repo.create_pending(file_id="f1", output_path=".hls/f1")
    repo.fail(old.id, "boom")
    with session_factory() as session:
        session.get(TranscodeJobModel, old.id).created_at = datetime.now(timezone.utc) - timedelta(hours=1)
        session.commit()
    new = repo.create_pending(file_id="f1", output_path=".hls/f1")

    assert repo.latest_for_file("f1").id == new.id
    assert repo.latest_for_file("other") is None
    with pytest.raises(TranscodeJobNotFoundError):
        repo.get_job("missing")
    with pytest.raises(KeyError):
        repo.get_job("missing")
