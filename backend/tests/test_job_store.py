import pytest

from audio_assembly.exceptions import JobNotFoundError
from audio_assembly.models.job import JobStatus


def _create(job_store, user_id="user-1", session_id="session-1"):
    return job_store.create(user_id=user_id, instructions={"assemblySequence": []}, session_id=session_id)


def test_create_starts_pending(job_store):
    job = _create(job_store)

    stored = job_store.get(job.id)
    assert stored.status == JobStatus.PENDING
    assert stored.progress_percentage == 0
    assert stored.result_audio_path is None
    assert stored.started_at is None


def test_get_unknown_job_raises(job_store):
    with pytest.raises(JobNotFoundError):
        job_store.get("does-not-exist")


def test_first_progress_moves_to_processing(job_store):
    job = _create(job_store)

    assert job_store.update_progress(job.id, 10, "Starting protocol")

    stored = job_store.get(job.id)
    assert stored.status == JobStatus.PROCESSING
    assert stored.progress_percentage == 10
    assert stored.started_at is not None


def test_progress_never_decreases_and_stays_below_100(job_store):
    job = _create(job_store)
    job_store.update_progress(job.id, 50)
    job_store.update_progress(job.id, 20)
    assert job_store.get(job.id).progress_percentage == 50

    job_store.update_progress(job.id, 150)
    assert job_store.get(job.id).progress_percentage == 99


def test_mark_completed(job_store):
    job = _create(job_store)
    job_store.update_progress(job.id, 95)

    assert job_store.mark_completed(job.id, "user-1/assembly-results/a.mp3", 16, 2048)

    stored = job_store.get(job.id)
    assert stored.status == JobStatus.COMPLETED
    assert stored.progress_percentage == 100
    assert stored.result_audio_path == "user-1/assembly-results/a.mp3"
    assert stored.total_duration_seconds == 16
    assert stored.total_file_size_bytes == 2048
    assert stored.completed_at is not None


def test_pending_job_can_fail_directly(job_store):
    job = _create(job_store)

    assert job_store.mark_failed(job.id, "Speech synthesis API key is not configured")

    stored = job_store.get(job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.error_message == "Speech synthesis API key is not configured"
    assert stored.result_audio_path is None


def test_terminal_jobs_are_never_modified(job_store):
    job = _create(job_store)
    job_store.mark_completed(job.id, "user-1/assembly-results/a.mp3", 8, 100)

    assert job_store.update_progress(job.id, 50) is False
    assert job_store.mark_failed(job.id, "late failure") is False

    stored = job_store.get(job.id)
    assert stored.status == JobStatus.COMPLETED
    assert stored.progress_percentage == 100
    assert stored.error_message is None

    failed = _create(job_store, session_id="session-2")
    job_store.mark_failed(failed.id, "boom")
    assert job_store.mark_completed(failed.id, "x.mp3", 8, 100) is False
    assert job_store.get(failed.id).status == JobStatus.FAILED


def test_long_error_messages_are_truncated(job_store):
    job = _create(job_store)
    job_store.mark_failed(job.id, "x" * 5000)
    assert len(job_store.get(job.id).error_message) == 2000


def test_find_in_flight(job_store):
    job = _create(job_store)

    assert job_store.find_in_flight("user-1", "session-1").id == job.id
    assert job_store.find_in_flight("user-2", "session-1") is None
    assert job_store.find_in_flight("user-1", None) is None

    job_store.mark_failed(job.id, "boom")
    assert job_store.find_in_flight("user-1", "session-1") is None


def test_list_filters(job_store):
    a = _create(job_store, user_id="user-a")
    _create(job_store, user_id="user-b")
    job_store.mark_failed(a.id, "boom")

    assert [j.id for j in job_store.list(user_id="user-a")] == [a.id]
    assert [j.id for j in job_store.list(status=JobStatus.FAILED)] == [a.id]
    assert len(job_store.list()) == 2
