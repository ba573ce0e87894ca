from unittest.mock import patch

from audio_assembly.models.job import JobStatus
from audio_assembly.workers import tasks


def test_assemble_task_runs_manager(manager, job_store, instructions_payload):
    from audio_assembly.models.assembly import AssemblyInstructions

    job = manager.create_job(AssemblyInstructions.model_validate(instructions_payload), user_id="user-1")

    with patch("audio_assembly.workers.tasks.build_manager", return_value=manager):
        result = tasks.assemble_audio_task.run(job_id=job.id)

    assert result["status"] == "completed"
    assert result["result_audio_path"] == job_store.get(job.id).result_audio_path


def test_assemble_task_reports_rejected_job(manager, job_store):
    job = job_store.create(user_id="user-1", instructions={"assemblySequence": [{"sequenceId": 1}]})

    with patch("audio_assembly.workers.tasks.build_manager", return_value=manager):
        result = tasks.assemble_audio_task.run(job_id=job.id)

    assert result == {"job_id": job.id, "status": "failed"}
    assert job_store.get(job.id).status == JobStatus.FAILED


def test_on_failure_marks_job_failed(session_factory, job_store):
    job = job_store.create(user_id="user-1", instructions={})
    job_store.update_progress(job.id, 40)

    with patch("audio_assembly.workers.tasks.SessionLocal", session_factory):
        tasks.assemble_audio_task.on_failure(RuntimeError("worker lost"), "task-1", (), {"job_id": job.id}, None)

    stored = job_store.get(job.id)
    assert stored.status == JobStatus.FAILED
    assert "worker lost" in stored.error_message


def test_on_failure_leaves_completed_job_alone(session_factory, job_store):
    job = job_store.create(user_id="user-1", instructions={})
    job_store.mark_completed(job.id, "user-1/assembly-results/a.mp3", 8, 10)

    with patch("audio_assembly.workers.tasks.SessionLocal", session_factory):
        tasks.assemble_audio_task.on_failure(RuntimeError("late"), "task-1", (), {"job_id": job.id}, None)

    assert job_store.get(job.id).status == JobStatus.COMPLETED


def test_pregenerate_task(fragment_cache, synthesizer, session_factory, storage):
    with patch("audio_assembly.workers.tasks.SessionLocal", session_factory), \
            patch("audio_assembly.workers.tasks.get_storage", return_value=storage), \
            patch("audio_assembly.workers.tasks.ElevenLabsClient", return_value=synthesizer), \
            patch("audio_assembly.services.pregeneration.asyncio.sleep"):
        result = tasks.pregenerate_fragments_task.run(user_id="user-1", voice_id="voice-1")

    assert result["user_id"] == "user-1"
    assert result["errors"] == 0
    assert result["generated"] == len(synthesizer.calls) > 0
