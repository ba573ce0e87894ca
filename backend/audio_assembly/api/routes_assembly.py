"""Audio assembly REST endpoints.

1. `POST /audio-assembly`                  – Create a job and hand it to a worker.
2. `GET  /audio-assembly/{job_id}/audio-url` – Signed, time-limited URL of the result.
3. `POST /audio-assembly/pre-generate`     – Warm the fragment cache for a voice.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..exceptions import AppBaseException, JobNotFoundError, StorageError
from ..models.assembly import AssemblyRequest, PregenerateRequest
from ..models.job import JobStatus
from ..services.job_store import JobStore
from ..utils.storage import LocalBlobStorage
from ..workers.tasks import assemble_audio_task, pregenerate_fragments_task
from .dependencies import get_blob_storage, get_job_store

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("")
async def start_audio_assembly(
    request: AssemblyRequest,
    job_store: JobStore = Depends(get_job_store),
) -> dict:
    """Create a ``pending`` assembly job and return immediately.

    A job still in flight for the same user and session is returned instead of
    creating a second one, so a caller retrying after a timeout does not start
    duplicate work.
    """
    instructions = request.assembly_instructions
    session_id = request.session_id or instructions.session_id
    logger.info(f"Starting audio assembly for session: {session_id}, user: {request.user_id}")

    try:
        existing = job_store.find_in_flight(request.user_id, session_id)
        if existing is not None:
            logger.info(f"Reusing in-flight job {existing.id} for session {session_id}")
            return {
                "success": True,
                "jobId": existing.id,
                "message": "Audio assembly already in progress for this session.",
                "estimatedDuration": instructions.advisory_duration,
            }
        job = job_store.create(
            user_id=request.user_id,
            instructions=instructions.to_record(),
            session_id=session_id,
        )
    except Exception as exc:
        logger.error(f"Failed to create assembly job for user {request.user_id}: {exc}", exc_info=True)
        raise AppBaseException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to create assembly job")

    try:
        assemble_audio_task.delay(job_id=job.id)
    except Exception as exc:
        logger.error(f"Could not enqueue assembly job {job.id}: {exc}", exc_info=True)
        job_store.mark_failed(job.id, "Could not schedule audio assembly")
        raise AppBaseException(status.HTTP_503_SERVICE_UNAVAILABLE, "Audio assembly queue is unavailable")

    return {
        "success": True,
        "jobId": job.id,
        "message": "Audio assembly started! You will be notified about its progress.",
        "estimatedDuration": instructions.advisory_duration,
    }


@router.get("/{job_id}/audio-url")
async def get_audio_url(
    job_id: str,
    expires_in: int = Query(3600, ge=60, le=7 * 24 * 3600),
    job_store: JobStore = Depends(get_job_store),
    storage: LocalBlobStorage = Depends(get_blob_storage),
) -> dict:
    """Signed URL for the assembled audio of a completed job."""
    try:
        job = job_store.get(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    if job.status_str != JobStatus.COMPLETED.value or not job.result_audio_path:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Job is {job.status_str}, not completed")

    try:
        url, expires_at = storage.create_signed_url(job.result_audio_path, expires_in)
    except StorageError as exc:
        logger.error(f"Cannot sign result of job {job_id}: {exc}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Result audio not found in storage")
    return {"signedUrl": url, "expiresAt": expires_at, "path": job.result_audio_path}


@router.post("/pre-generate", status_code=status.HTTP_202_ACCEPTED)
async def pregenerate_fragments(request: PregenerateRequest) -> dict:
    """Queue synthesis of the fixed protocol phrases for ``voiceId``."""
    logger.info(f"Queueing fragment pre-generation for user {request.user_id} with voice {request.voice_id}")
    try:
        task = pregenerate_fragments_task.delay(user_id=request.user_id, voice_id=request.voice_id)
    except Exception as exc:
        logger.error(f"Could not enqueue pre-generation: {exc}", exc_info=True)
        raise AppBaseException(status.HTTP_503_SERVICE_UNAVAILABLE, "Pre-generation queue is unavailable")
    return {"success": True, "taskId": task.id, "message": "Fragment pre-generation started."}
