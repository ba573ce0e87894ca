"""Celery task definitions."""

import asyncio
import logging

from celery import Celery, Task

from audio_assembly.config import settings
from audio_assembly.db.database import SessionLocal, create_tables
from ..exceptions import JobNotFoundError
from ..services.assembly_manager import build_manager
from ..services.fragment_cache import FragmentCache
from ..services.job_store import JobStore
from ..services.pregeneration import pregenerate_fragments
from ..services.speech_synthesis import ElevenLabsClient
from ..utils.storage import get_storage
from ..logging_config import setup_logging as setup_app_logging

# Creating tables is a no-op if they already exist, so the worker does not
# depend on the API container having started first.
create_tables()

# --- Logger Setup ---
setup_app_logging()
logger = logging.getLogger(__name__)


# --- Celery Application Setup ---
celery_app = Celery(
    "assembly",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=['audio_assembly.workers.tasks']
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    # Jobs are never retried by the worker; retry means a new job
    task_acks_late=False,
)


# --- Base Task with failure bookkeeping ---
class BaseTaskWithDB(Task):
    """Base Celery Task that makes sure a crashed job never stays in flight."""
    abstract = True

    def __call__(self, *args, **kwargs):
        logger.info(f"Task {self.name} [{self.request.id}] called with args: {args}, kwargs: {kwargs}")
        return super().__call__(*args, **kwargs)

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Task {self.name} [{task_id}] failed: {exc}", exc_info=einfo)
        job_id = kwargs.get('job_id')
        if job_id:
            try:
                # No-op when the manager already recorded the failure
                JobStore(SessionLocal).mark_failed(job_id, f"Task failed: {str(exc)[:500]}")
            except JobNotFoundError:
                logger.warning(f"Job with id {job_id} not found for failure update of task {self.name} [{task_id}].")
            except Exception as db_exc:
                logger.error(f"DB error during task failure handling for job {job_id}, task {self.name} [{task_id}]: {db_exc}", exc_info=True)
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):
        logger.info(f"Task {self.name} [{task_id}] completed successfully. Result: {retval}")
        super().on_success(retval, task_id, args, kwargs)


# --- Audio Assembly Task ---
@celery_app.task(name="assemble_audio_task", base=BaseTaskWithDB)
def assemble_audio_task(job_id: str):
    logger.info(f"Starting audio assembly for job_id: {job_id}")
    manager = build_manager()
    result = asyncio.run(manager.process_job(job_id))
    if result is None:
        return {"job_id": job_id, "status": manager.job_store.get(job_id).status_str}
    return {
        "job_id": job_id,
        "status": "completed",
        "result_audio_path": result.result_audio_path,
        "total_file_size_bytes": result.total_file_size_bytes,
    }


# --- Cache Pre-generation Task ---
@celery_app.task(name="pregenerate_fragments_task", base=BaseTaskWithDB)
def pregenerate_fragments_task(user_id: str, voice_id: str):
    logger.info(f"Starting fragment pre-generation for user {user_id}, voice {voice_id}")
    cache = FragmentCache(SessionLocal, get_storage())
    result = asyncio.run(pregenerate_fragments(user_id, voice_id, cache, ElevenLabsClient()))
    return {"user_id": user_id, "voice_id": voice_id, **result.as_dict()}


logger.info("Celery tasks defined and logging configured.")
