"""Durable job record access.

All writes go through :class:`JobStore` so the lifecycle rules hold in one
place:

* ``pending -> processing -> completed | failed`` (``pending -> failed`` too);
* ``progress_percentage`` never decreases and only reaches 100 on completion;
* terminal rows are never modified again. Attempts are logged and reported by
  a ``False`` return value.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import JobNotFoundError
from ..models.job import ACTIVE_STATUSES, AssemblyJob, JobStatus

logger = logging.getLogger(__name__)


class JobStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, job_id: str) -> AssemblyJob:
        db: Session = self._session_factory()
        try:
            job = db.query(AssemblyJob).filter(AssemblyJob.id == job_id).first()
            if job is None:
                raise JobNotFoundError(job_id)
            return job
        finally:
            db.close()

    def list(self, user_id: Optional[str] = None, status: Optional[JobStatus] = None, limit: int = 50) -> List[AssemblyJob]:
        db: Session = self._session_factory()
        try:
            query = db.query(AssemblyJob)
            if user_id:
                query = query.filter(AssemblyJob.user_id == user_id)
            if status:
                query = query.filter(AssemblyJob.status == status)
            return query.order_by(AssemblyJob.created_at.desc()).limit(limit).all()
        finally:
            db.close()

    def find_in_flight(self, user_id: str, session_id: Optional[str]) -> Optional[AssemblyJob]:
        """Most recent pending/processing job for this user and session, if any."""
        if not session_id:
            return None
        db: Session = self._session_factory()
        try:
            return (
                db.query(AssemblyJob)
                .filter(
                    AssemblyJob.user_id == user_id,
                    AssemblyJob.session_id == session_id,
                    AssemblyJob.status.in_(ACTIVE_STATUSES),
                )
                .order_by(AssemblyJob.created_at.desc())
                .first()
            )
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, user_id: str, instructions: Dict[str, Any], session_id: Optional[str] = None) -> AssemblyJob:
        db: Session = self._session_factory()
        try:
            job = AssemblyJob(
                user_id=user_id,
                session_id=session_id,
                assembly_instructions=instructions,
                status=JobStatus.PENDING,
                progress_percentage=0,
            )
            db.add(job)
            db.commit()
            db.refresh(job)
            logger.info(f"Assembly job created: {job.id} (user={user_id}, session={session_id})")
            return job
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _mutate(self, job_id: str, apply) -> bool:
        db: Session = self._session_factory()
        try:
            job = db.query(AssemblyJob).filter(AssemblyJob.id == job_id).first()
            if job is None:
                raise JobNotFoundError(job_id)
            if job.is_terminal:
                logger.warning(f"Ignoring update of job {job_id}: already {job.status_str}")
                return False
            apply(job)
            db.commit()
            return True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def update_progress(self, job_id: str, progress: int, message: str = "") -> bool:
        """Move the job to ``processing`` and raise its progress (never lowers it)."""
        progress = max(0, min(int(progress), 99))

        def apply(job: AssemblyJob) -> None:
            now = datetime.utcnow()
            if job.status_str == JobStatus.PENDING.value:
                job.status = JobStatus.PROCESSING
                job.started_at = now
            job.progress_percentage = max(job.progress_percentage or 0, progress)
            job.updated_at = now

        updated = self._mutate(job_id, apply)
        if updated:
            logger.info(f"Job {job_id} status updated: processing ({progress}%) - {message}")
        return updated

    def mark_completed(
        self,
        job_id: str,
        result_audio_path: str,
        total_duration_seconds: int,
        total_file_size_bytes: int,
    ) -> bool:
        def apply(job: AssemblyJob) -> None:
            now = datetime.utcnow()
            job.status = JobStatus.COMPLETED
            job.progress_percentage = 100
            job.result_audio_path = result_audio_path
            job.total_duration_seconds = total_duration_seconds
            job.total_file_size_bytes = total_file_size_bytes
            job.error_message = None
            job.completed_at = now
            job.updated_at = now

        updated = self._mutate(job_id, apply)
        if updated:
            logger.info(f"Job {job_id} completed: {result_audio_path} ({total_file_size_bytes} bytes)")
        return updated

    def mark_failed(self, job_id: str, error_message: str) -> bool:
        def apply(job: AssemblyJob) -> None:
            now = datetime.utcnow()
            job.status = JobStatus.FAILED
            job.error_message = (error_message or "Unknown error")[:2000]
            job.result_audio_path = None
            job.completed_at = now
            job.updated_at = now

        updated = self._mutate(job_id, apply)
        if updated:
            logger.error(f"Job {job_id} failed: {error_message}")
        return updated
