"""SQLAlchemy model & helpers for audio assembly jobs.

The row is the single source of truth for client-visible state: polling
clients read it directly and only the job's own background task writes it.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, Enum as SAEnum, Integer, String, Text

from audio_assembly.db.base import Base


def utcnow() -> datetime:
    return datetime.utcnow()


class JobStatus(str, Enum):
    """Enum representing the lifecycle of an assembly job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)


class AssemblyJob(Base):
    """Persistent representation of one protocol audio assembly."""

    __tablename__ = "assembly_jobs"

    id: str = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: str = Column(String(64), nullable=False, index=True)
    session_id: Optional[str] = Column(String(64), nullable=True, index=True)
    status: JobStatus = Column(
        SAEnum(JobStatus, values_callable=lambda enum: [e.value for e in enum]),
        nullable=False,
        default=JobStatus.PENDING,
    )
    progress_percentage: int = Column(Integer, nullable=False, default=0)
    assembly_instructions: dict = Column(JSON, nullable=False)

    result_audio_path: Optional[str] = Column(String(512), nullable=True)
    total_duration_seconds: Optional[int] = Column(Integer, nullable=True)
    total_file_size_bytes: Optional[int] = Column(Integer, nullable=True)
    error_message: Optional[str] = Column(Text, nullable=True)

    created_at: datetime = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: datetime = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    started_at: Optional[datetime] = Column(DateTime(timezone=True), nullable=True)
    completed_at: Optional[datetime] = Column(DateTime(timezone=True), nullable=True)

    # Helper to convert enum to plain string for JSON responses
    @property
    def status_str(self) -> str:
        return self.status.value if isinstance(self.status, JobStatus) else str(self.status)

    @property
    def is_terminal(self) -> bool:
        return JobStatus(self.status_str).is_terminal

    def __repr__(self) -> str:
        return f"<AssemblyJob id={self.id} status={self.status_str} progress={self.progress_percentage}>"
