"""Pydantic models for the assembly request contract and job responses.

Field names are snake_case in Python; the camelCase aliases are the wire
format used by the chat front-end. Unknown keys are kept so the instructions
can be stored verbatim.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AssemblySequence(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    sequence_id: int = Field(alias="sequenceId")
    components: List[str] = Field(default_factory=list)
    estimated_duration: float = Field(0, alias="estimatedDuration")


class AssemblyMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    # Leading sequences below this index are individual sentiments; the rest
    # are final phrases. Used for labelling only.
    sentiment_count: int = Field(0, alias="sentimentCount", ge=0)
    protocol_type: Optional[str] = Field(None, alias="protocolType")


class AssemblyInstructions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    session_id: Optional[str] = Field(None, alias="sessionId")
    assembly_sequence: List[AssemblySequence] = Field(alias="assemblySequence", min_length=1)
    metadata: Optional[AssemblyMetadata] = None
    total_estimated_duration: Optional[float] = Field(None, alias="totalEstimatedDuration")
    estimated_duration: Optional[float] = Field(None, alias="estimatedDuration")

    @property
    def advisory_duration(self) -> float:
        """Best available duration hint in seconds (never measured)."""
        if self.total_estimated_duration is not None:
            return self.total_estimated_duration
        if self.estimated_duration is not None:
            return self.estimated_duration
        return sum(sequence.estimated_duration for sequence in self.assembly_sequence)

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class AssemblyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    assembly_instructions: AssemblyInstructions = Field(alias="assemblyInstructions")
    session_id: Optional[str] = Field(None, alias="sessionId")
    user_id: str = Field(alias="userId", min_length=1)


class PregenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    voice_id: str = Field(alias="voiceId", min_length=1)


class JobInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    session_id: Optional[str] = None
    status: str
    progress_percentage: int
    result_audio_path: Optional[str] = None
    error_message: Optional[str] = None
    total_duration_seconds: Optional[int] = None
    total_file_size_bytes: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job) -> "JobInfo":
        return cls(
            id=job.id,
            user_id=job.user_id,
            session_id=job.session_id,
            status=job.status_str,
            progress_percentage=job.progress_percentage or 0,
            result_audio_path=job.result_audio_path,
            error_message=job.error_message,
            total_duration_seconds=job.total_duration_seconds,
            total_file_size_bytes=job.total_file_size_bytes,
            created_at=job.created_at,
            updated_at=job.updated_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )
