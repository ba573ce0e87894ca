from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..exceptions import JobNotFoundError
from ..models.assembly import JobInfo
from ..models.job import JobStatus
from ..services.job_store import JobStore
from .dependencies import get_job_store

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=List[JobInfo])
async def list_jobs(
    user_id: Optional[str] = None,
    status_filter: Optional[JobStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    job_store: JobStore = Depends(get_job_store),
) -> List[JobInfo]:
    """Return assembly jobs, newest first."""
    try:
        jobs = job_store.list(user_id=user_id, status=status_filter, limit=limit)
        return [JobInfo.from_job(j) for j in jobs]
    except Exception as exc:
        logger.error("Failed to list jobs: %s", exc, exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error listing jobs")


@router.get("/{job_id}", response_model=JobInfo)
async def get_job(job_id: str, job_store: JobStore = Depends(get_job_store)) -> JobInfo:
    """Return a single assembly job by ID (the status surface polled by clients)."""
    try:
        return JobInfo.from_job(job_store.get(job_id))
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    except Exception as exc:
        logger.error("Failed to fetch job %s: %s", job_id, exc, exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error fetching job")
