"""FastAPI dependencies shared by the routers (overridable in tests)."""

from ..db.database import SessionLocal
from ..services.job_store import JobStore
from ..utils.storage import LocalBlobStorage, get_storage


def get_job_store() -> JobStore:
    return JobStore(SessionLocal)


def get_blob_storage() -> LocalBlobStorage:
    return get_storage()
