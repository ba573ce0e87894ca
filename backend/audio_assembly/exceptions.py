"""Domain exceptions raised by the assembly pipeline and its callers."""

from __future__ import annotations

from typing import Optional


class AppBaseException(Exception):
    """HTTP-facing error so route handlers can map failures to JSON responses easily."""

    def __init__(self, status_code: int, detail: str) -> None:  # noqa: D401
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class AssemblyError(Exception):
    """Base class; ``str(exc)`` is the human-readable message stored on a failed job."""


class ConfigurationError(AssemblyError):
    """A required credential or instruction field is missing. Never retried by the manager."""


class SynthesisError(AssemblyError):
    """The speech provider rejected or failed a request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StorageError(AssemblyError):
    """Uploading, downloading or verifying a stored object failed."""


class ObjectExistsError(StorageError):
    """A create-only upload found the object already present."""


class JobNotFoundError(AssemblyError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Assembly job {job_id} not found")
        self.job_id = job_id


class AssemblyRequestError(AssemblyError):
    """The assembly endpoint answered with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code >= 500


class InvocationTimeoutError(AssemblyError):
    """The synchronous invocation of the assembly endpoint exceeded its time budget.

    The background job may still be running (or may have failed on its own).
    """
