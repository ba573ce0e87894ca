"""Caller-side client for the assembly API.

Two clocks are involved: the short *invocation* timeout on the create call,
and the unbounded background job it starts. A timeout surfaces as
:class:`InvocationTimeoutError` and is retried with a fixed delay, up to a
small attempt cap. Retrying is safe because the server hands back the job
already in flight for the same user and session instead of starting another.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Union

import httpx

from ..config import settings
from ..exceptions import AssemblyRequestError, InvocationTimeoutError
from ..models.assembly import AssemblyInstructions

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"completed", "failed"}


class AssemblyClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        invoke_timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = (base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        self.invoke_timeout = invoke_timeout or settings.INVOKE_TIMEOUT_SECONDS
        self.max_attempts = max(1, max_attempts or settings.CLIENT_MAX_ATTEMPTS)
        self.retry_delay = settings.CLIENT_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self._http_client = http_client
        self.attempts = 0

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(base_url=self.base_url) as client:
                yield client

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def start_assembly(
        self,
        instructions: Union[AssemblyInstructions, Dict[str, Any]],
        user_id: str,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create an assembly job, retrying timeouts and server errors.

        Returns the response body (``success``, ``jobId``, ``message``,
        ``estimatedDuration``). Client errors (4xx) are raised immediately.
        """
        if isinstance(instructions, AssemblyInstructions):
            instructions = instructions.to_record()
        payload = {"assemblyInstructions": instructions, "sessionId": session_id, "userId": user_id}

        self.attempts = 0
        last_error: Optional[Exception] = None
        while self.attempts < self.max_attempts:
            self.attempts += 1
            try:
                return await self._invoke(payload)
            except InvocationTimeoutError as exc:
                last_error = exc
            except AssemblyRequestError as exc:
                if not exc.retryable:
                    raise
                last_error = exc
            logger.warning(f"Assembly invocation attempt {self.attempts}/{self.max_attempts} failed: {last_error}")
            if self.attempts < self.max_attempts:
                await asyncio.sleep(self.retry_delay)

        logger.error(f"Giving up on audio assembly after {self.attempts} attempts")
        raise last_error

    async def _invoke(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with self._client() as client:
            try:
                response = await asyncio.wait_for(
                    client.post(self._url("/api/audio-assembly"), json=payload),
                    timeout=self.invoke_timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                raise InvocationTimeoutError(
                    f"Audio assembly request timed out after {self.invoke_timeout:g}s"
                ) from exc
            except httpx.RequestError as exc:
                raise AssemblyRequestError(f"Audio assembly request failed: {exc}") from exc
        return self._json_or_raise(response)

    @staticmethod
    def _json_or_raise(response: httpx.Response) -> Dict[str, Any]:
        if response.status_code >= 400:
            try:
                message = response.json().get("error") or response.text
            except ValueError:
                message = response.text
            raise AssemblyRequestError(message or f"HTTP {response.status_code}", status_code=response.status_code)
        return response.json()

    async def get_job(self, job_id: str) -> Dict[str, Any]:
        async with self._client() as client:
            response = await client.get(self._url(f"/api/jobs/{job_id}"))
        return self._json_or_raise(response)

    async def get_audio_url(self, job_id: str, expires_in: int = 3600) -> str:
        async with self._client() as client:
            response = await client.get(
                self._url(f"/api/audio-assembly/{job_id}/audio-url"),
                params={"expires_in": expires_in},
            )
        return self._json_or_raise(response)["signedUrl"]

    async def wait_for_completion(self, job_id: str, poll_interval: float = 2.0, timeout: float = 600.0) -> Dict[str, Any]:
        """Poll the job until it is terminal; the job keeps running if this gives up."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            job = await self.get_job(job_id)
            if job.get("status") in TERMINAL_STATUSES:
                return job
            if loop.time() >= deadline:
                raise InvocationTimeoutError(f"Job {job_id} still {job.get('status')} after {timeout:g}s")
            await asyncio.sleep(poll_interval)
