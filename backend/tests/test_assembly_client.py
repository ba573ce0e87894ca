import json
from unittest.mock import patch

import httpx
import pytest

from audio_assembly.api.dependencies import get_job_store
from audio_assembly.exceptions import AssemblyRequestError, InvocationTimeoutError
from audio_assembly.main import app
from audio_assembly.services.assembly_client import AssemblyClient
from audio_assembly.services.job_store import JobStore


def _client(handler, **kwargs):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("retry_delay", 0)
    return AssemblyClient(base_url="http://assembly.test", http_client=http_client, **kwargs)


def _ok(job_id="job-1"):
    return httpx.Response(200, json={"success": True, "jobId": job_id, "message": "started", "estimatedDuration": 16})


@pytest.mark.asyncio
async def test_start_assembly_sends_request(instructions_payload):
    seen = []

    def handler(request):
        seen.append(request)
        return _ok()

    client = _client(handler)
    data = await client.start_assembly(instructions_payload, user_id="user-1", session_id="session-1")

    assert data["jobId"] == "job-1"
    assert client.attempts == 1
    assert seen[0].url.path == "/api/audio-assembly"
    body = json.loads(seen[0].content)
    assert body["userId"] == "user-1"
    assert body["sessionId"] == "session-1"
    assert body["assemblyInstructions"]["metadata"]["sentimentCount"] == 1


@pytest.mark.asyncio
async def test_server_errors_are_retried(instructions_payload):
    responses = [httpx.Response(503, json={"error": "busy"}), _ok("job-2")]
    client = _client(lambda request: responses.pop(0))

    data = await client.start_assembly(instructions_payload, user_id="user-1")

    assert data["jobId"] == "job-2"
    assert client.attempts == 2


@pytest.mark.asyncio
async def test_client_errors_are_not_retried(instructions_payload):
    client = _client(lambda request: httpx.Response(422, json={"error": "Invalid request"}))

    with pytest.raises(AssemblyRequestError) as exc_info:
        await client.start_assembly(instructions_payload, user_id="user-1")

    assert exc_info.value.status_code == 422
    assert str(exc_info.value) == "Invalid request"
    assert client.attempts == 1


@pytest.mark.asyncio
async def test_timeouts_give_up_after_max_attempts(instructions_payload):
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    client = _client(handler, max_attempts=3)

    with pytest.raises(InvocationTimeoutError):
        await client.start_assembly(instructions_payload, user_id="user-1")

    assert client.attempts == 3


@pytest.mark.asyncio
async def test_timeout_then_success(instructions_payload):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ReadTimeout("too slow", request=request)
        return _ok("job-3")

    client = _client(handler)
    data = await client.start_assembly(instructions_payload, user_id="user-1")

    assert data["jobId"] == "job-3"
    assert client.attempts == 2


@pytest.mark.asyncio
async def test_wait_for_completion_polls_until_terminal():
    statuses = ["pending", "processing", "completed"]

    def handler(request):
        assert request.url.path == "/api/jobs/job-1"
        return httpx.Response(200, json={"id": "job-1", "status": statuses.pop(0)})

    job = await _client(handler).wait_for_completion("job-1", poll_interval=0)

    assert job["status"] == "completed"
    assert statuses == []


@pytest.mark.asyncio
async def test_wait_for_completion_times_out():
    client = _client(lambda request: httpx.Response(200, json={"id": "job-1", "status": "processing"}))

    with pytest.raises(InvocationTimeoutError):
        await client.wait_for_completion("job-1", poll_interval=0, timeout=0)


@pytest.mark.asyncio
async def test_get_audio_url():
    def handler(request):
        assert request.url.params["expires_in"] == "600"
        return httpx.Response(200, json={"signedUrl": "http://x/api/storage/a.mp3?sig", "expiresAt": 1, "path": "a.mp3"})

    assert await _client(handler).get_audio_url("job-1", expires_in=600) == "http://x/api/storage/a.mp3?sig"


@pytest.mark.asyncio
@patch("audio_assembly.api.routes_assembly.assemble_audio_task")
async def test_retry_against_api_reuses_job(mock_task, session_factory, instructions_payload):
    app.dependency_overrides[get_job_store] = lambda: JobStore(session_factory)
    try:
        http_client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
        client = AssemblyClient(base_url="http://testserver", http_client=http_client, retry_delay=0)

        first = await client.start_assembly(instructions_payload, user_id="user-1", session_id="session-1")
        second = await client.start_assembly(instructions_payload, user_id="user-1", session_id="session-1")
        await http_client.aclose()
    finally:
        app.dependency_overrides.clear()

    assert first["jobId"] == second["jobId"]
    assert mock_task.delay.call_count == 1
