import json

import httpx
import pytest

from audio_assembly.exceptions import ConfigurationError, SynthesisError
from audio_assembly.services.speech_synthesis import (
    PREGENERATION_VOICE_SETTINGS,
    ElevenLabsClient,
    VoiceSettings,
)


def _client(handler, api_key="secret"):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ElevenLabsClient(api_key=api_key, base_url="https://tts.test", model_id="model-x", http_client=http_client)


@pytest.mark.asyncio
async def test_synthesize_posts_expected_request():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"\xff\xfb\x90\x00audio")

    audio = await _client(handler).synthesize("RAIVA", "voice-1")

    assert audio == b"\xff\xfb\x90\x00audio"
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/v1/text-to-speech/voice-1"
    assert request.headers["xi-api-key"] == "secret"
    body = json.loads(request.content)
    assert body["text"] == "RAIVA"
    assert body["model_id"] == "model-x"
    assert body["voice_settings"] == {
        "stability": 0.7,
        "similarity_boost": 0.9,
        "style": 0.2,
        "use_speaker_boost": True,
    }


@pytest.mark.asyncio
async def test_custom_voice_settings_are_sent():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, content=b"audio")

    await _client(handler).synthesize("MEDO", "voice-1", PREGENERATION_VOICE_SETTINGS)
    assert bodies[0]["voice_settings"]["stability"] == 0.75
    assert bodies[0]["voice_settings"]["style"] == 0.0


@pytest.mark.asyncio
async def test_http_error_becomes_synthesis_error():
    client = _client(lambda request: httpx.Response(401, text="invalid api key"))

    with pytest.raises(SynthesisError) as exc_info:
        await client.synthesize("RAIVA", "voice-1")

    assert exc_info.value.status_code == 401
    assert "invalid api key" in str(exc_info.value)


@pytest.mark.asyncio
async def test_transport_error_becomes_synthesis_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SynthesisError) as exc_info:
        await _client(handler).synthesize("RAIVA", "voice-1")
    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_empty_body_is_an_error():
    with pytest.raises(SynthesisError):
        await _client(lambda request: httpx.Response(200, content=b"")).synthesize("RAIVA", "voice-1")


@pytest.mark.asyncio
async def test_missing_api_key():
    with pytest.raises(ConfigurationError):
        await _client(lambda request: httpx.Response(200), api_key="").synthesize("RAIVA", "voice-1")


def test_voice_settings_defaults():
    assert VoiceSettings() == VoiceSettings(stability=0.7, similarity_boost=0.9, style=0.2, use_speaker_boost=True)
