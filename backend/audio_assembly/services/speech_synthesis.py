"""Client for the ElevenLabs text-to-speech REST API.

Only the single call the pipeline needs is implemented:
``POST {base}/v1/text-to-speech/{voice_id}`` which answers with MP3 bytes.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..exceptions import ConfigurationError, SynthesisError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoiceSettings:
    stability: float = 0.7
    similarity_boost: float = 0.9
    style: float = 0.2
    use_speaker_boost: bool = True


# Steady, close-to-the-original-voice settings used for protocol phrases.
PROTOCOL_VOICE_SETTINGS = VoiceSettings()
# Neutral settings used when warming the cache ahead of time.
PREGENERATION_VOICE_SETTINGS = VoiceSettings(stability=0.75, similarity_boost=0.75, style=0.0)


class ElevenLabsClient:
    """Async wrapper around one TTS endpoint.

    A shared :class:`httpx.AsyncClient` may be injected (tests pass one with a
    ``MockTransport``); otherwise a short-lived client is opened per call.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model_id: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.ELEVENLABS_API_KEY
        self.base_url = (base_url or settings.ELEVENLABS_BASE_URL).rstrip("/")
        self.model_id = model_id or settings.ELEVENLABS_MODEL_ID
        self.timeout = timeout or settings.TTS_TIMEOUT_SECONDS
        self._http_client = http_client

    def build_payload(self, text: str, voice_settings: VoiceSettings) -> Dict[str, Any]:
        return {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": asdict(voice_settings),
        }

    async def synthesize(
        self,
        text: str,
        voice_id: str,
        voice_settings: VoiceSettings = PROTOCOL_VOICE_SETTINGS,
    ) -> bytes:
        """Return MP3 bytes for ``text`` spoken by ``voice_id``.

        Raises:
            ConfigurationError: If no API key is configured.
            SynthesisError: On HTTP errors, transport errors or an empty body.
        """
        if not self.api_key:
            raise ConfigurationError("ElevenLabs API key is not configured")

        url = f"{self.base_url}/v1/text-to-speech/{voice_id}"
        headers = {"xi-api-key": self.api_key, "Content-Type": "application/json", "Accept": "audio/mpeg"}
        payload = self.build_payload(text, voice_settings)

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, json=payload, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error_body = e.response.text if e.response is not None else ""
            status_code = e.response.status_code if e.response is not None else None
            logger.error(f"TTS error {status_code} for voice {voice_id}: {error_body}")
            raise SynthesisError(f"TTS failed ({status_code}): {error_body}", status_code=status_code) from e
        except httpx.RequestError as e:
            logger.error(f"TTS request error for voice {voice_id} (URL: {url}): {e}", exc_info=True)
            raise SynthesisError(f"TTS request failed: {e}") from e

        audio = response.content
        if not audio:
            raise SynthesisError("TTS returned an empty audio body", status_code=response.status_code)
        logger.info(f"Synthesized {len(text)} chars with voice {voice_id}: {len(audio)} bytes")
        return audio
