"""Shared fixtures: a private SQLite database, a temporary bucket and fakes
for the speech provider."""

from __future__ import annotations

from typing import List, Optional

import pytest
from sqlalchemy.orm import sessionmaker

from audio_assembly.config import Settings
from audio_assembly.db.database import build_engine, create_tables
from audio_assembly.exceptions import SynthesisError
from audio_assembly.services.assembly_manager import AssemblyJobManager, StaticVoiceResolver
from audio_assembly.services.fragment_cache import FragmentCache
from audio_assembly.services.job_store import JobStore
from audio_assembly.services.notifications import InMemoryNotificationSink
from audio_assembly.services.text_resolver import StaticComponentSource
from audio_assembly.utils.storage import LocalBlobStorage

FRAME_HEADER = b"\xff\xfb\x90\x00"

COMPONENTS = {
    "alma_intro": "Código ALMA, a minha consciência escolhe:",
    "acabaram": "ACABARAM!",
    "que_eu_senti": "que eu senti",
}


def id3v2_header(body_size: int = 10) -> bytes:
    """A minimal ID3v2.4 tag: 10-byte header plus ``body_size`` padding bytes."""
    size = bytes([(body_size >> 21) & 0x7F, (body_size >> 14) & 0x7F, (body_size >> 7) & 0x7F, body_size & 0x7F])
    return b"ID3\x04\x00\x00" + size + b"\x00" * body_size


def audio_frames(payload: bytes) -> bytes:
    return FRAME_HEADER + payload


def make_mp3(payload: bytes, tag_body: Optional[int] = 10, id3v1: bool = False) -> bytes:
    data = (id3v2_header(tag_body) if tag_body is not None else b"") + audio_frames(payload)
    if id3v1:
        data += b"TAG" + b"\x00" * 125
    return data


class FakeSynthesizer:
    """Returns a small tagged MP3 per text; can be told to fail on the n-th call."""

    def __init__(self, fail_on_call: Optional[int] = None) -> None:
        self.fail_on_call = fail_on_call
        self.calls: List[tuple] = []

    async def synthesize(self, text, voice_id, voice_settings=None) -> bytes:
        self.calls.append((text, voice_id))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise SynthesisError("TTS failed (429): quota exceeded", status_code=429)
        return make_mp3(text.encode("utf-8"))


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    create_tables(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def storage(tmp_path) -> LocalBlobStorage:
    return LocalBlobStorage(tmp_path / "bucket", signing_key="test-signing-key")


@pytest.fixture
def job_store(session_factory) -> JobStore:
    return JobStore(session_factory)


@pytest.fixture
def fragment_cache(session_factory, storage) -> FragmentCache:
    return FragmentCache(session_factory, storage)


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture
def notifier() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture
def test_settings() -> Settings:
    s = Settings()
    s.ELEVENLABS_API_KEY = "test-key"
    s.DEFAULT_VOICE_ID = "default-voice"
    s.PREGENERATE_DELAY_SECONDS = 0
    return s


@pytest.fixture
def manager(job_store, fragment_cache, synthesizer, storage, notifier, test_settings) -> AssemblyJobManager:
    return AssemblyJobManager(
        job_store=job_store,
        fragment_cache=fragment_cache,
        synthesizer=synthesizer,
        storage=storage,
        notifier=notifier,
        component_source=StaticComponentSource(COMPONENTS),
        voice_resolver=StaticVoiceResolver("default-voice", {"cloned-user": "cloned-voice"}),
        settings=test_settings,
    )


@pytest.fixture
def instructions_payload() -> dict:
    return {
        "sessionId": "session-1",
        "assemblySequence": [
            {"sequenceId": 1, "components": ["alma_intro", "RAIVA"], "estimatedDuration": 4},
            {"sequenceId": 2, "components": ["acabaram", "que_eu_senti"], "estimatedDuration": 4},
        ],
        "metadata": {"sentimentCount": 1, "protocolType": "alma"},
        "totalEstimatedDuration": 16,
    }
