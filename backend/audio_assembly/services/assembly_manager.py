"""Orchestrates one protocol audio assembly from instructions to a stored MP3.

Lifecycle of a job (see :mod:`audio_assembly.services.job_store`)::

    pending -> processing -> completed
                          -> failed

Progress checkpoints: 10 (validated), 20 (voice and components ready),
20..80 (one step per sequence), 85 (final splice), 95 (stored), 100 (done).

Sequences and fragments are processed strictly in order. Any exception aborts
the job: the row is marked ``failed`` with the message and the exception is
re-raised for the worker to log. Retrying is the caller's business and always
creates a new job.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from pydantic import ValidationError
from sqlalchemy.orm import Session, sessionmaker

from ..config import Settings, settings as default_settings
from ..exceptions import AssemblyError, ConfigurationError, StorageError, SynthesisError
from ..models.assembly import AssemblyInstructions, AssemblySequence
from ..models.fragment import UserVoiceProfile
from ..models.job import AssemblyJob, JobStatus
from ..utils.storage import LocalBlobStorage, result_path, segment_path
from .fragment_cache import FragmentCache, hash_text
from .job_store import JobStore
from .mp3_splicer import splice_mp3_buffers
from .notifications import NotificationEvent, NotificationSink, completed_event, failed_event
from .speech_synthesis import PROTOCOL_VOICE_SETTINGS, VoiceSettings
from .text_resolver import FragmentResolver

logger = logging.getLogger(__name__)

INDIVIDUAL_SENTIMENT = "individual_sentiment"
FINAL_PHRASE = "final_phrase"


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str, voice_id: str, voice_settings: VoiceSettings = ...) -> bytes: ...


class ComponentSource(Protocol):
    def load(self) -> dict: ...


class VoiceResolver(Protocol):
    def voice_for(self, user_id: str) -> str: ...


class DatabaseVoiceResolver:
    """Prefers the user's cloned voice, falling back to the default voice."""

    def __init__(self, session_factory: sessionmaker, default_voice_id: str) -> None:
        self._session_factory = session_factory
        self.default_voice_id = default_voice_id

    def voice_for(self, user_id: str) -> str:
        db: Session = self._session_factory()
        try:
            profile = db.query(UserVoiceProfile).filter(UserVoiceProfile.user_id == user_id).first()
        except Exception as exc:
            logger.warning(f"Could not fetch voice profile for user {user_id}: {exc}")
            profile = None
        finally:
            db.close()
        if profile is not None and profile.cloned_voice_id:
            return profile.cloned_voice_id
        return self.default_voice_id


class StaticVoiceResolver:
    def __init__(self, default_voice_id: str, cloned_voices: Optional[dict] = None) -> None:
        self.default_voice_id = default_voice_id
        self._cloned = dict(cloned_voices or {})

    def voice_for(self, user_id: str) -> str:
        return self._cloned.get(user_id) or self.default_voice_id


@dataclass
class AudioSegment:
    """One spliced phrase: every fragment of a sequence, in order."""

    sequence_id: int
    classification: str
    text: str
    audio: bytes
    path: Optional[str] = None


@dataclass
class AssemblyResult:
    job_id: str
    result_audio_path: str
    total_duration_seconds: int
    total_file_size_bytes: int
    segments: List[AudioSegment] = field(default_factory=list)


def classify_sequence(index: int, sentiment_count: int) -> str:
    return INDIVIDUAL_SENTIMENT if index < sentiment_count else FINAL_PHRASE


def sequence_progress(index: int, total: int) -> int:
    """Progress after finishing sequence ``index`` (0-based) of ``total``; spans 20..80."""
    return 20 + math.floor((index + 1) / total * 60)


class AssemblyJobManager:
    def __init__(
        self,
        job_store: JobStore,
        fragment_cache: FragmentCache,
        synthesizer: SpeechSynthesizer,
        storage: LocalBlobStorage,
        notifier: NotificationSink,
        component_source: ComponentSource,
        voice_resolver: VoiceResolver,
        settings: Settings = default_settings,
    ) -> None:
        self.job_store = job_store
        self.fragment_cache = fragment_cache
        self.synthesizer = synthesizer
        self.storage = storage
        self.notifier = notifier
        self.component_source = component_source
        self.voice_resolver = voice_resolver
        self.settings = settings

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def create_job(self, instructions: AssemblyInstructions, user_id: str, session_id: Optional[str] = None) -> AssemblyJob:
        """Persist a ``pending`` job; processing happens elsewhere."""
        return self.job_store.create(
            user_id=user_id,
            instructions=instructions.to_record(),
            session_id=session_id or instructions.session_id,
        )

    async def process_job(self, job_id: str) -> Optional[AssemblyResult]:
        """Run the whole pipeline for a ``pending`` job.

        Returns ``None`` whenever this call did not complete the job; the job
        row tells why.
        """
        job = await self._io(self.job_store.get, job_id)
        user_id = job.user_id
        if job.status_str != JobStatus.PENDING.value:
            logger.warning(f"Skipping job {job_id}: status is {job.status_str}, not pending")
            return None
        logger.info(f"Starting protocol assembly for job {job_id} (user={user_id})")

        try:
            instructions = self._check_preconditions(job)
        except ConfigurationError as exc:
            logger.error(f"Job {job_id} rejected: {exc}")
            await self._fail(job_id, user_id, str(exc))
            return None

        try:
            return await self._run(job, instructions)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.error(f"Error processing job {job_id}: {message}", exc_info=True)
            await self._fail(job_id, user_id, message)
            raise

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _check_preconditions(self, job: AssemblyJob) -> AssemblyInstructions:
        if not self.settings.has_tts_credentials:
            raise ConfigurationError("Speech synthesis API key is not configured")
        raw = job.assembly_instructions or {}
        if not raw.get("metadata"):
            raise ConfigurationError("Assembly instructions are missing metadata")
        try:
            return AssemblyInstructions.model_validate(raw)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid assembly instructions: {exc.error_count()} validation error(s)") from exc

    async def _run(self, job: AssemblyJob, instructions: AssemblyInstructions) -> Optional[AssemblyResult]:
        job_id, user_id = job.id, job.user_id
        await self._progress(job_id, 10, "Starting protocol")

        components = await self._io(self.component_source.load)
        resolver = FragmentResolver(components)
        voice_id = await self._io(self.voice_resolver.voice_for, user_id)
        logger.info(f"Job {job_id}: using voice {voice_id}, {len(resolver)} base components")

        await self._progress(job_id, 20, "Assembling protocol phrases")

        sentiment_count = instructions.metadata.sentiment_count
        sequences = instructions.assembly_sequence
        total = len(sequences)
        segments: List[AudioSegment] = []
        for index, sequence in enumerate(sequences):
            logger.info(f"Job {job_id}: processing sequence {index + 1}/{total} (id={sequence.sequence_id})")
            segment = await self._assemble_sequence(job, index, sequence, resolver, voice_id, sentiment_count)
            segments.append(segment)
            await self._progress(job_id, sequence_progress(index, total), f"Phrase {index + 1} of {total} processed")

        await self._progress(job_id, 85, "Concatenating final protocol")
        final_audio = splice_mp3_buffers([segment.audio for segment in segments])
        if not final_audio:
            raise AssemblyError("Final audio file is empty")

        file_name = f"protocol_assembly_{job_id}_{int(time.time() * 1000)}.mp3"
        final_path = result_path(user_id, file_name)
        await self._io(self.storage.upload, final_path, final_audio)
        await self._verify_upload(final_path, file_name)

        await self._progress(job_id, 95, "Finalizing protocol")
        duration = len(segments) * self.settings.SEGMENT_DURATION_SECONDS
        if not await self._io(self.job_store.mark_completed, job_id, final_path, duration, len(final_audio)):
            logger.warning(f"Job {job_id} was finished elsewhere; result '{final_path}' left unreferenced")
            return None

        await self._notify(
            completed_event(
                user_id=user_id,
                job_id=job_id,
                audio_path=final_path,
                metadata=instructions.metadata.model_dump(by_alias=True),
                total_phrases=len(segments),
            )
        )
        logger.info(f"Protocol assembly completed for job {job_id}: {len(segments)} phrases, {len(final_audio)} bytes")
        return AssemblyResult(
            job_id=job_id,
            result_audio_path=final_path,
            total_duration_seconds=duration,
            total_file_size_bytes=len(final_audio),
            segments=segments,
        )

    async def _assemble_sequence(
        self,
        job: AssemblyJob,
        index: int,
        sequence: AssemblySequence,
        resolver: FragmentResolver,
        voice_id: str,
        sentiment_count: int,
    ) -> AudioSegment:
        texts: List[str] = []
        buffers: List[bytes] = []
        for component in sequence.components:
            text = resolver.resolve(component)
            if not text:
                logger.debug(f"Job {job.id}: skipping empty component {component!r}")
                continue
            try:
                audio = await self._fragment_audio(text, voice_id, job.user_id)
            except SynthesisError as exc:
                raise SynthesisError(
                    f"Failed to generate audio for sequence {index + 1}: {exc}",
                    status_code=exc.status_code,
                ) from exc
            texts.append(text)
            buffers.append(audio)

        audio = splice_mp3_buffers(buffers)
        path = None
        if audio:
            path = segment_path(job.user_id, job.id, f"protocol_segment_{index + 1}.mp3")
            await self._io(self.storage.upload, path, audio)
        else:
            logger.warning(f"Job {job.id}: sequence {index + 1} produced no audio")

        return AudioSegment(
            sequence_id=sequence.sequence_id,
            classification=classify_sequence(index, sentiment_count),
            text=" ".join(texts),
            audio=audio,
            path=path,
        )

    async def _fragment_audio(self, text: str, voice_id: str, user_id: str) -> bytes:
        text_hash = hash_text(text)
        cached = await self._io(self.fragment_cache.lookup, voice_id, text_hash)
        if cached is not None:
            return cached
        audio = await self.synthesizer.synthesize(text, voice_id, PROTOCOL_VOICE_SETTINGS)
        await self._io(self.fragment_cache.store, voice_id, text, text_hash, audio, user_id)
        return audio

    async def _verify_upload(self, object_path: str, file_name: str) -> None:
        prefix = object_path.rsplit("/", 1)[0]
        stored = await self._io(self.storage.list, prefix)
        if file_name not in stored:
            raise StorageError(f"Final audio was not stored correctly: {object_path}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _progress(self, job_id: str, progress: int, message: str) -> None:
        await self._io(self.job_store.update_progress, job_id, progress, message)

    async def _fail(self, job_id: str, user_id: str, message: str) -> None:
        if await self._io(self.job_store.mark_failed, job_id, message):
            await self._notify(failed_event(user_id, job_id, message))

    async def _notify(self, event: NotificationEvent) -> None:
        # The job row already carries the outcome; a lost notification must not change it.
        try:
            await self._io(self.notifier.emit, event)
        except Exception as exc:
            logger.error(f"Failed to emit '{event.type}' notification for user {event.user_id}: {exc}", exc_info=True)

    @staticmethod
    async def _io(func, *args):
        return await asyncio.to_thread(func, *args)


def build_manager(
    session_factory: Optional[sessionmaker] = None,
    storage: Optional[LocalBlobStorage] = None,
    synthesizer: Optional[SpeechSynthesizer] = None,
    settings: Settings = default_settings,
) -> AssemblyJobManager:
    """Wire the manager with the database-backed collaborators."""
    from ..db.database import SessionLocal
    from ..utils.storage import get_storage
    from .notifications import DatabaseNotificationSink
    from .speech_synthesis import ElevenLabsClient
    from .text_resolver import DatabaseComponentSource

    session_factory = session_factory or SessionLocal
    storage = storage or get_storage()
    return AssemblyJobManager(
        job_store=JobStore(session_factory),
        fragment_cache=FragmentCache(session_factory, storage),
        synthesizer=synthesizer or ElevenLabsClient(api_key=settings.ELEVENLABS_API_KEY),
        storage=storage,
        notifier=DatabaseNotificationSink(session_factory),
        component_source=DatabaseComponentSource(session_factory),
        voice_resolver=DatabaseVoiceResolver(session_factory, settings.DEFAULT_VOICE_ID),
        settings=settings,
    )
