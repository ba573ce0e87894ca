"""Content-addressed cache of synthesized fragments.

Keys are ``(voice_id, sha256(text.strip().lower()))``. Two jobs missing the
same key at the same time may both synthesize it; the first insert wins and
the second is dropped, which is harmless because both point at equivalent
audio.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import ObjectExistsError
from ..models.fragment import CachedFragment
from ..utils.storage import LocalBlobStorage, cache_path, voice_cache_path

logger = logging.getLogger(__name__)


def normalize_text(text: str) -> str:
    return text.strip().lower()


def hash_text(text: str) -> str:
    """Lowercase hex SHA-256 of the normalized fragment text."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


class FragmentCache:
    def __init__(self, session_factory: sessionmaker, storage: LocalBlobStorage) -> None:
        self._session_factory = session_factory
        self._storage = storage

    def find(self, voice_id: str, text_hash: str) -> Optional[CachedFragment]:
        db: Session = self._session_factory()
        try:
            return (
                db.query(CachedFragment)
                .filter(CachedFragment.voice_id == voice_id, CachedFragment.text_hash == text_hash)
                .first()
            )
        finally:
            db.close()

    def contains(self, voice_id: str, text_hash: str) -> bool:
        return self.find(voice_id, text_hash) is not None

    def lookup(self, voice_id: str, text_hash: str) -> Optional[bytes]:
        """Cached audio bytes, or ``None`` on a miss.

        A row whose object cannot be read raises :class:`StorageError`.
        """
        entry = self.find(voice_id, text_hash)
        if entry is None:
            logger.debug(f"Cache miss for voice={voice_id} hash={text_hash[:12]}")
            return None
        logger.debug(f"Cache hit for voice={voice_id} hash={text_hash[:12]} -> {entry.audio_path}")
        return self._storage.download(entry.audio_path)

    def _owner_voice(self, audio_path: str) -> Optional[str]:
        db: Session = self._session_factory()
        try:
            row = db.query(CachedFragment.voice_id).filter(CachedFragment.audio_path == audio_path).first()
            return row.voice_id if row is not None else None
        finally:
            db.close()

    def _write_blob(self, voice_id: str, user_id: str, text_hash: str, audio: bytes) -> str:
        """Write the blob without replacing one that another entry points at.

        The plain ``{user}/cache/{hash}.mp3`` path goes to the first voice that
        stores the text; other voices get ``{user}/cache/{voice}/{hash}.mp3``.
        """
        primary = cache_path(user_id, text_hash)
        owner = self._owner_voice(primary)
        if owner == voice_id:
            logger.info(f"Fragment voice={voice_id} hash={text_hash[:12]} already stored at '{primary}'")
            return primary
        if owner is None:
            try:
                return self._storage.upload(primary, audio, upsert=False)
            except ObjectExistsError:
                logger.info(f"'{primary}' taken by a concurrent store; using a voice-specific path")
        audio_path = voice_cache_path(user_id, voice_id, text_hash)
        # Only this voice ever writes here, so the bytes are equivalent
        return self._storage.upload(audio_path, audio, upsert=True)

    def store(self, voice_id: str, text: str, text_hash: str, audio: bytes, user_id: str) -> str:
        """Persist ``audio`` and record it; returns the storage path.

        A stored blob is never replaced, so existing entries keep their audio.
        """
        audio_path = self._write_blob(voice_id, user_id, text_hash, audio)

        db: Session = self._session_factory()
        try:
            db.add(
                CachedFragment(
                    user_id=user_id,
                    voice_id=voice_id,
                    text_hash=text_hash,
                    text_content=text,
                    audio_path=audio_path,
                )
            )
            db.commit()
            logger.info(f"Cached fragment voice={voice_id} hash={text_hash[:12]} at '{audio_path}'")
        except IntegrityError:
            # Another job stored the same key first; keep its row.
            db.rollback()
            logger.info(f"Fragment voice={voice_id} hash={text_hash[:12]} already cached by a concurrent job")
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        return audio_path
