"""ORM models for synthesized fragments and the base component dictionary."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint

from audio_assembly.db.base import Base


class CachedFragment(Base):
    """
    Content-addressed synthesis cache entry.

    One row per (voice_id, text_hash); ``audio_path`` points at the stored MP3
    bytes. Rows are written once and never updated by the assembly code.
    """
    __tablename__ = "audio_fragments_cache"
    __table_args__ = (
        UniqueConstraint("voice_id", "text_hash", name="uq_fragment_voice_hash"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(String(64), nullable=False, comment="User whose run first synthesized the fragment.")
    voice_id = Column(String(64), nullable=False, index=True, comment="TTS voice identity.")
    text_hash = Column(String(64), nullable=False, comment="SHA-256 hex digest of the trimmed, lower-cased text.")
    text_content = Column(Text, nullable=False, comment="The text as it was sent to the TTS provider.")
    audio_path = Column(String(512), nullable=False, comment="Storage path of the synthesized MP3.")
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class AudioComponent(Base):
    """A symbolic protocol component (e.g. ``alma_intro``) and its spoken text."""
    __tablename__ = "audio_components"

    id = Column(Integer, primary_key=True, autoincrement=True)
    component_key = Column(String(128), nullable=False, unique=True, index=True)
    text_content = Column(Text, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)


class UserVoiceProfile(Base):
    """Per-user voice preferences; only the cloned voice matters here."""
    __tablename__ = "user_voice_profiles"

    user_id = Column(String(64), primary_key=True)
    cloned_voice_id = Column(String(64), nullable=True)
