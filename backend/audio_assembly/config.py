"""Application-wide configuration loader.

Parses environment variables once and exposes a singleton ``settings`` object
that the rest of the code-base imports.
"""

import os


class Settings:
    """Settings helper that gracefully falls back to sane defaults.

    Rationale
    ---------
    When docker-compose injects an environment variable whose value is empty
    (e.g. ``ELEVENLABS_BASE_URL=""``) ``os.getenv(KEY, default)`` returns an
    empty string *not* ``None``.  That empty string would then override the
    in-code default, so every setting uses the idiom

        os.getenv(KEY) or DEFAULT

    and *falsy* values ("", None) are replaced by DEFAULT.
    """

    DATABASE_URL: str = os.getenv('DATABASE_URL') or 'postgresql://assembly:assembly@db:5432/assembly'
    DB_ECHO: bool = (os.getenv('DB_ECHO') or '0').lower() in ('1', 'true', 'yes')

    CELERY_BROKER_URL: str = os.getenv('CELERY_BROKER_URL') or 'redis://broker:6379/0'
    CELERY_RESULT_BACKEND: str = os.getenv('CELERY_RESULT_BACKEND') or 'redis://broker:6379/0'
    CELERY_TASK_ALWAYS_EAGER: bool = (os.getenv('CELERY_TASK_ALWAYS_EAGER') or '0').lower() in ('1', 'true', 'yes')

    # Speech synthesis provider (ElevenLabs)
    ELEVENLABS_API_KEY: str = os.getenv('ELEVENLABS_API_KEY') or ''
    ELEVENLABS_BASE_URL: str = os.getenv('ELEVENLABS_BASE_URL') or 'https://api.elevenlabs.io'
    ELEVENLABS_MODEL_ID: str = os.getenv('ELEVENLABS_MODEL_ID') or 'eleven_multilingual_v2'
    DEFAULT_VOICE_ID: str = os.getenv('DEFAULT_VOICE_ID') or 'EXAVITQu4vr4xnSDxMaL'
    TTS_TIMEOUT_SECONDS: float = float(os.getenv('TTS_TIMEOUT_SECONDS') or '60')

    # Assembly
    # Approximate seconds per spliced phrase; the reported duration is an
    # estimate, not a measurement of the audio.
    SEGMENT_DURATION_SECONDS: int = int(os.getenv('SEGMENT_DURATION_SECONDS') or '8')
    PREGENERATE_DELAY_SECONDS: float = float(os.getenv('PREGENERATE_DELAY_SECONDS') or '0.2')

    # Storage / signed URLs
    STORAGE_SIGNING_KEY: str = os.getenv('STORAGE_SIGNING_KEY') or 'change-me'
    SIGNED_URL_TTL_SECONDS: int = int(os.getenv('SIGNED_URL_TTL_SECONDS') or '3600')
    PUBLIC_BASE_URL: str = os.getenv('PUBLIC_BASE_URL') or 'http://localhost:8000'

    # Caller-side invocation of the assembly endpoint
    INVOKE_TIMEOUT_SECONDS: float = float(os.getenv('INVOKE_TIMEOUT_SECONDS') or '30')
    CLIENT_MAX_ATTEMPTS: int = int(os.getenv('CLIENT_MAX_ATTEMPTS') or '3')
    CLIENT_RETRY_DELAY_SECONDS: float = float(os.getenv('CLIENT_RETRY_DELAY_SECONDS') or '2')

    @property
    def has_tts_credentials(self) -> bool:
        return bool(self.ELEVENLABS_API_KEY)


settings = Settings()
