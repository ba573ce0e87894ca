"""Warm the fragment cache with phrases every protocol uses.

Unlike assembly, a failing fragment here is counted and skipped: the cache is
only an optimisation and the next assembly will synthesize whatever is
missing.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from ..config import Settings, settings as default_settings
from ..exceptions import AssemblyError
from .fragment_cache import FragmentCache, hash_text
from .speech_synthesis import PREGENERATION_VOICE_SETTINGS

logger = logging.getLogger(__name__)

STATIC_PHRASES = (
    "Código ALMA, a minha consciência escolhe:",
    "ACABARAM!",
    "que eu senti",
    "que eu recebi",
    "TODOS OS SENTIMENTOS PREJUDICIAIS",
    "Código ESPÍRITO, a minha consciência escolhe: todas as informações prejudiciais que eu gerei",
    "Código ESPÍRITO, a minha consciência escolhe: todas as informações prejudiciais que eu recebi",
)

COMMON_SENTIMENTS = (
    "RAIVA", "MEDO", "TRISTEZA", "CULPA", "VERGONHA",
    "REJEIÇÃO", "ABANDONO", "INSEGURANÇA", "IMPOTÊNCIA", "FRUSTRAÇÃO",
)


@dataclass
class PregenerationResult:
    generated: int = 0
    skipped: int = 0
    errors: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


async def pregenerate_fragments(
    user_id: str,
    voice_id: str,
    fragment_cache: FragmentCache,
    synthesizer,
    texts: Optional[Iterable[str]] = None,
    settings: Settings = default_settings,
) -> PregenerationResult:
    """Synthesize and cache every text not yet cached for ``voice_id``."""
    result = PregenerationResult()
    texts = list(texts) if texts is not None else [*STATIC_PHRASES, *COMMON_SENTIMENTS]
    logger.info(f"Starting pre-generation of {len(texts)} fragments for user {user_id} with voice {voice_id}")

    for text in texts:
        text_hash = hash_text(text)
        if await asyncio.to_thread(fragment_cache.contains, voice_id, text_hash):
            result.skipped += 1
            continue
        try:
            audio = await synthesizer.synthesize(text, voice_id, PREGENERATION_VOICE_SETTINGS)
            await asyncio.to_thread(fragment_cache.store, voice_id, text, text_hash, audio, user_id)
            result.generated += 1
        except AssemblyError as exc:
            logger.error(f"Error pre-generating {text!r}: {exc}")
            result.errors += 1
            continue
        if settings.PREGENERATE_DELAY_SECONDS:
            # Stay under the provider's rate limit
            await asyncio.sleep(settings.PREGENERATE_DELAY_SECONDS)

    logger.info(f"Pre-generation finished for user {user_id}: {result.as_dict()}")
    return result
