"""Maps protocol component keys to the text that gets spoken."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from sqlalchemy.orm import Session, sessionmaker

from ..models.fragment import AudioComponent

logger = logging.getLogger(__name__)


class FragmentResolver:
    """Resolve a component key through a read-only dictionary.

    Unknown keys are literal text (sentiments, event descriptions). The result
    is stripped; an empty string means "skip this fragment".
    """

    def __init__(self, components: Optional[Mapping[str, str]] = None) -> None:
        self._components = dict(components or {})

    def __len__(self) -> int:
        return len(self._components)

    def resolve(self, key: str) -> str:
        text = self._components.get(key)
        if text is None:
            text = key
        return (text or "").strip()


class DatabaseComponentSource:
    """Loads the available base components as ``{component_key: text_content}``."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def load(self) -> dict[str, str]:
        db: Session = self._session_factory()
        try:
            rows = db.query(AudioComponent).filter(AudioComponent.is_available.is_(True)).all()
            components = {row.component_key: row.text_content for row in rows}
            logger.info(f"Loaded {len(components)} base audio components")
            return components
        finally:
            db.close()


class StaticComponentSource:
    """In-memory component dictionary, for tests and offline runs."""

    def __init__(self, components: Optional[Mapping[str, str]] = None) -> None:
        self._components = dict(components or {})

    def load(self) -> dict[str, str]:
        return dict(self._components)
