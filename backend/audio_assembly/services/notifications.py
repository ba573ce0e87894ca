"""Terminal-state events for user-facing delivery.

Delivery itself (push, e-mail, in-app dropdown) belongs to other services;
this module only records the event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol

from sqlalchemy.orm import Session, sessionmaker

from ..models.notification import UserNotification

logger = logging.getLogger(__name__)

ASSEMBLY_COMPLETED = "protocol_assembly_completed"
ASSEMBLY_FAILED = "protocol_assembly_failed"


@dataclass
class NotificationEvent:
    user_id: str
    type: str
    title: str
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    def emit(self, event: NotificationEvent) -> None: ...


class DatabaseNotificationSink:
    """Writes events to ``user_notifications``."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def emit(self, event: NotificationEvent) -> None:
        db: Session = self._session_factory()
        try:
            db.add(
                UserNotification(
                    user_id=event.user_id,
                    type=event.type,
                    title=event.title,
                    message=event.message,
                    event_metadata=event.metadata,
                )
            )
            db.commit()
            logger.info(f"Notification '{event.type}' recorded for user {event.user_id}")
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class InMemoryNotificationSink:
    """Collects events in a list; handy for tests and dry runs."""

    def __init__(self) -> None:
        self.events: List[NotificationEvent] = []

    def emit(self, event: NotificationEvent) -> None:
        self.events.append(event)


def completed_event(user_id: str, job_id: str, audio_path: str, metadata: Dict[str, Any], total_phrases: int) -> NotificationEvent:
    sentiment_count = int(metadata.get("sentimentCount") or 0)
    final_phrases = max(total_phrases - sentiment_count, 0)
    return NotificationEvent(
        user_id=user_id,
        type=ASSEMBLY_COMPLETED,
        title="Protocol audio ready",
        message=f"Your protocol was assembled from {sentiment_count} individual sentiments and {final_phrases} final phrases.",
        metadata={
            "job_id": job_id,
            "audio_path": audio_path,
            "protocol_type": metadata.get("protocolType"),
            "sentiment_count": sentiment_count,
            "total_phrases": total_phrases,
        },
    )


def failed_event(user_id: str, job_id: str, error_message: str) -> NotificationEvent:
    return NotificationEvent(
        user_id=user_id,
        type=ASSEMBLY_FAILED,
        title="Protocol audio failed",
        message=f"The protocol could not be assembled: {error_message}",
        metadata={"job_id": job_id, "error": error_message},
    )
