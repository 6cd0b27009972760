"""Activity feed and notification fan-out.

Every mutating service action ends by calling :meth:`ActivityLogger.log`
(and sometimes :meth:`ActivityLogger.notify`) inside the same unit of work
as the entity write. Display names for actor and target are resolved here,
at write time, and stored on the row; later renames or deletions of the
underlying entities never change an existing feed entry.

Sink delivery and websocket publishing happen only after the surrounding
transaction commits, so a rolled-back action never reaches a subscriber.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy import event
from sqlalchemy.orm import Session

from evalats.config import Settings, get_settings
from evalats.core.events import ACTIVITY_CHANNEL, EventBus, job_channel, member_channel
from evalats.core.runtime import get_event_bus
from evalats.db.models import ActivityEntry, Candidate, Interview, Job, Notification, Offer, TeamMember
from evalats.db.repositories import Repository
from evalats.db.session import transaction
from evalats.errors import NotFoundError

logger = logging.getLogger(__name__)

SYSTEM_ACTOR_NAME = "System"
UNKNOWN_TARGET_NAME = "Unknown"


@dataclass(frozen=True, slots=True)
class ActorRef:
    """A caller identity already resolved to a team member, or the system."""

    team_member_id: int | None = None

    @classmethod
    def system(cls) -> ActorRef:
        return cls(None)

    @property
    def is_system(self) -> bool:
        return self.team_member_id is None


def resolve_actor(repo: Repository, user_id: str | None) -> ActorRef:
    if not user_id:
        return ActorRef.system()
    member = repo.get_team_member_by_user_id(user_id)
    if member is None:
        raise NotFoundError("Team member not found")
    return ActorRef(member.id)


class NotificationSink(Protocol):
    def deliver(self, notification: dict[str, Any]) -> None: ...


class LoggingNotificationSink:
    def deliver(self, notification: dict[str, Any]) -> None:
        logger.info(
            "Notification type=%s recipient=%s message=%s",
            notification["type"],
            notification["recipient_id"],
            notification["message"],
        )


@dataclass
class InMemoryNotificationSink:
    delivered: list[dict[str, Any]] = field(default_factory=list)

    def deliver(self, notification: dict[str, Any]) -> None:
        self.delivered.append(notification)


class EventBusNotificationSink:
    def __init__(self, event_bus: EventBus | None = None):
        self.event_bus = event_bus or get_event_bus()

    def deliver(self, notification: dict[str, Any]) -> None:
        self.event_bus.publish_nowait(member_channel(notification["recipient_id"]), notification)


class FanOutNotificationSink:
    def __init__(self, *sinks: NotificationSink):
        self.sinks = sinks

    def deliver(self, notification: dict[str, Any]) -> None:
        for sink in self.sinks:
            sink.deliver(notification)


_DEFAULT_SINK: NotificationSink = FanOutNotificationSink(LoggingNotificationSink(), EventBusNotificationSink())


def get_notification_sink() -> NotificationSink:
    return _DEFAULT_SINK


def set_notification_sink(sink: NotificationSink) -> NotificationSink:
    global _DEFAULT_SINK
    previous = _DEFAULT_SINK
    _DEFAULT_SINK = sink
    return previous


def serialize_activity(entry: ActivityEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "actor": {"id": entry.actor_id, "name": entry.actor_name, "avatar": entry.actor_avatar},
        "action": entry.action,
        "target": {"type": entry.target_type, "id": entry.target_id, "name": entry.target_name},
        "metadata": entry.metadata_json or {},
        "job_id": entry.job_id,
        "is_read": entry.is_read,
        "timestamp": entry.timestamp.isoformat() if entry.timestamp else None,
    }


def serialize_notification(row: Notification) -> dict[str, Any]:
    return {
        "id": row.id,
        "recipient_id": row.recipient_id,
        "type": row.type,
        "from_id": row.from_id,
        "entity_type": row.entity_type,
        "entity_id": row.entity_id,
        "comment_id": row.comment_id,
        "task_id": row.task_id,
        "message": row.message,
        "is_read": row.is_read,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


class ActivityLogger:
    def __init__(
        self,
        session: Session,
        *,
        sink: NotificationSink | None = None,
        event_bus: EventBus | None = None,
    ):
        self.session = session
        self.repo = Repository(session)
        self.sink = sink or get_notification_sink()
        self.event_bus = event_bus or get_event_bus()
        self._pending_events: list[tuple[str, dict[str, Any]]] = []
        self._pending_notifications: list[dict[str, Any]] = []
        self._hooked = False

    def log(
        self,
        action: str,
        actor: ActorRef,
        target_type: str,
        target_id: int,
        *,
        job_id: int | None = None,
        metadata: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> ActivityEntry:
        if idempotency_key:
            existing = self.repo.get_activity_by_key(idempotency_key)
            if existing is not None:
                logger.debug("Skipping duplicate activity key=%s", idempotency_key)
                return existing

        actor_name, actor_avatar = self._actor_display(actor)
        entry = self.repo.add(
            ActivityEntry(
                actor_id=actor.team_member_id,
                actor_name=actor_name,
                actor_avatar=actor_avatar,
                action=action,
                target_type=target_type,
                target_id=target_id,
                target_name=self._target_display(target_type, target_id),
                metadata_json=metadata or {},
                job_id=job_id,
                idempotency_key=idempotency_key,
            )
        )
        logger.info(
            "Activity action=%s actor=%s target=%s:%s",
            action,
            actor_name,
            target_type,
            target_id,
        )

        payload = serialize_activity(entry)
        self._queue_event(ACTIVITY_CHANNEL, payload)
        if job_id is not None:
            self._queue_event(job_channel(job_id), payload)
        return entry

    def notify(
        self,
        recipient_id: int,
        notification_type: str,
        from_actor: ActorRef,
        *,
        message: str,
        entity_type: str = "",
        entity_id: int | None = None,
        comment_id: int | None = None,
        task_id: int | None = None,
    ) -> Notification:
        row = self.repo.add(
            Notification(
                recipient_id=recipient_id,
                type=notification_type,
                from_id=from_actor.team_member_id,
                entity_type=entity_type,
                entity_id=entity_id,
                comment_id=comment_id,
                task_id=task_id,
                message=message,
            )
        )
        self._ensure_hooked()
        self._pending_notifications.append(serialize_notification(row))
        return row

    def _actor_display(self, actor: ActorRef) -> tuple[str, str]:
        if actor.is_system:
            return SYSTEM_ACTOR_NAME, ""
        member = self.repo.get_team_member(actor.team_member_id)
        if member is None:
            raise NotFoundError("Team member not found")
        return member.name, member.avatar

    def _target_display(self, target_type: str, target_id: int) -> str:
        if target_type == "candidate":
            candidate = self.session.get(Candidate, target_id)
            return candidate.name if candidate else UNKNOWN_TARGET_NAME
        if target_type == "job":
            job = self.session.get(Job, target_id)
            return job.title if job else UNKNOWN_TARGET_NAME
        if target_type == "interview":
            interview = self.session.get(Interview, target_id)
            if interview is None:
                return UNKNOWN_TARGET_NAME
            candidate = self.session.get(Candidate, interview.candidate_id)
            return f"{candidate.name if candidate else UNKNOWN_TARGET_NAME} - {interview.type}"
        if target_type == "offer":
            offer = self.session.get(Offer, target_id)
            if offer is None:
                return UNKNOWN_TARGET_NAME
            candidate = self.session.get(Candidate, offer.candidate_id)
            return f"Offer for {candidate.name}" if candidate else UNKNOWN_TARGET_NAME
        return UNKNOWN_TARGET_NAME

    def _queue_event(self, channel: str, payload: dict[str, Any]) -> None:
        self._ensure_hooked()
        self._pending_events.append((channel, payload))

    def _ensure_hooked(self) -> None:
        if self._hooked:
            return
        event.listen(self.session, "after_commit", self._after_commit)
        event.listen(self.session, "after_rollback", self._after_rollback)
        self._hooked = True

    def _after_commit(self, _session: Session) -> None:
        notifications, self._pending_notifications = self._pending_notifications, []
        events, self._pending_events = self._pending_events, []

        for notification in notifications:
            try:
                self.sink.deliver(notification)
            except Exception:
                logger.exception(
                    "Notification delivery failed type=%s recipient=%s",
                    notification["type"],
                    notification["recipient_id"],
                )

        for channel, payload in events:
            try:
                self.event_bus.publish_nowait(channel, payload)
            except Exception:
                logger.exception("Failed to publish activity to channel=%s", channel)

    def _after_rollback(self, _session: Session) -> None:
        if self._pending_events or self._pending_notifications:
            logger.debug(
                "Discarding %s events and %s notifications after rollback",
                len(self._pending_events),
                len(self._pending_notifications),
            )
        self._pending_events = []
        self._pending_notifications = []


class ActivityService:

    def __init__(self, session: Session, *, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)

    def feed(self, job_id: int | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        rows = self.repo.list_activity(job_id=job_id, limit=limit or self.settings.default_feed_limit)
        return [serialize_activity(row) for row in rows]

    def mark_read(self, entry_id: int) -> dict[str, Any]:
        with transaction(self.session):
            entry = self.repo.require(ActivityEntry, entry_id, "Activity entry")
            entry.is_read = True
        return serialize_activity(entry)

    def notifications_for(self, member_id: int, unread_only: bool = False) -> list[dict[str, Any]]:
        self.repo.require(TeamMember, member_id, "Team member")
        return [serialize_notification(row) for row in self.repo.list_notifications(member_id, unread_only)]

    def mark_notification_read(self, notification_id: int) -> dict[str, Any]:
        with transaction(self.session):
            row = self.repo.require(Notification, notification_id, "Notification")
            row.is_read = True
        return serialize_notification(row)
