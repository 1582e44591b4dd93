"""
Notification fan-out.

Every mutation of a case file ends with one or more calls to
`NotificationService.notify`, which:
- publishes one in-app NotificationEvent to the notification sink
- emails the computed audience one recipient at a time

Delivery is best effort. A failure while publishing or emailing is logged and
counted in the returned NotificationOutcome; it is never raised to the caller,
so a mutation that reached storage always succeeds from the client's point of
view.
"""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from backend.app.models.domain.notification import NotificationEvent
from backend.app.services.mail_service import Mailer
from backend.app.services.notification_templates import RenderedNotification
from backend.app.services.user_directory import UserDirectory
from backend.app.utils.logging import get_logger, notification_logger
from backend.config.settings import MailSettings, get_settings

logger = get_logger(__name__)


class NotificationSink(ABC):
    """Destination of in-app notification events."""

    @abstractmethod
    async def publish(self, event: NotificationEvent) -> None:
        """Store or broadcast one event."""


class InMemoryNotificationStore(NotificationSink):
    """
    Process-local notification feed.

    Keeps the most recent events, newest first, and calls every subscriber
    on publish. A failing subscriber is logged and skipped.
    """

    def __init__(self, max_events: int = 1000):
        self._events: Deque[NotificationEvent] = deque(maxlen=max_events)
        self._subscribers: List[Callable[[NotificationEvent], Any]] = []

    def subscribe(self, callback: Callable[[NotificationEvent], Any]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def publish(self, event: NotificationEvent) -> None:
        self._events.appendleft(event)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    "Notification subscriber failed",
                    event_id=event.id,
                    error=str(e)
                )

    def list(self, unread_only: bool = False) -> List[NotificationEvent]:
        return [event for event in self._events if not (unread_only and event.read)]

    def get(self, event_id: str) -> Optional[NotificationEvent]:
        for event in self._events:
            if event.id == event_id:
                return event
        return None

    def mark_read(self, event_id: str) -> Optional[NotificationEvent]:
        event = self.get(event_id)
        if event is not None:
            event.mark_read()
        return event

    def mark_all_read(self) -> int:
        updated = 0
        for event in self._events:
            if not event.read:
                event.mark_read()
                updated += 1
        return updated


class AudienceKind(str, Enum):
    ALL_USERS = "all_users"
    ADDRESSES = "addresses"
    NOBODY = "nobody"


@dataclass(frozen=True)
class Audience:
    """Who receives the email of a notification."""
    kind: AudienceKind
    addresses: tuple = ()
    cap: Optional[int] = None

    @classmethod
    def all_users(cls) -> "Audience":
        return cls(AudienceKind.ALL_USERS)

    @classmethod
    def addresses_of(cls, addresses: Iterable[Optional[str]], cap: Optional[int] = None) -> "Audience":
        return cls(AudienceKind.ADDRESSES, tuple(a for a in addresses if a), cap)

    @classmethod
    def nobody(cls) -> "Audience":
        return cls(AudienceKind.NOBODY)


@dataclass
class NotificationOutcome:
    """Result of one fan-out; failures are reported here, never raised."""
    event: NotificationEvent
    published: bool = True
    recipients: List[str] = field(default_factory=list)
    failed_deliveries: int = 0

    @property
    def delivered(self) -> int:
        return len(self.recipients) - self.failed_deliveries

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event.id,
            "kind": self.event.kind.value,
            "published": self.published,
            "recipients": len(self.recipients),
            "failed_deliveries": self.failed_deliveries,
        }


def dedupe_addresses(addresses: Iterable[Optional[str]]) -> List[str]:
    """Drop blanks and case-insensitive duplicates, keeping first-seen order."""
    seen = set()
    unique = []
    for address in addresses:
        cleaned = (address or "").strip()
        if not cleaned:
            continue
        key = cleaned.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(cleaned)
    return unique


class NotificationService:
    """Publishes in-app events and emails their audience."""

    def __init__(
        self,
        sink: NotificationSink,
        mailer: Mailer,
        directory: UserDirectory,
        settings: Optional[MailSettings] = None
    ):
        self.sink = sink
        self.mailer = mailer
        self.directory = directory
        self.settings = settings or get_settings().mail

    @property
    def team_email_cap(self) -> int:
        return self.settings.team_email_cap

    async def resolve_recipients(self, audience: Audience) -> List[str]:
        if audience.kind == AudienceKind.NOBODY:
            return []
        if audience.kind == AudienceKind.ALL_USERS:
            users = await self.directory.get_all_users()
            return dedupe_addresses(user.email for user in users)

        recipients = dedupe_addresses(audience.addresses)
        if audience.cap is not None:
            recipients = recipients[:audience.cap]
        return recipients

    async def notify(
        self,
        rendered: RenderedNotification,
        data: Dict[str, Any],
        audience: Audience
    ) -> NotificationOutcome:
        """
        Publish one event and email its audience.

        Args:
            rendered: Title, message and email text of the notification
            data: Payload attached to the in-app event (ids, change records)
            audience: Email recipients

        Returns:
            NotificationOutcome with the event and the delivery counts
        """
        event = NotificationEvent(
            kind=rendered.kind,
            title=rendered.title,
            message=rendered.message,
            data=data,
        )
        outcome = NotificationOutcome(event=event)

        try:
            await self.sink.publish(event)
            notification_logger.event_published(
                kind=event.kind.value,
                event_id=event.id,
                dao_id=data.get("daoId")
            )
        except Exception as e:
            outcome.published = False
            notification_logger.delivery_failed(channel="in_app", error=str(e))

        try:
            outcome.recipients = await self.resolve_recipients(audience)
        except Exception as e:
            notification_logger.delivery_failed(channel="directory", error=str(e))
            return outcome

        for recipient in outcome.recipients:
            try:
                message = self.mailer.compose(recipient, rendered.email_subject, rendered.email_body)
                await self.mailer.send(message)
                notification_logger.email_sent(recipient=recipient, subject=rendered.email_subject)
            except Exception as e:
                outcome.failed_deliveries += 1
                notification_logger.delivery_failed(
                    channel="email",
                    recipient=recipient,
                    error=str(e)
                )

        if outcome.failed_deliveries:
            logger.warning(
                "Some notification emails failed",
                kind=event.kind.value,
                failed=outcome.failed_deliveries,
                recipients=len(outcome.recipients)
            )
        return outcome
