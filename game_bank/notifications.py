"""
Notification Sink Module

User-facing event messages emitted by the executor and the settlement
scheduler. Delivery happens only after the triggering unit has committed and
is fire-and-forget: a sink failure is logged and never undoes the money
movement.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple
from abc import ABC, abstractmethod
import threading
import uuid

import requests

from .ledger import utc_now
from .logging_config import get_logger
from .storage import StorageInterface, StorageRecord, parse_datetime


@dataclass
class Notification(StorageRecord):
    """In-app notification as stored by StorageNotificationSink"""
    account_id: str
    text: str
    is_read: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Notification':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            account_id=data['account_id'],
            text=data['text'],
            is_read=data.get('is_read', False)
        )


class NotificationSink(ABC):
    """Abstract base class for notification sinks"""

    @abstractmethod
    def enqueue(self, account_id: str, text: str) -> None:
        """Queue a message for an account. No delivery guarantee."""
        pass


class StorageNotificationSink(NotificationSink):
    """In-app notifications kept in the ledger store"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "notifications"

    def enqueue(self, account_id: str, text: str) -> None:
        now = utc_now()
        notification = Notification(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_id=account_id,
            text=text
        )
        self.storage.save(self.table_name, notification.id, notification.to_dict())

    def get_notifications(self, account_id: str, unread_only: bool = False) -> List[Notification]:
        """Notifications for an account, newest first"""
        filters = {"account_id": account_id}
        if unread_only:
            filters["is_read"] = False
        notifications = [Notification.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        notifications.reverse()
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications

    def mark_read(self, notification_id: str, account_id: Optional[str] = None) -> bool:
        """Mark a notification read; False if it is missing or belongs to another account"""
        data = self.storage.load(self.table_name, notification_id)
        if not data or (account_id and data["account_id"] != account_id):
            return False
        notification = Notification.from_dict(data)
        notification.is_read = True
        notification.updated_at = utc_now()
        self.storage.save(self.table_name, notification.id, notification.to_dict())
        return True


class LogNotificationSink(NotificationSink):
    """Simple logging sink for development"""

    def __init__(self, logger=None):
        self.logger = logger or get_logger("game_bank.notifications")

    def enqueue(self, account_id: str, text: str) -> None:
        self.logger.info(f"[NOTIFICATION] {account_id}: {text}")


class InMemoryNotificationSink(NotificationSink):
    """Collects messages in a list; used by tests"""

    def __init__(self):
        self.messages: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def enqueue(self, account_id: str, text: str) -> None:
        with self._lock:
            self.messages.append((account_id, text))

    def messages_for(self, account_id: str) -> List[str]:
        with self._lock:
            return [text for recipient, text in self.messages if recipient == account_id]


class WebhookNotificationSink(NotificationSink):
    """Posts each message as JSON to an external notification service"""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def enqueue(self, account_id: str, text: str) -> None:
        payload = {
            "notification_id": str(uuid.uuid4()),
            "account_id": account_id,
            "text": text,
            "timestamp": utc_now().isoformat()
        }
        response = requests.post(
            self.url,
            json=payload,
            timeout=self.timeout,
            headers={"Content-Type": "application/json"}
        )
        response.raise_for_status()


def deliver(sink: Optional[NotificationSink], messages: Iterable[Tuple[str, str]], logger=None) -> int:
    """
    Hand committed messages to the sink

    Returns:
        Number of messages the sink accepted
    """
    if sink is None:
        return 0
    logger = logger or get_logger("game_bank.notifications")
    delivered = 0
    for account_id, text in messages:
        try:
            sink.enqueue(account_id, text)
            delivered += 1
        except Exception as e:
            logger.error(f"Notification to {account_id} failed: {e}")
    return delivered


def sink_from_config(config, storage: StorageInterface) -> NotificationSink:
    """Build the sink named by config.notification_sink"""
    kind = config.notification_sink.lower()
    if kind == "storage":
        return StorageNotificationSink(storage)
    if kind == "log":
        return LogNotificationSink()
    if kind == "webhook":
        if not config.notification_webhook_url:
            raise ValueError("notification_webhook_url is required for the webhook sink")
        return WebhookNotificationSink(config.notification_webhook_url, config.notification_webhook_timeout)
    raise ValueError(f"Unknown notification sink: {config.notification_sink}")
