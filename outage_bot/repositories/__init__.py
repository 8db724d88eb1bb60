"""Data access layer."""
from outage_bot.repositories.notification_state_repo import (
    InMemoryNotificationStateRepository,
    JsonNotificationStateRepository,
)
from outage_bot.repositories.notification_state_repository import NotificationStateRepository

__all__ = [
    "InMemoryNotificationStateRepository",
    "JsonNotificationStateRepository",
    "NotificationStateRepository",
]
