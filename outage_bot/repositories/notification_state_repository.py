from __future__ import annotations

from typing import Protocol

from outage_bot.domain.models import NotificationState


class NotificationStateRepository(Protocol):
    @property
    def state(self) -> NotificationState:
        ...

    def save(self, state: NotificationState) -> None:
        ...

    def clear(self) -> None:
        ...
