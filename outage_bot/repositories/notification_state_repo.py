from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from outage_bot.domain.models import NotificationState
from outage_bot.logging_utils import log_event
from outage_bot.observability import events

NOTIFICATION_STATE_SCHEMA_VERSION = 1


class JsonNotificationStateRepository:
    """Keeps the id of the live outage message in a small JSON document.

    Writes go through a temp file and ``Path.replace`` so a crash never leaves
    a half-written document behind. A corrupted document is moved aside and
    the repository starts over with no live message.
    """

    def __init__(self, file_path: Path, logger: logging.Logger | None = None) -> None:
        self.file_path = Path(file_path)
        self.logger = logger or logging.getLogger("outage_alert_bot.state")
        self._state = NotificationState()
        self._load()

    @property
    def state(self) -> NotificationState:
        return self._state

    def save(self, state: NotificationState) -> None:
        self._state = state
        self._persist()

    def clear(self) -> None:
        self._state = NotificationState()
        self._persist()

    def _load(self) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.file_path.exists():
            self._state = NotificationState()
            return

        try:
            with self.file_path.open("r", encoding="utf-8") as file:
                raw = json.load(file)
        except json.JSONDecodeError as exc:
            backup_path = self._backup_corrupted_file()
            self.logger.error(
                log_event(
                    events.STATE_INVALID_JSON,
                    file=str(self.file_path),
                    backup=str(backup_path) if backup_path is not None else None,
                    error=str(exc),
                )
            )
            self._state = NotificationState()
            self._persist()
            return
        except OSError as exc:
            self.logger.error(
                log_event(
                    events.STATE_READ_FAILED,
                    file=str(self.file_path),
                    error=str(exc),
                )
            )
            self._state = NotificationState()
            return

        self._state, migrated = self._normalize_state(raw)
        if migrated:
            self.logger.info(
                log_event(
                    events.STATE_MIGRATED,
                    file=str(self.file_path),
                    message_id=self._state.message_id,
                )
            )
            self._persist()

    def _backup_corrupted_file(self) -> Path | None:
        timestamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
        backup_path = self.file_path.with_name(f"{self.file_path.name}.broken-{timestamp}")
        try:
            self.file_path.replace(backup_path)
            return backup_path
        except OSError as exc:
            self.logger.error(
                log_event(
                    events.STATE_BACKUP_FAILED,
                    file=str(self.file_path),
                    error=str(exc),
                )
            )
            return None

    def _normalize_state(self, raw: object) -> tuple[NotificationState, bool]:
        if not isinstance(raw, dict):
            return NotificationState(), True

        if "state" in raw:
            maybe_state = raw.get("state")
            if not isinstance(maybe_state, dict):
                return NotificationState(), True
            migrated = raw.get("version") != NOTIFICATION_STATE_SCHEMA_VERSION
            return NotificationState.from_dict(maybe_state), migrated

        # Unversioned document: the whole Telegram message object that older
        # deployments dumped after sendMessage.
        return NotificationState.from_dict(raw), True

    def _persist(self) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        payload = {
            "version": NOTIFICATION_STATE_SCHEMA_VERSION,
            "state": self._state.to_dict(),
        }
        try:
            with temp_path.open("w", encoding="utf-8") as file:
                json.dump(payload, file, ensure_ascii=False, indent=2, sort_keys=True)
            temp_path.replace(self.file_path)
        except OSError as exc:
            self.logger.error(
                log_event(
                    events.STATE_PERSIST_FAILED,
                    file=str(self.file_path),
                    temp_file=str(temp_path),
                    error=str(exc),
                )
            )
            raise


class InMemoryNotificationStateRepository:
    def __init__(self, state: NotificationState | None = None) -> None:
        self._state = state or NotificationState()
        self.saved: list[NotificationState] = []

    @property
    def state(self) -> NotificationState:
        return self._state

    def save(self, state: NotificationState) -> None:
        self._state = state
        self.saved.append(state)

    def clear(self) -> None:
        self.save(NotificationState())
