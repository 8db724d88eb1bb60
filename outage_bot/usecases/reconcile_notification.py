from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from enum import Enum

from outage_bot.domain.errors import DispatchError
from outage_bot.domain.models import NotificationState
from outage_bot.logging_utils import log_event, redact_sensitive_text
from outage_bot.observability import events
from outage_bot.repositories.notification_state_repository import NotificationStateRepository
from outage_bot.services.notifier import MessageDispatcher


class ReconcileOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    RECREATED = "recreated"
    FAILED = "failed"
    DRY_RUN = "dry_run"


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _accepted_message_id(response: object) -> int | None:
    """Return the message id of a successful dispatcher answer, else None."""
    if not isinstance(response, Mapping) or response.get("ok") is not True:
        return None
    result = response.get("result")
    if not isinstance(result, Mapping):
        return None
    message_id = result.get("message_id")
    if isinstance(message_id, bool) or not isinstance(message_id, int):
        return None
    return message_id


def _describe_rejection(response: object) -> str:
    if not isinstance(response, Mapping):
        return f"unexpected response type {type(response).__name__}"
    description = response.get("description")
    error_code = response.get("error_code")
    if description or error_code:
        return f"error_code={error_code!r} description={description!r}"
    return "response without ok/result"


class NotificationReconciler:
    """Keeps exactly one live Telegram message per outage episode.

    With no live message the reconciler creates one and remembers its id.
    With a live message it edits that message in place. When the edit is
    rejected (deleted message, pruned history) the stored id is dropped and a
    fresh message is created in the same call. Dispatcher failures and state
    store write errors never leave this class; they end up as
    ``ReconcileOutcome.FAILED``.
    """

    def __init__(
        self,
        notifier: MessageDispatcher,
        state_repo: NotificationStateRepository,
        logger: logging.Logger | None = None,
        *,
        chat_id: str | None = None,
        dry_run: bool = False,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.notifier = notifier
        self.state_repo = state_repo
        self.logger = logger or logging.getLogger("outage_alert_bot.reconciler")
        self.chat_id = chat_id
        self.dry_run = dry_run
        self.clock = clock

    def reconcile(self, message: str) -> ReconcileOutcome:
        state = self.state_repo.state

        if self.dry_run:
            self.logger.info(
                log_event(
                    events.NOTIFICATION_DRY_RUN,
                    action="update" if state.is_live else "create",
                    message_id=state.message_id,
                )
            )
            return ReconcileOutcome.DRY_RUN

        if state.message_id is None:
            message_id = self._create(message)
            if message_id is None or not self._remember(message_id):
                return ReconcileOutcome.FAILED
            self.logger.info(log_event(events.NOTIFICATION_CREATED, message_id=message_id))
            return ReconcileOutcome.CREATED

        if self._update(state.message_id, message):
            # An edit keeps the id; re-persisting refreshes updated_at only.
            if not self._remember(state.message_id):
                return ReconcileOutcome.FAILED
            self.logger.info(log_event(events.NOTIFICATION_UPDATED, message_id=state.message_id))
            return ReconcileOutcome.UPDATED

        # The live message is gone or cannot be edited: forget it before
        # trying a replacement so a failed create leaves no stale id behind.
        self._forget(state.message_id)
        message_id = self._create(message)
        if message_id is None or not self._remember(message_id):
            return ReconcileOutcome.FAILED
        self.logger.info(
            log_event(
                events.NOTIFICATION_RECREATED,
                previous_message_id=state.message_id,
                message_id=message_id,
            )
        )
        return ReconcileOutcome.RECREATED

    def _create(self, message: str) -> int | None:
        try:
            response = self.notifier.create_message(message)
        except DispatchError as exc:
            self._log_not_sent("create", error=redact_sensitive_text(exc), attempts=exc.attempts)
            return None

        message_id = _accepted_message_id(response)
        if message_id is None:
            self._log_not_sent("create", error=_describe_rejection(response))
        return message_id

    def _update(self, message_id: int, message: str) -> bool:
        try:
            response = self.notifier.update_message(message_id, message)
        except DispatchError as exc:
            self._log_update_failed(message_id, redact_sensitive_text(exc))
            return False

        # The id is already known, so an edit only needs ok; Telegram answers
        # some edits with "result": true instead of the message object.
        if not isinstance(response, Mapping) or response.get("ok") is not True:
            self._log_update_failed(message_id, _describe_rejection(response))
            return False
        return True

    def _remember(self, message_id: int) -> bool:
        state = NotificationState(
            message_id=message_id,
            chat_id=self.chat_id,
            updated_at=self.clock(),
        )
        try:
            self.state_repo.save(state)
        except OSError as exc:
            self._log_state_not_saved("save", message_id, exc)
            return False
        return True

    def _forget(self, message_id: int) -> None:
        try:
            self.state_repo.clear()
        except OSError as exc:
            self._log_state_not_saved("clear", message_id, exc)

    def _log_state_not_saved(self, action: str, message_id: int, exc: OSError) -> None:
        self.logger.warning(
            log_event(
                events.NOTIFICATION_STATE_NOT_SAVED,
                action=action,
                message_id=message_id,
                error=redact_sensitive_text(exc),
            )
        )

    def _log_update_failed(self, message_id: int, error: str) -> None:
        self.logger.warning(
            log_event(
                events.NOTIFICATION_UPDATE_FAILED,
                message_id=message_id,
                error=error,
            )
        )

    def _log_not_sent(self, action: str, *, error: str, attempts: int | None = None) -> None:
        self.logger.warning(
            log_event(
                events.NOTIFICATION_NOT_SENT,
                action=action,
                attempts=attempts,
                error=error,
            )
        )
