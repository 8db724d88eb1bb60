from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Protocol

import requests

from outage_bot.domain.errors import DispatchError
from outage_bot.logging_utils import log_event, redact_sensitive_text
from outage_bot.observability import events

DEFAULT_TELEGRAM_API_BASE_URL = "https://api.telegram.org"
PARSE_MODE = "HTML"
NOT_MODIFIED_MARKER = "message is not modified"


class MessageDispatcher(Protocol):
    """Create/edit contract used by the reconciler.

    Both calls return the decoded response body; ``body["ok"] is True`` is the
    only success signal. Transport failures raise ``DispatchError``.
    """

    def create_message(self, text: str) -> Mapping[str, object]: ...

    def update_message(self, message_id: int, text: str) -> Mapping[str, object]: ...


class TelegramNotifier:
    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_base_url: str = DEFAULT_TELEGRAM_API_BASE_URL,
        timeout_sec: int = 10,
        connect_timeout_sec: int | None = None,
        read_timeout_sec: int | None = None,
        max_retries: int = 2,
        retry_delay_sec: int = 1,
        disable_web_page_preview: bool = True,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self.connect_timeout_sec = connect_timeout_sec or timeout_sec
        self.read_timeout_sec = read_timeout_sec or timeout_sec
        self.max_retries = max(1, max_retries)
        self.retry_delay_sec = max(0, retry_delay_sec)
        self.disable_web_page_preview = disable_web_page_preview
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger("outage_alert_bot.notifier")

    def close(self) -> None:
        self.session.close()

    def create_message(self, text: str) -> dict[str, object]:
        return self._call("sendMessage", self._base_payload(text))

    def update_message(self, message_id: int, text: str) -> dict[str, object]:
        payload = self._base_payload(text)
        payload["message_id"] = message_id
        body = self._call("editMessageText", payload)
        if self._is_not_modified(body):
            # Same text as the live message: the message is still there and
            # shows exactly what we wanted.
            self.logger.info(log_event(events.NOTIFICATION_NOT_MODIFIED, message_id=message_id))
            return {
                "ok": True,
                "result": {"message_id": message_id, "chat": {"id": self.chat_id}},
            }
        return body

    def _base_payload(self, text: str) -> dict[str, object]:
        return {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": PARSE_MODE,
            "disable_web_page_preview": self.disable_web_page_preview,
        }

    def _method_url(self, method: str) -> str:
        return f"{self.api_base_url}/bot{self.bot_token}/{method}"

    @staticmethod
    def _is_not_modified(body: Mapping[str, object]) -> bool:
        if body.get("ok") is True:
            return False
        description = body.get("description")
        return isinstance(description, str) and NOT_MODIFIED_MARKER in description.lower()

    @staticmethod
    def _is_retryable_status(status_code: int) -> bool:
        return status_code == 429 or 500 <= status_code < 600

    @staticmethod
    def _is_retryable_error(exc: Exception) -> bool:
        return isinstance(exc, (requests.Timeout, requests.ConnectionError))

    @staticmethod
    def _decode_body(response: requests.Response, method: str) -> dict[str, object]:
        try:
            body = response.json()
        except ValueError as exc:
            raise DispatchError(
                f"Telegram {method} returned a non-JSON body (HTTP {response.status_code})",
                last_error=exc,
                error_code=response.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise DispatchError(
                f"Telegram {method} returned a non-object body (HTTP {response.status_code})",
                error_code=response.status_code,
            )
        return body

    def _call(self, method: str, payload: dict[str, object]) -> dict[str, object]:
        url = self._method_url(method)
        backoff_seconds = self.retry_delay_sec
        last_error: Exception | None = None
        attempts = 0
        for attempt in range(1, self.max_retries + 1):
            attempts = attempt
            try:
                response = self.session.post(
                    url,
                    json=payload,
                    timeout=(self.connect_timeout_sec, self.read_timeout_sec),
                )
            except requests.RequestException as exc:
                last_error = exc
                retryable = self._is_retryable_error(exc)
            else:
                if not self._is_retryable_status(response.status_code) or attempt == self.max_retries:
                    return self._decode_body(response, method)
                last_error = requests.HTTPError(f"HTTP {response.status_code}")
                retryable = True

            if attempt == self.max_retries or not retryable:
                break
            self.logger.warning(
                log_event(
                    events.NOTIFICATION_RETRY,
                    method=method,
                    attempt=attempt,
                    max_retries=self.max_retries,
                    error=redact_sensitive_text(last_error),
                    backoff_sec=backoff_seconds,
                )
            )
            if backoff_seconds > 0:
                time.sleep(backoff_seconds)
            backoff_seconds = max(backoff_seconds * 2, self.retry_delay_sec)

        raise DispatchError(
            f"Telegram {method} failed: {redact_sensitive_text(last_error)}",
            attempts=attempts,
            last_error=last_error,
        )
