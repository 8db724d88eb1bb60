from __future__ import annotations

import logging
import re
import time
from datetime import datetime
from typing import Final, Protocol
from urllib.parse import urljoin
from zoneinfo import ZoneInfo

import requests

from outage_bot.domain.errors import DataUnavailableError
from outage_bot.logging_utils import log_event, redact_sensitive_text
from outage_bot.observability import events
from outage_bot.settings import Settings

API_ERROR_TIMEOUT: Final[str] = "timeout"
API_ERROR_CONNECTION: Final[str] = "connection"
API_ERROR_REQUEST: Final[str] = "request_error"
API_ERROR_HTTP_STATUS: Final[str] = "http_status"
API_ERROR_PARSE: Final[str] = "parse_error"
API_ERROR_CSRF_MISSING: Final[str] = "csrf_missing"
API_ERROR_UNKNOWN: Final[str] = "unknown_error"

AJAX_PATH: Final[str] = "/ua/ajax"
HOUSE_LOOKUP_METHOD: Final[str] = "getHomeNum"
UPDATE_FACT_FORMAT: Final[str] = "%d.%m.%Y %H:%M:%S"
DEFAULT_USER_AGENT: Final[str] = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

RE_CSRF_META = (
    re.compile(
        r"""<meta[^>]*name=["']csrf-token["'][^>]*content=["']([^"']+)["']""",
        re.IGNORECASE,
    ),
    re.compile(
        r"""<meta[^>]*content=["']([^"']+)["'][^>]*name=["']csrf-token["']""",
        re.IGNORECASE,
    ),
)


class OutageDataClient(Protocol):
    def fetch_outage_info(self) -> dict[str, object]: ...

    def close(self) -> None: ...


def extract_csrf_token(html: str) -> str | None:
    for pattern in RE_CSRF_META:
        match = pattern.search(html)
        if match:
            return match.group(1).strip() or None
    return None


def build_house_lookup_form(city: str, street: str, update_fact: str) -> list[tuple[str, str]]:
    return [
        ("method", HOUSE_LOOKUP_METHOD),
        ("data[0][name]", "city"),
        ("data[0][value]", city),
        ("data[1][name]", "street"),
        ("data[1][value]", street),
        ("data[2][name]", "updateFact"),
        ("data[2][value]", update_fact),
    ]


class DtekOutageClient:
    """Reads the shutdowns status of one street from the utility's portal.

    The portal only answers its ajax endpoint for a session that has loaded
    the shutdowns page, and it wants the page's CSRF token echoed back in a
    header. Both requests therefore share one ``requests.Session``.
    """

    def __init__(
        self,
        settings: Settings,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = DEFAULT_USER_AGENT
        self.logger = logger or logging.getLogger("outage_alert_bot.outage_api")

    @property
    def ajax_url(self) -> str:
        return urljoin(self.settings.shutdowns_page_url, AJAX_PATH)

    def close(self) -> None:
        self.session.close()

    def fetch_outage_info(self, now: datetime | None = None) -> dict[str, object]:
        current = now or datetime.now(ZoneInfo(self.settings.timezone))
        self.logger.info(
            log_event(
                events.OUTAGE_FETCH_START,
                city=self.settings.city,
                street=self.settings.street,
            )
        )

        backoff_seconds = self.settings.retry_delay_sec
        last_error: DataUnavailableError | None = None
        for attempt in range(1, self.settings.max_retries + 1):
            try:
                info = self._fetch_once(current)
                self.logger.info(
                    log_event(
                        events.OUTAGE_FETCH_COMPLETE,
                        attempt=attempt,
                        update_timestamp=info.get("updateTimestamp"),
                    )
                )
                return info
            except requests.RequestException as exc:
                last_error = DataUnavailableError(
                    f"Request failed: {redact_sensitive_text(exc)}",
                    code=self._classify_request_exception(exc),
                    last_error=exc,
                )
            except DataUnavailableError as exc:
                last_error = exc

            if attempt == self.settings.max_retries:
                break
            self.logger.warning(
                log_event(
                    events.OUTAGE_FETCH_RETRY,
                    attempt=attempt,
                    max_retries=self.settings.max_retries,
                    error_code=last_error.code,
                    error=redact_sensitive_text(last_error),
                    backoff_sec=backoff_seconds,
                )
            )
            if backoff_seconds > 0:
                time.sleep(backoff_seconds)
            backoff_seconds = max(backoff_seconds * 2, self.settings.retry_delay_sec)

        if last_error is None:
            raise DataUnavailableError("Failed to fetch outage info: unknown", code=API_ERROR_UNKNOWN)
        raise DataUnavailableError(
            f"Failed to fetch outage info: {last_error}",
            code=last_error.code,
            status_code=last_error.status_code,
            last_error=last_error.last_error or last_error,
        )

    def _fetch_once(self, current: datetime) -> dict[str, object]:
        timeout = (
            self.settings.request_connect_timeout_sec,
            self.settings.request_read_timeout_sec,
        )
        page = self.session.get(self.settings.shutdowns_page_url, timeout=timeout)
        self._raise_for_status(page, "shutdowns page")

        csrf_token = extract_csrf_token(page.text)
        if not csrf_token:
            raise DataUnavailableError(
                "Shutdowns page has no csrf-token meta tag",
                code=API_ERROR_CSRF_MISSING,
            )

        response = self.session.post(
            self.ajax_url,
            data=build_house_lookup_form(
                city=self.settings.city,
                street=self.settings.street,
                update_fact=current.strftime(UPDATE_FACT_FORMAT),
            ),
            headers={
                "x-requested-with": "XMLHttpRequest",
                "x-csrf-token": csrf_token,
                "Referer": self.settings.shutdowns_page_url,
            },
            timeout=timeout,
        )
        self._raise_for_status(response, "ajax")
        try:
            info = response.json()
        except ValueError as exc:
            raise DataUnavailableError(
                f"Failed to parse outage JSON: {exc}",
                code=API_ERROR_PARSE,
                last_error=exc,
            ) from exc
        if not isinstance(info, dict):
            raise DataUnavailableError(
                "Outage response is not a JSON object",
                code=API_ERROR_PARSE,
            )
        return info

    @staticmethod
    def _raise_for_status(response: requests.Response, what: str) -> None:
        if response.status_code != 200:
            raise DataUnavailableError(
                f"{what} answered HTTP {response.status_code}",
                code=API_ERROR_HTTP_STATUS,
                status_code=response.status_code,
            )

    @staticmethod
    def _classify_request_exception(exc: requests.RequestException) -> str:
        if isinstance(exc, requests.Timeout):
            return API_ERROR_TIMEOUT
        if isinstance(exc, requests.ConnectionError):
            return API_ERROR_CONNECTION
        return API_ERROR_REQUEST
