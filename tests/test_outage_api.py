from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
import requests

from outage_bot.domain.errors import DataUnavailableError
from outage_bot.services.outage_api import (
    API_ERROR_CONNECTION,
    API_ERROR_CSRF_MISSING,
    API_ERROR_HTTP_STATUS,
    API_ERROR_PARSE,
    API_ERROR_TIMEOUT,
    DtekOutageClient,
    build_house_lookup_form,
    extract_csrf_token,
)
from outage_bot.settings import Settings

PAGE_HTML = """
<html><head>
<meta charset="utf-8">
<meta name="csrf-token" content="tok-123">
</head><body></body></html>
"""

NOW = datetime(2024, 1, 1, 10, 5, 0, tzinfo=ZoneInfo("Europe/Kyiv"))


class DummyResponse:
    def __init__(
        self,
        status_code: int = 200,
        *,
        text: str = "",
        json_body: object | None = None,
        json_error: Exception | None = None,
    ) -> None:
        self.status_code = status_code
        self.text = text
        self._json_body = json_body
        self._json_error = json_error

    def json(self) -> object:
        if self._json_error is not None:
            raise self._json_error
        return self._json_body


class FakeSession:
    def __init__(self, outcomes: list[object]) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[tuple[str, str, dict]] = []
        self.headers: dict[str, str] = {}
        self.closed = False

    def _next(self, method: str, url: str, kwargs: dict):
        self.calls.append((method, url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def get(self, url: str, **kwargs):
        return self._next("GET", url, kwargs)

    def post(self, url: str, **kwargs):
        return self._next("POST", url, kwargs)

    def close(self) -> None:
        self.closed = True


def _settings(tmp_path, *, max_retries: int = 2) -> Settings:
    return Settings(
        telegram_bot_token="123:abc",
        telegram_chat_id="-100",
        city="м. Київ",
        street="вул. Хрещатик",
        house="1",
        state_file=tmp_path / "last_message.json",
        shutdowns_page_url="https://www.dtek-kem.com.ua/ua/shutdowns",
        request_timeout_sec=3,
        request_connect_timeout_sec=2,
        request_read_timeout_sec=4,
        max_retries=max_retries,
        retry_delay_sec=0,
    )


def _ajax_body() -> dict[str, object]:
    return {
        "data": {"1": {"sub_type": "", "start_date": "", "end_date": "", "type": ""}},
        "updateTimestamp": "10:00 01.01.2024",
    }


def test_extract_csrf_token_handles_attribute_order() -> None:
    assert extract_csrf_token(PAGE_HTML) == "tok-123"
    assert extract_csrf_token('<meta content="xyz" name="csrf-token" />') == "xyz"
    assert extract_csrf_token("<html></html>") is None


def test_build_house_lookup_form_matches_portal_fields() -> None:
    form = dict(build_house_lookup_form("м. Київ", "вул. Хрещатик", "01.01.2024 10:05:00"))

    assert form == {
        "method": "getHomeNum",
        "data[0][name]": "city",
        "data[0][value]": "м. Київ",
        "data[1][name]": "street",
        "data[1][value]": "вул. Хрещатик",
        "data[2][name]": "updateFact",
        "data[2][value]": "01.01.2024 10:05:00",
    }


def test_fetch_loads_page_then_posts_ajax_with_csrf(tmp_path) -> None:
    session = FakeSession(
        [
            DummyResponse(text=PAGE_HTML),
            DummyResponse(json_body=_ajax_body()),
        ]
    )
    client = DtekOutageClient(settings=_settings(tmp_path), session=session)

    info = client.fetch_outage_info(now=NOW)

    assert info == _ajax_body()
    (get_method, get_url, get_kwargs), (post_method, post_url, post_kwargs) = session.calls
    assert (get_method, get_url) == ("GET", "https://www.dtek-kem.com.ua/ua/shutdowns")
    assert get_kwargs["timeout"] == (2, 4)
    assert (post_method, post_url) == ("POST", "https://www.dtek-kem.com.ua/ua/ajax")
    assert post_kwargs["headers"]["x-csrf-token"] == "tok-123"
    assert post_kwargs["headers"]["x-requested-with"] == "XMLHttpRequest"
    assert ("data[2][value]", "01.01.2024 10:05:00") in post_kwargs["data"]
    assert "User-Agent" in session.headers


def test_missing_csrf_token_raises_after_retries(tmp_path) -> None:
    session = FakeSession([DummyResponse(text="<html></html>"), DummyResponse(text="<html></html>")])
    client = DtekOutageClient(settings=_settings(tmp_path), session=session)

    with pytest.raises(DataUnavailableError) as exc_info:
        client.fetch_outage_info(now=NOW)

    assert exc_info.value.code == API_ERROR_CSRF_MISSING
    assert len(session.calls) == 2


def test_timeout_is_retried_then_succeeds(tmp_path) -> None:
    session = FakeSession(
        [
            requests.Timeout("page timed out"),
            DummyResponse(text=PAGE_HTML),
            DummyResponse(json_body=_ajax_body()),
        ]
    )
    client = DtekOutageClient(settings=_settings(tmp_path), session=session)

    assert client.fetch_outage_info(now=NOW) == _ajax_body()


@pytest.mark.parametrize(
    ("outcomes", "expected_code"),
    [
        ([requests.Timeout("t")], API_ERROR_TIMEOUT),
        ([requests.ConnectionError("c")], API_ERROR_CONNECTION),
        ([DummyResponse(status_code=403, text="blocked")], API_ERROR_HTTP_STATUS),
        (
            [DummyResponse(text=PAGE_HTML), DummyResponse(json_error=ValueError("html"))],
            API_ERROR_PARSE,
        ),
        ([DummyResponse(text=PAGE_HTML), DummyResponse(json_body=["not", "object"])], API_ERROR_PARSE),
    ],
)
def test_fetch_failures_map_to_error_codes(tmp_path, outcomes, expected_code: str) -> None:
    session = FakeSession(outcomes)
    client = DtekOutageClient(settings=_settings(tmp_path, max_retries=1), session=session)

    with pytest.raises(DataUnavailableError) as exc_info:
        client.fetch_outage_info(now=NOW)

    assert exc_info.value.code == expected_code


def test_http_status_error_keeps_status_code(tmp_path) -> None:
    session = FakeSession([DummyResponse(status_code=503)])
    client = DtekOutageClient(settings=_settings(tmp_path, max_retries=1), session=session)

    with pytest.raises(DataUnavailableError) as exc_info:
        client.fetch_outage_info(now=NOW)

    assert exc_info.value.status_code == 503


def test_close_closes_session(tmp_path) -> None:
    session = FakeSession([])

    DtekOutageClient(settings=_settings(tmp_path), session=session).close()

    assert session.closed is True
