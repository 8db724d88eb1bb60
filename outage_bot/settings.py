from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from outage_bot.domain.classifier import DEFAULT_UNSCHEDULED_MARKERS

DEFAULT_SHUTDOWNS_PAGE_URL = "https://www.dtek-kem.com.ua/ua/shutdowns"
DEFAULT_TELEGRAM_API_BASE_URL = "https://api.telegram.org"
DEFAULT_STATE_FILE = "./data/last_message.json"


class SettingsError(ValueError):
    """Raised when required environment settings are missing or malformed."""


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_dotenv_if_exists(env_file: Path) -> None:
    if not env_file.exists() or not env_file.is_file():
        return

    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        value = _strip_optional_quotes(value.strip())
        os.environ.setdefault(key, value)


def _parse_json_env(name: str, default: str, expected_type: type) -> Any:
    raw = os.getenv(name, default)
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SettingsError(f"{name} must be valid JSON. Received: {raw}") from exc
    if not isinstance(value, expected_type):
        raise SettingsError(f"{name} must be a JSON {expected_type.__name__}.")
    return value


def _parse_int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise SettingsError(f"{name} must be an integer. Received: {raw}") from exc
    if value < minimum:
        raise SettingsError(f"{name} must be >= {minimum}. Received: {value}")
    return value


def _parse_bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    raise SettingsError(
        f"{name} must be a boolean value "
        f"(true/false, 1/0, yes/no). Received: {raw}"
    )


def _parse_str_env(name: str, default: str) -> str:
    """Read a string variable; unset, empty and whitespace-only values fall back to default."""
    raw = os.getenv(name, "").strip()
    return raw if raw else default


def _parse_required_str_env(name: str) -> str:
    value = _parse_str_env(name, "")
    if not value:
        raise SettingsError(f"{name} is required.")
    return value


def _parse_timezone_env(name: str, default: str) -> str:
    value = _parse_str_env(name, default)
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, KeyError, ValueError):
        raise SettingsError(f"{name} is not a valid IANA timezone name. Received: {value}")
    return value


def _parse_https_url_env(name: str, default: str) -> str:
    value = _parse_str_env(name, default).rstrip("/")
    parsed = urlparse(value)
    if parsed.scheme != "https" or not parsed.netloc:
        raise SettingsError(f"{name} must be a valid https URL with host. Received: {value}")
    return value


def _parse_non_empty_json_list_env(name: str, default: list[str]) -> list[str]:
    raw_default = json.dumps(default, ensure_ascii=False)
    raw_list = _parse_json_env(name, raw_default, list)
    values = [str(item).strip() for item in raw_list if str(item).strip()]
    if not values:
        raise SettingsError(f"{name} must include at least one non-empty value.")
    return values


@dataclass(frozen=True)
class _TargetConfig:
    city: str
    street: str
    house: str
    shutdowns_page_url: str
    unscheduled_markers: list[str]


@dataclass(frozen=True)
class _TelegramConfig:
    telegram_bot_token: str
    telegram_chat_id: str
    telegram_api_base_url: str


@dataclass(frozen=True)
class _RuntimeConfig:
    request_timeout_sec: int
    request_connect_timeout_sec: int
    request_read_timeout_sec: int
    max_retries: int
    retry_delay_sec: int
    notifier_timeout_sec: int
    notifier_max_retries: int
    notifier_retry_delay_sec: int
    check_interval_sec: int
    timezone: str
    log_level: str
    dry_run: bool
    run_once: bool


def _parse_target_config() -> _TargetConfig:
    return _TargetConfig(
        city=_parse_required_str_env("OUTAGE_CITY"),
        street=_parse_required_str_env("OUTAGE_STREET"),
        house=_parse_required_str_env("OUTAGE_HOUSE"),
        shutdowns_page_url=_parse_https_url_env(
            "SHUTDOWNS_PAGE_URL",
            DEFAULT_SHUTDOWNS_PAGE_URL,
        ),
        unscheduled_markers=_parse_non_empty_json_list_env(
            "OUTAGE_UNSCHEDULED_MARKERS",
            list(DEFAULT_UNSCHEDULED_MARKERS),
        ),
    )


def _parse_telegram_config() -> _TelegramConfig:
    bot_token = _parse_required_str_env("TELEGRAM_BOT_TOKEN")
    if ":" not in bot_token:
        raise SettingsError("TELEGRAM_BOT_TOKEN must look like '<bot id>:<secret>'.")
    return _TelegramConfig(
        telegram_bot_token=bot_token,
        telegram_chat_id=_parse_required_str_env("TELEGRAM_CHAT_ID"),
        telegram_api_base_url=_parse_https_url_env(
            "TELEGRAM_API_BASE_URL",
            DEFAULT_TELEGRAM_API_BASE_URL,
        ),
    )


def _parse_runtime_config() -> _RuntimeConfig:
    request_timeout_sec = _parse_int_env("REQUEST_TIMEOUT_SEC", 10, minimum=1)
    return _RuntimeConfig(
        request_timeout_sec=request_timeout_sec,
        request_connect_timeout_sec=_parse_int_env(
            "REQUEST_CONNECT_TIMEOUT_SEC",
            request_timeout_sec,
            minimum=1,
        ),
        request_read_timeout_sec=_parse_int_env(
            "REQUEST_READ_TIMEOUT_SEC",
            request_timeout_sec,
            minimum=1,
        ),
        max_retries=_parse_int_env("MAX_RETRIES", 3, minimum=1),
        retry_delay_sec=_parse_int_env("RETRY_DELAY_SEC", 5, minimum=0),
        notifier_timeout_sec=_parse_int_env("NOTIFIER_TIMEOUT_SEC", request_timeout_sec, minimum=1),
        notifier_max_retries=_parse_int_env("NOTIFIER_MAX_RETRIES", 2, minimum=1),
        notifier_retry_delay_sec=_parse_int_env("NOTIFIER_RETRY_DELAY_SEC", 1, minimum=0),
        check_interval_sec=_parse_int_env("CHECK_INTERVAL_SEC", 600, minimum=0),
        timezone=_parse_timezone_env("TIMEZONE", "Europe/Kyiv"),
        log_level=_parse_str_env("LOG_LEVEL", "INFO").upper(),
        dry_run=_parse_bool_env("DRY_RUN", default=False),
        run_once=_parse_bool_env("RUN_ONCE", default=True),
    )


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    telegram_chat_id: str
    city: str
    street: str
    house: str
    state_file: Path = Path(DEFAULT_STATE_FILE)
    shutdowns_page_url: str = DEFAULT_SHUTDOWNS_PAGE_URL
    telegram_api_base_url: str = DEFAULT_TELEGRAM_API_BASE_URL
    unscheduled_markers: list[str] = field(
        default_factory=lambda: list(DEFAULT_UNSCHEDULED_MARKERS)
    )
    request_timeout_sec: int = 10
    request_connect_timeout_sec: int = 10
    request_read_timeout_sec: int = 10
    max_retries: int = 3
    retry_delay_sec: int = 5
    notifier_timeout_sec: int = 10
    notifier_max_retries: int = 2
    notifier_retry_delay_sec: int = 1
    check_interval_sec: int = 600
    timezone: str = "Europe/Kyiv"
    log_level: str = "INFO"
    dry_run: bool = False
    run_once: bool = True

    @classmethod
    def from_env(cls, env_file: str | Path | None = ".env") -> Settings:
        if env_file:
            _load_dotenv_if_exists(Path(env_file))

        target = _parse_target_config()
        telegram = _parse_telegram_config()
        runtime = _parse_runtime_config()
        state_file = Path(_parse_str_env("STATE_FILE", DEFAULT_STATE_FILE))

        return cls(
            telegram_bot_token=telegram.telegram_bot_token,
            telegram_chat_id=telegram.telegram_chat_id,
            telegram_api_base_url=telegram.telegram_api_base_url,
            city=target.city,
            street=target.street,
            house=target.house,
            shutdowns_page_url=target.shutdowns_page_url,
            unscheduled_markers=target.unscheduled_markers,
            state_file=state_file,
            request_timeout_sec=runtime.request_timeout_sec,
            request_connect_timeout_sec=runtime.request_connect_timeout_sec,
            request_read_timeout_sec=runtime.request_read_timeout_sec,
            max_retries=runtime.max_retries,
            retry_delay_sec=runtime.retry_delay_sec,
            notifier_timeout_sec=runtime.notifier_timeout_sec,
            notifier_max_retries=runtime.notifier_max_retries,
            notifier_retry_delay_sec=runtime.notifier_retry_delay_sec,
            check_interval_sec=runtime.check_interval_sec,
            timezone=runtime.timezone,
            log_level=runtime.log_level,
            dry_run=runtime.dry_run,
            run_once=runtime.run_once,
        )
