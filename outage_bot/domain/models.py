from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from outage_bot.domain.errors import ClassificationError, MissingDataError

RECORD_FIELDS = ("sub_type", "start_date", "end_date", "type")


def to_utc_iso(value: datetime) -> str:
    normalized = value.astimezone(UTC).replace(microsecond=0)
    return normalized.isoformat().replace("+00:00", "Z")


def parse_utc_iso(value: object) -> datetime | None:
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _text_field(record: Mapping[str, object], name: str, house: str) -> str:
    value = record.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ClassificationError(
            f"Field {name!r} of house {house!r} must be a string, got {type(value).__name__}"
        )
    # Kept verbatim: any non-empty value, whitespace included, marks an outage.
    return value


@dataclass(frozen=True)
class OutageRecord:
    sub_type: str = ""
    start_date: str = ""
    end_date: str = ""
    type: str = ""
    update_timestamp: str = ""

    @classmethod
    def from_payload(cls, raw: object, house: str) -> OutageRecord:
        """Pick the record of ``house`` out of a shutdowns ajax response.

        The source reports "no outage" as a record whose fields are all empty
        strings, so a missing envelope or a missing house is a data error and
        never a quiet "no outage".
        """
        if not isinstance(raw, Mapping):
            raise MissingDataError("Outage response is not a JSON object")
        data = raw.get("data")
        if not isinstance(data, Mapping) or not data:
            raise MissingDataError("Outage response is missing the 'data' envelope")
        if house not in data:
            raise MissingDataError(
                f"Outage response has no record for house {house!r}",
                code="missing_house",
            )

        record = data[house]
        if not isinstance(record, Mapping):
            raise ClassificationError(f"Record of house {house!r} is not an object")

        update_timestamp = raw.get("updateTimestamp")
        return cls(
            sub_type=_text_field(record, "sub_type", house),
            start_date=_text_field(record, "start_date", house),
            end_date=_text_field(record, "end_date", house),
            type=_text_field(record, "type", house),
            update_timestamp=update_timestamp.strip() if isinstance(update_timestamp, str) else "",
        )


@dataclass(frozen=True)
class OutageClassification:
    is_active: bool
    is_scheduled: bool


@dataclass(frozen=True)
class NotificationState:
    message_id: int | None = None
    chat_id: str | None = None
    updated_at: datetime | None = None

    @property
    def is_live(self) -> bool:
        return self.message_id is not None

    def to_dict(self) -> dict[str, object]:
        return {
            "message_id": self.message_id,
            "chat_id": self.chat_id,
            "updated_at": to_utc_iso(self.updated_at) if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, raw: object) -> NotificationState:
        if not isinstance(raw, Mapping):
            return cls()
        message_id = raw.get("message_id")
        # bool is an int subclass; a stray true/false must not become message 1/0.
        if isinstance(message_id, bool) or not isinstance(message_id, int) or message_id <= 0:
            return cls()

        chat_id = raw.get("chat_id")
        if isinstance(chat_id, int) and not isinstance(chat_id, bool):
            chat_id = str(chat_id)
        # Telegram message objects nest the chat as {"chat": {"id": ...}}.
        chat = raw.get("chat")
        if chat_id is None and isinstance(chat, Mapping) and chat.get("id") is not None:
            chat_id = str(chat.get("id"))
        return cls(
            message_id=message_id,
            chat_id=chat_id if isinstance(chat_id, str) and chat_id else None,
            updated_at=parse_utc_iso(raw.get("updated_at")),
        )
