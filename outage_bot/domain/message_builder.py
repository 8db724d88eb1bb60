from __future__ import annotations

from datetime import datetime
from html import escape

from outage_bot.domain.models import OutageClassification, OutageRecord

UNKNOWN_REASON = "Невідома причина"
MISSING_VALUE = "—"
COMPOSED_AT_FORMAT = "%d.%m.%Y %H:%M:%S"

TITLE_LINE = "⚡️ <b>Зафіксовано відключення:</b>"
SCHEDULED_HEADER = "🗓️ <b>Планове відключення</b>"
EMERGENCY_HEADER = "🚨 <b>Аварійне відключення</b>"


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def _date_part(value: str) -> str:
    # "2024-01-01 10:00" -> "2024-01-01"; the time of day is not shown.
    date_part = value.strip().split(" ", 1)[0] if value else ""
    return date_part or MISSING_VALUE


def build_outage_message(
    record: OutageRecord,
    classification: OutageClassification,
    *,
    composed_at: datetime,
) -> str:
    reason = escape(_capitalize(record.sub_type.strip() or UNKNOWN_REASON), quote=False)
    begin = escape(_date_part(record.start_date), quote=False)
    end = escape(_date_part(record.end_date), quote=False)
    status_line = SCHEDULED_HEADER if classification.is_scheduled else EMERGENCY_HEADER
    updated = escape(record.update_timestamp or MISSING_VALUE, quote=False)

    return "\n".join(
        [
            TITLE_LINE,
            status_line,
            f"🪫 <code>{begin} — {end}</code>",
            "",
            f"⚠️ <i>{reason}.</i>",
            "",
            f"🔄 <i>{updated}</i>",
            f"💬 <i>{composed_at.strftime(COMPOSED_AT_FORMAT)}</i>",
        ]
    )
