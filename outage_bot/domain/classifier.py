from __future__ import annotations

from collections.abc import Callable, Iterable

from outage_bot.domain.models import OutageClassification, OutageRecord

# Ukrainian stems: "авар" (аварійне, emergency) and "екст" (екстрене, urgent).
DEFAULT_UNSCHEDULED_MARKERS: tuple[str, ...] = ("авар", "екст")

SchedulingPolicy = Callable[[str], bool]


def classify_scheduling(
    reason: str,
    markers: Iterable[str] = DEFAULT_UNSCHEDULED_MARKERS,
) -> bool:
    """Return True when the free-text outage reason looks like a planned outage.

    This is a substring heuristic over whatever the utility typed into the
    reason field, not a structured flag. Swap the marker list (or the whole
    policy) when the source changes its wording.
    """
    lowered = reason.casefold()
    return not any(marker.casefold() in lowered for marker in markers if marker)


def make_scheduling_policy(markers: Iterable[str]) -> SchedulingPolicy:
    frozen_markers = tuple(markers)

    def _policy(reason: str) -> bool:
        return classify_scheduling(reason, frozen_markers)

    return _policy


def classify_record(
    record: OutageRecord,
    scheduling_policy: SchedulingPolicy = classify_scheduling,
) -> OutageClassification:
    is_active = any(
        (record.sub_type, record.start_date, record.end_date, record.type)
    )
    return OutageClassification(
        is_active=is_active,
        is_scheduled=scheduling_policy(record.sub_type),
    )


class OutageClassifier:
    def __init__(
        self,
        house: str,
        scheduling_policy: SchedulingPolicy | None = None,
    ) -> None:
        self.house = house
        self.scheduling_policy = scheduling_policy or classify_scheduling

    def extract(self, raw: object) -> OutageRecord:
        return OutageRecord.from_payload(raw, self.house)

    def classify(self, raw: object) -> OutageClassification:
        return classify_record(self.extract(raw), self.scheduling_policy)
