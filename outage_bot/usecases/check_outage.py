from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from outage_bot.domain.classifier import OutageClassifier, classify_record
from outage_bot.domain.errors import ClassificationError, DataUnavailableError
from outage_bot.domain.message_builder import build_outage_message
from outage_bot.logging_utils import log_event, redact_sensitive_text
from outage_bot.observability import events
from outage_bot.services.outage_api import OutageDataClient
from outage_bot.settings import Settings
from outage_bot.usecases.reconcile_notification import NotificationReconciler, ReconcileOutcome

STATUS_NO_OUTAGE = "no_outage"
STATUS_OUTAGE = "outage"
STATUS_FAILED = "failed"


@dataclass
class CheckResult:
    status: str
    is_scheduled: bool | None = None
    notification: ReconcileOutcome | None = None
    error_code: str | None = None

    @property
    def failed(self) -> bool:
        return self.status == STATUS_FAILED


class CheckOutageUseCase:
    def __init__(
        self,
        settings: Settings,
        outage_client: OutageDataClient,
        classifier: OutageClassifier,
        reconciler: NotificationReconciler,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings
        self.outage_client = outage_client
        self.classifier = classifier
        self.reconciler = reconciler
        self.logger = logger or logging.getLogger("outage_alert_bot.checker")
        self.clock = clock or self._local_now

    def run_once(self, now: datetime | None = None) -> CheckResult:
        self.logger.info(log_event(events.CHECK_START, house=self.settings.house))

        try:
            raw = self.outage_client.fetch_outage_info()
            record = self.classifier.extract(raw)
            classification = classify_record(record, self.classifier.scheduling_policy)
        except DataUnavailableError as exc:
            return self._failed(exc.code, exc)
        except ClassificationError as exc:
            return self._failed(exc.code, exc)

        if not classification.is_active:
            self.logger.info(log_event(events.OUTAGE_NOT_DETECTED, house=self.settings.house))
            return CheckResult(status=STATUS_NO_OUTAGE)

        self.logger.info(
            log_event(
                events.OUTAGE_DETECTED,
                house=self.settings.house,
                scheduled=classification.is_scheduled,
                sub_type=record.sub_type,
                start_date=record.start_date,
                end_date=record.end_date,
            )
        )
        # Stamped after the fetch, whose retries can take a while.
        composed_at = now or self.clock()
        message = build_outage_message(record, classification, composed_at=composed_at)
        outcome = self.reconciler.reconcile(message)
        return CheckResult(
            status=STATUS_OUTAGE,
            is_scheduled=classification.is_scheduled,
            notification=outcome,
        )

    def _local_now(self) -> datetime:
        return datetime.now(ZoneInfo(self.settings.timezone))

    def _failed(self, error_code: str, exc: Exception) -> CheckResult:
        self.logger.error(
            log_event(
                events.CHECK_FAILED,
                error_code=error_code,
                error=redact_sensitive_text(exc),
            )
        )
        return CheckResult(status=STATUS_FAILED, error_code=error_code)
