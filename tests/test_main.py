from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from outage_bot.domain.models import NotificationState
from outage_bot.entrypoints import cli as entrypoint
from outage_bot.repositories.notification_state_repo import JsonNotificationStateRepository
from outage_bot.settings import Settings, SettingsError
from outage_bot.usecases.check_outage import STATUS_FAILED, STATUS_OUTAGE, CheckResult
from outage_bot.usecases.reconcile_notification import ReconcileOutcome


def _settings(tmp_path: Path, **overrides: object) -> Settings:
    base = {
        "telegram_bot_token": "123:abc",
        "telegram_chat_id": "-100",
        "city": "м. Київ",
        "street": "вул. Хрещатик",
        "house": "1",
        "state_file": tmp_path / "last_message.json",
        "max_retries": 1,
        "retry_delay_sec": 0,
        "notifier_max_retries": 1,
        "notifier_retry_delay_sec": 0,
        "check_interval_sec": 0,
        "run_once": True,
    }
    base.update(overrides)
    return Settings(**base)


class FakeChecker:
    def __init__(self, results: list[CheckResult]) -> None:
        self.results = list(results)
        self.calls = 0

    def run_once(self) -> CheckResult:
        self.calls += 1
        return self.results.pop(0)


class ClosableFake:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


def _runtime(settings: Settings, checker: FakeChecker) -> entrypoint.ServiceRuntime:
    return entrypoint.ServiceRuntime(
        settings=settings,
        logger=logging.getLogger("test.main"),
        outage_client=ClosableFake(),
        notifier=ClosableFake(),
        checker=checker,
    )


def test_run_service_returns_1_on_invalid_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    logger = logging.getLogger("test.main.invalid")
    monkeypatch.setattr(entrypoint, "setup_logging", lambda *args, **kwargs: logger)

    def _raise_settings(cls, env_file: str | None = ".env") -> Settings:
        raise SettingsError("invalid settings")

    monkeypatch.setattr(entrypoint.Settings, "from_env", classmethod(_raise_settings))

    assert entrypoint._run_service() == 1


def test_run_loop_returns_0_after_successful_single_check(tmp_path: Path) -> None:
    checker = FakeChecker(
        [CheckResult(status=STATUS_OUTAGE, is_scheduled=False, notification=ReconcileOutcome.CREATED)]
    )
    runtime = _runtime(_settings(tmp_path), checker)

    assert entrypoint._run_loop(runtime) == 0
    assert checker.calls == 1
    assert runtime.outage_client.closed is True
    assert runtime.notifier.closed is True


def test_run_loop_returns_1_when_single_check_fails(tmp_path: Path) -> None:
    checker = FakeChecker([CheckResult(status=STATUS_FAILED, error_code="missing_data")])
    runtime = _runtime(_settings(tmp_path), checker)

    assert entrypoint._run_loop(runtime) == 1


def test_run_loop_keeps_checking_until_interrupted(tmp_path: Path) -> None:
    class InterruptingChecker(FakeChecker):
        def run_once(self) -> CheckResult:
            if not self.results:
                raise KeyboardInterrupt
            return super().run_once()

    checker = InterruptingChecker(
        [
            CheckResult(status=STATUS_FAILED, error_code="timeout"),
            CheckResult(status=STATUS_OUTAGE, notification=ReconcileOutcome.UPDATED),
        ]
    )
    runtime = _runtime(_settings(tmp_path, run_once=False), checker)

    assert entrypoint._run_loop(runtime) == 0
    assert checker.calls == 2


def test_build_runtime_wires_settings(tmp_path: Path) -> None:
    settings = _settings(tmp_path, unscheduled_markers=["emergency"], dry_run=True)

    runtime = entrypoint._build_runtime(settings)
    try:
        reconciler = runtime.checker.reconciler
        assert reconciler.dry_run is True
        assert reconciler.chat_id == "-100"
        assert runtime.checker.classifier.house == "1"
        assert runtime.checker.classifier.scheduling_policy("Emergency works") is False
        assert runtime.notifier.chat_id == "-100"
    finally:
        runtime.close()


def test_reset_state_clears_live_message(tmp_path: Path) -> None:
    state_file = tmp_path / "last_message.json"
    JsonNotificationStateRepository(state_file).save(NotificationState(message_id=41))

    assert entrypoint.main(["reset-state", "--state-file", str(state_file)]) == 0

    assert JsonNotificationStateRepository(state_file).state.is_live is False


def test_reset_state_dry_run_keeps_live_message(tmp_path: Path) -> None:
    state_file = tmp_path / "last_message.json"
    JsonNotificationStateRepository(state_file).save(NotificationState(message_id=41))

    assert entrypoint.main(["reset-state", "--state-file", str(state_file), "--dry-run"]) == 0

    assert JsonNotificationStateRepository(state_file).state.message_id == 41


def test_show_state_logs_persisted_state(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    state_file = tmp_path / "last_message.json"
    JsonNotificationStateRepository(state_file).save(NotificationState(message_id=41))
    logger = logging.getLogger("test.main.show")
    monkeypatch.setattr(entrypoint, "setup_logging", lambda *args, **kwargs: logger)

    with caplog.at_level(logging.INFO, logger="test.main.show"):
        assert entrypoint.main(["show-state", "--state-file", str(state_file)]) == 0

    payloads = [json.loads(record.message) for record in caplog.records]
    assert any(payload.get("message_id") == 41 for payload in payloads)


def test_main_defaults_to_run(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(entrypoint, "_run_service", lambda: 7)

    assert entrypoint.main([]) == 7


def test_show_state_prints_state_as_json(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    state_file = tmp_path / "last_message.json"
    JsonNotificationStateRepository(state_file).save(NotificationState(message_id=41, chat_id="-100"))
    monkeypatch.setattr(entrypoint, "setup_logging", lambda *args, **kwargs: logging.getLogger("test.main.print"))

    assert entrypoint.main(["show-state", "--state-file", str(state_file)]) == 0

    printed = json.loads(capsys.readouterr().out)
    assert printed == {"message_id": 41, "chat_id": "-100", "updated_at": None}
