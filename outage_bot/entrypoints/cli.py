from __future__ import annotations

import argparse
import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path

from outage_bot.domain.classifier import OutageClassifier, make_scheduling_policy
from outage_bot.logging_utils import log_event, setup_logging
from outage_bot.observability import events
from outage_bot.repositories.notification_state_repo import JsonNotificationStateRepository
from outage_bot.services.notifier import TelegramNotifier
from outage_bot.services.outage_api import DtekOutageClient
from outage_bot.settings import DEFAULT_STATE_FILE, Settings, SettingsError
from outage_bot.usecases.check_outage import CheckOutageUseCase, CheckResult
from outage_bot.usecases.reconcile_notification import NotificationReconciler


@dataclass(frozen=True)
class ServiceRuntime:
    settings: Settings
    logger: logging.Logger
    outage_client: DtekOutageClient
    notifier: TelegramNotifier
    checker: CheckOutageUseCase

    def close(self) -> None:
        self.outage_client.close()
        self.notifier.close()


def _build_runtime(settings: Settings) -> ServiceRuntime:
    logger = setup_logging(settings.log_level, settings.timezone)
    state_repo = JsonNotificationStateRepository(
        file_path=settings.state_file,
        logger=logger.getChild("state"),
    )
    outage_client = DtekOutageClient(
        settings=settings,
        logger=logger.getChild("outage_api"),
    )
    notifier = TelegramNotifier(
        bot_token=settings.telegram_bot_token,
        chat_id=settings.telegram_chat_id,
        api_base_url=settings.telegram_api_base_url,
        timeout_sec=settings.notifier_timeout_sec,
        max_retries=settings.notifier_max_retries,
        retry_delay_sec=settings.notifier_retry_delay_sec,
        logger=logger.getChild("notifier"),
    )
    reconciler = NotificationReconciler(
        notifier=notifier,
        state_repo=state_repo,
        logger=logger.getChild("reconciler"),
        chat_id=settings.telegram_chat_id,
        dry_run=settings.dry_run,
    )
    checker = CheckOutageUseCase(
        settings=settings,
        outage_client=outage_client,
        classifier=OutageClassifier(
            house=settings.house,
            scheduling_policy=make_scheduling_policy(settings.unscheduled_markers),
        ),
        reconciler=reconciler,
        logger=logger.getChild("checker"),
    )
    return ServiceRuntime(
        settings=settings,
        logger=logger,
        outage_client=outage_client,
        notifier=notifier,
        checker=checker,
    )


def _log_startup(runtime: ServiceRuntime) -> None:
    settings = runtime.settings
    runtime.logger.info(
        log_event(
            events.STARTUP_READY,
            state_file=str(settings.state_file),
            shutdowns_page_url=settings.shutdowns_page_url,
            city=settings.city,
            street=settings.street,
            house=settings.house,
            dry_run=settings.dry_run,
            run_once=settings.run_once,
            check_interval_sec=settings.check_interval_sec,
        )
    )


def _log_check_complete(runtime: ServiceRuntime, result: CheckResult) -> None:
    payload = asdict(result)
    if result.notification is not None:
        payload["notification"] = result.notification.value
    runtime.logger.info(log_event(events.CHECK_COMPLETE, **payload))


def _run_loop(runtime: ServiceRuntime) -> int:
    try:
        while True:
            result = runtime.checker.run_once()
            _log_check_complete(runtime, result)
            if runtime.settings.run_once:
                runtime.logger.info(log_event(events.SHUTDOWN_RUN_ONCE_COMPLETE))
                return 1 if result.failed else 0
            if runtime.settings.check_interval_sec > 0:
                time.sleep(runtime.settings.check_interval_sec)
    except KeyboardInterrupt:
        runtime.logger.info(log_event(events.SHUTDOWN_INTERRUPT))
        return 0
    except Exception as exc:  # pragma: no cover
        runtime.logger.critical(
            log_event(events.SHUTDOWN_UNEXPECTED_ERROR, error=str(exc)),
            exc_info=True,
        )
        return 1
    finally:
        runtime.close()


def _run_service() -> int:
    bootstrap_logger = setup_logging()
    try:
        settings = Settings.from_env()
    except SettingsError as exc:
        bootstrap_logger.critical(log_event(events.STARTUP_INVALID_CONFIG, error=str(exc)))
        return 1

    runtime = _build_runtime(settings)
    _log_startup(runtime)
    return _run_loop(runtime)


def _state_logger() -> logging.Logger:
    return setup_logging(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        timezone=os.getenv("TIMEZONE", "Europe/Kyiv"),
    )


def _show_state(state_file: str) -> int:
    logger = _state_logger()
    repo = JsonNotificationStateRepository(Path(state_file), logger=logger.getChild("state"))
    state = repo.state.to_dict()
    logger.info(log_event(events.STATE_SHOW, state_file=state_file, **state))
    print(json.dumps(state, ensure_ascii=False, indent=2))
    return 0


def _reset_state(state_file: str, dry_run: bool) -> int:
    logger = _state_logger()
    repo = JsonNotificationStateRepository(Path(state_file), logger=logger.getChild("state"))
    previous_message_id = repo.state.message_id
    if not dry_run:
        repo.clear()
    logger.info(
        log_event(
            events.STATE_RESET,
            state_file=state_file,
            previous_message_id=previous_message_id,
            dry_run=dry_run,
        )
    )
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Power outage alert bot")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Check the configured address and notify Telegram")

    for name, help_text in (
        ("show-state", "Log the persisted live-message state"),
        ("reset-state", "Forget the live message so the next outage starts a new one"),
    ):
        state_parser = subparsers.add_parser(name, help=help_text)
        state_parser.add_argument(
            "--state-file",
            default=os.getenv("STATE_FILE", DEFAULT_STATE_FILE),
            help="Path to state JSON file",
        )
        if name == "reset-state":
            state_parser.add_argument(
                "--dry-run",
                action="store_true",
                help="Report the stored message id without clearing it",
            )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    command = args.command or "run"

    if command == "show-state":
        return _show_state(state_file=args.state_file)
    if command == "reset-state":
        return _reset_state(state_file=args.state_file, dry_run=args.dry_run)

    return _run_service()


if __name__ == "__main__":
    raise SystemExit(main())
