from __future__ import annotations

# Runtime lifecycle
STARTUP_INVALID_CONFIG = "startup.invalid_config"
STARTUP_READY = "startup.ready"
SHUTDOWN_INTERRUPT = "shutdown.interrupt"
SHUTDOWN_RUN_ONCE_COMPLETE = "shutdown.run_once_complete"
SHUTDOWN_UNEXPECTED_ERROR = "shutdown.unexpected_error"

# Check
CHECK_START = "check.start"
CHECK_COMPLETE = "check.complete"
CHECK_FAILED = "check.failed"

# Outage source
OUTAGE_FETCH_START = "outage.fetch.start"
OUTAGE_FETCH_COMPLETE = "outage.fetch.complete"
OUTAGE_FETCH_RETRY = "outage.fetch.retry"
OUTAGE_DETECTED = "outage.detected"
OUTAGE_NOT_DETECTED = "outage.not_detected"

# Notifications
NOTIFICATION_CREATED = "notification.created"
NOTIFICATION_UPDATED = "notification.updated"
NOTIFICATION_UPDATE_FAILED = "notification.update_failed"
NOTIFICATION_RECREATED = "notification.recreated"
NOTIFICATION_NOT_SENT = "notification.not_sent"
NOTIFICATION_DRY_RUN = "notification.dry_run"
NOTIFICATION_RETRY = "notification.retry"
NOTIFICATION_NOT_MODIFIED = "notification.not_modified"
NOTIFICATION_STATE_NOT_SAVED = "notification.state_not_saved"

# State
STATE_INVALID_JSON = "state.invalid_json"
STATE_READ_FAILED = "state.read_failed"
STATE_BACKUP_FAILED = "state.backup_failed"
STATE_PERSIST_FAILED = "state.persist_failed"
STATE_MIGRATED = "state.migrated"
STATE_RESET = "state.reset"
STATE_SHOW = "state.show"
