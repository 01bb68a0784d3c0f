import json
import logging
from logging.handlers import RotatingFileHandler
from datetime import datetime, timezone

from fleet_rewards.core.config import settings


class JsonFormatter(logging.Formatter):
    """One JSON object per line; whitelisted ``extra={...}`` fields are lifted to the top level."""

    EXTRA_FIELDS = (
        # http
        "request_id", "path", "method", "status_code", "latency_ms",
        # actors
        "user_id", "inviter_id", "invitee_id", "admin_id",
        # rewards
        "referral_id", "withdrawal_id", "edge_event_id", "entry_type",
        "amount_cents", "balance_cents", "stored_cents", "ledger_cents", "currency",
        "status", "old_status", "new_status",
        # misc
        "attempt", "count", "error",
    )

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "env": settings.app_env,
            "message": record.getMessage(),
        }
        payload.update(
            (name, getattr(record, name))
            for name in self.EXTRA_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str | None = None) -> None:
    """Route every logger through the JSON formatter (stderr plus optional rotating file)."""
    formatter = JsonFormatter()
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [stream_handler]
    if settings.log_file:
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())
    root.handlers = handlers
    # http_request lines from the app middleware replace uvicorn's access log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
