import contextvars
import json
import logging
from datetime import UTC, datetime

current_request_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default="-"
)

# structured fields accepted via ``extra=``; never tokens, validators or csrf values
SESSION_LOG_FIELDS = ("selector", "sequence_no", "outcome", "transport")


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, tagged with the request id."""

    def format(self, record):
        log_data = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "request_id": current_request_id.get(),
            "msg": record.getMessage(),
        }
        for name in SESSION_LOG_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data[name] = value
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # audit records are already JSON; keep them out of the root stream
    audit = logging.getLogger("audit")
    audit.propagate = False
    audit.handlers.clear()
    audit_handler = logging.StreamHandler()
    audit_handler.setFormatter(logging.Formatter("%(message)s"))
    audit.addHandler(audit_handler)
    audit.setLevel(logging.INFO)


def audit_log(event: str, **fields) -> None:
    """Security event: login, logout, refresh rotation, refresh replay.

    Selectors are fine to pass; raw tokens and validators are not.
    """
    data = {
        "event": event,
        "request_id": current_request_id.get(),
        "ts": datetime.now(UTC).isoformat(),
        **fields,
    }
    logging.getLogger("audit").info(json.dumps(data, ensure_ascii=False, default=str))
