"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pythonjsonlogger import jsonlogger

# Per-request library chatter
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON lines stamped with UTC time, level and the emitting service"""

    def __init__(self, *args: Any, service: str = "paybill-reconciler", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.service = service

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service


def setup_logging(level: str = "INFO", service: str = "paybill-reconciler") -> None:
    """Route the root logger to stdout as JSON"""
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s", service=service))
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_reconciliation(
    request_id: Optional[str],
    outcome: str,
    reference_id: Optional[str],
    account_token: Optional[str],
    debt_codes: List[str],
    excess_cents: int,
    duration_ms: float,
) -> None:
    """Log structured reconciliation outcome for analysis"""
    logging.info(
        "Reconciliation completed",
        extra={
            "request_id": request_id,
            "step": "reconciliation_complete",
            "outcome": outcome,
            "reference_id": reference_id,
            "account_token": account_token,
            "debt_codes": debt_codes,
            "excess_cents": excess_cents,
            "duration_ms": duration_ms,
        },
    )
