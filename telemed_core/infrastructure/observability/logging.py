"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from telemed_core.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_ledger_event(
    operation: str,
    user_id: str,
    amount: int,
    outcome: str,
    duration_ms: float,
    related_user_id: Optional[str] = None,
    transaction_ids: Optional[list] = None,
) -> None:
    """Log structured ledger mutation outcome for audit analysis"""
    logging.getLogger("telemed_core.ledger").info(
        "Ledger operation completed",
        extra={
            "step": "ledger_operation",
            "operation": operation,
            "user_id": user_id,
            "related_user_id": related_user_id,
            "amount": amount,
            "outcome": outcome,
            "transaction_ids": transaction_ids or [],
            "duration_ms": duration_ms,
        },
    )


def log_signature_event(event: str, outcome: str, **fields: Any) -> None:
    """Log structured signature service event (never includes key material)"""
    logging.getLogger("telemed_core.signatures").info(
        "Signature event",
        extra={"step": event, "outcome": outcome, **fields},
    )
