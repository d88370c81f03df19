"""Structured JSON logging for ledger and payout events"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pythonjsonlogger import jsonlogger

from payout_ledger.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter stamping timestamp, level and service name"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_attribution(
    seller_id: str,
    transaction_id: int,
    kind: str,
    period_id: int,
    net_effect_cents: int,
) -> None:
    """Log a transaction landing in a balance period"""
    logging.info(
        "Transaction attributed",
        extra={
            "seller_id": seller_id,
            "step": "attribution",
            "transaction_id": transaction_id,
            "kind": kind,
            "balance_period_id": period_id,
            "net_effect_cents": net_effect_cents,
        },
    )


def log_payout_decision(
    seller_id: str,
    payout_date: Optional[str],
    amount_cents: int,
    instant: bool,
    request_id: str = "internal",
) -> None:
    """Log scheduling outcome for payout analysis"""
    logging.info(
        "Payout scheduled" if payout_date else "No payout due",
        extra={
            "request_id": request_id,
            "seller_id": seller_id,
            "step": "payout_decision",
            "payout_date": payout_date,
            "amount_cents": amount_cents,
            "track": "instant" if instant else "standard",
        },
    )


def log_integrity_event(seller_id: str, message: str, **details: Any) -> None:
    """Critical event: a balance read could not be trusted"""
    logging.critical(
        message,
        extra={"seller_id": seller_id, "step": "integrity", **details},
    )


def log_forfeiture(seller_id: str, reason: str, amount_cents: int, period_ids: List[int]) -> None:
    logging.warning(
        "Balance forfeited",
        extra={
            "seller_id": seller_id,
            "step": "forfeiture",
            "reason": reason,
            "amount_cents": amount_cents,
            "balance_period_ids": period_ids,
        },
    )


def log_tier_transition(seller_id: str, previous_tier: int, new_tier: int, lifetime_sales_cents: int) -> None:
    logging.info(
        "Fee tier upgraded",
        extra={
            "seller_id": seller_id,
            "step": "tier_transition",
            "previous_tier": previous_tier,
            "new_tier": new_tier,
            "lifetime_sales_cents": lifetime_sales_cents,
        },
    )
