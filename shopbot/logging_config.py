"""Structured logging for the shop bot.

Every line is one JSON object on stdout. Records emitted while serving a
customer carry ``customer`` and ``company`` as top-level keys so a log
search for one WhatsApp number or one tenant does not have to dig into
``context``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

# Context keys promoted to top-level fields
_PROMOTED_KEYS = {"from_number": "customer", "company_id": "company"}

QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = dict(getattr(record, "context", None) or {})
        for key, field in _PROMOTED_KEYS.items():
            value = context.pop(key, None)
            if value:
                entry[field] = value
        if context:
            entry["context"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # Decimal totals and datetimes from the ORM are not JSON-native
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(component: str) -> logging.Logger:
    return logging.getLogger(f"shopbot.{component}")


class CustomerLogger(logging.LoggerAdapter):
    """Logger bound to one customer turn.

    Usage::

        log = CustomerLogger(logger, "whatsapp:+5491111111111", "babystepsbots")
        log.info("Order confirmed", context={"order_id": "PED-AB12CD"})
    """

    def __init__(self, logger: logging.Logger, from_number: str, company_id: Optional[str] = None):
        super().__init__(logger, {"from_number": from_number, "company_id": company_id})

    @property
    def from_number(self) -> str:
        return self.extra["from_number"]

    def for_company(self, company_id: str) -> "CustomerLogger":
        """Same customer, another tenant (after an assignment override)."""
        return CustomerLogger(self.logger, self.from_number, company_id)

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = {key: value for key, value in self.extra.items() if value is not None}
        context.update(kwargs.pop("context", None) or {})
        kwargs["extra"] = {**kwargs.get("extra", {}), "context": context}
        return msg, kwargs
