"""Structured logging configuration"""
import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Extra attributes copied from the log record into the JSON document
_EXTRA_FIELDS = ("request_id", "action", "subject", "user_id", "path", "method", "reason", "ttl_ms")

# Compact-serialised JWS: base64url JSON header (always starts "eyJ"), payload, signature
_JWT_PATTERN = re.compile(r"eyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*")
REDACTED = "[REDACTED_TOKEN]"


def redact_tokens(text: str) -> str:
    return _JWT_PATTERN.sub(REDACTED, text)


class TokenRedactionFilter(logging.Filter):
    """Masks anything that looks like a bearer token before a record is emitted.

    Tokens are credentials until they expire, so they must not reach log storage
    even when they end up inside an exception message.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_tokens(message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        # Tracebacks can quote token values from frames
        if record.exc_info:
            log_data["exception"] = redact_tokens(self.formatException(record.exc_info))

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """Setup structured JSON logging"""
    logger = logging.getLogger("shop_auth")
    logger.setLevel(log_level)

    # Remove existing handlers
    logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(TokenRedactionFilter())
    logger.addHandler(handler)

    return logger


# Global logger instance
logger = setup_logging()
