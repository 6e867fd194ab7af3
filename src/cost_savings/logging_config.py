"""Logging setup with secret and patient-data redaction. Log case and patient ids only."""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

REDACT_FIELDS = frozenset({"password", "secret", "token", "api_key", "authorization"})
# Patient identity and clinical free text never reach the logs
PII_REDACT_KEYS = frozenset(
    {
        "first_name",
        "last_name",
        "document_number",
        "diagnosis",
        "justification",
        "note",
    }
)
PII_KEY_PATTERN = re.compile(
    r"(\b(?:" + "|".join(re.escape(k) for k in PII_REDACT_KEYS) + r"))[\s=:]+[^\s,\)\]]+",
    re.IGNORECASE,
)


def sanitize_extra(extra: dict[str, Any] | None) -> dict[str, Any]:
    """Copy of extra with secret values masked and patient fields redacted."""
    if not extra:
        return {}
    out: dict[str, Any] = {}
    for k, v in extra.items():
        key_lower = k.lower()
        if any(r in key_lower for r in REDACT_FIELDS):
            out[k] = "***"
        elif any(p in key_lower for p in PII_REDACT_KEYS):
            out[k] = "[REDACTED]"
        else:
            out[k] = v
    return out


def redact_message(msg: Any) -> str:
    """Replace `key=value` / `key: value` pairs for patient fields with [REDACTED]."""
    if not isinstance(msg, str):
        msg = str(msg)
    return PII_KEY_PATTERN.sub(r"\1=[REDACTED]", msg)


class PIIRedactionFilter(logging.Filter):
    """Redacts patient data from the message and its args."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_message(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(redact_message(a) for a in record.args)
        elif isinstance(record.args, dict):
            record.args = sanitize_extra(record.args)
        return True


def setup_logging(log_level: str = "INFO") -> None:
    """Configure root logger on stdout with the redaction filter on every handler."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
        stream=sys.stdout,
        force=True,
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(PIIRedactionFilter())
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for module `name` (redaction applied at the root handlers)."""
    return logging.getLogger(name)
