"""Logging setup and redaction of logged tool arguments."""

from __future__ import annotations

import logging
import re
import sys
from typing import Any, Dict, Mapping


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
REDACTED = "***REDACTED***"

_SENSITIVE_KEYS = re.compile(r"(token|secret|api[_-]?key|password|authorization)", re.IGNORECASE)


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, stream=sys.stderr)
    # httpx logs every request line at INFO; the executor already does.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def redact_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    redacted: Dict[str, Any] = {}
    for key, value in payload.items():
        if _SENSITIVE_KEYS.search(key):
            redacted[key] = REDACTED
        elif isinstance(value, Mapping):
            redacted[key] = redact_payload(value)
        elif isinstance(value, list):
            redacted[key] = [
                redact_payload(item) if isinstance(item, Mapping) else item for item in value
            ]
        else:
            redacted[key] = value
    return redacted
