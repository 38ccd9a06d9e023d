"""
Logging utilities for the FastAPI application and proxy clients.

Provides a consistent logging format and keeps OAuth tokens out of log output.
"""

import hashlib
import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )


def redact_token(token: str | None) -> str:
    """Return a short, stable fingerprint suitable for log lines."""
    if not token:
        return "<none>"
    digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:8]
    return f"{token[:4]}...#{digest}"


__all__ = ["configure_logging", "redact_token"]
