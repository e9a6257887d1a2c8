import logging
import os
from typing import Optional


def configure_logging() -> None:
    """Configure structured logging defaults for the application."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def mask_identifier(value: Optional[str], visible: int = 8) -> str:
    """Shorten an identifier for log lines."""
    if not value:
        return "<none>"
    if len(value) <= visible:
        return value
    return value[:visible] + "..."
