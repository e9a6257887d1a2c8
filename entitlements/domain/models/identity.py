from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class Identity:
    """Claims extracted from a verified identity provider token."""

    subject: str
    email: Optional[str] = None
    name: Optional[str] = None
