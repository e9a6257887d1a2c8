"""User domain model keyed by the identity provider subject."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class User:
    """
    Local record of an authenticated person.

    Attributes:
        id: Row identifier
        token_identifier: Identity provider subject, unique and immutable
        email: Last known email address
        name: Last known display name
        created_at: First time the user was seen
        updated_at: Last profile refresh
    """

    id: int
    token_identifier: str
    email: Optional[str]
    name: Optional[str]
    created_at: datetime
    updated_at: datetime
