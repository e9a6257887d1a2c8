from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True, slots=True)
class WebhookEvent:
    """Append-only audit record of an inbound billing webhook."""

    id: int
    type: str
    provider_event_id: Optional[str]
    created_at: datetime
    payload: str
