"""Maps identity provider subjects onto local user records."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from ..core.config import DEFAULT_LEGACY_IDENTIFIER_FORMATS
from ..core.logging import mask_identifier
from ..domain.models import User
from ..domain.ports.persistence import SubscriptionRepository, UserRepository

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Find-or-create users and probe the historical identifier formats."""

    def __init__(
        self,
        users: UserRepository,
        subscriptions: SubscriptionRepository,
        legacy_formats: Iterable[str] = DEFAULT_LEGACY_IDENTIFIER_FORMATS,
    ) -> None:
        self._users = users
        self._subscriptions = subscriptions
        self._legacy_formats = tuple(legacy_formats)

    def resolve(self, subject: str, email: Optional[str] = None, name: Optional[str] = None) -> User:
        """
        Return the user for ``subject``, creating it on first sight.

        The upsert runs as a single statement against a unique index, so
        concurrent calls for the same subject converge on one row. Profile
        fields are refreshed when given and kept when omitted.
        """
        if not subject:
            raise ValueError("Subject identifier is required.")
        return self._users.upsert_user(subject, email=email, name=name)

    def find(self, subject: Optional[str]) -> Optional[User]:
        if not subject:
            return None
        return self._users.get_user_by_token(subject)

    def candidate_identifiers(self, raw_id: str) -> List[str]:
        candidates: List[str] = []
        for template in self._legacy_formats:
            candidate = template.replace("{id}", raw_id)
            if candidate not in candidates:
                candidates.append(candidate)
        return candidates

    def resolve_by_legacy_formats(self, raw_id: Optional[str]) -> Optional[User]:
        """Return the first user matching any known identifier format, without writing."""
        if not raw_id:
            return None
        for candidate in self.candidate_identifiers(raw_id):
            user = self._users.get_user_by_token(candidate)
            if user:
                logger.debug("Resolved %s via legacy format %s", mask_identifier(raw_id), mask_identifier(candidate))
                return user
        logger.info("No user found for any identifier format of %s", mask_identifier(raw_id))
        return None

    def backfill_subscription_owners(self) -> int:
        """
        Rewrite subscription owners stored in a legacy format to the user's canonical identifier.

        Returns:
            Number of subscription rows moved
        """
        known = {user.token_identifier for user in self._users.list_users()}
        owners = {subscription.user_id for subscription in self._subscriptions.list_subscriptions()}
        moved = 0
        for owner in sorted(owners - known):
            user = self.resolve_by_legacy_formats(owner)
            if not user or user.token_identifier == owner:
                continue
            count = self._subscriptions.reassign_subscription_owner(owner, user.token_identifier)
            logger.info(
                "Moved %d subscription(s) from %s to %s",
                count,
                mask_identifier(owner),
                mask_identifier(user.token_identifier),
            )
            moved += count
        return moved
