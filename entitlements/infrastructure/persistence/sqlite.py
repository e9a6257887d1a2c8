import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ...core.logging import mask_identifier
from ...domain.models import Subscription, SubscriptionStatus, User, WebhookEvent
from ...domain.ports.persistence import PersistenceGateway

logger = logging.getLogger(__name__)

SUBSCRIPTION_FIELDS = (
    "user_id",
    "provider_subscription_id",
    "status",
    "amount",
    "currency",
    "interval",
    "current_period_start",
    "current_period_end",
    "cancel_at_period_end",
    "started_at",
    "canceled_at",
    "ended_at",
    "price_id",
    "customer_id",
    "metadata",
)


class SQLitePersistence(PersistenceGateway):
    """SQLite-backed implementation of the persistence gateway."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        with self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    token_identifier TEXT NOT NULL UNIQUE,
                    email TEXT,
                    name TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    provider_subscription_id TEXT NOT NULL UNIQUE,
                    status TEXT NOT NULL,
                    amount INTEGER NOT NULL DEFAULT 0,
                    currency TEXT,
                    interval TEXT,
                    current_period_start TEXT,
                    current_period_end TEXT,
                    cancel_at_period_end INTEGER NOT NULL DEFAULT 0,
                    started_at TEXT,
                    canceled_at TEXT,
                    ended_at TEXT,
                    price_id TEXT,
                    customer_id TEXT,
                    metadata TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_subscriptions_user_id
                    ON subscriptions(user_id);

                CREATE UNIQUE INDEX IF NOT EXISTS idx_subscriptions_one_active_per_user
                    ON subscriptions(user_id) WHERE status = 'active';

                CREATE TABLE IF NOT EXISTS webhook_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    type TEXT NOT NULL,
                    provider_event_id TEXT,
                    created_at TEXT NOT NULL,
                    payload TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_webhook_events_provider_event_id
                    ON webhook_events(provider_event_id);
                """
            )

    def close(self) -> None:
        self._conn.close()

    # UserRepository API -----------------------------------------------------
    def upsert_user(
        self,
        token_identifier: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> User:
        now = self._now()
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO users (token_identifier, email, name, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(token_identifier) DO UPDATE SET
                    email = COALESCE(excluded.email, users.email),
                    name = COALESCE(excluded.name, users.name),
                    updated_at = excluded.updated_at
                """,
                (token_identifier, email, name, now, now),
            )
            cur = self._conn.execute(
                "SELECT * FROM users WHERE token_identifier = ?", (token_identifier,)
            )
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to persist user.")
        return self._row_to_user(row)

    def get_user_by_token(self, token_identifier: str) -> Optional[User]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM users WHERE token_identifier = ?", (token_identifier,)
            )
            row = cur.fetchone()
        return self._row_to_user(row) if row else None

    def list_users(self) -> List[User]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM users ORDER BY id")
            rows = cur.fetchall()
        return [self._row_to_user(row) for row in rows]

    # SubscriptionRepository API ---------------------------------------------
    def find_subscription_by_user(self, user_id: str) -> Optional[Subscription]:
        with self._lock:
            cur = self._conn.execute(
                """
                SELECT * FROM subscriptions
                WHERE user_id = ?
                ORDER BY
                    CASE status WHEN 'active' THEN 0 WHEN 'past_due' THEN 1 ELSE 2 END,
                    current_period_end DESC,
                    id DESC
                LIMIT 1
                """,
                (user_id,),
            )
            row = cur.fetchone()
        return self._row_to_subscription(row) if row else None

    def find_subscription_by_provider_id(self, provider_subscription_id: str) -> Optional[Subscription]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM subscriptions WHERE provider_subscription_id = ?",
                (provider_subscription_id,),
            )
            row = cur.fetchone()
        return self._row_to_subscription(row) if row else None

    def insert_subscription(self, fields: Dict[str, Any]) -> Subscription:
        values = self._serialize_fields(fields)
        for required in ("user_id", "provider_subscription_id", "status"):
            if values.get(required) is None:
                raise ValueError(f"Subscription field '{required}' is required.")
        now = self._now()
        values["created_at"] = now
        values["updated_at"] = now
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        with self._lock, self._conn:
            if values["status"] == SubscriptionStatus.ACTIVE.value:
                self._supersede_active(values["user_id"], None, now)
            cur = self._conn.execute(
                f"INSERT INTO subscriptions ({columns}) VALUES ({placeholders})",
                tuple(values.values()),
            )
            cur = self._conn.execute("SELECT * FROM subscriptions WHERE id = ?", (cur.lastrowid,))
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to persist subscription.")
        return self._row_to_subscription(row)

    def patch_subscription(self, subscription_id: int, fields: Dict[str, Any]) -> Subscription:
        values = self._serialize_fields(fields)
        now = self._now()
        values["updated_at"] = now
        assignments = ", ".join(f"{column} = ?" for column in values)
        with self._lock, self._conn:
            cur = self._conn.execute("SELECT user_id FROM subscriptions WHERE id = ?", (subscription_id,))
            current = cur.fetchone()
            if not current:
                raise ValueError(f"Subscription {subscription_id} not found.")
            if values.get("status") == SubscriptionStatus.ACTIVE.value:
                owner = values.get("user_id", current["user_id"])
                self._supersede_active(owner, subscription_id, now)
            self._conn.execute(
                f"UPDATE subscriptions SET {assignments} WHERE id = ?",
                (*values.values(), subscription_id),
            )
            cur = self._conn.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription_id,))
            row = cur.fetchone()
        return self._row_to_subscription(row)

    def list_subscriptions(self) -> List[Subscription]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM subscriptions ORDER BY id")
            rows = cur.fetchall()
        return [self._row_to_subscription(row) for row in rows]

    def reassign_subscription_owner(self, old_user_id: str, new_user_id: str) -> int:
        now = self._now()
        with self._lock, self._conn:
            cur = self._conn.execute(
                "SELECT id FROM subscriptions WHERE user_id = ? AND status = 'active'",
                (old_user_id,),
            )
            moving_active = cur.fetchone()
            if moving_active:
                self._supersede_active(new_user_id, moving_active["id"], now)
            cur = self._conn.execute(
                "UPDATE subscriptions SET user_id = ?, updated_at = ? WHERE user_id = ?",
                (new_user_id, now, old_user_id),
            )
            return cur.rowcount

    # WebhookEventRepository API ---------------------------------------------
    def record_webhook_event(
        self,
        event_type: str,
        provider_event_id: Optional[str],
        payload: str,
    ) -> WebhookEvent:
        now = self._now()
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO webhook_events (type, provider_event_id, created_at, payload)
                VALUES (?, ?, ?, ?)
                """,
                (event_type, provider_event_id, now, payload),
            )
            cur = self._conn.execute("SELECT * FROM webhook_events WHERE id = ?", (cur.lastrowid,))
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to persist webhook event.")
        return self._row_to_webhook_event(row)

    def list_webhook_events(self, limit: int = 50) -> List[WebhookEvent]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM webhook_events ORDER BY id DESC LIMIT ?", (limit,)
            )
            rows = cur.fetchall()
        return [self._row_to_webhook_event(row) for row in rows]

    # Helpers ----------------------------------------------------------------
    def _supersede_active(self, user_id: str, keep_id: Optional[int], now: str) -> None:
        """Cancel the user's other active rows; caller holds the lock and transaction."""
        cur = self._conn.execute(
            """
            UPDATE subscriptions
            SET status = 'canceled', ended_at = COALESCE(ended_at, ?), updated_at = ?
            WHERE user_id = ? AND status = 'active' AND id IS NOT ?
            """,
            (now, now, user_id, keep_id),
        )
        if cur.rowcount:
            logger.warning(
                "Superseded %d active subscription(s) for user %s", cur.rowcount, mask_identifier(user_id)
            )

    @staticmethod
    def _serialize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(fields) - set(SUBSCRIPTION_FIELDS)
        if unknown:
            raise ValueError(f"Unknown subscription fields: {sorted(unknown)}")
        values: Dict[str, Any] = {}
        for key, value in fields.items():
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, datetime):
                value = value.astimezone(timezone.utc).isoformat()
            elif isinstance(value, bool):
                value = int(value)
            elif key == "metadata":
                value = json.dumps(value or {}, default=str, ensure_ascii=False)
            values[key] = value
        return values

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).replace(microsecond=0).isoformat()

    @staticmethod
    def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
        if not value:
            return None
        result = datetime.fromisoformat(value)
        if result.tzinfo is None:
            return result.replace(tzinfo=timezone.utc)
        return result.astimezone(timezone.utc)

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            token_identifier=row["token_identifier"],
            email=row["email"],
            name=row["name"],
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )

    def _row_to_subscription(self, row: sqlite3.Row) -> Subscription:
        return Subscription(
            id=row["id"],
            user_id=row["user_id"],
            provider_subscription_id=row["provider_subscription_id"],
            status=SubscriptionStatus(row["status"]),
            amount=row["amount"],
            currency=row["currency"],
            interval=row["interval"],
            current_period_start=self._parse_datetime(row["current_period_start"]),
            current_period_end=self._parse_datetime(row["current_period_end"]),
            cancel_at_period_end=bool(row["cancel_at_period_end"]),
            started_at=self._parse_datetime(row["started_at"]),
            canceled_at=self._parse_datetime(row["canceled_at"]),
            ended_at=self._parse_datetime(row["ended_at"]),
            price_id=row["price_id"],
            customer_id=row["customer_id"],
            metadata=json.loads(row["metadata"] or "{}"),
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )

    def _row_to_webhook_event(self, row: sqlite3.Row) -> WebhookEvent:
        return WebhookEvent(
            id=row["id"],
            type=row["type"],
            provider_event_id=row["provider_event_id"],
            created_at=self._parse_datetime(row["created_at"]),
            payload=row["payload"],
        )
