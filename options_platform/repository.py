"""
Table repositories over the Supabase client.

Every read and write the services make goes through one of these classes,
so the rest of the package never builds PostgREST queries directly.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from postgrest.exceptions import APIError

from options_platform.errors import BackendError, NotFoundError

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TableRepository:
    table_name = ""
    key = "id"

    def __init__(self, supabase):
        self.supabase = supabase

    def _table(self):
        return self.supabase.table(self.table_name)

    def _execute(self, query, action: str) -> List[Record]:
        try:
            response = query.execute()
        except APIError as exc:
            logger.error(f"{action} on {self.table_name} failed: {exc.message}")
            raise BackendError(f"{action} on {self.table_name} failed: {exc.message}") from exc
        data = response.data
        if data is None:
            return []
        return data if isinstance(data, list) else [data]

    # ========================
    # READS
    # ========================

    def fetch(self, record_id: Any, columns: str = "*") -> Optional[Record]:
        query = self._table().select(columns).eq(self.key, record_id).limit(1)
        rows = self._execute(query, "fetch")
        return rows[0] if rows else None

    def fetch_one(self, record_id: Any, columns: str = "*") -> Record:
        """Like fetch, but a missing row is an error."""
        row = self.fetch(record_id, columns)
        if row is None:
            raise NotFoundError(f"{self.table_name} {record_id} not found")
        return row

    def list(
        self,
        filters: Optional[Dict[str, Any]] = None,
        columns: str = "*",
        in_filters: Optional[Dict[str, Iterable[Any]]] = None,
        order_by: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> List[Record]:
        query = self._table().select(columns)
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        for column, values in (in_filters or {}).items():
            query = query.in_(column, list(values))
        if order_by:
            query = query.order(order_by, desc=desc)
        if limit:
            query = query.limit(limit)
        return self._execute(query, "list")

    # ========================
    # WRITES
    # ========================

    def insert(self, records: Union[Record, List[Record]]) -> List[Record]:
        return self._execute(self._table().insert(records), "insert")

    def insert_one(self, record: Record) -> Record:
        rows = self.insert(record)
        # Some policies hide the inserted row from the caller; echo what we sent.
        return rows[0] if rows else record

    def update(self, record_id: Any, changes: Record) -> Optional[Record]:
        rows = self._execute(self._table().update(changes).eq(self.key, record_id), "update")
        return rows[0] if rows else None

    def upsert(self, records: Union[Record, List[Record]], on_conflict: Optional[str] = None) -> List[Record]:
        query = self._table().upsert(records, on_conflict=on_conflict or self.key)
        return self._execute(query, "upsert")

    def delete(self, record_id: Any) -> List[Record]:
        return self._execute(self._table().delete().eq(self.key, record_id), "delete")


class ProfileRepository(TableRepository):
    table_name = "profiles"

    def list_by_ids(self, user_ids: Iterable[str], columns: str = "*") -> List[Record]:
        ids = list(user_ids)
        if not ids:
            return []
        return self.list(columns=columns, in_filters={"id": ids})


class StrategyRepository(TableRepository):
    table_name = "trading_strategies"

    def list_by_status(self, status: str) -> List[Record]:
        return self.list(filters={"status": status}, order_by="created_at", desc=True)


class UserStrategyRepository(TableRepository):
    table_name = "user_strategies"


class SubscriptionRepository(TableRepository):
    table_name = "strategy_subscriptions"


class TradeRepository(TableRepository):
    table_name = "trades"


class RoyaltyPaymentRepository(TableRepository):
    table_name = "royalty_payments"

    def for_trade(self, trade_id: str) -> List[Record]:
        return self.list(filters={"trade_id": trade_id}, limit=1)


class NotificationRepository(TableRepository):
    table_name = "notifications"


class BrokerConnectionRepository(TableRepository):
    table_name = "broker_connections"

    def active_for_user(self, user_id: str) -> List[Record]:
        return self.list(filters={"user_id": user_id, "is_active": True})


class IGBrokerConnectionRepository(TableRepository):
    table_name = "ig_broker_connections"
    key = "user_id"


class CopyTradeExecutionRepository(TableRepository):
    table_name = "copy_trade_executions"
    key = "idempotency_key"


class Repositories:
    """All repositories bound to one Supabase client."""

    def __init__(self, supabase):
        self.supabase = supabase
        self.profiles = ProfileRepository(supabase)
        self.strategies = StrategyRepository(supabase)
        self.user_strategies = UserStrategyRepository(supabase)
        self.subscriptions = SubscriptionRepository(supabase)
        self.trades = TradeRepository(supabase)
        self.royalty_payments = RoyaltyPaymentRepository(supabase)
        self.notifications = NotificationRepository(supabase)
        self.broker_connections = BrokerConnectionRepository(supabase)
        self.ig_connections = IGBrokerConnectionRepository(supabase)
        self.copy_trade_executions = CopyTradeExecutionRepository(supabase)
