import copy
import itertools
from types import SimpleNamespace

import pytest
from postgrest.exceptions import APIError

from options_platform.config import Settings
from options_platform.errors import BrokerError
from options_platform.repository import Repositories

ENV_KEYS = [
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "SUPABASE_ANON_KEY",
    "SUPABASE_SERVICE_ROLE_KEY",
    "IG_API_BASE_URL",
    "IG_API_KEY",
    "IG_USERNAME",
    "IG_PASSWORD",
    "IG_CURRENCY",
    "IG_DRY_RUN",
    "BROKER_CREDENTIALS_SECRET",
    "POLYGON_API_KEY",
    "POLYGON_API_BASE_URL",
    "ROYALTY_PERCENTAGE",
    "PLATFORM_FEE_PERCENTAGE",
    "ROYALTY_MIN_PROFIT",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "CORS_ORIGINS",
    "API_HOST",
    "API_PORT",
    "LOG_FILE",
]

CREATOR_ID = "11111111-1111-1111-1111-111111111111"
FOLLOWER_ID = "22222222-2222-2222-2222-222222222222"
ADMIN_ID = "33333333-3333-3333-3333-333333333333"


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Just enough of the PostgREST query builder for the repositories."""

    def __init__(self, db, name):
        self.db = db
        self.name = name
        self.op = "select"
        self.payload = None
        self.on_conflict = None
        self.filters = []
        self._order = None
        self._limit = None

    def select(self, _columns="*"):
        self.op = "select"
        return self

    def insert(self, records):
        self.op, self.payload = "insert", records
        return self

    def update(self, changes):
        self.op, self.payload = "update", changes
        return self

    def upsert(self, records, on_conflict=None):
        self.op, self.payload, self.on_conflict = "upsert", records, on_conflict
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, value):
        self._limit = value
        return self

    def _matches(self, row):
        return all(check(row) for check in self.filters)

    def execute(self):
        failure = self.db.failures.get((self.name, self.op))
        if failure:
            raise APIError({"message": failure, "code": "500"})
        self.db.calls.append((self.name, self.op, copy.deepcopy(self.payload)))

        rows = self.db.tables.setdefault(self.name, [])
        if self.op == "select":
            found = [copy.deepcopy(row) for row in rows if self._matches(row)]
            if self._order:
                column, desc = self._order
                found.sort(key=lambda row: row.get(column) or "", reverse=desc)
            if self._limit:
                found = found[: self._limit]
            return FakeResponse(found)

        if self.op == "insert":
            records = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for record in records:
                row = dict(record)
                row.setdefault("id", f"{self.name}-{next(self.db.ids)}")
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return FakeResponse(inserted)

        if self.op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(self.payload)
                    updated.append(copy.deepcopy(row))
            return FakeResponse(updated)

        if self.op == "upsert":
            key = (self.on_conflict or "id").split(",")[0].strip()
            records = self.payload if isinstance(self.payload, list) else [self.payload]
            result = []
            for record in records:
                existing = next((row for row in rows if row.get(key) == record.get(key)), None)
                if existing is not None:
                    existing.update(record)
                    result.append(copy.deepcopy(existing))
                else:
                    row = dict(record)
                    rows.append(row)
                    result.append(copy.deepcopy(row))
            return FakeResponse(result)

        if self.op == "delete":
            removed = [row for row in rows if self._matches(row)]
            self.db.tables[self.name] = [row for row in rows if not self._matches(row)]
            return FakeResponse(removed)

        raise AssertionError(f"unsupported op {self.op}")


class FakeAuth:
    def __init__(self):
        self.tokens = {}

    def get_user(self, token):
        if token not in self.tokens:
            raise RuntimeError("invalid JWT")
        return SimpleNamespace(user=SimpleNamespace(id=self.tokens[token]))


class FakeSupabase:
    def __init__(self, tables=None):
        self.tables = copy.deepcopy(tables or {})
        self.failures = {}
        self.calls = []
        self.ids = itertools.count(1)
        self.auth = FakeAuth()

    def table(self, name):
        return FakeQuery(self, name)

    def fail(self, table, op, message="backend unavailable"):
        self.failures[(table, op)] = message

    def rows(self, table):
        return self.tables.get(table, [])


class FakeBroker:
    """Stands in for IGBrokerClient: records orders, reports canned profits."""

    def __init__(self, profits=None, fail_epics=None, fail_confirms=0):
        self.profits = profits or {}
        self.fail_epics = set(fail_epics or [])
        self.fail_confirms = fail_confirms
        self.confirmations = []
        self.orders = []
        self._references = {}

    def place_trade(self, order):
        if order.epic in self.fail_epics:
            raise BrokerError(f"market closed for {order.epic}")
        self.orders.append(order)
        reference = order.deal_reference or f"DEAL-{len(self.orders)}"
        self._references[reference] = order.epic
        return {"dry_run": True, "dealReference": reference}

    def confirm_deal(self, deal_reference):
        if self.fail_confirms:
            self.fail_confirms -= 1
            raise BrokerError(f"confirmation timed out for {deal_reference}")
        self.confirmations.append(deal_reference)
        epic = self._references.get(deal_reference)
        return {"dealReference": deal_reference, "dealStatus": "ACCEPTED", "profit": self.profits.get(epic, 0.0)}


class RecordingAlerts:
    def __init__(self):
        self.partial_settlements = []
        self.pending_reviews = []

    def alert_partial_settlement(self, user_strategy_id, run_id, executed, failed_index, error):
        self.partial_settlements.append((user_strategy_id, run_id, executed, failed_index, error))

    def alert_strategy_pending_review(self, strategy_id, title):
        self.pending_reviews.append((strategy_id, title))


def sample_legs():
    return [
        {"strike": "450", "type": "Put", "expiration": "30", "buySell": "Sell",
         "size": 1, "price": "2.00", "epic": "OP.D.SPX.450P.IP"},
        {"strike": "440", "type": "Put", "expiration": "30", "buySell": "Buy",
         "size": 1, "price": "0.75", "epic": "OP.D.SPX.440P.IP"},
    ]


def seed_tables():
    return {
        "profiles": [
            {"id": CREATOR_ID, "email": "creator@example.com", "name": "Casey", "role": "premium_member",
             "credits": 0},
            {"id": FOLLOWER_ID, "email": "follower@example.com", "name": "Fran", "role": "premium_member",
             "is_premium": True, "credits": 5},
            {"id": ADMIN_ID, "email": "admin@example.com", "name": "Ada", "role": "super_admin", "credits": 0},
        ],
        "trading_strategies": [
            {
                "id": "strat-1",
                "title": "SPX Bull Put",
                "description": "Credit spread under support",
                "category": "Income",
                "creator_id": CREATOR_ID,
                "fee_percentage": 20,
                "is_premium_only": False,
                "status": "published",
                "created_at": "2024-01-01T00:00:00",
                "strategy_config": {
                    "legs": sample_legs(),
                    "conditions": [
                        {"type": "entry", "indicator": "RSI", "operator": "<", "value": "30", "timeframe": "1D"},
                        {"type": "exit", "indicator": "RSI", "operator": ">", "value": "70", "timeframe": "1D"},
                    ],
                },
            },
        ],
        "user_strategies": [
            {
                "id": "us-1",
                "user_id": FOLLOWER_ID,
                "strategy_id": "strat-1",
                "copied_from": "strat-1",
                "royalty_percentage": 20,
                "platform_fee_percentage": 5,
            },
        ],
    }


@pytest.fixture
def settings(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "test-key")
    monkeypatch.setenv("IG_API_KEY", "ig-key")
    monkeypatch.setenv("IG_USERNAME", "ig-user")
    monkeypatch.setenv("IG_PASSWORD", "ig-pass")
    monkeypatch.setenv("BROKER_CREDENTIALS_SECRET", "unit-test-secret")
    return Settings()


@pytest.fixture
def supabase():
    return FakeSupabase(seed_tables())


@pytest.fixture
def repos(supabase):
    return Repositories(supabase)


@pytest.fixture
def alerts():
    return RecordingAlerts()
