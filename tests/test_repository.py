import pytest

from conftest import CREATOR_ID, FOLLOWER_ID
from options_platform.errors import BackendError, NotFoundError
from options_platform.repository import utcnow_iso


def test_fetch_returns_row_or_none(repos):
    assert repos.strategies.fetch("strat-1")["title"] == "SPX Bull Put"
    assert repos.strategies.fetch("missing") is None


def test_fetch_one_raises_not_found(repos):
    with pytest.raises(NotFoundError) as exc_info:
        repos.user_strategies.fetch_one("nope")
    assert exc_info.value.status_code == 404


def test_list_by_ids_filters_with_in(repos):
    rows = repos.profiles.list_by_ids([CREATOR_ID, FOLLOWER_ID])
    assert {row["id"] for row in rows} == {CREATOR_ID, FOLLOWER_ID}
    assert repos.profiles.list_by_ids([]) == []


def test_list_by_status_orders_newest_first(repos):
    repos.strategies.insert({"id": "old", "status": "pending_review", "created_at": "2024-01-01"})
    repos.strategies.insert({"id": "new", "status": "pending_review", "created_at": "2024-03-01"})

    assert [row["id"] for row in repos.strategies.list_by_status("pending_review")] == ["new", "old"]


def test_upsert_uses_repository_key(repos, supabase):
    repos.ig_connections.upsert({"user_id": FOLLOWER_ID, "username": "a"})
    repos.ig_connections.upsert({"user_id": FOLLOWER_ID, "username": "b"})

    rows = supabase.rows("ig_broker_connections")
    assert len(rows) == 1
    assert rows[0]["username"] == "b"


def test_update_and_delete(repos, supabase):
    updated = repos.strategies.update("strat-1", {"status": "archived"})
    assert updated["status"] == "archived"

    repos.strategies.delete("strat-1")
    assert supabase.rows("trading_strategies") == []


def test_api_errors_become_backend_errors(repos, supabase):
    supabase.fail("trades", "insert", "permission denied for table trades")

    with pytest.raises(BackendError) as exc_info:
        repos.trades.insert_one({"user_id": FOLLOWER_ID})
    assert "permission denied" in exc_info.value.message


def test_timestamps_are_timezone_aware():
    assert utcnow_iso().endswith("+00:00")
