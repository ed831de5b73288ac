import pytest

from conftest import FOLLOWER_ID, CREATOR_ID, FakeBroker
from options_platform.copy_trading import CopyTradingEngine, handle_tradingview_alert, leg_idempotency_key
from options_platform.errors import BrokerError, PermissionDenied, SettlementError
from options_platform.ig_broker import IGBrokerClient
from options_platform.royalties import RoyaltyService

SELL_EPIC = "OP.D.SPX.450P.IP"
BUY_EPIC = "OP.D.SPX.440P.IP"


def _engine(repos, settings, broker, alerts):
    return CopyTradingEngine(repos, settings, broker, RoyaltyService(repos, settings), alerts)


def test_settle_places_every_leg_in_order(repos, settings, supabase, alerts):
    broker = FakeBroker()
    result = _engine(repos, settings, broker, alerts).settle("us-1", run_id="run-1")

    assert [order.epic for order in broker.orders] == [SELL_EPIC, BUY_EPIC]
    assert [order.direction for order in broker.orders] == ["SELL", "BUY"]
    assert [leg.status for leg in result.legs] == ["executed", "executed"]
    assert result.strategy_id == "strat-1"
    assert len(supabase.rows("trades")) == 2
    assert all(row["user_id"] == FOLLOWER_ID for row in supabase.rows("trades"))
    # no profit, no royalty
    assert result.royalties == []
    assert supabase.rows("royalty_payments") == []


def test_profitable_leg_pays_royalty(repos, settings, supabase, alerts):
    broker = FakeBroker(profits={SELL_EPIC: 150.0, BUY_EPIC: 0.5})
    result = _engine(repos, settings, broker, alerts).settle("us-1", run_id="run-1")

    assert len(result.royalties) == 1
    royalty = result.royalties[0]
    assert royalty.creator_id == CREATOR_ID
    assert royalty.creator_royalty_amount == 30.0
    assert royalty.platform_fee_amount == 7.5
    assert len(supabase.rows("royalty_payments")) == 1


def test_failed_leg_stops_and_reports_executed_legs(repos, settings, supabase, alerts):
    broker = FakeBroker(fail_epics={BUY_EPIC})

    with pytest.raises(SettlementError) as exc_info:
        _engine(repos, settings, broker, alerts).settle("us-1", run_id="run-1")

    error = exc_info.value.to_dict()
    assert [leg["epic"] for leg in error["executed_legs"]] == [SELL_EPIC]
    assert error["failed_leg"]["leg_index"] == 1
    assert "market closed" in error["failed_leg"]["error"]
    assert alerts.partial_settlements[0][2:4] == (1, 1)

    statuses = {row["leg_index"]: row["status"] for row in supabase.rows("copy_trade_executions")}
    assert statuses == {0: "executed", 1: "failed"}


def test_rerun_with_same_run_id_skips_executed_legs(repos, settings, supabase, alerts):
    engine = _engine(repos, settings, FakeBroker(fail_epics={BUY_EPIC}), alerts)
    with pytest.raises(SettlementError):
        engine.settle("us-1", run_id="run-1")

    retry_broker = FakeBroker()
    engine.broker = retry_broker
    result = engine.settle("us-1", run_id="run-1")

    assert [order.epic for order in retry_broker.orders] == [BUY_EPIC]
    assert [leg.status for leg in result.legs] == ["skipped", "executed"]
    assert len(supabase.rows("trades")) == 2


def test_new_run_id_places_legs_again(repos, settings, alerts):
    broker = FakeBroker()
    engine = _engine(repos, settings, broker, alerts)
    engine.settle("us-1", run_id="run-1")
    engine.settle("us-1", run_id="run-2")

    assert len(broker.orders) == 4


def test_orders_carry_idempotency_key_as_deal_reference(repos, settings, alerts):
    broker = FakeBroker()
    _engine(repos, settings, broker, alerts).settle("us-1", run_id="run-1")

    assert broker.orders[0].deal_reference == leg_idempotency_key("us-1", "run-1", 0, SELL_EPIC)
    assert len(broker.orders[0].deal_reference) == 16


def test_settle_checks_owner(repos, settings, alerts):
    with pytest.raises(PermissionDenied):
        _engine(repos, settings, FakeBroker(), alerts).settle("us-1", user_id=CREATOR_ID)


def test_tradingview_alert_dry_run(settings):
    broker = IGBrokerClient(settings)
    result = handle_tradingview_alert(broker, {"type": "BUY", "symbol": "SPX", "epic": "IX.D.SPTRD.DAILY.IP", "size": 2})

    assert result["dry_run"] is True
    assert result["payload"]["direction"] == "BUY"
    assert result["payload"]["size"] == 2


def test_tradingview_alert_requires_epic(settings):
    with pytest.raises(BrokerError):
        handle_tradingview_alert(IGBrokerClient(settings), {"type": "SELL", "symbol": "SPX", "epic": ""})


def _statuses(supabase):
    return {row["leg_index"]: row["status"] for row in supabase.rows("copy_trade_executions")}


def test_unconfirmed_leg_is_confirmed_not_placed_again_on_resume(repos, settings, supabase, alerts):
    broker = FakeBroker(profits={SELL_EPIC: 150.0}, fail_confirms=1)
    engine = _engine(repos, settings, broker, alerts)

    with pytest.raises(SettlementError) as exc_info:
        engine.settle("us-1", run_id="run-1")
    assert exc_info.value.failed["status"] == "placed"
    assert _statuses(supabase) == {0: "placed"}

    result = engine.settle("us-1", run_id="run-1")

    assert [order.epic for order in broker.orders] == [SELL_EPIC, BUY_EPIC]
    assert [leg.status for leg in result.legs] == ["executed", "executed"]
    assert len(supabase.rows("royalty_payments")) == 1


def test_bookkeeping_failure_is_booked_on_resume(repos, settings, supabase, alerts):
    supabase.fail("trades", "insert")
    broker = FakeBroker(profits={SELL_EPIC: 150.0})
    engine = _engine(repos, settings, broker, alerts)

    with pytest.raises(SettlementError) as exc_info:
        engine.settle("us-1", run_id="run-1")
    assert len(broker.orders) == 1
    assert "bookkeeping" in exc_info.value.failed["error"]
    assert _statuses(supabase) == {0: "booking_failed"}

    supabase.failures.clear()
    result = engine.settle("us-1", run_id="run-1")

    assert [order.epic for order in broker.orders] == [SELL_EPIC, BUY_EPIC]
    assert [leg.status for leg in result.legs] == ["executed", "executed"]
    assert len(supabase.rows("trades")) == 2
    payments = supabase.rows("royalty_payments")
    assert len(payments) == 1
    assert payments[0]["profit_amount"] == 150.0


def test_royalty_is_not_paid_twice_when_resuming(repos, settings, supabase, alerts):
    # the payment row lands, the creator notification after it fails
    supabase.fail("notifications", "insert")
    engine = _engine(repos, settings, FakeBroker(profits={SELL_EPIC: 150.0}), alerts)

    with pytest.raises(SettlementError):
        engine.settle("us-1", run_id="run-1")
    assert len(supabase.rows("royalty_payments")) == 1

    supabase.failures.clear()
    engine.settle("us-1", run_id="run-1")

    assert len(supabase.rows("royalty_payments")) == 1
    assert len(supabase.rows("trades")) == 2


def test_settlement_error_carries_run_id_for_resume(repos, settings, supabase, alerts):
    engine = _engine(repos, settings, FakeBroker(fail_epics={BUY_EPIC}), alerts)

    with pytest.raises(SettlementError) as exc_info:
        engine.settle("us-1")
    run_id = exc_info.value.to_dict()["run_id"]
    assert run_id
    assert alerts.partial_settlements[0][1] == run_id

    retry_broker = FakeBroker()
    engine.broker = retry_broker
    result = engine.settle("us-1", run_id=run_id)

    assert [order.epic for order in retry_broker.orders] == [BUY_EPIC]
    assert [leg.status for leg in result.legs] == ["skipped", "executed"]
