"""
Copy-trading settlement.

A follower's user_strategies row points at the original strategy. Settling
it replays the strategy's legs against the follower's broker one at a time
and pays royalties on legs that realize a qualifying profit.

Every leg is keyed by (user_strategy_id, run_id, leg index, epic) and its
progress is recorded after each step:

    placed          broker accepted the order, confirmation pending
    booking_failed  confirmed, but the trade row or royalty is missing
    executed        confirmed and booked
    failed          the order never reached the broker

Re-running a settlement with the same run_id picks each leg up from its
recorded step: executed legs are skipped, placed legs are confirmed,
booking_failed legs are booked, and only failed or unseen legs are sent
to the broker. A failing leg stops the run; legs already executed are
left in place and reported on the error.
"""
import hashlib
import logging
import uuid
from typing import Any, Dict, List, Optional

import requests

from options_platform.config import Settings
from options_platform.errors import PermissionDenied, PlatformError, SettlementError
from options_platform.ig_broker import IGBrokerClient, TradeOrder
from options_platform.models import LegExecution, SettlementResult, Strategy, StrategyCondition, TradingLeg
from options_platform.notifier_telegram import TelegramNotifier
from options_platform.repository import Repositories, utcnow_iso
from options_platform.risk_metrics import parse_number
from options_platform.royalties import RoyaltyService

logger = logging.getLogger(__name__)


def _hash_id(parts: List[str]) -> str:
    joined = "|".join(parts)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]


def leg_idempotency_key(user_strategy_id: str, run_id: str, leg_index: int, epic: str) -> str:
    return _hash_id([str(user_strategy_id), str(run_id), str(leg_index), epic or ""])


def evaluate_conditions(conditions: List[StrategyCondition]) -> bool:
    # Conditions are descriptive only; no market data is evaluated against them yet.
    return True


class CopyTradingEngine:
    def __init__(self, repos: Repositories, settings: Settings,
                 broker: Optional[IGBrokerClient] = None,
                 royalties: Optional[RoyaltyService] = None,
                 alerts: Optional[TelegramNotifier] = None):
        self.repos = repos
        self.settings = settings
        self.broker = broker or IGBrokerClient(settings)
        self.royalties = royalties or RoyaltyService(repos, settings)
        self.alerts = alerts or TelegramNotifier(settings)

    def load_strategy(self, user_strategy: Dict[str, Any]) -> Strategy:
        strategy_id = user_strategy.get("copied_from") or user_strategy.get("strategy_id")
        strategy = Strategy.from_record(self.repos.strategies.fetch_one(strategy_id))
        # The creator must still exist for royalties to land anywhere.
        self.repos.profiles.fetch_one(strategy.creator_id, columns="id")
        return strategy

    def settle(self, user_strategy_id: str, run_id: Optional[str] = None,
               user_id: Optional[str] = None) -> SettlementResult:
        user_strategy = self.repos.user_strategies.fetch_one(user_strategy_id)
        if user_id and user_strategy.get("user_id") != user_id:
            raise PermissionDenied(f"User strategy {user_strategy_id} belongs to another user")
        strategy = self.load_strategy(user_strategy)
        run_id = run_id or uuid.uuid4().hex

        result = SettlementResult(
            user_strategy_id=user_strategy_id,
            strategy_id=strategy.id,
            run_id=run_id,
        )
        result.conditions_met = evaluate_conditions(strategy.conditions)
        if not result.conditions_met:
            logger.info(f"Conditions not met for user strategy {user_strategy_id}, nothing to place")
            return result

        logger.info(
            f"Settling user strategy {user_strategy_id} (run {run_id}): {len(strategy.legs)} legs"
        )
        for index, leg in enumerate(strategy.legs):
            execution = LegExecution(
                leg_index=index,
                epic=leg.epic,
                direction=leg.buy_sell.upper(),
                size=int(parse_number(leg.size) or 1),
                idempotency_key=leg_idempotency_key(user_strategy_id, run_id, index, leg.epic),
            )
            result.legs.append(execution)

            previous = self.repos.copy_trade_executions.fetch(execution.idempotency_key) or {}
            step = previous.get("status")
            if step == "executed":
                execution.status = "skipped"
                execution.deal_reference = previous.get("deal_reference")
                execution.trade_id = previous.get("trade_id")
                logger.info(f"Leg {index} already executed as {execution.deal_reference}, skipping")
                continue

            if step in ("placed", "booking_failed"):
                execution.status = step
                execution.deal_reference = previous.get("deal_reference")
                execution.trade_id = previous.get("trade_id")
                execution.profit = parse_number(previous.get("profit"))
                logger.info(f"Leg {index} resuming from {step} ({execution.deal_reference})")

            try:
                if execution.status == "pending":
                    self._place_leg(result, execution)
                if execution.status == "placed":
                    self._confirm_leg(execution)
            except (PlatformError, requests.RequestException) as exc:
                if execution.status == "pending":
                    execution.status = "failed"
                execution.error = str(exc)
                self._record(result, execution)
                self._abort(result, execution)

            try:
                self._book_leg(user_strategy_id, user_strategy, strategy, leg, execution)
            except PlatformError as exc:
                # The order stands; only the bookkeeping after it is missing.
                execution.status = "booking_failed"
                execution.error = f"post-trade bookkeeping failed: {exc}"
                self._record(result, execution)
                self._abort(result, execution)

            execution.status = "executed"
            execution.error = ""
            self._record(result, execution)

        logger.info(
            f"Settled user strategy {user_strategy_id}: "
            f"{sum(1 for leg in result.legs if leg.status == 'executed')} executed, "
            f"{len(result.royalties)} royalties"
        )
        return result

    def _place_leg(self, result: SettlementResult, execution: LegExecution) -> None:
        order = TradeOrder(
            epic=execution.epic,
            size=execution.size,
            direction=execution.direction,
            currency_code=self.settings.ig_currency,
            deal_reference=execution.idempotency_key,
        )
        placed = self.broker.place_trade(order)
        execution.deal_reference = placed.get("dealReference") or execution.idempotency_key
        execution.status = "placed"
        # Recorded before confirming so a resume never sends the order twice.
        self._record(result, execution)

    def _confirm_leg(self, execution: LegExecution) -> None:
        confirmation = self.broker.confirm_deal(execution.deal_reference)
        execution.profit = parse_number(confirmation.get("profit"))
        execution.status = "confirmed"

    def _book_leg(self, user_strategy_id: str, user_strategy: Dict[str, Any], strategy: Strategy,
                  leg: TradingLeg, execution: LegExecution) -> None:
        if not execution.trade_id:
            trade = self.repos.trades.insert_one({
                "user_id": user_strategy.get("user_id"),
                "strategy_id": strategy.id,
                "details": {"leg": leg.to_dict(), "deal_reference": execution.deal_reference},
                "profit_loss": execution.profit,
                "status": "executed",
            })
            execution.trade_id = trade.get("id") or execution.deal_reference

        if execution.profit < self.settings.royalty_min_profit:
            return
        if self.repos.royalty_payments.for_trade(execution.trade_id):
            logger.info(f"Royalty for trade {execution.trade_id} already paid")
            return
        execution.royalty = self.royalties.distribute_royalties(
            execution.trade_id,
            user_strategy_id,
            execution.profit,
        )

    def _record(self, result: SettlementResult, execution: LegExecution) -> None:
        self.repos.copy_trade_executions.upsert({
            "idempotency_key": execution.idempotency_key,
            "user_strategy_id": result.user_strategy_id,
            "run_id": result.run_id,
            "leg_index": execution.leg_index,
            "epic": execution.epic,
            "direction": execution.direction,
            "size": execution.size,
            "status": execution.status,
            "deal_reference": execution.deal_reference,
            "trade_id": execution.trade_id,
            "profit": execution.profit,
            "error": execution.error or None,
            "updated_at": utcnow_iso(),
        })

    def _abort(self, result: SettlementResult, execution: LegExecution) -> None:
        executed = [leg.to_dict() for leg in result.legs if leg.status in ("executed", "skipped")]
        logger.error(
            f"Settlement of {result.user_strategy_id} (run {result.run_id}) stopped at leg {execution.leg_index}: "
            f"{execution.error} ({len(executed)} legs executed)"
        )
        self.alerts.alert_partial_settlement(
            result.user_strategy_id, result.run_id, len(executed), execution.leg_index, execution.error
        )
        raise SettlementError(
            f"Copy-trade settlement failed at leg {execution.leg_index}: {execution.error}",
            result.user_strategy_id,
            run_id=result.run_id,
            executed=executed,
            failed=execution.to_dict(),
        )


def handle_tradingview_alert(broker: IGBrokerClient, alert: Dict[str, Any]) -> Dict[str, Any]:
    """Place a single order from a TradingView webhook alert."""
    order = TradeOrder(
        epic=alert["epic"],
        size=alert.get("size", 1),
        direction=alert["type"],
        order_type=alert.get("orderType", "MARKET"),
        level=alert.get("level"),
        expiry=alert.get("expiry") or "-",
    )
    try:
        result = broker.place_trade(order)
    except PlatformError as exc:
        logger.error(f"Error placing trade from TradingView alert for {alert.get('symbol')}: {exc}")
        raise
    logger.info(f"Trade placed from TradingView alert: {result.get('dealReference')}")
    return result
