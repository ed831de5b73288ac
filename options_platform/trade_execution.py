import logging
from typing import Any, Dict, Optional

from options_platform.errors import PermissionDenied, ValidationError
from options_platform.ig_broker import IGBrokerClient, TradeOrder
from options_platform.repository import Repositories, utcnow_iso

logger = logging.getLogger(__name__)

PREMIUM_ROLES = {"premium_member"}


def can_trade(profile: Dict[str, Any], has_broker: bool) -> bool:
    premium = profile.get("role") in PREMIUM_ROLES or bool(profile.get("is_premium"))
    return premium and has_broker


def order_from_details(trade_details: Dict[str, Any]) -> TradeOrder:
    epic = trade_details.get("epic")
    direction = (trade_details.get("direction") or trade_details.get("type") or "").upper()
    if not epic or direction not in {"BUY", "SELL"}:
        raise ValidationError("trade_details requires an epic and a BUY/SELL direction")
    return TradeOrder(
        epic=epic,
        size=trade_details.get("size", 1),
        direction=direction,
        order_type=trade_details.get("orderType", "MARKET"),
        level=trade_details.get("level"),
        expiry=trade_details.get("expiry") or "-",
    )


class TradeExecutionService:
    def __init__(self, repos: Repositories, broker: IGBrokerClient):
        self.repos = repos
        self.broker = broker

    def execute_trade(self, user_id: str, strategy_id: Optional[str], trade_details: Dict[str, Any]) -> Dict[str, Any]:
        profile = self.repos.profiles.fetch(user_id, columns="id, role, is_premium")
        connections = self.repos.broker_connections.active_for_user(user_id) if profile else []
        if not profile or not can_trade(profile, bool(connections)):
            raise PermissionDenied("Unauthorized or no broker connection")

        order = order_from_details(trade_details)
        result = self.broker.place_trade(order)

        trade = self.repos.trades.insert_one({
            "user_id": user_id,
            "strategy_id": strategy_id,
            "details": {**trade_details, "deal_reference": result.get("dealReference")},
            "status": "executed",
            "created_at": utcnow_iso(),
        })
        logger.info(f"Trade executed for user {user_id}: {result.get('dealReference')}")
        return trade
