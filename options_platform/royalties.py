"""
Royalty distribution for copied strategies.

When a copied trade closes with a qualifying profit the strategy creator
receives a royalty and the platform keeps a fee, both as percentages of
the realized profit stored on the user_strategies row.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP

from options_platform.config import Settings
from options_platform.errors import ValidationError
from options_platform.models import RoyaltySplit
from options_platform.notifications import NotificationService
from options_platform.repository import Repositories, utcnow_iso

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def _percent_of(amount: float, percentage) -> float:
    value = Decimal(str(amount)) * Decimal(str(percentage or 0)) / Decimal(100)
    return float(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def calculate_split(profit_amount: float, royalty_percentage, platform_fee_percentage):
    """Returns (creator_royalty, platform_fee) rounded to cents."""
    return (
        _percent_of(profit_amount, royalty_percentage),
        _percent_of(profit_amount, platform_fee_percentage),
    )


class RoyaltyService:
    def __init__(self, repos: Repositories, settings: Settings, notifications: NotificationService = None):
        self.repos = repos
        self.settings = settings
        self.notifications = notifications or NotificationService(repos)

    def distribute_royalties(self, trade_id: str, user_strategy_id: str, profit_amount) -> RoyaltySplit:
        try:
            profit = float(profit_amount)
        except (TypeError, ValueError):
            raise ValidationError("profit_amount must be a number")
        if profit < self.settings.royalty_min_profit:
            raise ValidationError(f"Profit must be ${self.settings.royalty_min_profit:g} or more")

        user_strategy = self.repos.user_strategies.fetch_one(
            user_strategy_id,
            columns="royalty_percentage, platform_fee_percentage, strategy_id, copied_from",
        )
        strategy_id = user_strategy.get("copied_from") or user_strategy.get("strategy_id")
        strategy = self.repos.strategies.fetch_one(strategy_id, columns="creator_id")

        creator_royalty, platform_fee = calculate_split(
            profit,
            user_strategy.get("royalty_percentage"),
            user_strategy.get("platform_fee_percentage"),
        )

        split = RoyaltySplit(
            trade_id=trade_id,
            user_strategy_id=user_strategy_id,
            strategy_id=strategy_id,
            creator_id=strategy["creator_id"],
            profit_amount=profit,
            creator_royalty_amount=creator_royalty,
            platform_fee_amount=platform_fee,
        )

        self.repos.royalty_payments.insert({
            "user_strategy_id": user_strategy_id,
            "trade_id": trade_id,
            "strategy_id": strategy_id,
            "creator_id": split.creator_id,
            "profit_amount": profit,
            "creator_royalty_amount": creator_royalty,
            "platform_fee_amount": platform_fee,
            "created_at": utcnow_iso(),
        })
        logger.info(
            f"Royalty for trade {trade_id}: creator ${creator_royalty:.2f}, platform ${platform_fee:.2f}"
        )

        self.notifications.notify_user(
            split.creator_id,
            f"Received royalty payment of ${creator_royalty:.2f} for trade {trade_id}.",
            "royalty_payment",
        )
        return split
