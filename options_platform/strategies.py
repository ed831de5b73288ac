"""
Strategy lifecycle: drafting, review, publication and copying.

    draft ──submit──> pending_review ──review──> published | rejected | changes_requested
    changes_requested / rejected ──submit──> pending_review
    any ──archive──> archived
"""
import logging
from typing import Any, Dict, List, Optional

from options_platform.config import Settings
from options_platform.errors import PermissionDenied, ValidationError
from options_platform.models import Strategy, StrategyCondition, StrategyStatus, TradingLeg
from options_platform.notifications import NotificationService
from options_platform.notifier_telegram import TelegramNotifier
from options_platform.repository import Repositories, utcnow_iso
from options_platform.risk_metrics import calculate_risk_metrics, format_risk_metrics

logger = logging.getLogger(__name__)

SUBMITTABLE = {StrategyStatus.DRAFT, StrategyStatus.CHANGES_REQUESTED, StrategyStatus.REJECTED}
REVIEW_OUTCOMES = {StrategyStatus.PUBLISHED, StrategyStatus.REJECTED, StrategyStatus.CHANGES_REQUESTED}


def parse_status(value: Optional[str]) -> str:
    status = StrategyStatus.normalize(value)
    if status is None:
        raise ValidationError(f"Invalid strategy status: {value}")
    return status


def preview_strategy(strategy: Strategy) -> Dict[str, Any]:
    metrics = calculate_risk_metrics(strategy.legs)
    return {
        "title": strategy.title or "Untitled Strategy",
        "description": strategy.description or "No description provided",
        "category": strategy.category or "Uncategorized",
        "is_premium_only": strategy.is_premium_only,
        "fee_percentage": strategy.fee_percentage,
        "legs": [leg.to_dict() for leg in strategy.legs],
        "entry_conditions": [c.to_dict() for c in strategy.conditions if c.type == "entry"],
        "exit_conditions": [c.to_dict() for c in strategy.conditions if c.type == "exit"],
        "risk_metrics": format_risk_metrics(metrics),
    }


class StrategyService:
    def __init__(self, repos: Repositories, settings: Settings,
                 notifications: Optional[NotificationService] = None,
                 alerts: Optional[TelegramNotifier] = None):
        self.repos = repos
        self.settings = settings
        self.notifications = notifications or NotificationService(repos)
        self.alerts = alerts or TelegramNotifier(settings)

    # ========================
    # CREATE
    # ========================

    def create_strategy(
        self,
        creator_id: str,
        title: str,
        description: str,
        category: str,
        legs: Optional[List[Dict[str, Any]]] = None,
        conditions: Optional[List[Dict[str, Any]]] = None,
        fee_percentage: Any = 0,
        is_premium_only: bool = False,
    ) -> Dict[str, Any]:
        if not creator_id:
            raise ValidationError("Authentication required")
        if not (title or "").strip() or not (description or "").strip() or not category:
            raise ValidationError("Missing information: title, description and category are required")

        try:
            fee = float(fee_percentage or 0)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid fee percentage: {fee_percentage}")
        if not 0 <= fee <= 100:
            raise ValidationError("Fee percentage must be between 0 and 100")

        strategy = Strategy(
            title=title.strip(),
            creator_id=creator_id,
            description=description.strip(),
            category=category,
            legs=[TradingLeg.from_dict(leg) for leg in legs or []],
            conditions=[StrategyCondition.from_dict(c) for c in conditions or []],
            fee_percentage=fee,
            is_premium_only=bool(is_premium_only),
            status=StrategyStatus.DRAFT,
        )
        row = self.repos.strategies.insert_one(strategy.to_record())
        logger.info(f"Created draft strategy {row.get('id')} for creator {creator_id}")
        return row

    # ========================
    # TRANSITIONS
    # ========================

    def _set_status(self, strategy_id: str, status: str) -> Dict[str, Any]:
        row = self.repos.strategies.update(strategy_id, {"status": status, "updated_at": utcnow_iso()})
        return row or {"id": strategy_id, "status": status}

    def submit_for_review(self, strategy_id: str, user_id: str) -> Dict[str, Any]:
        strategy = self.repos.strategies.fetch_one(strategy_id)
        if strategy.get("creator_id") != user_id:
            raise PermissionDenied("Only the creator can submit a strategy for review")

        current = parse_status(strategy.get("status") or StrategyStatus.DRAFT)
        if current not in SUBMITTABLE:
            raise ValidationError(f"Cannot submit a strategy that is {current}")

        row = self._set_status(strategy_id, StrategyStatus.PENDING_REVIEW)
        self.alerts.alert_strategy_pending_review(strategy_id, strategy.get("title", ""))
        return row

    def review_strategy(self, strategy_id: str, status: str) -> Dict[str, Any]:
        """Admin decision on a pending strategy, followed by the creator notification."""
        outcome = parse_status(status)
        if outcome not in REVIEW_OUTCOMES:
            raise ValidationError(f"Review outcome must be one of {sorted(REVIEW_OUTCOMES)}")

        strategy = self.repos.strategies.fetch_one(strategy_id)
        current = parse_status(strategy.get("status") or StrategyStatus.DRAFT)
        if current != StrategyStatus.PENDING_REVIEW:
            raise ValidationError(f"Strategy {strategy_id} is {current}, not pending_review")

        row = self._set_status(strategy_id, outcome)
        self.publish_notification(strategy_id, outcome)
        return row

    def publish_notification(self, strategy_id: str, status: str) -> None:
        strategy = self.repos.strategies.fetch_one(strategy_id, columns="creator_id, title")
        self.notifications.notify_user(
            strategy["creator_id"],
            f'Your strategy "{strategy["title"]}" has been {status}.',
            "strategy_status",
        )

    def archive_strategy(self, strategy_id: str, user_id: str, is_admin: bool = False) -> Dict[str, Any]:
        strategy = self.repos.strategies.fetch_one(strategy_id)
        if not is_admin and strategy.get("creator_id") != user_id:
            raise PermissionDenied("Only the creator or an admin can archive a strategy")
        if strategy.get("status") == StrategyStatus.ARCHIVED:
            raise ValidationError(f"Strategy {strategy_id} is already archived")
        return self._set_status(strategy_id, StrategyStatus.ARCHIVED)

    def list_pending_strategies(self) -> List[Dict[str, Any]]:
        return self.repos.strategies.list_by_status(StrategyStatus.PENDING_REVIEW)

    # ========================
    # FOLLOW / COPY
    # ========================

    def _require_published(self, strategy_id: str) -> Dict[str, Any]:
        strategy = self.repos.strategies.fetch_one(strategy_id)
        if StrategyStatus.normalize(strategy.get("status")) != StrategyStatus.PUBLISHED:
            raise ValidationError(f"Strategy {strategy_id} is not published")
        return strategy

    def subscribe(self, user_id: str, strategy_id: str) -> Dict[str, Any]:
        self._require_published(strategy_id)
        return self.repos.subscriptions.insert_one({
            "user_id": user_id,
            "strategy_id": strategy_id,
            "purchased_at": utcnow_iso(),
        })

    def copy_strategy(self, user_id: str, strategy_id: str) -> Dict[str, Any]:
        strategy = self._require_published(strategy_id)
        if strategy.get("creator_id") == user_id:
            raise ValidationError("Creators cannot copy their own strategy")

        fee = strategy.get("fee_percentage")
        royalty = float(fee) if fee else self.settings.royalty_percentage
        row = self.repos.user_strategies.insert_one({
            "user_id": user_id,
            "strategy_id": strategy_id,
            "copied_from": strategy_id,
            "royalty_percentage": royalty,
            "platform_fee_percentage": self.settings.platform_fee_percentage,
            "created_at": utcnow_iso(),
        })
        logger.info(f"User {user_id} copied strategy {strategy_id}")
        return row
