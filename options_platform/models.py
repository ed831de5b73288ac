from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class StrategyStatus:
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    PUBLISHED = "published"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"
    ARCHIVED = "archived"

    ALL = (DRAFT, PENDING_REVIEW, PUBLISHED, REJECTED, CHANGES_REQUESTED, ARCHIVED)
    ALIASES = {"approved": PUBLISHED}

    @classmethod
    def normalize(cls, value: Optional[str]) -> Optional[str]:
        """Map a raw status onto the enumeration, or None when it is not one of ours."""
        if not value:
            return None
        status = value.strip().lower()
        status = cls.ALIASES.get(status, status)
        return status if status in cls.ALL else None


@dataclass
class TradingLeg:
    strike: str
    type: str  # "Call" or "Put"
    expiration: str  # days to expiry
    buy_sell: str  # "Buy" or "Sell"
    size: int = 1
    price: str = "0"
    underlying: str = ""
    epic: str = ""  # broker market identifier
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradingLeg":
        return cls(
            strike=str(data.get("strike", "")),
            type=data.get("type", "Call"),
            expiration=str(data.get("expiration", "")),
            buy_sell=data.get("buySell") or data.get("buy_sell") or "Buy",
            size=data.get("size") or 1,
            price=str(data.get("price", "0")),
            underlying=data.get("underlying", ""),
            epic=data.get("epic", ""),
            id=data.get("id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        # strategy_config is shared with the web client, which uses buySell
        data = {
            "strike": self.strike,
            "type": self.type,
            "expiration": self.expiration,
            "buySell": self.buy_sell,
            "size": self.size,
            "price": self.price,
            "underlying": self.underlying,
            "epic": self.epic,
        }
        if self.id:
            data["id"] = self.id
        return data


@dataclass
class StrategyCondition:
    type: str  # "entry" or "exit"
    indicator: str
    operator: str
    value: str
    timeframe: str
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StrategyCondition":
        return cls(
            type=data.get("type", "entry"),
            indicator=data.get("indicator", ""),
            operator=data.get("operator", ""),
            value=str(data.get("value", "")),
            timeframe=data.get("timeframe", ""),
            id=data.get("id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class Strategy:
    title: str
    creator_id: str
    description: str = ""
    category: str = ""
    legs: List[TradingLeg] = field(default_factory=list)
    conditions: List[StrategyCondition] = field(default_factory=list)
    fee_percentage: float = 0.0
    is_premium_only: bool = False
    status: str = StrategyStatus.DRAFT
    id: Optional[str] = None

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "Strategy":
        config = row.get("strategy_config") or {}
        return cls(
            id=row.get("id"),
            title=row.get("title", ""),
            creator_id=row.get("creator_id", ""),
            description=row.get("description") or "",
            category=row.get("category") or "",
            legs=[TradingLeg.from_dict(leg) for leg in config.get("legs", [])],
            conditions=[StrategyCondition.from_dict(c) for c in config.get("conditions", [])],
            fee_percentage=float(row.get("fee_percentage") or 0),
            is_premium_only=bool(row.get("is_premium_only")),
            status=row.get("status") or StrategyStatus.DRAFT,
        )

    def to_record(self) -> Dict[str, Any]:
        record = {
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "creator_id": self.creator_id,
            "fee_percentage": self.fee_percentage,
            "is_premium_only": self.is_premium_only,
            "status": self.status,
            "strategy_config": {
                "legs": [leg.to_dict() for leg in self.legs],
                "conditions": [c.to_dict() for c in self.conditions],
            },
        }
        if self.id:
            record["id"] = self.id
        return record


@dataclass
class RiskMetrics:
    max_profit: float
    max_loss: float
    risk_reward_ratio: Optional[float]
    net_credit: float = 0.0
    total_credit: float = 0.0
    total_debit: float = 0.0


@dataclass
class RoyaltySplit:
    trade_id: str
    user_strategy_id: str
    strategy_id: str
    creator_id: str
    profit_amount: float
    creator_royalty_amount: float
    platform_fee_amount: float


@dataclass
class LegExecution:
    leg_index: int
    epic: str
    direction: str
    size: int
    idempotency_key: str
    status: str = "pending"  # pending, placed, booking_failed, executed, skipped, failed
    deal_reference: Optional[str] = None
    trade_id: Optional[str] = None
    profit: float = 0.0
    royalty: Optional[RoyaltySplit] = None
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SettlementResult:
    user_strategy_id: str
    strategy_id: str
    run_id: str
    legs: List[LegExecution] = field(default_factory=list)
    conditions_met: bool = True
    settled_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def royalties(self) -> List[RoyaltySplit]:
        return [leg.royalty for leg in self.legs if leg.royalty]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_strategy_id": self.user_strategy_id,
            "strategy_id": self.strategy_id,
            "run_id": self.run_id,
            "conditions_met": self.conditions_met,
            "settled_at": self.settled_at,
            "legs": [leg.to_dict() for leg in self.legs],
        }
