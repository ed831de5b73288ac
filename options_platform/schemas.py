from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    # The web client posts camelCase; snake_case is accepted too.
    model_config = ConfigDict(populate_by_name=True)


class LegPayload(CamelModel):
    strike: str = ""
    type: str = "Call"
    expiration: str = ""
    buy_sell: str = Field("Buy", alias="buySell")
    size: Optional[Any] = 1
    price: Optional[Any] = "0"
    underlying: str = ""
    epic: str = ""
    id: Optional[str] = None


class ConditionPayload(BaseModel):
    type: str = "entry"
    indicator: str = ""
    operator: str = ""
    value: str = ""
    timeframe: str = ""
    id: Optional[str] = None


class RiskMetricsRequest(BaseModel):
    legs: List[LegPayload] = Field(default_factory=list)


class StrategyCreateRequest(CamelModel):
    title: str
    description: str = ""
    category: str = ""
    legs: List[LegPayload] = Field(default_factory=list)
    conditions: List[ConditionPayload] = Field(default_factory=list)
    fee_percentage: Any = Field(0, alias="feePercentage")
    is_premium_only: bool = Field(False, alias="isPremiumOnly")


class StrategyPublishRequest(BaseModel):
    strategy_id: str
    status: str


class RoyaltyRequest(BaseModel):
    trade_id: str
    user_strategy_id: str
    profit_amount: float


class CopyTradeRequest(BaseModel):
    user_strategy_id: str
    run_id: Optional[str] = None


class TradeExecutionRequest(BaseModel):
    strategy_id: Optional[str] = None
    trade_details: Dict[str, Any]


class SendNotificationsRequest(CamelModel):
    notification_type: Optional[str] = Field(None, alias="notificationType")
    user_ids: Optional[List[str]] = Field(None, alias="userIds")
    filters: Optional[Dict[str, Any]] = None
    subject: Optional[str] = None
    message: str = ""


class AirdropRequest(BaseModel):
    user_ids: List[str]
    reward_amount: float


class PolygonDataRequest(CamelModel):
    symbols: Optional[List[str]] = None
    symbol: Optional[str] = None
    timeframe: Optional[Dict[str, Any]] = None
    start_date: str = Field("", alias="startDate")
    end_date: str = Field("", alias="endDate")


class IGPricesRequest(CamelModel):
    symbol: str
    resolution: str
    start: str = Field(alias="from")
    end: str = Field(alias="to")


class OptionsChainRequest(BaseModel):
    underlying: str
    expiration: str


class GreeksRequest(BaseModel):
    underlying_price: float
    contracts: List[Dict[str, Any]]
    as_of: Optional[str] = None


class IGCredentials(CamelModel):
    username: str = ""
    password: str = ""
    api_key: str = Field("", alias="apiKey")
    account_id: str = Field("", alias="accountId")


class TradingViewAlert(BaseModel):
    type: str = Field(pattern="^(BUY|SELL)$")
    symbol: str
    size: float = 1
    orderType: str = Field("MARKET", pattern="^(MARKET|LIMIT)$")
    level: Optional[float] = None
    expiry: str = "-"
    epic: str
