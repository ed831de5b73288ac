"""
Risk metrics for a multi-leg options strategy.

Premiums are quoted per share and a contract covers 100 shares. The
calculation is a net credit/debit reduction over the legs:

    max_profit = net credit when positive, |net debit| otherwise
    max_loss   = mirror image of max_profit (|net credit|, or the negative debit)

max_loss is not the independently bounded worst case of a spread
(width * 100 - credit). It stays mirrored until product confirms the
intended semantics.
"""
import math
import re
from typing import Any, Dict, Iterable, Optional, Union

from options_platform.models import RiskMetrics, TradingLeg

CONTRACT_MULTIPLIER = 100

_NUMERIC_PREFIX = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")

LegInput = Union[TradingLeg, Dict[str, Any]]


def parse_number(value: Any) -> float:
    """Lenient parse of free-text numeric input; anything unusable is 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _NUMERIC_PREFIX.match(str(value))
        if not match:
            return 0.0
        number = float(match.group(0))
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _leg_fields(leg: LegInput):
    if isinstance(leg, TradingLeg):
        return leg.buy_sell, leg.price, leg.size
    return (
        leg.get("buySell") or leg.get("buy_sell"),
        leg.get("price"),
        leg.get("size"),
    )


def leg_notional(leg: LegInput) -> float:
    _, price, size = _leg_fields(leg)
    contracts = parse_number(size)
    if contracts <= 0:
        contracts = 1
    return parse_number(price) * contracts * CONTRACT_MULTIPLIER


def calculate_risk_metrics(legs: Optional[Iterable[LegInput]]) -> RiskMetrics:
    total_credit = 0.0
    total_debit = 0.0

    for leg in legs or []:
        side, _, _ = _leg_fields(leg)
        notional = leg_notional(leg)
        if side == "Sell":
            total_credit += notional
        else:
            total_debit += notional

    net_credit = total_credit - total_debit
    max_profit = net_credit if net_credit > 0 else abs(net_credit)
    max_loss = abs(net_credit) if net_credit > 0 else net_credit
    ratio = max_profit / abs(max_loss) if max_loss != 0 else None

    return RiskMetrics(
        max_profit=max_profit,
        max_loss=max_loss,
        risk_reward_ratio=ratio,
        net_credit=net_credit,
        total_credit=total_credit,
        total_debit=total_debit,
    )


def format_risk_metrics(metrics: RiskMetrics) -> Dict[str, str]:
    """Display strings: whole dollars for profit/loss, two decimals for the ratio."""
    ratio = metrics.risk_reward_ratio
    return {
        "max_profit": f"${abs(metrics.max_profit):.0f}",
        "max_loss": f"${abs(metrics.max_loss):.0f}",
        "risk_reward_ratio": f"{ratio:.2f}" if ratio is not None else "N/A",
    }
