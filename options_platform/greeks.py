import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from scipy.stats import norm

logger = logging.getLogger(__name__)

RISK_FREE_RATE = 0.05


def _as_date(value: Union[date, datetime, str]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()


def calculate_option_delta(
    price: float,
    strike: float,
    implied_volatility: float,
    expiration: Union[date, str],
    option_type: str,
    as_of: Union[date, str, None] = None,
    risk_free_rate: float = RISK_FREE_RATE,
) -> Optional[float]:
    """Black-Scholes delta. None for expired contracts or unusable inputs."""
    try:
        today = _as_date(as_of) if as_of else date.today()
        T = (_as_date(expiration) - today).days / 365.0
        S, K, sigma = float(price), float(strike), float(implied_volatility)

        if T <= 0 or sigma <= 0 or S <= 0 or K <= 0:
            return None

        d1 = (math.log(S / K) + (risk_free_rate + 0.5 * sigma ** 2) * T) / (sigma * math.sqrt(T))
        if option_type.lower() == "call":
            delta = norm.cdf(d1)
        else:  # put
            delta = norm.cdf(d1) - 1
        return round(float(delta), 4)
    except (TypeError, ValueError) as e:
        logger.warning(f"Delta calculation failed for strike {strike}: {e}")
        return None


def enrich_chain_with_delta(contracts: List[Dict[str, Any]], underlying_price: float,
                            as_of: Union[date, str, None] = None) -> List[Dict[str, Any]]:
    """Fill in delta on chain rows that carry an implied volatility but no delta."""
    enriched = []
    for contract in contracts:
        row = dict(contract)
        if row.get("delta") is None and row.get("iv"):
            row["delta"] = calculate_option_delta(
                underlying_price,
                row.get("strike"),
                row.get("iv"),
                row.get("expiration") or row.get("expiry"),
                row.get("type", "call"),
                as_of=as_of,
            )
        enriched.append(row)
    return enriched
