import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from options_platform.config import Settings
from options_platform.errors import AuthenticationError, BrokerError

logger = logging.getLogger(__name__)

ACCEPT_JSON = "application/json; charset=UTF-8"


@dataclass
class IGSession:
    cst: str
    x_security_token: str


@dataclass
class TradeOrder:
    epic: str
    size: float
    direction: str  # "BUY" or "SELL"
    order_type: str = "MARKET"
    level: Optional[float] = None
    expiry: str = "-"
    force_open: bool = True
    guaranteed_stop: bool = False
    currency_code: str = "USD"
    deal_reference: Optional[str] = None


class IGBrokerClient:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.session: Optional[IGSession] = None

    def _base_headers(self, version: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "X-IG-API-KEY": self.settings.ig_api_key,
            "Content-Type": "application/json",
            "Accept": ACCEPT_JSON,
        }
        if version:
            headers["Version"] = version
        return headers

    def _headers(self, version: Optional[str] = None) -> Dict[str, str]:
        headers = self._base_headers(version)
        if self.session:
            headers["CST"] = self.session.cst
            headers["X-SECURITY-TOKEN"] = self.session.x_security_token
        return headers

    def authenticate(self) -> IGSession:
        if not self.settings.ig_api_key or not self.settings.ig_username:
            raise AuthenticationError("IG_API_KEY and IG_USERNAME must be set")

        response = requests.post(
            f"{self.settings.ig_api_base}/session",
            headers=self._base_headers(),
            json={"identifier": self.settings.ig_username, "password": self.settings.ig_password},
            timeout=20,
        )
        if not response.ok:
            logger.error("IG session failed: %s", response.text[:500])
            raise AuthenticationError(f"IG authentication failed ({response.status_code})")

        self.session = IGSession(
            cst=response.headers.get("CST", ""),
            x_security_token=response.headers.get("X-SECURITY-TOKEN", ""),
        )
        return self.session

    def _request(self, method: str, path: str, version: Optional[str] = None, **kwargs):
        if not self.session:
            self.authenticate()

        url = f"{self.settings.ig_api_base}{path}"
        response = requests.request(method, url, headers=self._headers(version), timeout=20, **kwargs)
        if response.status_code == 401:
            logger.warning("IG session expired, re-authenticating...")
            self.authenticate()
            response = requests.request(method, url, headers=self._headers(version), timeout=20, **kwargs)

        if not response.ok:
            logger.error("IG %s %s failed: %s", method, path, response.text[:500])
            raise BrokerError(f"IG request failed ({response.status_code})", body=response.text)
        return response

    # ========================
    # ORDERS
    # ========================

    def build_order_payload(self, order: TradeOrder) -> Dict[str, Any]:
        payload = {
            "epic": order.epic,
            "expiry": order.expiry,
            "direction": order.direction.upper(),
            "size": order.size,
            "orderType": order.order_type.upper(),
            "forceOpen": order.force_open,
            "guaranteedStop": order.guaranteed_stop,
            "currencyCode": order.currency_code or self.settings.ig_currency,
        }
        if order.level is not None:
            payload["level"] = order.level
        if order.deal_reference:
            payload["dealReference"] = order.deal_reference
        return payload

    def place_trade(self, order: TradeOrder) -> Dict[str, Any]:
        if not order.epic:
            raise BrokerError("Order is missing an epic", status_code=400)

        payload = self.build_order_payload(order)
        if self.settings.ig_dry_run:
            logger.info("DRY RUN: would place order %s", json.dumps(payload))
            reference = order.deal_reference or f"DRYRUN-{uuid.uuid4().hex[:12]}"
            return {"dry_run": True, "dealReference": reference, "payload": payload}

        response = self._request("POST", "/positions/otc", version="2", json=payload)
        return {"dry_run": False, "dealReference": response.json().get("dealReference")}

    def confirm_deal(self, deal_reference: str) -> Dict[str, Any]:
        """Deal confirmation: status, fill level and realized profit where the broker reports one."""
        if self.settings.ig_dry_run:
            return {"dealReference": deal_reference, "dealStatus": "ACCEPTED", "profit": 0.0}
        return self._request("GET", f"/confirms/{deal_reference}").json()

    # ========================
    # MARKETS
    # ========================

    def fetch_market_details(self, epic: str) -> Dict[str, Any]:
        return self._request("GET", f"/markets/{epic}", version="3").json()

    def fetch_prices(self, epic: str, resolution: str, start: str, end: str) -> Dict[str, Any]:
        return self._request("GET", f"/prices/{epic}/{resolution}/{start}/{end}", version="3").json()

    def fetch_options_chain(self, underlying: str, expiration: str) -> List[Dict[str, Any]]:
        response = self._request(
            "GET",
            "/markets",
            params={"filter": f"underlying:{underlying},expiry:{expiration},type:OPTIONS"},
        )
        contracts = []
        for market in response.json().get("markets", []):
            contracts.append({
                "epic": market.get("epic"),
                "strike": float(market.get("strikePrice") or 0),
                "type": "Call" if market.get("instrumentType") == "CALL_OPTIONS" else "Put",
                "ask": float(market.get("offer") or 0),
                "bid": float(market.get("bid") or 0),
                "expiration": market.get("expiry"),
                "underlying": market.get("underlying"),
            })
        return contracts
