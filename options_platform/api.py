"""
HTTP functions for the options platform.

Each route mirrors one serverless function: JSON body in, JSON body out,
`{"error": "..."}` with a coarse status code on failure.

Run with:
    python -m options_platform.api
"""
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from options_platform.airdrop import AirdropService
from options_platform.broker_connections import BrokerConnectionService
from options_platform.config import Settings
from options_platform.copy_trading import CopyTradingEngine, handle_tradingview_alert
from options_platform.errors import AuthenticationError, PermissionDenied, PlatformError, SettlementError
from options_platform.greeks import enrich_chain_with_delta
from options_platform.ig_broker import IGBrokerClient
from options_platform.market_data import PolygonClient
from options_platform.models import Strategy, TradingLeg
from options_platform.notifications import NotificationService
from options_platform.notifier_telegram import TelegramNotifier
from options_platform.repository import Repositories
from options_platform.risk_metrics import calculate_risk_metrics, format_risk_metrics
from options_platform.royalties import RoyaltyService
from options_platform.schemas import (
    AirdropRequest,
    CopyTradeRequest,
    GreeksRequest,
    IGCredentials,
    IGPricesRequest,
    OptionsChainRequest,
    PolygonDataRequest,
    RiskMetricsRequest,
    RoyaltyRequest,
    SendNotificationsRequest,
    StrategyCreateRequest,
    StrategyPublishRequest,
    TradeExecutionRequest,
    TradingViewAlert,
)
from options_platform.strategies import StrategyService, preview_strategy
from options_platform.supabase_client import get_supabase_client
from options_platform.trade_execution import TradeExecutionService
from options_platform.validation import validate_and_sanitize_email_content, validate_recipients

logger = logging.getLogger(__name__)

ADMIN_ROLES = {"admin", "super_admin"}
CORS_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


class Services:
    """Everything the routes need, wired once per application."""

    def __init__(self, settings: Settings, supabase, broker: Optional[IGBrokerClient] = None):
        self.settings = settings
        self.supabase = supabase
        self.repos = Repositories(supabase)
        self.alerts = TelegramNotifier(settings)
        self.broker = broker or IGBrokerClient(settings)
        self.notifications = NotificationService(self.repos)
        self.royalties = RoyaltyService(self.repos, settings, self.notifications)
        self.strategies = StrategyService(self.repos, settings, self.notifications, self.alerts)
        self.copy_trading = CopyTradingEngine(self.repos, settings, self.broker, self.royalties, self.alerts)
        self.trade_execution = TradeExecutionService(self.repos, self.broker)
        self.broker_connections = BrokerConnectionService(self.repos, settings)
        self.airdrop = AirdropService(self.repos, self.notifications)
        self.market_data = PolygonClient(settings)


def get_services(request: Request) -> Services:
    return request.app.state.services


def current_user_id(
    authorization: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> str:
    if not authorization:
        raise AuthenticationError("Unauthorized - missing Authorization header")
    token = authorization.replace("Bearer ", "", 1).strip()
    try:
        response = services.supabase.auth.get_user(token)
    except Exception as exc:
        logger.warning(f"Token verification failed: {exc}")
        raise AuthenticationError("Unauthorized - invalid token") from exc
    user = getattr(response, "user", None)
    if not user:
        raise AuthenticationError("Unauthorized - invalid token")
    return user.id


def admin_user_id(
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> str:
    profile = services.repos.profiles.fetch(user_id, columns="role")
    if not profile or profile.get("role") not in ADMIN_ROLES:
        raise PermissionDenied("Admin access required")
    return user_id


def create_app(settings: Optional[Settings] = None, supabase=None,
               broker: Optional[IGBrokerClient] = None) -> FastAPI:
    settings = settings or Settings()
    if supabase is None:
        supabase = get_supabase_client(settings)

    app = FastAPI(
        title="Options Platform Functions",
        description="Strategy risk, copy trading, royalties and notifications",
    )
    app.state.services = Services(settings, supabase, broker)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_HEADERS,
        max_age=86400,
    )

    # ─── Error envelopes ──────────────────────────────────────────────────────

    @app.exception_handler(SettlementError)
    async def settlement_error(request: Request, exc: SettlementError):
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(PlatformError)
    async def platform_error(request: Request, exc: PlatformError):
        if exc.status_code >= 500:
            logger.error(f"{request.url.path} failed: {exc.message}")
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        location = ".".join(str(part) for part in errors[0].get("loc", ())) if errors else ""
        return JSONResponse({"error": f"{location}: {message}" if location else message}, status_code=400)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception(f"Unexpected error in {request.url.path}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    # ─── Health ───────────────────────────────────────────────────────────────

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    # ─── Strategies ───────────────────────────────────────────────────────────

    @app.post("/risk-metrics")
    def risk_metrics(body: RiskMetricsRequest):
        legs = [TradingLeg.from_dict(leg.model_dump(by_alias=True)) for leg in body.legs]
        metrics = calculate_risk_metrics(legs)
        return {
            "maxProfit": metrics.max_profit,
            "maxLoss": metrics.max_loss,
            "riskRewardRatio": metrics.risk_reward_ratio,
            "netCredit": metrics.net_credit,
            "display": format_risk_metrics(metrics),
        }

    @app.post("/strategies")
    def create_strategy(body: StrategyCreateRequest,
                        user_id: str = Depends(current_user_id),
                        services: Services = Depends(get_services)):
        row = services.strategies.create_strategy(
            creator_id=user_id,
            title=body.title,
            description=body.description,
            category=body.category,
            legs=[leg.model_dump(by_alias=True) for leg in body.legs],
            conditions=[c.model_dump() for c in body.conditions],
            fee_percentage=body.fee_percentage,
            is_premium_only=body.is_premium_only,
        )
        return {"success": True, "data": row}

    @app.get("/strategies/pending")
    def pending_strategies(_: str = Depends(admin_user_id), services: Services = Depends(get_services)):
        return {"success": True, "data": services.strategies.list_pending_strategies()}

    @app.get("/strategies/{strategy_id}/preview")
    def strategy_preview(strategy_id: str, services: Services = Depends(get_services)):
        strategy = Strategy.from_record(services.repos.strategies.fetch_one(strategy_id))
        return {"success": True, "data": preview_strategy(strategy)}

    @app.post("/strategies/{strategy_id}/submit")
    def submit_strategy(strategy_id: str, user_id: str = Depends(current_user_id),
                        services: Services = Depends(get_services)):
        return {"success": True, "data": services.strategies.submit_for_review(strategy_id, user_id)}

    @app.post("/strategies/{strategy_id}/archive")
    def archive_strategy(strategy_id: str, user_id: str = Depends(current_user_id),
                         services: Services = Depends(get_services)):
        profile = services.repos.profiles.fetch(user_id, columns="role") or {}
        row = services.strategies.archive_strategy(
            strategy_id, user_id, is_admin=profile.get("role") in ADMIN_ROLES
        )
        return {"success": True, "data": row}

    @app.post("/strategies/{strategy_id}/subscribe")
    def subscribe(strategy_id: str, user_id: str = Depends(current_user_id),
                  services: Services = Depends(get_services)):
        return {"success": True, "data": services.strategies.subscribe(user_id, strategy_id)}

    @app.post("/strategies/{strategy_id}/copy")
    def copy_strategy(strategy_id: str, user_id: str = Depends(current_user_id),
                      services: Services = Depends(get_services)):
        return {"success": True, "data": services.strategies.copy_strategy(user_id, strategy_id)}

    @app.post("/strategy-publish")
    def strategy_publish(body: StrategyPublishRequest, _: str = Depends(admin_user_id),
                         services: Services = Depends(get_services)):
        services.strategies.review_strategy(body.strategy_id, body.status)
        return {"success": True}

    # ─── Copy trading & royalties ─────────────────────────────────────────────

    @app.post("/distribute-royalties")
    def distribute_royalties(body: RoyaltyRequest, _: str = Depends(admin_user_id),
                             services: Services = Depends(get_services)):
        split = services.royalties.distribute_royalties(body.trade_id, body.user_strategy_id, body.profit_amount)
        return {
            "success": True,
            "creatorRoyaltyAmount": split.creator_royalty_amount,
            "platformFeeAmount": split.platform_fee_amount,
        }

    @app.post("/copy-trade")
    def copy_trade(body: CopyTradeRequest, user_id: str = Depends(current_user_id),
                   services: Services = Depends(get_services)):
        result = services.copy_trading.settle(body.user_strategy_id, run_id=body.run_id, user_id=user_id)
        return {"success": True, "data": result.to_dict()}

    @app.post("/trade-execution")
    def trade_execution(body: TradeExecutionRequest, user_id: str = Depends(current_user_id),
                        services: Services = Depends(get_services)):
        trade = services.trade_execution.execute_trade(user_id, body.strategy_id, body.trade_details)
        return {"success": True, "data": trade}

    @app.post("/tradingview-alert")
    def tradingview_alert(body: TradingViewAlert, _: str = Depends(admin_user_id),
                          services: Services = Depends(get_services)):
        return {"success": True, "data": handle_tradingview_alert(services.broker, body.model_dump())}

    # ─── Notifications & rewards ──────────────────────────────────────────────

    @app.post("/send-notifications")
    def send_notifications(body: SendNotificationsRequest, _: str = Depends(admin_user_id),
                           services: Services = Depends(get_services)):
        user_ids = validate_recipients(body.user_ids) if body.user_ids else None
        message = body.message
        if body.subject is not None:
            message = validate_and_sanitize_email_content(body.subject, body.message)["message"]
        delivery = services.notifications.send_notifications(
            notification_type=body.notification_type,
            user_ids=user_ids,
            filters=body.filters,
            message=message,
        )
        payload = {
            "success": not delivery.errors,
            "message": f"Notifications sent to {delivery.delivered} users",
        }
        if delivery.errors:
            payload["errors"] = delivery.errors
        return JSONResponse(payload, status_code=207 if delivery.partial else (200 if not delivery.errors else 500))

    @app.post("/airdrop-distribute")
    def airdrop_distribute(body: AirdropRequest, user_id: str = Depends(current_user_id),
                           services: Services = Depends(get_services)):
        return services.airdrop.distribute_airdrop(user_id, body.user_ids, body.reward_amount)

    # ─── Market data & broker ─────────────────────────────────────────────────

    @app.post("/fetch-polygon-data")
    def fetch_polygon_data(body: PolygonDataRequest, services: Services = Depends(get_services)):
        results = services.market_data.fetch(
            symbols=body.symbols,
            symbol=body.symbol,
            timeframe=body.timeframe,
            start_date=body.start_date,
            end_date=body.end_date,
        )
        return {"status": "OK", "results": results}

    @app.post("/ig-data")
    def ig_data(body: IGPricesRequest, services: Services = Depends(get_services)):
        return services.broker.fetch_prices(body.symbol, body.resolution, body.start, body.end)

    @app.post("/options-chain")
    def options_chain(body: OptionsChainRequest, services: Services = Depends(get_services)):
        return {"contracts": services.broker.fetch_options_chain(body.underlying, body.expiration)}

    @app.post("/option-greeks")
    def option_greeks(body: GreeksRequest):
        return {"contracts": enrich_chain_with_delta(body.contracts, body.underlying_price, as_of=body.as_of)}

    @app.get("/ig-broker-connect")
    def get_ig_connection(user_id: str = Depends(current_user_id),
                          services: Services = Depends(get_services)):
        return {"connection": services.broker_connections.get_ig_connection(user_id)}

    @app.post("/ig-broker-connect")
    def save_ig_connection(body: IGCredentials, user_id: str = Depends(current_user_id),
                           services: Services = Depends(get_services)):
        connection = services.broker_connections.save_ig_connection(user_id, body.model_dump())
        return {
            "success": True,
            "message": "IG Broker connection established successfully",
            "connection": connection,
        }

    return app


def configure_logging(settings: Settings) -> None:
    log_dir = os.path.dirname(settings.log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(settings.log_file),
            logging.StreamHandler(),
        ]
    )


def main():
    import uvicorn

    load_dotenv()
    settings = Settings()
    configure_logging(settings)
    logger.info(f"Starting options platform functions on {settings.api_host}:{settings.api_port}")
    uvicorn.run(create_app(settings), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
