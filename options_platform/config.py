import os


def _split_csv(value: str):
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def get_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def get_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return float(value)


class Settings:
    def __init__(self):
        # Supabase
        self.supabase_url = os.environ.get("SUPABASE_URL", "")
        self.supabase_key = os.environ.get("SUPABASE_KEY", "") or os.environ.get("SUPABASE_ANON_KEY", "")
        self.supabase_service_role_key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")

        # IG broker
        self.ig_api_base = os.environ.get("IG_API_BASE_URL", "https://api.ig.com/gateway/deal")
        self.ig_api_key = os.environ.get("IG_API_KEY", "")
        self.ig_username = os.environ.get("IG_USERNAME", "")
        self.ig_password = os.environ.get("IG_PASSWORD", "")
        self.ig_currency = os.environ.get("IG_CURRENCY", "USD")
        # Dry run is the default until a live account is wired up.
        self.ig_dry_run = get_bool("IG_DRY_RUN", True)
        # Encrypts user broker credentials at rest
        self.credentials_secret = os.environ.get("BROKER_CREDENTIALS_SECRET", "")

        # Market data
        self.polygon_api_key = os.environ.get("POLYGON_API_KEY", "")
        self.polygon_api_base = os.environ.get("POLYGON_API_BASE_URL", "https://api.polygon.io")

        # Copy trading economics, percentages of realized profit
        self.royalty_percentage = get_float("ROYALTY_PERCENTAGE", 10.0)
        self.platform_fee_percentage = get_float("PLATFORM_FEE_PERCENTAGE", 5.0)
        self.royalty_min_profit = get_float("ROYALTY_MIN_PROFIT", 1.0)

        # Operator alerts
        self.telegram_bot_token = os.environ.get("TELEGRAM_BOT_TOKEN", "")
        self.telegram_chat_id = os.environ.get("TELEGRAM_CHAT_ID", "")

        # HTTP functions
        self.cors_origins = _split_csv(os.environ.get("CORS_ORIGINS", "*"))
        self.api_host = os.environ.get("API_HOST", "0.0.0.0")
        self.api_port = int(os.environ.get("API_PORT", "8000"))
        self.log_file = os.environ.get("LOG_FILE", "logs/options_platform.log")

    def supabase_auth_key(self) -> str:
        return self.supabase_service_role_key or self.supabase_key

    def polygon_configured(self) -> bool:
        return bool(self.polygon_api_key)
