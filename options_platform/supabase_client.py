from supabase import create_client

from options_platform.config import Settings
from options_platform.errors import ConfigurationError


def get_supabase_client(settings: Settings):
    key = settings.supabase_auth_key()
    if not settings.supabase_url or not key:
        raise ConfigurationError("SUPABASE_URL and SUPABASE_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
    return create_client(settings.supabase_url, key)
