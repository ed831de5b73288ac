import base64
import hashlib
import logging
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet

from options_platform.config import Settings
from options_platform.errors import ConfigurationError, ValidationError
from options_platform.repository import Repositories, utcnow_iso

logger = logging.getLogger(__name__)

PUBLIC_COLUMNS = "id, username, account_id, is_active, last_connected_at, created_at"
REQUIRED_FIELDS = ("username", "password", "api_key", "account_id")


class CredentialCipher:
    def __init__(self, secret: str):
        if not secret:
            raise ConfigurationError("BROKER_CREDENTIALS_SECRET must be set to store broker credentials")
        key = hashlib.sha256(secret.encode()).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(key))

    def encrypt(self, value: str) -> str:
        return self._fernet.encrypt(value.strip().encode()).decode()

    def decrypt(self, token: str) -> str:
        return self._fernet.decrypt(token.encode()).decode()


class BrokerConnectionService:
    def __init__(self, repos: Repositories, settings: Settings):
        self.repos = repos
        self.settings = settings

    def save_ig_connection(self, user_id: str, credentials: Dict[str, Any]) -> Dict[str, Any]:
        missing = [name for name in REQUIRED_FIELDS if not credentials.get(name)]
        if missing:
            raise ValidationError("All credentials are required")

        cipher = CredentialCipher(self.settings.credentials_secret)
        logger.info(f"Saving IG broker connection for user {user_id}")
        rows = self.repos.ig_connections.upsert({
            "user_id": user_id,
            "username": credentials["username"],
            "account_id": credentials["account_id"],
            "api_key_encrypted": cipher.encrypt(credentials["api_key"]),
            "password_encrypted": cipher.encrypt(credentials["password"]),
            "is_active": True,
            "last_connected_at": utcnow_iso(),
        })
        return public_view(rows[0]) if rows else {"user_id": user_id, "is_active": True}

    def get_ig_connection(self, user_id: str) -> Optional[Dict[str, Any]]:
        row = self.repos.ig_connections.fetch(user_id, columns=PUBLIC_COLUMNS)
        return public_view(row) if row else None


def public_view(row: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in row.items() if not k.endswith("_encrypted")}
