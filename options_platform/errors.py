"""Exceptions raised by the service layer.

Each error carries the HTTP status the functions layer answers with, so
services can raise without knowing about the web framework.
"""
from typing import Any, Dict, List, Optional


class PlatformError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(PlatformError):
    status_code = 500


class ValidationError(PlatformError):
    status_code = 400


class AuthenticationError(PlatformError):
    status_code = 401


class PermissionDenied(PlatformError):
    status_code = 403


class NotFoundError(PlatformError):
    status_code = 404


class BackendError(PlatformError):
    """A Supabase call failed."""
    status_code = 500


class BrokerError(PlatformError):
    status_code = 502

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message, status_code)
        self.body = body


class MarketDataError(PlatformError):
    status_code = 502


class SettlementError(PlatformError):
    """A copy-trade settlement stopped part way through its legs."""
    status_code = 500

    def __init__(
        self,
        message: str,
        user_strategy_id: str,
        run_id: Optional[str] = None,
        executed: Optional[List[Dict[str, Any]]] = None,
        failed: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.user_strategy_id = user_strategy_id
        self.run_id = run_id
        self.executed = executed or []
        self.failed = failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "user_strategy_id": self.user_strategy_id,
            "run_id": self.run_id,
            "executed_legs": self.executed,
            "failed_leg": self.failed,
        }
