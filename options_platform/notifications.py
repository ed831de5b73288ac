import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from options_platform.errors import ValidationError
from options_platform.repository import Repositories, utcnow_iso

logger = logging.getLogger(__name__)

TARGET_COLUMNS = "id, email, name"


@dataclass
class BatchDelivery:
    attempted: int = 0
    delivered: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.errors) and self.delivered > 0

    @property
    def status(self) -> str:
        if not self.errors:
            return "sent"
        return "partial_failure" if self.delivered else "failed"


def personalize(message: str, profile: Dict[str, Any]) -> str:
    return (
        message
        .replace("{user_name}", profile.get("name") or "User")
        .replace("{user_email}", profile.get("email") or "")
    )


class NotificationService:
    def __init__(self, repos: Repositories):
        self.repos = repos

    def notify_user(self, user_id: str, message: str, notification_type: str = "general") -> Dict[str, Any]:
        record = {
            "user_id": user_id,
            "message": message,
            "type": notification_type,
            "created_at": utcnow_iso(),
        }
        return self.repos.notifications.insert_one(record)

    def resolve_targets(self, user_ids: Optional[List[str]] = None,
                        filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        if user_ids:
            return self.repos.profiles.list_by_ids(user_ids, columns=TARGET_COLUMNS)
        if filters:
            eq_filters = {}
            if filters.get("role"):
                eq_filters["role"] = filters["role"]
            if filters.get("is_premium") or filters.get("isPremium"):
                eq_filters["is_premium"] = True
            return self.repos.profiles.list(filters=eq_filters, columns=TARGET_COLUMNS)
        return []

    def send_notifications(
        self,
        notification_type: Optional[str] = None,
        user_ids: Optional[List[str]] = None,
        filters: Optional[Dict[str, Any]] = None,
        message: str = "",
    ) -> BatchDelivery:
        """Create one in-app notification per targeted user."""
        if not user_ids and not filters:
            raise ValidationError("Either userIds or filters is required")

        targets = self.resolve_targets(user_ids, filters)
        logger.info(f"Sending notifications to {len(targets)} users")

        def insert_notification(profile: Dict[str, Any], text: str) -> None:
            self.notify_user(profile["id"], text, notification_type or "general")

        return self.deliver_batch(targets, message, insert_notification)

    def deliver_batch(
        self,
        profiles: List[Dict[str, Any]],
        message: str,
        deliver: Callable[[Dict[str, Any], str], None],
    ) -> BatchDelivery:
        """
        Push a message through an external transport, one recipient at a time.
        A failing recipient is recorded and the batch carries on.
        """
        result = BatchDelivery()
        for profile in profiles:
            result.attempted += 1
            try:
                deliver(profile, personalize(message, profile))
                result.delivered += 1
            except Exception as exc:
                logger.warning(f"Delivery failed for {profile.get('email')}: {exc}")
                result.errors.append(f"Delivery failed for {profile.get('email')}: {exc}")
        return result
