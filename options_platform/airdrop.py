import logging
import math
from typing import Any, Dict, List

from options_platform.errors import PermissionDenied, PlatformError, ValidationError
from options_platform.notifications import NotificationService
from options_platform.repository import Repositories

logger = logging.getLogger(__name__)

ADMIN_ROLE = "super_admin"


class AirdropService:
    def __init__(self, repos: Repositories, notifications: NotificationService = None):
        self.repos = repos
        self.notifications = notifications or NotificationService(repos)

    def distribute_airdrop(self, admin_user_id: str, user_ids: List[str], reward_amount: Any) -> Dict[str, Any]:
        admin = self.repos.profiles.fetch(admin_user_id, columns="role, email")
        if not admin or admin.get("role") != ADMIN_ROLE:
            raise PermissionDenied("Forbidden - super_admin required")

        if (not isinstance(user_ids, list) or not user_ids
                or isinstance(reward_amount, bool)
                or not isinstance(reward_amount, (int, float))
                or not math.isfinite(reward_amount)):
            raise ValidationError("Invalid payload. Expect { user_ids: string[], reward_amount: number }")

        users = self.repos.profiles.list_by_ids(user_ids, columns="id, credits")
        updates = [
            {"id": user["id"], "credits": (user.get("credits") or 0) + reward_amount}
            for user in users
        ]
        if updates:
            self.repos.profiles.upsert(updates, on_conflict="id")

        # Credits are already granted; a failed notification only gets logged.
        if users:
            try:
                delivery = self.notifications.send_notifications(
                    notification_type="airdrop",
                    user_ids=[user["id"] for user in users],
                    message=f"You received {reward_amount:g} airdrop credits!",
                )
                if delivery.errors:
                    logger.error(f"Airdrop notifications failed: {delivery.errors}")
            except PlatformError as exc:
                logger.error(f"send-notifications error: {exc}")

        logger.info(f"Airdropped {reward_amount} credits to {len(updates)} users")
        return {"success": True, "updated": len(updates)}
