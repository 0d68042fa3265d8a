"""
Best-effort notification channels: in-app notifications, Expo push and the
invite email. Nothing in here raises to the caller; failures are logged.
"""

import asyncio
import logging
from html import escape
from typing import Any, Dict, Optional

import requests
from motor.motor_asyncio import AsyncIOMotorDatabase

from vouchervault.core.config import Settings
from vouchervault.models.notification import AppNotification, NotificationType
from vouchervault.repositories.notification_repo import NotificationRepository
from vouchervault.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)

INVITE_EMAIL_HTML = """\
<!DOCTYPE html>
<html>
<body style="font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; background: #f9fafb; padding: 40px 20px;">
  <div style="max-width: 480px; margin: 0 auto; background: white; border-radius: 16px; padding: 40px;">
    <h1 style="color: #2563eb;">You have been invited!</h1>
    <p><strong>{inviter}</strong> invited you to join the group <strong>"{family}"</strong>.</p>
    <p>Together you can share and manage vouchers.</p>
    <p>Open the VoucherVault app and go to <strong>Settings</strong> to accept the invitation.</p>
    <a href="vouchervault://invite">Open app</a>
  </div>
</body>
</html>
"""


class NotificationService:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Settings):
        self.settings = settings
        self.notifications = NotificationRepository(db)
        self.users = UserRepository(db)

    async def notify(
        self,
        user_id: str,
        title: str,
        body: str,
        metadata: Optional[Dict[str, Any]] = None,
        kind: NotificationType = NotificationType.INFO
    ) -> None:
        """Store an in-app notification and push it to the user's device."""
        metadata = metadata or {}
        try:
            await self.notifications.save(AppNotification(
                user_id=user_id,
                title=title,
                body=body,
                type=kind,
                metadata=metadata
            ))
        except Exception:
            logger.error("Saving in-app notification for %s failed", user_id, exc_info=True)

        try:
            token = await self.users.get_push_token(user_id)
        except Exception:
            logger.error("Push token lookup for %s failed", user_id, exc_info=True)
            return
        if not token:
            logger.debug("No push token for user %s", user_id)
            return
        await self.send_push(token, title, body, metadata)

    async def send_push(self, push_token: str, title: str, body: str, data: Dict[str, Any]) -> bool:
        """Send one message through the Expo push API."""
        message = {
            "to": push_token,
            "sound": "default",
            "title": title,
            "body": body,
            "data": data,
        }
        try:
            response = await asyncio.to_thread(
                requests.post,
                self.settings.EXPO_PUSH_URL,
                json=message,
                headers={"Accept": "application/json"},
                timeout=self.settings.HTTP_TIMEOUT_SECONDS
            )
            response.raise_for_status()
        except requests.exceptions.RequestException:
            logger.error("Push notification failed", exc_info=True)
            return False
        return True

    async def send_invite_email(self, invitee_email: str, inviter_name: str, family_name: str) -> bool:
        """Send the invitation email through Resend."""
        if not self.settings.RESEND_API_KEY:
            logger.warning("RESEND_API_KEY not configured, skipping invite email to %s", invitee_email)
            return False

        payload = {
            "from": self.settings.INVITE_EMAIL_FROM,
            "to": [invitee_email],
            "subject": f'{inviter_name} invited you to "{family_name}"',
            "html": INVITE_EMAIL_HTML.format(inviter=escape(inviter_name), family=escape(family_name)),
        }
        try:
            response = await asyncio.to_thread(
                requests.post,
                self.settings.RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.settings.RESEND_API_KEY}"},
                timeout=self.settings.HTTP_TIMEOUT_SECONDS
            )
            response.raise_for_status()
        except requests.exceptions.RequestException:
            logger.error("Invite email to %s failed", invitee_email, exc_info=True)
            return False
        logger.info("Invite email sent to %s", invitee_email)
        return True
