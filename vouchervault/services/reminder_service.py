import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Sequence

from motor.motor_asyncio import AsyncIOMotorDatabase

from vouchervault.models.base import parse_object_id
from vouchervault.models.notification import NotificationType, Reminder
from vouchervault.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_DAYS = (30, 14, 7, 1)


class ReminderService:
    """
    Expiry reminders, one document per (voucher, days_before).

    Scheduling always cancels first, so repeated calls never leave
    duplicates behind.
    """

    def __init__(self, db: AsyncIOMotorDatabase, days_before: Sequence[int] = DEFAULT_REMINDER_DAYS):
        self.collection = db["reminders"]
        self.days_before = tuple(days_before)

    def reminder_dates(self, expiry_date: date, now: Optional[datetime] = None) -> List[tuple]:
        """(days_before, fire_at) pairs that are still in the future."""
        now = now or datetime.now(timezone.utc)
        expiry = datetime.combine(expiry_date, time(9, 0), tzinfo=timezone.utc)
        dates = []
        for days in self.days_before:
            fire_at = expiry - timedelta(days=days)
            if fire_at > now:
                dates.append((days, fire_at))
        return dates

    async def schedule_reminders(
        self,
        voucher_id: str,
        owner_id: str,
        title: str,
        expiry_date: Optional[date],
        now: Optional[datetime] = None
    ) -> List[Reminder]:
        await self.cancel_reminders(voucher_id)
        if expiry_date is None:
            return []

        reminders = [
            Reminder(
                voucher_id=voucher_id,
                owner_id=owner_id,
                title=title,
                days_before=days,
                fire_at=fire_at
            )
            for days, fire_at in self.reminder_dates(expiry_date, now)
        ]
        if reminders:
            await self.collection.insert_many([r.to_mongo() for r in reminders])
        logger.debug("Scheduled %d reminders for voucher %s", len(reminders), voucher_id)
        return reminders

    async def cancel_reminders(self, voucher_id: str) -> int:
        result = await self.collection.delete_many({"voucher_id": voucher_id, "sent": False})
        return result.deleted_count

    async def due_reminders(self, now: Optional[datetime] = None) -> List[Reminder]:
        now = now or datetime.now(timezone.utc)
        docs = await self.collection.find(
            {"sent": False, "fire_at": {"$lte": now}}
        ).sort("fire_at", 1).to_list(None)
        return [Reminder.from_mongo(doc) for doc in docs]

    async def mark_sent(self, reminder_ids: List[str]) -> int:
        oids = [oid for oid in map(parse_object_id, reminder_ids) if oid is not None]
        if not oids:
            return 0
        result = await self.collection.update_many(
            {"_id": {"$in": oids}},
            {"$set": {"sent": True, "sent_at": datetime.now(timezone.utc)}}
        )
        return result.modified_count

    async def deliver_due(self, notifications: NotificationService, now: Optional[datetime] = None) -> int:
        """Notify the owner of every due reminder, then mark it sent."""
        delivered = 0
        for reminder in await self.due_reminders(now):
            title, body = self.reminder_text(reminder)
            await notifications.notify(
                reminder.owner_id,
                title,
                body,
                metadata={
                    "type": "voucher_expiry",
                    "voucher_id": reminder.voucher_id,
                    "days_before": reminder.days_before,
                },
                kind=NotificationType.WARNING
            )
            delivered += await self.mark_sent([reminder.id])
        if delivered:
            logger.info("Delivered %d expiry reminders", delivered)
        return delivered

    @staticmethod
    def reminder_text(reminder: Reminder) -> tuple:
        """Title and body shown for a due reminder."""
        when = "tomorrow" if reminder.days_before == 1 else f"in {reminder.days_before} days"
        return f"Voucher expires {when}", f"{reminder.title} - don't forget to redeem it!"
