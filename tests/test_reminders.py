"""Tests for expiry reminder scheduling."""
import asyncio
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from vouchervault.models.notification import NotificationType, Reminder
from vouchervault.services.reminder_service import ReminderService
from vouchervault.utils.background import PeriodicWorker


NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_reminder_dates_skip_the_past(mock_db):
    service = ReminderService(mock_db)

    dates = service.reminder_dates(date(2030, 1, 20), now=NOW)

    assert [days for days, _ in dates] == [14, 7, 1]
    assert dates[0][1] == datetime(2030, 1, 6, 9, 0, tzinfo=timezone.utc)


def test_reminder_text():
    reminder = Reminder(voucher_id="v1", owner_id="u1", title="Spa day", days_before=1, fire_at=NOW)
    title, body = ReminderService.reminder_text(reminder)
    assert title == "Voucher expires tomorrow"
    assert "Spa day" in body


@pytest.mark.asyncio
async def test_schedule_cancels_before_inserting(mock_db):
    service = ReminderService(mock_db)
    collection = mock_db["reminders"]

    reminders = await service.schedule_reminders("v1", "u1", "Spa day", date(2030, 3, 1), now=NOW)

    collection.delete_many.assert_awaited_once_with({"voucher_id": "v1", "sent": False})
    assert [r.days_before for r in reminders] == [30, 14, 7, 1]
    inserted = collection.insert_many.call_args[0][0]
    assert len(inserted) == 4
    assert all("_id" not in doc for doc in inserted)
    assert all(doc["owner_id"] == "u1" for doc in inserted)


@pytest.mark.asyncio
async def test_schedule_without_expiry_only_cancels(mock_db):
    service = ReminderService(mock_db)

    assert await service.schedule_reminders("v1", "u1", "Spa day", None, now=NOW) == []
    mock_db["reminders"].insert_many.assert_not_called()


@pytest.mark.asyncio
async def test_mark_sent_ignores_invalid_ids(mock_db):
    service = ReminderService(mock_db)

    assert await service.mark_sent(["not-an-id"]) == 0
    mock_db["reminders"].update_many.assert_not_called()

    valid = str(ObjectId())
    mock_db["reminders"].update_many.return_value.modified_count = 1
    assert await service.mark_sent([valid, "bad"]) == 1


@pytest.mark.asyncio
async def test_deliver_due_notifies_owner_and_marks_sent(mock_db):
    service = ReminderService(mock_db)
    collection = mock_db["reminders"]
    reminder_id = ObjectId()
    collection.find.return_value.to_list.return_value = [{
        "_id": reminder_id, "voucher_id": "v1", "owner_id": "u1", "title": "Spa day",
        "days_before": 7, "fire_at": NOW, "sent": False,
        "created_at": NOW, "updated_at": NOW,
    }]
    collection.update_many.return_value.modified_count = 1
    notifications = MagicMock()
    notifications.notify = AsyncMock()

    delivered = await service.deliver_due(notifications, now=NOW)

    assert delivered == 1
    collection.find.assert_called_once_with({"sent": False, "fire_at": {"$lte": NOW}})
    notifications.notify.assert_awaited_once_with(
        "u1",
        "Voucher expires in 7 days",
        "Spa day - don't forget to redeem it!",
        metadata={"type": "voucher_expiry", "voucher_id": "v1", "days_before": 7},
        kind=NotificationType.WARNING
    )
    query = collection.update_many.call_args[0][0]
    assert query == {"_id": {"$in": [reminder_id]}}


@pytest.mark.asyncio
async def test_deliver_due_with_nothing_due(mock_db):
    service = ReminderService(mock_db)
    notifications = MagicMock()
    notifications.notify = AsyncMock()

    assert await service.deliver_due(notifications, now=NOW) == 0
    notifications.notify.assert_not_called()
    mock_db["reminders"].update_many.assert_not_called()


@pytest.mark.asyncio
async def test_periodic_worker_runs_until_stopped():
    ran = asyncio.Event()
    calls = []

    async def job():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("store hiccup")
        ran.set()

    worker = PeriodicWorker("test", job, interval=0.01)
    worker.start()
    await asyncio.wait_for(ran.wait(), timeout=2)
    await worker.stop()

    assert len(calls) >= 2
    assert not worker.running
    count = len(calls)
    await asyncio.sleep(0.05)
    assert len(calls) == count
