from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import Field, ConfigDict

from vouchervault.models.base import MongoModel, _utcnow


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"


class AppNotification(MongoModel):
    """In-app notification shown in the client's notification center."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True, use_enum_values=True)

    user_id: str
    title: str
    body: str
    type: NotificationType = NotificationType.INFO
    read: bool = False
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: Dict[str, Any] = {}


class Reminder(MongoModel):
    """Expiry reminder for a voucher, due at fire_at and sent to its owner."""
    voucher_id: str
    owner_id: str
    title: str
    days_before: int
    fire_at: datetime
    sent: bool = False
    sent_at: Optional[datetime] = None
