from typing import Any, Dict
from datetime import datetime
from pydantic import BaseModel, ConfigDict

from vouchervault.models.notification import NotificationType


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    body: str
    type: NotificationType
    read: bool
    timestamp: datetime
    metadata: Dict[str, Any] = {}
