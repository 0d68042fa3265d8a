from typing import List
from fastapi import APIRouter, Depends, HTTPException, status

from vouchervault.api.deps import get_db
from vouchervault.core.auth import get_current_user
from vouchervault.models.user import UserResponse
from vouchervault.repositories.notification_repo import NotificationRepository
from vouchervault.schemas.notification import NotificationResponse

router = APIRouter()


@router.get("/", response_model=List[NotificationResponse])
async def list_notifications(
    current_user: UserResponse = Depends(get_current_user),
    db = Depends(get_db)
):
    notifications = await NotificationRepository(db).list_for_user(current_user.id)
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.post("/read-all")
async def mark_all_read(
    current_user: UserResponse = Depends(get_current_user),
    db = Depends(get_db)
):
    count = await NotificationRepository(db).mark_all_read(current_user.id)
    return {"updated": count}


@router.post("/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_read(
    notification_id: str,
    current_user: UserResponse = Depends(get_current_user),
    db = Depends(get_db)
):
    if not await NotificationRepository(db).mark_read(notification_id, current_user.id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found"
        )
