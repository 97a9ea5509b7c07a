from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from recall.models import Pattern, User
from recall.routes.deps import current_user, reminder_service
from recall.schemas import ReminderCreate, ReminderUpdate
from recall.services.notifier import NotificationPayload
from recall.services.reminders import ReminderService

router = APIRouter(prefix="/reminders", tags=["reminders"])


def _pattern(data: dict | None) -> Pattern | None:
    return Pattern.from_dict(data) if data else None


@router.get("")
async def list_reminders(
    user: User = Depends(current_user), service: ReminderService = Depends(reminder_service)
):
    reminders = service.reminders.list_for_user(user.id)
    return {"reminders": [asdict(r) for r in reminders]}


@router.post("", status_code=201)
async def create_reminder(
    payload: ReminderCreate,
    user: User = Depends(current_user),
    service: ReminderService = Depends(reminder_service),
):
    fields = payload.model_dump()
    fields["pattern"] = _pattern(fields["pattern"])
    try:
        reminder = service.create(user.id, **fields)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"message": "Reminder created successfully", "reminder": asdict(reminder)}


# Declared before /{reminder_id} so the literal paths win
@router.get("/status")
async def reminder_status(
    user: User = Depends(current_user), service: ReminderService = Depends(reminder_service)
):
    return {"message": "Reminder service status", **service.status(user)}


@router.post("/test-notification")
async def test_notification(
    user: User = Depends(current_user), service: ReminderService = Depends(reminder_service)
):
    if not user.push_subscription:
        raise HTTPException(status_code=400, detail="No push subscription found")
    sent = await service.trigger.notifier.send(
        user.push_subscription,
        NotificationPayload(
            title="Recall Test",
            body="This is a test notification from Recall",
            tag="test",
            data={"url": "/reminders"},
        ),
    )
    if not sent:
        raise HTTPException(status_code=502, detail="Failed to send notification")
    return {"message": "Test notification sent successfully"}


@router.get("/{reminder_id}")
async def get_reminder(
    reminder_id: int,
    user: User = Depends(current_user),
    service: ReminderService = Depends(reminder_service),
):
    reminder = service.reminders.get_for_user(reminder_id, user.id)
    if reminder is None:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return {"reminder": asdict(reminder)}


@router.put("/{reminder_id}")
async def update_reminder(
    reminder_id: int,
    payload: ReminderUpdate,
    user: User = Depends(current_user),
    service: ReminderService = Depends(reminder_service),
):
    # An explicit null clears the pattern; for any other field it means "leave unchanged"
    fields = {
        k: v
        for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k == "pattern"
    }
    if "pattern" in fields:
        fields["pattern"] = _pattern(fields["pattern"])
    try:
        reminder = service.update(reminder_id, user.id, **fields)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    if reminder is None:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return {"message": "Reminder updated successfully", "reminder": asdict(reminder)}


@router.delete("/{reminder_id}")
async def delete_reminder(
    reminder_id: int,
    user: User = Depends(current_user),
    service: ReminderService = Depends(reminder_service),
):
    if not service.delete(reminder_id, user.id):
        raise HTTPException(status_code=404, detail="Reminder not found")
    return {"message": "Reminder deleted successfully"}


@router.post("/{reminder_id}/trigger")
async def trigger_reminder(
    reminder_id: int,
    user: User = Depends(current_user),
    service: ReminderService = Depends(reminder_service),
):
    reminder = service.reminders.get_for_user(reminder_id, user.id)
    if reminder is None or not reminder.is_active:
        raise HTTPException(status_code=404, detail="Reminder not found or inactive")
    fired = await service.trigger_now(reminder_id)
    return {
        "message": "Reminder triggered",
        "reminder": asdict(fired) if fired is not None else None,
    }
