from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, Request

from recall.models import User
from recall.services.reminders import ReminderService
from recall.store import EntryStore, UserStore


def reminder_service(request: Request) -> ReminderService:
    return request.app.state.reminder_service


def user_store(request: Request) -> UserStore:
    return request.app.state.users


def entry_store(request: Request) -> EntryStore:
    return request.app.state.entries


async def current_user(request: Request, x_user_id: Optional[int] = Header(None)) -> User:
    # Authentication lives in front of this service; it forwards the user id.
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    user = user_store(request).get(x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user
