from __future__ import annotations

import sqlite3
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from recall.models import User
from recall.routes.deps import current_user, user_store
from recall.schemas import Preferences, PushSubscription, UserCreate
from recall.store import UserStore

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", status_code=201)
async def create_user(payload: UserCreate, users: UserStore = Depends(user_store)):
    try:
        user = users.create(payload.email, payload.name)
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail="Email already registered")
    return {"user": asdict(user)}


@router.get("/me")
async def get_me(user: User = Depends(current_user)):
    return {"user": asdict(user)}


@router.put("/me/push-subscription")
async def set_push_subscription(
    payload: PushSubscription,
    user: User = Depends(current_user),
    users: UserStore = Depends(user_store),
):
    updated = users.set_push_subscription(user.id, payload.model_dump(exclude_none=True))
    return {"message": "Push subscription saved", "user": asdict(updated)}


@router.delete("/me/push-subscription")
async def delete_push_subscription(
    user: User = Depends(current_user), users: UserStore = Depends(user_store)
):
    updated = users.set_push_subscription(user.id, None)
    return {"message": "Push subscription removed", "user": asdict(updated)}


@router.put("/me/preferences")
async def set_preferences(
    payload: Preferences,
    user: User = Depends(current_user),
    users: UserStore = Depends(user_store),
):
    updated = users.set_preferences(
        user.id,
        push_notifications=payload.push_notifications,
        weekly_summaries=payload.weekly_summaries,
    )
    return {"user": asdict(updated)}
