from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from recall.models import User
from recall.routes.deps import current_user, entry_store
from recall.services import ai
from recall.store import EntryStore

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/reminders/suggest")
async def suggest_reminders(
    days: int = Query(7, ge=1, le=90),
    user: User = Depends(current_user),
    entries: EntryStore = Depends(entry_store),
):
    suggestions = await ai.suggest_reminders(entries.list_recent(user.id, days=days))
    return {"suggestions": suggestions, "message": "Reminder suggestions generated successfully"}
