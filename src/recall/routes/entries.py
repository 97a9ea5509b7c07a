from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from recall.models import User
from recall.routes.deps import current_user, entry_store, reminder_service
from recall.schemas import EntryCreate, EntryUpdate
from recall.services.ai import analyze_entry
from recall.services.reminders import ReminderService
from recall.store import EntryStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/entries", tags=["entries"])


@router.get("")
async def list_entries(user: User = Depends(current_user), entries: EntryStore = Depends(entry_store)):
    return {"entries": [asdict(e) for e in entries.list_for_user(user.id)]}


@router.post("", status_code=201)
async def create_entry(
    payload: EntryCreate,
    user: User = Depends(current_user),
    entries: EntryStore = Depends(entry_store),
    service: ReminderService = Depends(reminder_service),
):
    entry = entries.create(user.id, payload.title, payload.content)

    # AI analysis (best-effort)
    reminders = []
    try:
        analysis = await analyze_entry(entry.title, entry.content)
        reminders = service.create_from_analysis(
            user.id, analysis, entry_id=entry.id, source_type="text-analysis"
        )
    except Exception:
        logger.exception("Entry analysis failed for entry %s", entry.id)

    return {"entry": asdict(entry), "reminders": [asdict(r) for r in reminders]}


@router.get("/{entry_id}")
async def get_entry(
    entry_id: int, user: User = Depends(current_user), entries: EntryStore = Depends(entry_store)
):
    entry = entries.get_for_user(entry_id, user.id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Entry not found")
    return {"entry": asdict(entry)}


@router.put("/{entry_id}")
async def update_entry(
    entry_id: int,
    payload: EntryUpdate,
    user: User = Depends(current_user),
    entries: EntryStore = Depends(entry_store),
):
    entry = entries.update(entry_id, user.id, title=payload.title, content=payload.content)
    if entry is None:
        raise HTTPException(status_code=404, detail="Entry not found")
    return {"message": "Entry updated successfully", "entry": asdict(entry)}


@router.delete("/{entry_id}")
async def delete_entry(
    entry_id: int, user: User = Depends(current_user), entries: EntryStore = Depends(entry_store)
):
    # Reminders created from the entry survive; their source link is cleared
    if not entries.delete(entry_id, user.id):
        raise HTTPException(status_code=404, detail="Entry not found")
    return {"message": "Entry deleted successfully"}
