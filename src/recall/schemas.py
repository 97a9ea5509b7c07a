from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, Field, StringConstraints

Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Frequency = Literal["daily", "weekly", "monthly", "yearly", "once", "custom"]
Category = Literal["work", "personal", "health", "family", "finance", "education", "general"]
Priority = Literal["low", "medium", "high"]
ReminderType = Literal["manual", "pattern", "ai-suggested"]
SourceType = Literal["manual", "voice-analysis", "text-analysis", "calendar-import"]


class PatternIn(BaseModel):
    frequency: Optional[Frequency] = None
    days_of_week: list[Annotated[int, Field(ge=0, le=6)]] = Field(default_factory=list)
    time: Optional[Annotated[str, StringConstraints(pattern=r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")]] = None
    custom_pattern: str = ""


class ReminderCreate(BaseModel):
    title: Title
    description: str = ""
    type: ReminderType = "manual"
    category: Category = "general"
    priority: Priority = "medium"
    trigger_time: datetime
    pattern: Optional[PatternIn] = None
    is_active: bool = True
    sound_enabled: bool = True
    custom_sound: str = "remind.mp3"
    source_type: SourceType = "manual"
    source_entry_id: Optional[int] = None


class ReminderUpdate(BaseModel):
    title: Optional[Title] = None
    description: Optional[str] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    trigger_time: Optional[datetime] = None
    pattern: Optional[PatternIn] = None
    is_active: Optional[bool] = None
    sound_enabled: Optional[bool] = None
    custom_sound: Optional[str] = None


class UserCreate(BaseModel):
    email: Annotated[str, StringConstraints(strip_whitespace=True, min_length=3)]
    name: str = ""


class PushSubscription(BaseModel):
    endpoint: str
    keys: dict[str, str]
    expirationTime: Optional[float] = None


class Preferences(BaseModel):
    push_notifications: Optional[bool] = None
    weekly_summaries: Optional[bool] = None


class EntryCreate(BaseModel):
    title: Title
    content: str = ""


class EntryUpdate(BaseModel):
    title: Optional[Title] = None
    content: Optional[str] = None
