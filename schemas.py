"""
Database Schemas for the Habit Nudge API

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase of the class name.
"""
from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Dict
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(BaseModel):
    name: str = Field(..., description="Display name")
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., description="Password hash (bcrypt)")
    referredBy: Optional[str] = Field(None, description="userId of the referring user")
    xp: int = Field(0, ge=0, description="Aggregate XP across habits and grants")
    badges: List[str] = Field(default_factory=list, description="Badge identifiers")
    pro: bool = Field(False, description="Set by the upgrade action")
    appliedCompletions: List[str] = Field(
        default_factory=list, description="'<habitId>:<date>' keys already credited to xp"
    )
    createdAt: datetime = Field(default_factory=utcnow)


class Habit(BaseModel):
    userId: str = Field(..., description="Owner user _id")
    title: str = Field(..., min_length=1, description="Habit title")
    frequency: str = Field(..., description="daily | weekly | custom")
    reminderTime: str = Field(..., description="Time of day, e.g. 08:30")
    xp: int = Field(0, ge=0)
    streak: int = Field(0, ge=0)
    completionLog: List[str] = Field(default_factory=list, description="ISO dates, unique")
    pendingXp: Dict[str, int] = Field(
        default_factory=dict, description="date -> XP not yet credited to the owner"
    )
    createdAt: datetime = Field(default_factory=utcnow)


class Nudge(BaseModel):
    userId: str
    habitId: str
    message: str = Field(..., min_length=1)
    type: str = Field("manual", description="manual | ai | system")
    createdAt: datetime = Field(default_factory=utcnow)


class DailyNudge(BaseModel):
    userId: str
    date: str = Field(..., description="ISO date, e.g., 2025-01-31")
    message: str
    createdAt: datetime = Field(default_factory=utcnow)
