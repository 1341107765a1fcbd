# notes_backend/models.py
import uuid
from typing import Optional
from datetime import datetime, timezone
from sqlmodel import Field, SQLModel


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQL backends hand datetimes back naive; everything we store is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True)
    email: str = Field(unique=True, index=True)
    name: Optional[str] = Field(default=None)
    provider: str = Field(default="email")
    googleSub: Optional[str] = Field(default=None)
    createdAt: datetime = Field(default_factory=utcnow)


class OtpRecord(SQLModel, table=True):
    __tablename__ = "otps"

    email: str = Field(primary_key=True)
    hashedCode: str
    expiresAt: datetime


class Note(SQLModel, table=True):
    __tablename__ = "notes"

    id: str = Field(default_factory=new_id, primary_key=True)
    userId: str = Field(foreign_key="users.id", index=True)
    title: str
    content: str
    createdAt: datetime = Field(default_factory=utcnow, index=True)
