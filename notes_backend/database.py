# notes_backend/database.py
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional
from fastapi import Request
from sqlmodel import SQLModel, select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from notes_backend.config import Settings
from notes_backend.models import User, OtpRecord, Note

logger = logging.getLogger(__name__)


class Repository(ABC):
    """Storage seen by the auth and notes services. Swap implementations without touching them."""

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]: ...

    @abstractmethod
    async def add_user(self, user: User) -> User: ...

    @abstractmethod
    async def update_user(self, user: User) -> User: ...

    @abstractmethod
    async def put_otp(self, record: OtpRecord) -> None:
        """Store the record, replacing any existing one for the same email."""

    @abstractmethod
    async def get_otp(self, email: str) -> Optional[OtpRecord]: ...

    @abstractmethod
    async def delete_otp(self, email: str) -> None: ...

    @abstractmethod
    async def list_notes(self, user_id: str) -> List[Note]:
        """Notes owned by user_id, in insertion order."""

    @abstractmethod
    async def get_note(self, note_id: str) -> Optional[Note]: ...

    @abstractmethod
    async def add_note(self, note: Note) -> Note: ...

    @abstractmethod
    async def delete_note(self, note_id: str) -> bool: ...


class JsonFileRepository(Repository):
    """
    Three pretty-printed JSON arrays on disk (users, otps, notes).

    Every call reads the whole file and every write rewrites it. There is no
    locking, so concurrent writers race and the last one wins.
    """

    def __init__(self, data_dir):
        self.data_dir = Path(data_dir)
        self.files = {
            "users": self.data_dir / "users.json",
            "otps": self.data_dir / "otps.json",
            "notes": self.data_dir / "notes.json",
        }

    async def init(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        for path in self.files.values():
            if not path.exists():
                path.write_text("[]", encoding="utf-8")
        logger.info("Flat-file store ready in %s", self.data_dir.resolve())

    def _read(self, name: str) -> list:
        path = self.files[name]
        if not path.exists():
            return []
        raw = path.read_text(encoding="utf-8")
        if not raw.strip():
            return []
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f"{path} does not hold a JSON array")
        return data

    def _write(self, name: str, rows: list) -> None:
        self.files[name].write_text(json.dumps(rows, indent=2, ensure_ascii=False), encoding="utf-8")

    # --- users ---
    async def get_user(self, user_id: str) -> Optional[User]:
        row = next((u for u in self._read("users") if u.get("id") == user_id), None)
        return User.model_validate(row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        row = next((u for u in self._read("users") if u.get("email") == email), None)
        return User.model_validate(row) if row else None

    async def add_user(self, user: User) -> User:
        users = self._read("users")
        users.append(user.model_dump(mode="json"))
        self._write("users", users)
        return user

    async def update_user(self, user: User) -> User:
        users = self._read("users")
        users = [user.model_dump(mode="json") if u.get("id") == user.id else u for u in users]
        self._write("users", users)
        return user

    # --- otps ---
    async def put_otp(self, record: OtpRecord) -> None:
        otps = [o for o in self._read("otps") if o.get("email") != record.email]
        otps.append(record.model_dump(mode="json"))
        self._write("otps", otps)

    async def get_otp(self, email: str) -> Optional[OtpRecord]:
        row = next((o for o in self._read("otps") if o.get("email") == email), None)
        return OtpRecord.model_validate(row) if row else None

    async def delete_otp(self, email: str) -> None:
        self._write("otps", [o for o in self._read("otps") if o.get("email") != email])

    # --- notes ---
    async def list_notes(self, user_id: str) -> List[Note]:
        return [Note.model_validate(n) for n in self._read("notes") if n.get("userId") == user_id]

    async def get_note(self, note_id: str) -> Optional[Note]:
        row = next((n for n in self._read("notes") if n.get("id") == note_id), None)
        return Note.model_validate(row) if row else None

    async def add_note(self, note: Note) -> Note:
        notes = self._read("notes")
        notes.append(note.model_dump(mode="json"))
        self._write("notes", notes)
        return note

    async def delete_note(self, note_id: str) -> bool:
        notes = self._read("notes")
        remaining = [n for n in notes if n.get("id") != note_id]
        self._write("notes", remaining)
        return len(remaining) != len(notes)


class SqlRepository(Repository):
    """The same storage on SQLModel tables through an async SQLAlchemy engine."""

    def __init__(self, database_url: str):
        self.engine = create_async_engine(database_url, echo=False)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)

    async def init(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("SQL store ready at %s", self.engine.url.render_as_string(hide_password=True))

    async def close(self) -> None:
        await self.engine.dispose()

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self.session_factory() as session:
            return await session.get(User, user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        async with self.session_factory() as session:
            result = await session.execute(select(User).where(User.email == email))
            return result.scalar_one_or_none()

    async def add_user(self, user: User) -> User:
        async with self.session_factory() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    async def update_user(self, user: User) -> User:
        async with self.session_factory() as session:
            merged = await session.merge(user)
            await session.commit()
            await session.refresh(merged)
            return merged

    async def put_otp(self, record: OtpRecord) -> None:
        async with self.session_factory() as session:
            await session.merge(record)
            await session.commit()

    async def get_otp(self, email: str) -> Optional[OtpRecord]:
        async with self.session_factory() as session:
            return await session.get(OtpRecord, email)

    async def delete_otp(self, email: str) -> None:
        async with self.session_factory() as session:
            record = await session.get(OtpRecord, email)
            if record:
                await session.delete(record)
                await session.commit()

    async def list_notes(self, user_id: str) -> List[Note]:
        async with self.session_factory() as session:
            statement = select(Note).where(Note.userId == user_id).order_by(Note.createdAt)
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def get_note(self, note_id: str) -> Optional[Note]:
        async with self.session_factory() as session:
            return await session.get(Note, note_id)

    async def add_note(self, note: Note) -> Note:
        async with self.session_factory() as session:
            session.add(note)
            await session.commit()
            await session.refresh(note)
            return note

    async def delete_note(self, note_id: str) -> bool:
        async with self.session_factory() as session:
            note = await session.get(Note, note_id)
            if not note:
                return False
            await session.delete(note)
            await session.commit()
            return True


def build_repository(settings: Settings) -> Repository:
    if settings.storage_backend == "sql":
        return SqlRepository(settings.database_url)
    return JsonFileRepository(settings.data_dir)


async def get_repository(request: Request) -> Repository:
    return request.app.state.repository
