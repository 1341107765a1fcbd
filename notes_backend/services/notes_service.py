# notes_backend/services/notes_service.py
import logging
from typing import List

from notes_backend.database import Repository
from notes_backend.errors import ValidationError, Unauthorized, NotFound, Forbidden
from notes_backend.models import Note

logger = logging.getLogger(__name__)


async def list_notes(repo: Repository, user_id: str) -> List[Note]:
    return await repo.list_notes(user_id)


async def create_note(repo: Repository, user_id: str, title, content) -> Note:
    if not title or not isinstance(title, str):
        raise ValidationError("Title required")
    if not content or not isinstance(content, str):
        raise ValidationError("Content required")
    if await repo.get_user(user_id) is None:
        raise Unauthorized("User not found")
    note = await repo.add_note(Note(userId=user_id, title=title, content=content))
    logger.info("Note %s created by %s", note.id, user_id)
    return note


async def delete_note(repo: Repository, user_id: str, note_id: str) -> None:
    note = await repo.get_note(note_id)
    if not note:
        raise NotFound("Note not found")
    if note.userId != user_id:
        raise Forbidden("Not allowed")
    await repo.delete_note(note_id)
    logger.info("Note %s deleted by %s", note_id, user_id)
