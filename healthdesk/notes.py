# healthdesk/notes.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from . import database, errors, models, schemas
from .deps import ensure_owner, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notes", tags=["notes"])


def _owned_note(db: Session, note_id: str, user_id: str) -> Optional[models.Note]:
    return (
        db.query(models.Note)
        .filter(models.Note.id == note_id, models.Note.user_id == user_id)
        .first()
    )


@router.get("", response_model=schemas.NoteList)
def list_notes(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    ensure_owner(current, user_id)
    rows = (
        db.query(models.Note)
        .filter(models.Note.user_id == user_id)
        .order_by(models.Note.created_at.desc())
        .all()
    )
    return {"notes": rows}


@router.post("", response_model=schemas.NoteEnvelope, status_code=status.HTTP_201_CREATED)
def create_note(
    payload: schemas.NoteIn,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    user_id = ensure_owner(current, payload.user_id)
    title = payload.title.strip()
    if not title:
        raise errors.ValidationError("title is required")

    note = models.Note(user_id=user_id, title=title, content=payload.content, tags=payload.tags)
    db.add(note)
    database.commit_or_fail(db, "Failed to save note")
    db.refresh(note)
    return {"note": note}


@router.put("/{note_id}", response_model=schemas.NoteEnvelope)
def update_note(
    note_id: str,
    payload: schemas.NoteIn,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    user_id = ensure_owner(current, payload.user_id)
    note = _owned_note(db, note_id, user_id)
    if not note:
        raise errors.NotFound("Note not found")
    title = payload.title.strip()
    if not title:
        raise errors.ValidationError("title is required")

    note.title = title
    note.content = payload.content
    note.tags = payload.tags
    note.updated_at = models.utcnow()
    db.add(note)
    database.commit_or_fail(db, "Failed to update note")
    db.refresh(note)
    return {"note": note}


@router.delete("", response_model=schemas.SuccessOut)
def delete_note(
    note_id: Optional[str] = Query(default=None, alias="id"),
    user_id: Optional[str] = Query(default=None, alias="userId"),
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    if not note_id:
        raise errors.ValidationError("Note ID required")
    ensure_owner(current, user_id)
    note = _owned_note(db, note_id, user_id)
    if not note:
        raise errors.NotFound("Note not found")
    db.delete(note)
    database.commit_or_fail(db, "Failed to delete note")
    logger.info("Deleted note %s", note_id)
    return {"success": True}
