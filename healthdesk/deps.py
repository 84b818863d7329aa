# healthdesk/deps.py
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from . import database, errors, models

SESSION_COOKIE = "healthdesk_session"

bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request):
    return request.app.state.settings


def get_session_store(request: Request):
    return request.app.state.session_store


def get_identity_provider(request: Request):
    return request.app.state.identity_provider


def get_analyzer(request: Request):
    return request.app.state.analyzer


def get_access_token(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Optional[str]:
    if creds and creds.credentials:
        return creds.credentials
    return request.cookies.get(SESSION_COOKIE)


def get_current_user(
    token: Optional[str] = Depends(get_access_token),
    db: Session = Depends(database.get_db),
    sessions=Depends(get_session_store),
) -> models.User:
    if not token:
        raise errors.Unauthorized("Authentication required")
    return sessions.current_user(db, token)


def get_optional_user(
    token: Optional[str] = Depends(get_access_token),
    db: Session = Depends(database.get_db),
    sessions=Depends(get_session_store),
) -> Optional[models.User]:
    if not token:
        return None
    return sessions.current_user(db, token)


def ensure_owner(user: models.User, user_id: Optional[str]) -> str:
    """The userId a client sends must be the authenticated user's own id."""
    if not user_id:
        raise errors.ValidationError("User ID required")
    if user_id != user.id:
        raise errors.Forbidden("User ID mismatch")
    return user_id
