# healthdesk/models.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, Text

from .database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(200), nullable=False, default="")
    password_hash = Column(String(255), nullable=True)  # null for SSO/OAuth-only accounts
    email_verified = Column(Boolean, default=False, nullable=False)
    organization_id = Column(String(255), nullable=True)
    sso_provider = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class LabReport(Base):
    __tablename__ = "lab_reports"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    raw_text = Column(Text, nullable=False, default="")
    structured_data = Column(JSON, nullable=True)
    ai_analysis = Column(Text, nullable=True)
    uploaded_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class Note(Base):
    __tablename__ = "notes"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class RevokedSession(Base):
    __tablename__ = "revoked_sessions"

    jti = Column(String(64), primary_key=True)
    user_id = Column(String(36), nullable=False)
    revoked_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    # rows past this point can be pruned; the token itself no longer decodes
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
