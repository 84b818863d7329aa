# healthdesk/sessions.py
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from jose import JWTError, jwt
from passlib.hash import bcrypt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import errors, models
from .config import Settings

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class SessionStore:
    """Password accounts plus signed session tokens for every sign-in path.

    A session is a JWT carrying the user id (``sub``) and a unique ``jti``.
    Nothing is stored while a session is live; signing out records the
    ``jti`` so the token is refused until it expires.
    """

    def __init__(self, settings: Settings, identity_provider=None):
        self.settings = settings
        self.identity_provider = identity_provider

    def issue_session(self, user: models.User) -> Tuple[str, datetime]:
        expires_at = datetime.now(timezone.utc) + timedelta(days=self.settings.session_days)
        payload = {
            "sub": user.id,
            "email": user.email,
            "jti": uuid.uuid4().hex,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)
        return token, expires_at

    def decode(self, token: str) -> dict:
        try:
            claims = jwt.decode(token, self.settings.jwt_secret, algorithms=[self.settings.jwt_algorithm])
        except JWTError:
            raise errors.Unauthorized("Invalid authentication")
        if not claims.get("sub"):
            raise errors.Unauthorized("Invalid authentication")
        return claims

    def current_user(self, db: Session, token: str) -> models.User:
        claims = self.decode(token)
        jti = claims.get("jti")
        if jti and db.get(models.RevokedSession, jti) is not None:
            raise errors.Unauthorized("Session has been signed out")
        user = db.get(models.User, claims["sub"])
        if user is None:
            raise errors.Unauthorized("Invalid authentication")
        return user

    def sign_up(self, db: Session, email: str, password: str, full_name: str = "") -> models.User:
        email = normalize_email(email)
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise errors.ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        existing = db.query(models.User).filter(models.User.email == email).first()
        if existing:
            raise errors.ValidationError("Email already registered")

        user = models.User(
            email=email,
            full_name=(full_name or "").strip(),
            password_hash=bcrypt.hash(password),
            email_verified=False,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise errors.ValidationError("Email already registered")
        db.refresh(user)
        logger.info("Registered user %s", user.id)
        return user

    def sign_in(self, db: Session, email: str, password: str) -> models.User:
        user = db.query(models.User).filter(models.User.email == normalize_email(email)).first()
        # SSO-only accounts have no password to check against
        if not user or not user.password_hash:
            raise errors.Unauthorized("Invalid credentials")
        if not bcrypt.verify(password, user.password_hash):
            raise errors.Unauthorized("Invalid credentials")
        return user

    def sign_out(self, db: Session, token: str) -> None:
        claims = self.decode(token)
        jti = claims.get("jti")
        if not jti or db.get(models.RevokedSession, jti) is not None:
            return
        expires_at = None
        if claims.get("exp"):
            expires_at = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
        db.add(models.RevokedSession(jti=jti, user_id=claims["sub"], expires_at=expires_at))
        self.prune_revoked(db)
        try:
            db.commit()
        except IntegrityError:
            # revoked concurrently
            db.rollback()

    def prune_revoked(self, db: Session) -> int:
        """Drop revocation rows whose tokens have expired on their own."""
        pruned = (
            db.query(models.RevokedSession)
            .filter(models.RevokedSession.expires_at < datetime.now(timezone.utc))
            .delete(synchronize_session=False)
        )
        if pruned:
            logger.info("Pruned %d expired revoked sessions", pruned)
        return pruned

    def begin_oauth(self, provider: str, redirect_uri: str, state: Optional[str] = None) -> str:
        if self.identity_provider is None:
            raise errors.ConfigurationError("Identity provider not configured")
        return self.identity_provider.authorization_url(redirect_uri, provider=provider, state=state)
