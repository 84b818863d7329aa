# healthdesk/sso.py
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import errors, models
from .config import Settings
from .sessions import normalize_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    email: str
    name: str
    organization_id: Optional[str] = None
    subject: Optional[str] = None


class IdentityProvider:
    """OAuth 2.0 / OpenID Connect client for the hosted identity provider.

    One provider brokers enterprise SSO (``organization_id``), social sign-in
    (``provider``) and named connectors (``connection_id``); all of them
    share the same authorize and token endpoints.
    """

    scope = "openid profile email"

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    @property
    def base_url(self) -> str:
        return (self.settings.idp_environment_url or "").rstrip("/")

    def _require_config(self) -> None:
        if not self.settings.idp_configured:
            raise errors.ConfigurationError("SSO provider not configured")

    def authorization_url(
        self,
        redirect_uri: str,
        organization_id: Optional[str] = None,
        login_hint: Optional[str] = None,
        connection_id: Optional[str] = None,
        provider: Optional[str] = None,
        state: Optional[str] = None,
    ) -> str:
        self._require_config()
        query = {
            "response_type": "code",
            "client_id": self.settings.idp_client_id,
            "redirect_uri": redirect_uri,
            "scope": self.scope,
        }
        optional = {
            "organization_id": organization_id,
            "login_hint": login_hint,
            "connection_id": connection_id,
            "provider": provider,
            "state": state,
        }
        query.update({k: v for k, v in optional.items() if v})
        return f"{self.base_url}/oauth/authorize?{urlencode(query)}"

    def connector_redirect_uri(self, connection_id: str) -> str:
        if self.settings.connector_redirect_uri:
            return self.settings.connector_redirect_uri
        return f"{self.base_url}/sso/v1/oauth/{connection_id}/callback"

    async def exchange_code(self, code: str, redirect_uri: str) -> Identity:
        self._require_config()
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.settings.idp_client_id,
            "client_secret": self.settings.idp_client_secret,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.idp_timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}/oauth/token",
                    data=payload,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            logger.error("Token exchange request failed: %s", exc)
            raise errors.ExchangeError("Could not reach the SSO provider", details=str(exc)) from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code >= 400:
            reason = data.get("error_description") or data.get("error") or f"HTTP {response.status_code}"
            logger.warning("SSO provider rejected code exchange: %s", reason)
            raise errors.ExchangeError(f"Authentication failed: {reason}")

        # The ID token comes straight from the token endpoint over TLS,
        # so its claims are read without a JWKS signature check.
        id_token = data.get("id_token")
        if not id_token:
            raise errors.ExchangeError("Authentication failed: no identity returned")
        try:
            claims = jwt.get_unverified_claims(id_token)
        except JWTError as exc:
            raise errors.ExchangeError("Authentication failed: malformed identity token") from exc

        email = normalize_email(claims.get("email", ""))
        if not email:
            raise errors.ExchangeError("Authentication failed: provider did not return an email")
        name = claims.get("name") or " ".join(
            part for part in (claims.get("given_name"), claims.get("family_name")) if part
        )
        return Identity(
            email=email,
            name=name or "",
            organization_id=claims.get("oid") or claims.get("organization_id"),
            subject=claims.get("sub"),
        )


def provision_or_find_user(db: Session, identity: Identity, provider_name: str) -> models.User:
    """Return the account for ``identity.email``, creating it on first sign-in.

    Creation relies on the unique email constraint: if a concurrent callback
    inserted the same email first, the insert fails and the existing row wins.
    """
    email = normalize_email(identity.email)
    existing = db.query(models.User).filter(models.User.email == email).first()
    if existing:
        return existing

    user = models.User(
        email=email,
        full_name=identity.name or "",
        email_verified=True,
        organization_id=identity.organization_id,
        sso_provider=provider_name,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = db.query(models.User).filter(models.User.email == email).first()
        if existing is None:
            raise
        logger.info("Concurrent SSO provisioning for same email; reusing user %s", existing.id)
        return existing
    db.refresh(user)
    logger.info("Provisioned %s user %s", provider_name, user.id)
    return user
