# healthdesk/auth.py
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from . import database, errors, models, schemas
from .deps import (
    SESSION_COOKIE,
    get_access_token,
    get_current_user,
    get_identity_provider,
    get_session_store,
    get_settings,
)
from .sso import provision_or_find_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _frontend_base(settings, request: Request) -> str:
    return (settings.frontend_url or str(request.base_url)).rstrip("/")


def _set_session_cookie(response, settings, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=settings.session_max_age,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def _session_response(user: models.User, sessions, settings) -> JSONResponse:
    token, expires_at = sessions.issue_session(user)
    body = schemas.SessionOut(
        access_token=token,
        expires_at=expires_at,
        user=schemas.UserOut.model_validate(user),
    )
    response = JSONResponse(body.model_dump(mode="json", by_alias=True))
    _set_session_cookie(response, settings, token)
    return response


def _sign_in_redirect(settings, request: Request, message: str) -> RedirectResponse:
    url = f"{_frontend_base(settings, request)}{settings.sign_in_path}?{urlencode({'error': message})}"
    return RedirectResponse(url, status_code=303)


@router.post("/signup", response_model=schemas.SessionOut, status_code=201)
def signup(
    payload: schemas.SignUpIn,
    db: Session = Depends(database.get_db),
    sessions=Depends(get_session_store),
    settings=Depends(get_settings),
):
    user = sessions.sign_up(db, payload.email, payload.password, payload.full_name)
    response = _session_response(user, sessions, settings)
    response.status_code = 201
    return response


@router.post("/signin", response_model=schemas.SessionOut)
def signin(
    payload: schemas.SignInIn,
    db: Session = Depends(database.get_db),
    sessions=Depends(get_session_store),
    settings=Depends(get_settings),
):
    user = sessions.sign_in(db, payload.email, payload.password)
    return _session_response(user, sessions, settings)


@router.post("/signout", response_model=schemas.SuccessOut)
def signout(
    token: Optional[str] = Depends(get_access_token),
    db: Session = Depends(database.get_db),
    sessions=Depends(get_session_store),
):
    if not token:
        raise errors.Unauthorized("Authentication required")
    sessions.sign_out(db, token)
    response = JSONResponse({"success": True})
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get("/me", response_model=schemas.UserOut)
def read_current_user(current: models.User = Depends(get_current_user)):
    return current


@router.post("/oauth/authorize", response_model=schemas.AuthorizationUrlOut)
def oauth_authorize(
    payload: schemas.OAuthAuthorizeIn,
    request: Request,
    sessions=Depends(get_session_store),
):
    provider = payload.provider.strip().lower()
    if not provider:
        raise errors.ValidationError("provider is required")
    url = sessions.begin_oauth(provider, str(request.url_for("sso_callback")))
    return {"authorization_url": url}


@router.post("/sso/authorize", response_model=schemas.AuthorizationUrlOut)
def sso_authorize(
    payload: schemas.SSOAuthorizeIn,
    request: Request,
    idp=Depends(get_identity_provider),
):
    organization_id = (payload.organization_id or "").strip()
    email = (payload.email or "").strip()
    if not organization_id and not email:
        raise errors.ValidationError("Either organizationId or email is required")
    url = idp.authorization_url(
        str(request.url_for("sso_callback")),
        organization_id=organization_id or None,
        login_hint=email or None,
    )
    return {"authorization_url": url}


@router.get("/sso/callback")
async def sso_callback(
    request: Request,
    code: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    db: Session = Depends(database.get_db),
    idp=Depends(get_identity_provider),
    sessions=Depends(get_session_store),
    settings=Depends(get_settings),
):
    if error:
        logger.warning("SSO provider returned error: %s (%s)", error, error_description)
        return _sign_in_redirect(settings, request, error_description or error)
    if not code:
        return _sign_in_redirect(settings, request, "No authorization code received")

    try:
        identity = await idp.exchange_code(code, str(request.url_for("sso_callback")))
        user = await run_in_threadpool(provision_or_find_user, db, identity, settings.sso_provider_name)
        token, _ = sessions.issue_session(user)
    except errors.AppError as exc:
        return _sign_in_redirect(settings, request, exc.message)
    except Exception:
        logger.exception("SSO callback failed")
        return _sign_in_redirect(settings, request, "Authentication failed")

    response = RedirectResponse(f"{_frontend_base(settings, request)}/", status_code=303)
    _set_session_cookie(response, settings, token)
    return response
