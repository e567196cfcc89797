"""Session cookies and FastAPI security dependencies.

Admins and teams authenticate with signed JWT session tokens kept in
HTTP-only cookies (`admin_session` / `team_session`). Admin routes also
accept the admin token as an `Authorization: Bearer` header so scripts
can call them without a cookie jar.

Token verification raises HTTPExceptions on failure so the helpers can
be used directly inside route dependencies.
"""

from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request, Response, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .database import get_session
from .services import token_fingerprint

ADMIN_COOKIE = 'admin_session'
TEAM_COOKIE = 'team_session'

ADMIN_REQUIRED = 'Unauthorized - Admin access required'
TEAM_REQUIRED = 'Unauthorized - No team session'
TOKEN_LOGIN_REQUIRED = 'Log in with your access token to do this'

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str, kind: str) -> Optional[dict]:
    """Decode and verify a session token of the given `kind`.

    Returns the payload, or `None` when the token is expired, tampered
    with or was issued for the other kind of session.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    if payload.get('kind') != kind:
        return None
    try:
        payload['sub'] = int(payload.get('sub'))
    except (TypeError, ValueError):
        return None
    return payload


def set_session_cookie(response: Response, name: str, token: str) -> None:
    response.set_cookie(
        key=name,
        value=token,
        max_age=settings.SESSION_MAX_AGE_HOURS * 3600,
        httponly=True,
        samesite='lax',
        secure=settings.COOKIE_SECURE,
        path='/',
    )


def clear_session_cookie(response: Response, name: str) -> None:
    response.delete_cookie(key=name, path='/', httponly=True, samesite='lax', secure=settings.COOKIE_SECURE)


def _admin_from_token(token: str, db: Session) -> Optional[models.User]:
    payload = decode_token(token, 'admin')
    if not payload:
        return None
    user = repositories.UserRepository(db).get(payload['sub'])
    if not user or user.role != 'admin':
        return None
    return user


def get_optional_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
) -> Optional[models.User]:
    """Return the logged-in admin, or `None` for anonymous callers.

    The `admin_session` cookie is tried first; a bearer token is used when
    the cookie is missing or no longer valid.
    """
    candidates = [request.cookies.get(ADMIN_COOKIE)]
    if credentials is not None:
        candidates.append(credentials.credentials)
    for token in candidates:
        if token:
            user = _admin_from_token(token, db)
            if user is not None:
                return user
    return None


def get_current_admin(admin: Optional[models.User] = Depends(get_optional_admin)) -> models.User:
    """FastAPI dependency that requires an admin session (401 otherwise)."""
    if admin is None:
        raise HTTPException(status_code=401, detail=ADMIN_REQUIRED)
    return admin


def get_optional_team(request: Request, db: Session = Depends(get_session)) -> Optional[models.Team]:
    """Return the team of the current `team_session` cookie, if valid.

    A session stops being valid once the team's access token is rotated.
    """
    token = request.cookies.get(TEAM_COOKIE)
    if not token:
        return None
    payload = decode_token(token, 'team')
    if not payload:
        return None
    team = repositories.TeamRepository(db).get(payload['sub'])
    if not team or payload.get('atk') != token_fingerprint(team.access_token or ''):
        return None
    return team


def get_team_login_method(request: Request) -> Optional[str]:
    """How the current team session was obtained: `token`, `code` or `None`."""
    token = request.cookies.get(TEAM_COOKIE)
    payload = decode_token(token, 'team') if token else None
    if not payload:
        return None
    return payload.get('method') or 'code'


def get_current_team(team: Optional[models.Team] = Depends(get_optional_team)) -> models.Team:
    """FastAPI dependency that requires a team session (401 otherwise)."""
    if team is None:
        raise HTTPException(status_code=401, detail=TEAM_REQUIRED)
    return team


def require_token_login(method: Optional[str]) -> None:
    """Team codes are public, so code sessions may not vote or change the website (403)."""
    if method != 'token':
        raise HTTPException(status_code=403, detail=TOKEN_LOGIN_REQUIRED)


def require_team_or_admin(team_id: int, team: Optional[models.Team], admin: Optional[models.User]) -> None:
    """Allow the team owning `team_id` or any admin; 401/403 otherwise."""
    if admin is not None:
        return
    if team is None:
        raise HTTPException(status_code=401, detail=TEAM_REQUIRED)
    if team.id != team_id:
        raise HTTPException(status_code=403, detail='Access denied')
