"""Authentication helpers and FastAPI security dependency.

The signed JWT issued at login is kept in an HTTP-only session cookie.
`get_current_user` validates that cookie and returns the corresponding
`User` model instance; pages that need a user simply depend on it.

Authentication problems raise `LoginRequired`, which the application
turns into a redirect to the login page rather than a JSON error.
"""

from typing import Optional

from fastapi import Depends, Request
import jwt
from sqlmodel import Session

from .config import settings
from .database import get_session
from .services import JWT_SECRET, JWT_ALGORITHM
from . import models, repositories


class LoginRequired(Exception):
    """The request has no valid session; the user must log in again."""
    def __init__(self, reason: str = "login required"):
        super().__init__(reason)
        self.reason = reason


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises `LoginRequired` on
    failure.
    """
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise LoginRequired("token expired")
    except jwt.PyJWTError:
        raise LoginRequired("invalid token")


def _session_token(request: Request) -> Optional[str]:
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def get_current_user(request: Request, db: Session = Depends(get_session)) -> models.User:
    """FastAPI dependency that returns the authenticated user.

    The function reads the session cookie, decodes the token and performs
    a database lookup. It raises `LoginRequired` for any authentication
    issue.
    """
    token = _session_token(request)
    if not token:
        raise LoginRequired()
    payload = decode_token(token)
    user_id = payload.get('user_id')
    if not user_id:
        raise LoginRequired('invalid token payload')
    user = repositories.UserRepository(db).get(user_id)
    if not user:
        raise LoginRequired('user not found')
    return user


def current_username(request: Request) -> Optional[str]:
    """Username of the logged-in visitor for page chrome, `None` if anonymous."""
    token = _session_token(request)
    if not token:
        return None
    try:
        return decode_token(token).get('username')
    except LoginRequired:
        return None
