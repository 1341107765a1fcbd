# notes_backend/auth.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from notes_backend.config import Settings, get_app_settings
from notes_backend.errors import Unauthorized
from notes_backend.models import User
from notes_backend.database import Repository
from notes_backend.services.google_service import GoogleProfile

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
TOKEN_TTL = timedelta(days=7)
bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(settings: Settings, user: User) -> str:
    expire = datetime.now(timezone.utc) + TOKEN_TTL
    return jwt.encode({"sub": user.id, "exp": expire}, settings.jwt_secret, algorithm=ALGORITHM)


def decode_access_token(settings: Settings, token: str) -> str:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except JWTError:
        raise Unauthorized("Invalid or expired token")
    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise Unauthorized("Invalid or expired token")
    return user_id


async def upsert_user_for_email(repo: Repository, email: str, name: Optional[str] = None) -> User:
    user = await repo.get_user_by_email(email)
    if not user:
        user = User(email=email, name=name or email.split("@")[0], provider="email")
        await repo.add_user(user)
        logger.info("Created user %s (%s) via email", user.id, email)
    elif name and not user.name:
        user.name = name
        user = await repo.update_user(user)
    return user


async def upsert_user_for_google(repo: Repository, profile: GoogleProfile) -> User:
    user = await repo.get_user_by_email(profile.email)
    if not user:
        user = User(email=profile.email, name=profile.name, provider="google", googleSub=profile.sub)
        await repo.add_user(user)
        logger.info("Created user %s (%s) via google", user.id, profile.email)
    else:
        user.name = profile.name or user.name
        user.provider = user.provider or "google"
        user = await repo.update_user(user)
    return user


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_app_settings),
) -> str:
    # Tokens live until they expire; logging out only discards the client's copy.
    if credentials is None:
        raise Unauthorized("Missing token")
    return decode_access_token(settings, credentials.credentials)
