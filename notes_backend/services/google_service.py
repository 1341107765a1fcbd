# notes_backend/services/google_service.py
import logging
from typing import NamedTuple, Optional
from fastapi.concurrency import run_in_threadpool
from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token

from notes_backend.errors import ConfigurationError, InvalidToken

logger = logging.getLogger(__name__)


class GoogleProfile(NamedTuple):
    email: str
    name: Optional[str]
    sub: str


def _verify(token: str, client_id: str) -> dict:
    # checks signature against Google's published certs, issuer, expiry and audience
    return google_id_token.verify_oauth2_token(token, google_requests.Request(), audience=client_id)


async def verify_google_id_token(token: str, client_id: str) -> GoogleProfile:
    if not client_id:
        raise ConfigurationError("GOOGLE_CLIENT_ID not configured")
    try:
        claims = await run_in_threadpool(_verify, token, client_id)
    except (ValueError, GoogleAuthError) as e:
        logger.warning("Google ID token rejected: %s", e)
        raise InvalidToken("Google authentication failed") from e

    email, sub = claims.get("email"), claims.get("sub")
    if not email or not sub:
        logger.warning("Google ID token is missing the email or sub claim")
        raise InvalidToken("Google authentication failed")
    if claims.get("email_verified") is False:
        logger.warning("Google account %s has an unverified email", email)
        raise InvalidToken("Google authentication failed")
    return GoogleProfile(email=email, name=claims.get("name"), sub=sub)
