# notes_backend/services/mail_service.py
import logging
import resend
from fastapi.concurrency import run_in_threadpool

from notes_backend.config import Settings
from notes_backend.errors import UpstreamFailure

logger = logging.getLogger(__name__)


def _send(api_key: str, params: dict):
    resend.api_key = api_key
    return resend.Emails.send(params)


async def send_otp_email(settings: Settings, to_email: str, code: str) -> bool:
    """Deliver the code by e-mail. Returns False when no mail provider is configured."""
    if not settings.resend_api_key:
        logger.warning("RESEND_API_KEY is not set; OTP for %s was not e-mailed.", to_email)
        return False
    params = {
        "from": settings.mail_from,
        "to": [to_email],
        "subject": "Your sign-in code",
        "text": f"Your code is {code}. It expires in 5 minutes.",
    }
    try:
        # resend is synchronous
        await run_in_threadpool(_send, settings.resend_api_key, params)
    except Exception as e:
        logger.error("Sending OTP e-mail to %s failed: %s", to_email, e)
        raise UpstreamFailure("Failed to send OTP email") from e
    return True
