# notes_backend/services/otp_service.py
import re
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional
import bcrypt
from fastapi.concurrency import run_in_threadpool

from notes_backend.database import Repository
from notes_backend.errors import ValidationError, OtpNotFound, OtpExpired, OtpMismatch
from notes_backend.models import OtpRecord, utcnow, as_utc

logger = logging.getLogger(__name__)

OTP_TTL = timedelta(minutes=5)
BCRYPT_ROUNDS = 8
EMAIL_PATTERN = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


def is_valid_email(email) -> bool:
    return isinstance(email, str) and EMAIL_PATTERN.fullmatch(email) is not None


def generate_otp() -> str:
    # six digits, never a leading zero: 100000..999999
    return str(100000 + secrets.randbelow(900000))


def hash_otp(code: str) -> str:
    return bcrypt.hashpw(code.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def check_otp(code: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(code.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


async def request_otp(repo: Repository, email: str, now: Optional[datetime] = None) -> str:
    """Issue a fresh code for email, replacing any previous one. Returns the plaintext code."""
    if not is_valid_email(email):
        raise ValidationError("Valid email required")
    now = now or utcnow()
    code = generate_otp()
    hashed = await run_in_threadpool(hash_otp, code)
    await repo.put_otp(OtpRecord(email=email, hashedCode=hashed, expiresAt=now + OTP_TTL))
    logger.info("OTP issued for %s", email)
    return code


async def verify_otp(repo: Repository, email: str, code: str, now: Optional[datetime] = None) -> None:
    """
    Check code against the stored record for email.

    A wrong code leaves the record in place so it can be retried until it
    expires; the right code consumes it.
    """
    now = now or utcnow()
    record = await repo.get_otp(email)
    if not record:
        logger.info("OTP verification for %s failed: no record", email)
        raise OtpNotFound("OTP not found")
    if now > as_utc(record.expiresAt):
        logger.info("OTP verification for %s failed: expired", email)
        raise OtpExpired("OTP expired")
    if not await run_in_threadpool(check_otp, code, record.hashedCode):
        logger.info("OTP verification for %s failed: mismatch", email)
        raise OtpMismatch("Invalid OTP")
    await repo.delete_otp(email)
