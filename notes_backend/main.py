# notes_backend/main.py
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional
from fastapi import FastAPI, APIRouter, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from notes_backend.config import Settings, get_settings, get_app_settings
from notes_backend.database import Repository, build_repository, get_repository
from notes_backend.errors import AppError, ValidationError, UpstreamFailure
from notes_backend.auth import (
    create_access_token, get_current_user_id, upsert_user_for_email, upsert_user_for_google,
)
from notes_backend.services import otp_service, mail_service, google_service, notes_service

logger = logging.getLogger(__name__)

# --- Pydantic Models ---
class RequestOtpBody(BaseModel): email: Optional[str] = None
class VerifyOtpBody(BaseModel): email: Optional[str] = None; otp: Optional[str] = None; name: Optional[str] = None
class GoogleLoginBody(BaseModel): idToken: Optional[str] = None
class NoteCreateBody(BaseModel): title: Optional[str] = None; content: Optional[str] = None


class UserOut(BaseModel):
    """Public user shape. googleSub stays server-side."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: Optional[str] = None
    provider: str
    createdAt: datetime


class NoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    userId: str
    title: str
    content: str
    createdAt: datetime


class OtpRequestedOut(BaseModel): message: str; otp: Optional[str] = None
class AuthOut(BaseModel): token: str; user: UserOut
class NotesOut(BaseModel): notes: List[NoteOut]
class NoteCreatedOut(BaseModel): note: NoteOut
class DeletedOut(BaseModel): success: bool


# --- API Routes ---
auth_router = APIRouter(prefix="/auth", tags=["auth"])
notes_router = APIRouter(prefix="/notes", tags=["notes"])


@auth_router.post("/request-otp", response_model=OtpRequestedOut, response_model_exclude_none=True)
async def request_otp(
    body: Optional[RequestOtpBody] = None,
    repo: Repository = Depends(get_repository),
    settings: Settings = Depends(get_app_settings),
):
    body = body or RequestOtpBody()
    if not otp_service.is_valid_email(body.email):
        raise ValidationError("Valid email required")
    try:
        code = await otp_service.request_otp(repo, body.email)
        await mail_service.send_otp_email(settings, body.email, code)
    except Exception as e:
        logger.exception("OTP generation failed for %s", body.email)
        raise UpstreamFailure("Failed to generate OTP") from e
    # Only non-production deployments hand the code back in the response.
    return OtpRequestedOut(message="OTP sent", otp=code if settings.reveal_otp else None)


@auth_router.post("/verify-otp", response_model=AuthOut)
async def verify_otp(
    body: Optional[VerifyOtpBody] = None,
    repo: Repository = Depends(get_repository),
    settings: Settings = Depends(get_app_settings),
):
    body = body or VerifyOtpBody()
    if not otp_service.is_valid_email(body.email):
        raise ValidationError("Valid email required")
    if not body.otp:
        raise ValidationError("OTP required")
    try:
        await otp_service.verify_otp(repo, body.email, body.otp)
        user = await upsert_user_for_email(repo, body.email, body.name)
    except AppError:
        raise
    except Exception as e:
        logger.exception("OTP verification failed for %s", body.email)
        raise UpstreamFailure("OTP verification failed") from e
    return AuthOut(token=create_access_token(settings, user), user=UserOut.model_validate(user))


@auth_router.post("/google", response_model=AuthOut)
async def google_login(
    body: Optional[GoogleLoginBody] = None,
    repo: Repository = Depends(get_repository),
    settings: Settings = Depends(get_app_settings),
):
    body = body or GoogleLoginBody()
    if not body.idToken:
        raise ValidationError("idToken required")
    profile = await google_service.verify_google_id_token(body.idToken, settings.google_client_id)
    user = await upsert_user_for_google(repo, profile)
    return AuthOut(token=create_access_token(settings, user), user=UserOut.model_validate(user))


@notes_router.get("", response_model=NotesOut)
async def list_notes(user_id: str = Depends(get_current_user_id), repo: Repository = Depends(get_repository)):
    notes = await notes_service.list_notes(repo, user_id)
    return NotesOut(notes=[NoteOut.model_validate(n) for n in notes])


@notes_router.post("", response_model=NoteCreatedOut, status_code=status.HTTP_201_CREATED)
async def create_note(
    body: Optional[NoteCreateBody] = None,
    user_id: str = Depends(get_current_user_id),
    repo: Repository = Depends(get_repository),
):
    body = body or NoteCreateBody()
    note = await notes_service.create_note(repo, user_id, body.title, body.content)
    return NoteCreatedOut(note=NoteOut.model_validate(note))


@notes_router.delete("/{note_id}", response_model=DeletedOut)
async def delete_note(
    note_id: str, user_id: str = Depends(get_current_user_id), repo: Repository = Depends(get_repository)
):
    await notes_service.delete_note(repo, user_id, note_id)
    return DeletedOut(success=True)


# --- Error Handlers ---
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected request body on %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid request body"})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Internal Server Error"})


def create_app(settings: Optional[Settings] = None, repository: Optional[Repository] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s:     %(name)s - %(message)s")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        repo = repository or build_repository(settings)
        logger.info("Starting up (env=%s, storage=%s)...", settings.app_env, settings.storage_backend)
        await repo.init()
        app.state.repository = repo
        if settings.is_production and not settings.resend_api_key:
            logger.warning("No mail provider configured; OTP codes cannot reach users.")
        logger.info("Startup complete.")
        yield
        await repo.close()

    app = FastAPI(title="Notes API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware, allow_origins=list(settings.cors_origins),
        allow_methods=["*"], allow_headers=["*"],
    )
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(auth_router)
    app.include_router(notes_router)

    @app.get("/")
    async def read_root():
        return {"status": "ok"}

    return app
