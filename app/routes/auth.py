"""
Authentication routes.

Registration, sign-in/out and password reset go through Supabase Auth; the
session-events endpoint is called by the client on every identity session
change (start-up, token refresh, sign-out) and answers with what the client
should show.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from starlette.concurrency import run_in_threadpool

from app.auth.verify import auth_dependency, current_user, optional_credentials, verify_jwt
from app.infrastructure.observability.logging import get_logger
from app.models.api.auth_request import (
    LoginRequest,
    PasswordResetRequest,
    RegisterRequest,
    SessionEventRequest,
)
from app.models.api.auth_response import LoginResponse
from app.models.api.user_response import CountResponse
from app.models.domain.auth_domain import SessionEvent, SessionResult
from app.models.domain.user_domain import PortalUser, encode_bank_info
from app.routes.errors import auth_http_error
from app.services import auth_service
from app.services.identity_provider import AuthBridgeError

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=PortalUser, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest):
    fields = request.model_dump(by_alias=True, exclude_none=True, exclude={"email", "password"})
    if request.bank_account_info is not None:
        fields["bankAccountInfo"] = encode_bank_info(request.bank_account_info)

    try:
        return await auth_service.register(request.email, request.password, fields)
    except AuthBridgeError as e:
        logger.warning("Registration failed", code=e.code.value)
        raise auth_http_error(e) from e


@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest):
    try:
        session, user = await auth_service.login(request.email, request.password)
    except AuthBridgeError as e:
        logger.warning("Login failed", code=e.code.value)
        raise auth_http_error(e) from e

    return LoginResponse(session=session.to_dict(), user=user)


@router.post("/logout", response_model=CountResponse)
async def logout(
    session_id: str | None = None,
    user: PortalUser = Depends(current_user),
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_credentials),
):
    await auth_service.logout(
        user.id,
        access_token=credentials.credentials if credentials else None,
        session_id=session_id,
    )
    return CountResponse(success=True)


@router.post("/password-reset", response_model=CountResponse)
async def password_reset(request: PasswordResetRequest):
    try:
        await auth_service.reset_password(request.email)
    except AuthBridgeError as e:
        raise auth_http_error(e) from e
    return CountResponse(success=True)


@router.post("/session-events", response_model=SessionResult)
async def session_event(
    request: SessionEventRequest,
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_credentials),
):
    """Reconcile an identity session change with the loaded profile."""
    event = SessionEvent()
    if credentials:
        claims = await run_in_threadpool(verify_jwt, credentials.credentials)
        event = SessionEvent(email=claims.get("email"), access_token=credentials.credentials)

    context = await auth_service.load_session_context(request.session_id)
    result = await auth_service.session_reconciler.handle(context, event)
    await auth_service.save_session_context(context)

    logger.info(
        "Session event handled",
        session_id=request.session_id,
        outcome=result.outcome.value,
        view=result.view.value,
    )
    return result


@router.get("/me", response_model=PortalUser)
async def me(claims: dict = Depends(auth_dependency), user: PortalUser = Depends(current_user)):
    if not claims.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return user
