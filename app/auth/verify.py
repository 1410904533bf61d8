"""
verify.py
---------
Purpose:
    JWT verification using Supabase JWKS (ES256) and caller resolution.

Notes:
    - Fetches JWKS from Supabase and caches keys.
    - `auth_dependency` yields verified claims; `current_user` resolves the
      portal profile from the e-mail claim (profiles are not keyed by the
      identity id).
    - `current_user` refuses profiles without job-portal access (403 ACCESS_DENIED).
    - `require_admin` / `require_active` gate role- and status-restricted routes.
"""

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from app.config import settings
from app.infrastructure.observability.logging import bind_user
from app.models.domain.user_domain import InvalidRecordError, PortalUser
from app.services.identity_provider import AuthBridgeError, AuthErrorCode
from app.services.user_service import find_user_by_email

SUPABASE_AUDIENCE = "authenticated"

_jwk_client = PyJWKClient(settings.jwks_url())
_security = HTTPBearer()
_optional_security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_jwt(token: str) -> dict:
    """Verify a Supabase access token (ES256, JWKS-published key) and return its claims."""
    try:
        signing_key = _jwk_client.get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["ES256"],
            audience=SUPABASE_AUDIENCE,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise _unauthorized("セッションの有効期限が切れました。再度ログインしてください。") from e
    except jwt.PyJWTError as e:
        raise _unauthorized(f"Invalid authentication token: {e}") from e


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_security)) -> dict:
    token = credentials.credentials
    return verify_jwt(token)


def optional_credentials(
    credentials: HTTPAuthorizationCredentials | None = Depends(_optional_security),
) -> HTTPAuthorizationCredentials | None:
    return credentials


async def resolve_user(claims: dict) -> PortalUser:
    email = claims.get("email")
    if not email:
        raise HTTPException(status_code=401, detail="Token has no e-mail claim")

    try:
        user = await find_user_by_email(email)
    except InvalidRecordError as e:
        raise HTTPException(status_code=500, detail="ユーザー情報を読み込めませんでした。") from e

    if user is None:
        raise HTTPException(
            status_code=403,
            detail="ユーザーが見つかりません。先にクリエイターポータルで登録してください。",
        )
    return user


def check_portal_access(user: PortalUser) -> None:
    """Profiles without job-portal access are refused on every route, as at login."""
    if not user.job_portal_enabled:
        denied = AuthBridgeError(AuthErrorCode.ACCESS_DENIED)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": denied.code.value, "message": denied.message},
        )


async def current_user(request: Request, claims: dict = Depends(auth_dependency)) -> PortalUser:
    user = await resolve_user(claims)
    check_portal_access(user)
    request.state.user_id = user.id
    bind_user(user.id)
    return user


async def require_admin(user: PortalUser = Depends(current_user)) -> PortalUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="管理者のみ実行できる操作です。")
    return user


def restricted_account_error() -> HTTPException:
    return HTTPException(status_code=403, detail="アカウントが有効化されていないため、機能が制限されています。")


async def require_active(user: PortalUser = Depends(current_user)) -> PortalUser:
    """Pending or suspended partners are limited to their own profile."""
    if user.is_restricted:
        raise restricted_account_error()
    return user
