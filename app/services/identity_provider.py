"""
Supabase Auth (GoTrue) client.

Wraps the e-mail/password endpoints the portal needs: sign-up, password
sign-in, sign-out, display-profile update and password-reset dispatch.
Provider error codes are mapped to AuthBridgeError with the Japanese message
shown to the user.
"""

import asyncio
from enum import Enum

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 10  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 2  # 2, 4 seconds
RETRY_STATUS_CODES = {500, 502, 503, 504}


class AuthErrorCode(str, Enum):
    DUPLICATE_IDENTITY = "DUPLICATE_IDENTITY"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    WEAK_CREDENTIAL = "WEAK_CREDENTIAL"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_FAILURE = "NETWORK_FAILURE"
    INVALID_EMAIL = "INVALID_EMAIL"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"
    ACCESS_DENIED = "ACCESS_DENIED"
    UNKNOWN = "UNKNOWN"


SWITCH_TO_LOGIN = "SWITCH_TO_LOGIN"

AUTH_ERROR_MESSAGES = {
    AuthErrorCode.DUPLICATE_IDENTITY: "このメールアドレスは既に登録されています。",
    AuthErrorCode.INVALID_CREDENTIAL: "メールアドレスまたはパスワードが正しくありません。",
    AuthErrorCode.WEAK_CREDENTIAL: "パスワードは6文字以上で設定してください。",
    AuthErrorCode.RATE_LIMITED: "アクセスが集中しています。しばらく待ってから再度お試しください。",
    AuthErrorCode.NETWORK_FAILURE: "ネットワークエラーが発生しました。接続を確認してください。",
    AuthErrorCode.INVALID_EMAIL: "メールアドレスの形式が正しくありません。",
    AuthErrorCode.ACCOUNT_NOT_FOUND: "このメールアドレスのアカウントは見つかりませんでした。",
    AuthErrorCode.PROFILE_NOT_FOUND: "ユーザーが見つかりません。先にクリエイターポータルで登録してください。",
    AuthErrorCode.ACCESS_DENIED: "案件ポータルへのアクセス権がありません。クリエイターポータルで認定を完了してください。",
}

# GoTrue error_code values -> portal error codes
_PROVIDER_CODES = {
    "user_already_exists": AuthErrorCode.DUPLICATE_IDENTITY,
    "email_exists": AuthErrorCode.DUPLICATE_IDENTITY,
    "invalid_credentials": AuthErrorCode.INVALID_CREDENTIAL,
    "invalid_grant": AuthErrorCode.INVALID_CREDENTIAL,
    "weak_password": AuthErrorCode.WEAK_CREDENTIAL,
    "over_request_rate_limit": AuthErrorCode.RATE_LIMITED,
    "over_email_send_rate_limit": AuthErrorCode.RATE_LIMITED,
    "email_address_invalid": AuthErrorCode.INVALID_EMAIL,
    "validation_failed": AuthErrorCode.INVALID_EMAIL,
    "user_not_found": AuthErrorCode.ACCOUNT_NOT_FOUND,
}


class AuthBridgeError(Exception):
    """User-facing authentication failure."""

    def __init__(
        self,
        code: AuthErrorCode,
        message: str | None = None,
        action: str | None = None,
        email: str | None = None,
        status_code: int | None = None,
    ):
        self.code = code
        self.message = message or AUTH_ERROR_MESSAGES.get(code, "エラーが発生しました")
        self.action = action
        self.email = email
        self.status_code = status_code
        super().__init__(self.message)

    @classmethod
    def from_provider(
        cls, error_code: str, detail: str, status_code: int | None = None, email: str | None = None
    ) -> "AuthBridgeError":
        code = _PROVIDER_CODES.get(error_code)
        if code is None and status_code == 429:
            code = AuthErrorCode.RATE_LIMITED
        if code is None:
            return cls(
                AuthErrorCode.UNKNOWN,
                f"エラーが発生しました: {detail or error_code}",
                status_code=status_code,
            )
        if code == AuthErrorCode.DUPLICATE_IDENTITY:
            return cls(code, action=SWITCH_TO_LOGIN, email=email, status_code=status_code)
        return cls(code, status_code=status_code)


class IdentitySession:
    """Structured representation of a GoTrue session/user response."""

    def __init__(self, data: dict):
        user = data.get("user") or data
        self.user_id: str = user.get("id", "")
        self.email: str | None = user.get("email")
        self.access_token: str | None = data.get("access_token")
        self.refresh_token: str | None = data.get("refresh_token")
        self.expires_in: int | None = data.get("expires_in")

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "email": self.email,
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresIn": self.expires_in,
        }


class SupabaseAuthClient:
    """Thin async client over the Supabase Auth REST API."""

    def __init__(self):
        self.base_url = settings.auth_url()
        self.api_key = settings.SUPABASE_ANON_KEY or settings.SUPABASE_SERVICE_ROLE_KEY

    def _headers(self, bearer: str | None = None) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {bearer or self.api_key}",
            "Content-Type": "application/json",
        }

    def _admin_headers(self) -> dict[str, str]:
        key = settings.SUPABASE_SERVICE_ROLE_KEY
        return {"apikey": key, "Authorization": f"Bearer {key}", "Content-Type": "application/json"}

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        json_body: dict | None = None,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """
        Perform a request with retry/backoff on transport errors and 5xx.

        Raises:
            AuthBridgeError: NETWORK_FAILURE once retries are exhausted
        """
        url = f"{self.base_url}{path}"

        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            for attempt in range(1, MAX_RETRIES + 1):
                try:
                    response = await client.request(
                        method, url, json=json_body, params=params, headers=headers or self._headers()
                    )

                    if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                        wait_time = BACKOFF_FACTOR**attempt
                        logger.warning(
                            "Supabase Auth transient status",
                            operation=operation,
                            status_code=response.status_code,
                            attempt=attempt,
                            wait_time=wait_time,
                        )
                        await asyncio.sleep(wait_time)
                        continue

                    return response

                except httpx.RequestError as exc:
                    if attempt == MAX_RETRIES:
                        logger.error(
                            "Supabase Auth unreachable",
                            operation=operation,
                            error=str(exc),
                            error_type=type(exc).__name__,
                        )
                        raise AuthBridgeError(AuthErrorCode.NETWORK_FAILURE) from exc

                    wait_time = BACKOFF_FACTOR**attempt
                    logger.warning(
                        "Supabase Auth request error, retrying",
                        operation=operation,
                        attempt=attempt,
                        wait_time=wait_time,
                        error=str(exc),
                    )
                    await asyncio.sleep(wait_time)

        raise AuthBridgeError(AuthErrorCode.NETWORK_FAILURE)

    def _handle_response(
        self, response: httpx.Response, operation: str, email: str | None = None
    ) -> dict:
        """Return the JSON body, or raise the mapped AuthBridgeError."""
        if response.is_success:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError:
                return {}

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}

        error_code = error_data.get("error_code") or error_data.get("error") or ""
        detail = (
            error_data.get("msg")
            or error_data.get("error_description")
            or error_data.get("message")
            or response.text[:200]
        )

        logger.warning(
            f"Supabase Auth {operation} failed",
            status_code=response.status_code,
            error_code=error_code,
            detail=detail,
        )
        raise AuthBridgeError.from_provider(error_code, detail, response.status_code, email)

    async def sign_up(self, email: str, password: str, metadata: dict | None = None) -> IdentitySession:
        response = await self._request_with_retry(
            "POST",
            "/signup",
            "sign_up",
            json_body={"email": email, "password": password, "data": metadata or {}},
        )
        session = IdentitySession(self._handle_response(response, "sign_up", email))
        logger.info("Identity created", user_id=session.user_id)
        return session

    async def sign_in_with_password(self, email: str, password: str) -> IdentitySession:
        response = await self._request_with_retry(
            "POST",
            "/token",
            "sign_in",
            params={"grant_type": "password"},
            json_body={"email": email, "password": password},
        )
        session = IdentitySession(self._handle_response(response, "sign_in", email))
        logger.info("Identity signed in", user_id=session.user_id)
        return session

    async def sign_out(self, access_token: str) -> None:
        response = await self._request_with_retry(
            "POST", "/logout", "sign_out", headers=self._headers(access_token)
        )
        self._handle_response(response, "sign_out")

    async def update_display_profile(
        self, user_id: str, name: str | None = None, avatar_url: str | None = None
    ) -> None:
        """Set display name / avatar on the identity's user metadata."""
        metadata = {k: v for k, v in {"full_name": name, "avatar_url": avatar_url}.items() if v}
        if not metadata:
            return
        response = await self._request_with_retry(
            "PUT",
            f"/admin/users/{user_id}",
            "update_profile",
            json_body={"user_metadata": metadata},
            headers=self._admin_headers(),
        )
        self._handle_response(response, "update_profile")

    async def send_password_reset(self, email: str) -> None:
        response = await self._request_with_retry(
            "POST", "/recover", "recover", json_body={"email": email}
        )
        self._handle_response(response, "recover", email)
        logger.info("Password reset e-mail dispatched")

    async def health_check(self) -> bool:
        try:
            response = await self._request_with_retry("GET", "/health", "health")
            return response.is_success
        except AuthBridgeError:
            return False


identity_provider = SupabaseAuthClient()
