"""
Service error -> HTTP status translation shared by the portal routes.
"""

from fastapi import HTTPException, status

from app.services.identity_provider import AuthBridgeError, AuthErrorCode
from app.services.messaging_service import MessagingError
from app.services.user_service import UserServiceError
from app.services.workflow_service import WorkflowError

_CODE_STATUS = {
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_STATE": status.HTTP_409_CONFLICT,
    "DUPLICATE_APPLICATION": status.HTTP_409_CONFLICT,
    "FORBIDDEN": status.HTTP_403_FORBIDDEN,
    "WRITE_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
}

_AUTH_STATUS = {
    AuthErrorCode.DUPLICATE_IDENTITY: status.HTTP_409_CONFLICT,
    AuthErrorCode.INVALID_CREDENTIAL: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.WEAK_CREDENTIAL: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.INVALID_EMAIL: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    AuthErrorCode.NETWORK_FAILURE: status.HTTP_502_BAD_GATEWAY,
    AuthErrorCode.ACCOUNT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AuthErrorCode.PROFILE_NOT_FOUND: status.HTTP_403_FORBIDDEN,
    AuthErrorCode.ACCESS_DENIED: status.HTTP_403_FORBIDDEN,
}


def service_http_error(e: WorkflowError | MessagingError | UserServiceError) -> HTTPException:
    return HTTPException(
        status_code=_CODE_STATUS.get(e.code, status.HTTP_400_BAD_REQUEST),
        detail={"code": e.code, "message": str(e)},
    )


def auth_http_error(e: AuthBridgeError) -> HTTPException:
    detail = {"code": e.code.value, "message": e.message}
    if e.action:
        detail["action"] = e.action
        detail["email"] = e.email
    return HTTPException(
        status_code=_AUTH_STATUS.get(e.code, status.HTTP_400_BAD_REQUEST), detail=detail
    )
