"""
Browser access control for the portal frontend.

Origins come from CORS_ALLOWED_ORIGINS and may use one leading wildcard label
(`https://*.vercel.app`) so preview deployments work without reconfiguring.
The invoice issue endpoint returns its id and download URL in headers, so
those are exposed to page scripts.
"""

from fnmatch import fnmatchcase

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ALLOW_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")
ALLOW_HEADERS = ("Accept", "Accept-Language", "Authorization", "Content-Type", "X-Request-ID")
EXPOSED_HEADERS = ("X-Request-ID", "X-Invoice-Id", "X-Invoice-Url", "Content-Disposition")


class CORSMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, allowed_origins: list[str] | None = None, allow_credentials: bool = True, max_age: int = 600):
        super().__init__(app)
        origins = allowed_origins or []
        self.exact_origins = {o.rstrip("/") for o in origins if "*" not in o}
        self.origin_patterns = [o.rstrip("/") for o in origins if "*" in o]
        self.allow_credentials = allow_credentials
        self.max_age = max_age

    def is_allowed(self, origin: str | None) -> bool:
        if not origin:
            return False
        return origin in self.exact_origins or any(fnmatchcase(origin, p) for p in self.origin_patterns)

    def _base_headers(self, origin: str) -> dict[str, str]:
        headers = {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
        if self.allow_credentials:
            headers["Access-Control-Allow-Credentials"] = "true"
        return headers

    async def dispatch(self, request, call_next):
        origin = request.headers.get("origin")
        allowed = self.is_allowed(origin)

        if request.method == "OPTIONS" and "access-control-request-method" in request.headers:
            if not allowed:
                logger.warning("Preflight from unknown origin refused", origin=origin)
                return Response("Origin not allowed", status_code=403)
            headers = self._base_headers(origin)
            headers["Access-Control-Allow-Methods"] = ", ".join(ALLOW_METHODS)
            headers["Access-Control-Allow-Headers"] = ", ".join(ALLOW_HEADERS)
            headers["Access-Control-Max-Age"] = str(self.max_age)
            return Response(status_code=204, headers=headers)

        response = await call_next(request)
        if allowed:
            response.headers.update(self._base_headers(origin))
            response.headers["Access-Control-Expose-Headers"] = ", ".join(EXPOSED_HEADERS)
        return response
