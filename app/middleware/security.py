from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from fastapi import Request

from app.config import settings

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # 1. HSTS (HTTP Strict Transport Security), production only
        if not settings.DEBUG:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        # 2. Prevent MIME Sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        # 3. Clickjacking Protection
        response.headers["X-Frame-Options"] = "DENY"

        # 4. Referrer Policy
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # 5. CSP: the API serves JSON, files and the Swagger UI
        if request.url.path.startswith("/api/docs") or request.url.path.startswith("/api/redoc"):
            csp = (
                "default-src 'self'; "
                "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "img-src 'self' data: https://fastapi.tiangolo.com; "
                "object-src 'none';"
            )
        else:
            csp = "default-src 'none'; img-src 'self' data:; frame-ancestors 'none';"
        response.headers["Content-Security-Policy"] = csp

        return response
