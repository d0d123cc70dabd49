import logging
import time
from typing import List, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from .request_context import REQUEST_ID_HEADER, assign_request_id

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("strata.access")

DEFAULT_JWT_SECRET = "dev-secret-please-change"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id, log it, and harden the response headers.

    API responses carry owner data (bills, arrears, receipts) so they are
    marked ``no-store``; files under ``uploads_prefix`` keep their default
    caching.
    """

    def __init__(
        self,
        app,
        *,
        uploads_prefix: str = "/uploads",
        enable_hsts: bool = True,
        csp: Optional[str] = None,
    ) -> None:
        super().__init__(app)
        self.uploads_prefix = "/" + uploads_prefix.strip("/")
        self.enable_hsts = enable_hsts
        self.csp = csp

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = assign_request_id(request)
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        headers = response.headers
        headers.setdefault(REQUEST_ID_HEADER, request_id)
        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("X-Frame-Options", "DENY")
        headers.setdefault("Referrer-Policy", "same-origin")
        if not request.url.path.startswith(self.uploads_prefix):
            headers.setdefault("Cache-Control", "no-store")
        if self.enable_hsts and request.url.scheme == "https":
            headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        if self.csp:
            headers.setdefault("Content-Security-Policy", self.csp)

        access_logger.info(
            "%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms
        )
        return response


def security_warnings(settings) -> List[str]:
    warnings = []
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        warnings.append("JWT secret is using the insecure default; set JWT_SECRET in the environment.")
    if not settings.cron_secret:
        warnings.append("CRON_SECRET is not set; scheduled billing and reminder endpoints will reject every call.")
    elif len(settings.cron_secret) < 16:
        warnings.append("CRON_SECRET is shorter than 16 characters.")
    backend = (settings.email_backend or "local").strip().lower()
    if backend == "local":
        warnings.append("Email backend is set to local stub; bill notices will be written to disk only.")
    elif backend == "resend" and not settings.resend_api_key:
        warnings.append("EMAIL_BACKEND is resend but RESEND_API_KEY is empty; emails will be skipped.")
    return warnings


def log_security_warnings(settings) -> None:
    for message in security_warnings(settings):
        logger.warning(message)
