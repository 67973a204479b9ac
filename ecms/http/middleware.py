from __future__ import annotations

from secrets import token_urlsafe
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ecms.logging_context import set_request_id, set_requester_id
from ecms.logging_utils import structured_log

REQUEST_ID_HEADER = "X-Request-ID"
DEFAULT_PERMISSIONS_POLICY = (
    "accelerometer=(), autoplay=(), camera=(), display-capture=(), "
    "geolocation=(), gyroscope=(), microphone=(), payment=(), usb=()"
)
# JSON and image responses only; nothing here renders documents.
DEFAULT_CSP_POLICY = "default-src 'none'; img-src 'self'; frame-ancestors 'none'"
DOCS_PATH_PREFIXES = ("/docs", "/redoc", "/openapi.json")

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        *,
        log_requests: bool = True,
        skip_paths: tuple[str, ...] = (),
    ) -> None:
        super().__init__(app)
        self._log_requests = log_requests
        self._skip_paths = tuple(path for path in skip_paths if path)

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or token_urlsafe(12)
        request.state.request_id = request_id
        set_request_id(request_id)

        start = time.perf_counter()
        should_log = self._log_requests and not self._is_skipped_path(request.url.path)
        if should_log:
            structured_log(
                logger, "debug", "request.started",
                method=request.method,
                path=request.url.path,
            )

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request.failed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": int((time.perf_counter() - start) * 1000),
                },
            )
            raise
        else:
            response.headers[REQUEST_ID_HEADER] = request_id
            if should_log:
                structured_log(
                    logger, "info", "request.completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=int((time.perf_counter() - start) * 1000),
                )
            return response
        finally:
            set_request_id(None)
            set_requester_id(None)

    def _is_skipped_path(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self._skip_paths)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        *,
        enabled: bool = True,
        x_content_type_options: str = "nosniff",
        x_frame_options: str = "DENY",
        referrer_policy: str = "strict-origin-when-cross-origin",
        permissions_policy: str = DEFAULT_PERMISSIONS_POLICY,
        cross_origin_resource_policy: str = "same-site",
        content_security_policy: str = DEFAULT_CSP_POLICY,
    ) -> None:
        super().__init__(app)
        self._enabled = enabled
        self._static_headers = tuple(
            (name, value.strip())
            for name, value in (
                ("X-Content-Type-Options", x_content_type_options),
                ("X-Frame-Options", x_frame_options),
                ("Referrer-Policy", referrer_policy),
                ("Permissions-Policy", permissions_policy),
                ("Cross-Origin-Resource-Policy", cross_origin_resource_policy),
            )
            if value.strip()
        )
        self._csp_policy = content_security_policy.strip()

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        if not self._enabled:
            return response

        for name, value in self._static_headers:
            response.headers.setdefault(name, value)
        # Swagger UI needs inline scripts; leave its pages alone.
        if self._csp_policy and not request.url.path.startswith(DOCS_PATH_PREFIXES):
            response.headers.setdefault("Content-Security-Policy", self._csp_policy)
        return response


def parse_skip_paths(raw_value: str) -> tuple[str, ...]:
    parts = [part.strip() for part in raw_value.split(",")]
    return tuple(part for part in parts if part)
