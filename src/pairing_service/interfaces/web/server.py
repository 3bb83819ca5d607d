"""Pairing service WebInterface: HTTP entry point for pairing approvals."""

from __future__ import annotations

import hmac
import uuid
from typing import Any

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from pairing_service.approval.factories import create_orchestrator
from pairing_service.approval.orchestrator import ApprovalOrchestrator
from pairing_service.config.settings import Settings
from pairing_service.core.exceptions import AuthorizationError, PairingError, ValidationError
from pairing_service.core.structured_logger import TraceContext, get_logger
from pairing_service.core.types import (
    ApprovalOutcome,
    ApprovalRequest,
    ApprovalSuccess,
    ManualFallback,
)

logger = get_logger("WebInterface")


class PairingApproveBody(BaseModel):
    """Raw request body; field checks happen in ApprovalRequest.create."""
    serviceId: Any = None
    channel: Any = None
    code: Any = None
    gatewayToken: Any = None


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        return response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Echo or mint X-Request-Id and use it as the log trace id."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        with TraceContext(request_id):
            response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response


def success_body(outcome: ApprovalSuccess) -> dict[str, Any]:
    return {
        "success": True,
        "method": outcome.method.value,
        "message": f"Pairing approved successfully via {outcome.method.value}",
        "result": outcome.payload,
    }


def manual_body(outcome: ManualFallback) -> dict[str, Any]:
    body: dict[str, Any] = {
        "success": False,
        "error": f"Automatic pairing failed: {outcome.last_error}",
        "lastError": outcome.last_error,
        "requiresManual": True,
        "command": outcome.command,
        "instructions": list(outcome.instructions),
        "attempts": [a.to_dict() for a in outcome.attempts],
    }
    if outcome.dashboard_url:
        body["dashboardUrl"] = outcome.dashboard_url
    return body


def outcome_response(outcome: ApprovalOutcome) -> JSONResponse:
    if isinstance(outcome, ApprovalSuccess):
        return JSONResponse(success_body(outcome), status_code=200)
    return JSONResponse(manual_body(outcome), status_code=503)


class WebInterface:
    def __init__(self, settings: Settings, orchestrator: ApprovalOrchestrator | None = None):
        self.settings = settings
        self.orchestrator = orchestrator or create_orchestrator(settings)
        self.app = self._build_app()

    async def _auth_context(self, authorization: str | None = Header(None)) -> None:
        expected = self.settings.api_key or ""
        token = ""
        if authorization and authorization.startswith("Bearer "):
            token = authorization.removeprefix("Bearer ").strip()
        # Constant-time comparison; an unset key never authenticates
        if not expected or not hmac.compare_digest(token.encode(), expected.encode()):
            raise AuthorizationError()

    def _build_app(self) -> FastAPI:
        app = FastAPI(title="OpenClaw Pairing Service", version=self.settings.version)
        self._register_exception_handlers(app)
        self._register_middleware(app)
        self._register_routes(app)
        return app

    def _register_exception_handlers(self, app: FastAPI) -> None:
        @app.exception_handler(AuthorizationError)
        async def auth_handler(request: Request, exc: AuthorizationError):
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})

        @app.exception_handler(ValidationError)
        async def validation_handler(request: Request, exc: ValidationError):
            return JSONResponse(status_code=400, content={"error": exc.message})

        @app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            return JSONResponse(status_code=400, content={"error": "Request body must be a JSON object"})

        @app.exception_handler(PairingError)
        async def pairing_error_handler(request: Request, exc: PairingError):
            logger.error("Unhandled pairing error", error=exc.to_dict())
            return JSONResponse(status_code=500, content={"error": exc.user_message()})

    def _register_middleware(self, app: FastAPI) -> None:
        app.add_middleware(SecurityHeadersMiddleware)
        app.add_middleware(RequestIdMiddleware)

    def _register_routes(self, app: FastAPI) -> None:
        @app.get("/health")
        async def health():
            return {
                "status": "ok",
                "service": self.settings.service_name,
                "version": self.settings.version,
            }

        @app.post("/pairing/approve", dependencies=[Depends(self._auth_context)])
        async def approve(payload: PairingApproveBody):
            request = ApprovalRequest.create(
                worker_id=payload.serviceId,
                channel=payload.channel,
                code=payload.code,
                gateway_token=payload.gatewayToken,
            )
            outcome = await self.orchestrator.run(request)
            return outcome_response(outcome)

    async def start(self) -> None:
        import uvicorn

        config = uvicorn.Config(
            self.app,
            host=self.settings.web.host,
            port=self.settings.web.port,
            log_level=self.settings.logging.level.lower(),
        )
        server = uvicorn.Server(config)
        logger.info("Listening", host=self.settings.web.host, port=self.settings.web.port)
        await server.serve()


def create_app(settings: Settings | None = None, orchestrator: ApprovalOrchestrator | None = None) -> FastAPI:
    if settings is None:
        from pairing_service.config.settings import load_settings
        from pairing_service.core.structured_logger import configure_logging

        settings = load_settings()
        configure_logging(settings.logging)
    return WebInterface(settings, orchestrator=orchestrator).app
