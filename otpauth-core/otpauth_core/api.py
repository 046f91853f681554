"""
HTTP API
========
FastAPI adapter over the OTP auth service.

Usage:
    uvicorn --factory otpauth_core.api:create_app

Every response uses the envelope ``{success, message, data}``; failures are
``{success: false, message, code}`` where ``code`` is the error kind. Status
codes come from ``STATUS_BY_KIND``, never from message text.
"""

import time
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, Dict, Optional, Union

import structlog
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import text

from otpauth_core import __version__
from otpauth_core.config import Settings
from otpauth_core.context import AppContext
from otpauth_core.errors import (
    AuthenticationError,
    ErrorKind,
    OTPAuthError,
)
from otpauth_core.logging_config import setup_logging
from otpauth_core.service import OTPAuthService

logger = structlog.get_logger(__name__)

STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.COOLDOWN: 429,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.NOT_FOUND: 400,
    ErrorKind.EXPIRED: 400,
    ErrorKind.EXHAUSTED: 400,
    ErrorKind.INVALID_CODE: 400,
    ErrorKind.PROVIDER: 502,
    ErrorKind.DELIVERY: 502,
    ErrorKind.USER_NOT_FOUND: 404,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.CONFLICT: 409,
    ErrorKind.CONFIGURATION: 503,
}

# Provider payloads stay in the logs
GENERIC_MESSAGE_KINDS = {ErrorKind.PROVIDER, ErrorKind.DELIVERY, ErrorKind.CONFIGURATION}


def success_response(data: Any = None, message: str = "Success") -> Dict[str, Any]:
    return {"success": True, "message": message, "data": data}


def error_response(message: str, code: str, **extra: Any) -> Dict[str, Any]:
    body = {"success": False, "message": message, "code": code}
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


# =============================================================================
# Request models
# =============================================================================

class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class SendOTPRequest(_Request):
    email: Optional[str] = None
    phone: Optional[str] = None
    phone_code: Optional[str] = Field(default=None, alias="phoneCode")


class VerifyOTPRequest(SendOTPRequest):
    otp: Optional[Union[str, int]] = None


class ProfileData(_Request):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    current_course: Optional[str] = Field(default=None, alias="currentCourse")
    enrolled_course: Optional[str] = Field(default=None, alias="enrolledCourse")


class ProfileUpdateRequest(_Request):
    model_config = ConfigDict(
        populate_by_name=True, str_strip_whitespace=True, extra="forbid"
    )

    fullname: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    profile: Optional[ProfileData] = None


# =============================================================================
# Health
# =============================================================================

class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    status: str
    latency_ms: Optional[float] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: HealthStatus
    service: str
    version: str
    components: Dict[str, ComponentHealth]
    timestamp: float


async def check_database(engine) -> ComponentHealth:
    """Check database connectivity and latency."""
    try:
        start = time.time()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        latency = (time.time() - start) * 1000
        return ComponentHealth(status="connected", latency_ms=round(latency, 2))
    except Exception as e:
        logger.error("health.database_failed", error=str(e))
        return ComponentHealth(status="error", error=str(e))


async def check_redis(redis_client) -> ComponentHealth:
    """Check Redis connectivity and latency."""
    try:
        start = time.time()
        await redis_client.ping()
        latency = (time.time() - start) * 1000
        return ComponentHealth(status="connected", latency_ms=round(latency, 2))
    except Exception as e:
        logger.error("health.redis_failed", error=str(e))
        return ComponentHealth(status="error", error=str(e))


# =============================================================================
# Dependencies
# =============================================================================

bearer_scheme = HTTPBearer(auto_error=False)


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_service(context: AppContext = Depends(get_context)) -> OTPAuthService:
    return context.service


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    service: OTPAuthService = Depends(get_service),
) -> str:
    if credentials is None:
        raise AuthenticationError("No token provided")
    claims = service.authenticate(credentials.credentials)
    if not claims or not claims.get("userId"):
        raise AuthenticationError("Invalid or expired token")
    return claims["userId"]


# =============================================================================
# Routers
# =============================================================================

def create_auth_router() -> APIRouter:
    router = APIRouter(prefix="/auth", tags=["Auth"])

    @router.post("/send-otp")
    async def send_otp(body: SendOTPRequest, service: OTPAuthService = Depends(get_service)):
        sent = await service.send_otp(body.email, body.phone, body.phone_code)
        return success_response(sent.to_dict(), sent.message)

    @router.post("/resend-otp")
    async def resend_otp(body: SendOTPRequest, service: OTPAuthService = Depends(get_service)):
        sent = await service.resend_otp(body.email, body.phone, body.phone_code)
        return success_response(sent.to_dict(), sent.message)

    @router.post("/verify-otp")
    async def verify_otp(body: VerifyOTPRequest, service: OTPAuthService = Depends(get_service)):
        otp = str(body.otp) if body.otp is not None else None
        result = await service.verify_otp(body.email, body.phone, otp, body.phone_code)
        return success_response(result.to_dict(), result.message)

    @router.get("/me")
    async def me(
        user_id: str = Depends(get_current_user_id),
        service: OTPAuthService = Depends(get_service),
    ):
        user = await service.get_profile(user_id)
        return success_response(user.to_dict())

    @router.put("/profile")
    async def update_profile(
        body: ProfileUpdateRequest,
        user_id: str = Depends(get_current_user_id),
        service: OTPAuthService = Depends(get_service),
    ):
        profile = body.profile.model_dump(exclude_none=True) if body.profile else None
        user = await service.update_profile(
            user_id,
            fullname=body.fullname,
            email=body.email,
            phone=body.phone,
            profile=profile,
        )
        return success_response(user.to_dict(), "Profile updated successfully")

    @router.post("/logout")
    async def logout(user_id: str = Depends(get_current_user_id)):
        # Tokens are stateless; the client drops it
        logger.info("auth.logout", user_id=user_id)
        return success_response(None, "Logged out successfully")

    return router


def create_health_router() -> APIRouter:
    router = APIRouter(tags=["Health"])

    @router.get("/health", response_model=HealthResponse)
    async def health_check(context: AppContext = Depends(get_context)) -> HealthResponse:
        """Health check with component statuses."""
        components: Dict[str, ComponentHealth] = {}
        overall_status = HealthStatus.HEALTHY

        engine = getattr(context.store, "engine", None)
        if engine is not None:
            components["database"] = await check_database(engine)
            if components["database"].status == "error":
                overall_status = HealthStatus.UNHEALTHY

        if context.redis_client is not None:
            components["redis"] = await check_redis(context.redis_client)
            if components["redis"].status == "error" and overall_status == HealthStatus.HEALTHY:
                overall_status = HealthStatus.DEGRADED

        for task in context.tasks:
            components[task.name] = ComponentHealth(
                status="running" if task.running else "stopped"
            )

        return HealthResponse(
            status=overall_status,
            service=context.settings.service_name,
            version=__version__,
            components=components,
            timestamp=time.time(),
        )

    @router.get("/health/live")
    async def liveness_probe():
        return {"status": "alive"}

    return router


# =============================================================================
# Error handlers
# =============================================================================

async def handle_auth_error(request: Request, exc: OTPAuthError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    message = type(exc).default_message if exc.kind in GENERIC_MESSAGE_KINDS else exc.message

    log = logger.error if status_code >= 500 else logger.info
    log(
        "api.request_failed",
        path=request.url.path,
        kind=exc.kind.value,
        status_code=status_code,
        error=exc.message,
        provider=getattr(exc, "provider", None),
        details=getattr(exc, "details", None),
    )

    headers = None
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        headers = {"Retry-After": str(retry_after)}

    return JSONResponse(
        status_code=status_code,
        content=error_response(
            message,
            exc.kind.value,
            retryAfter=retry_after,
            attemptsRemaining=getattr(exc, "attempts_remaining", None),
            field=getattr(exc, "field", None),
        ),
        headers=headers,
    )


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in e.get("loc", ())[1:]), "message": e.get("msg")}
        for e in exc.errors()
    ]
    protected = any(e.get("type") == "extra_forbidden" for e in exc.errors())
    message = "Cannot update protected fields" if protected else "Validation error"
    return JSONResponse(
        status_code=400,
        content=error_response(message, ErrorKind.VALIDATION.value, errors=errors),
    )


# =============================================================================
# Application
# =============================================================================

def create_app(
    context: Optional[AppContext] = None,
    settings: Optional[Settings] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        context: Pre-built context (tests); built from settings otherwise
        settings: Defaults to ``Settings.from_env()``
        configure_logging: Call ``setup_logging`` from the settings
    """
    if context is None:
        settings = settings or Settings.from_env()
        if configure_logging:
            setup_logging(settings.service_name, settings.log_level, settings.log_json)
        context = AppContext.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await context.start()
        try:
            yield
        finally:
            await context.close()

    app = FastAPI(title=context.settings.service_name, version=__version__, lifespan=lifespan)
    app.state.context = context
    app.include_router(create_auth_router())
    app.include_router(create_health_router())
    app.add_exception_handler(OTPAuthError, handle_auth_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    return app
