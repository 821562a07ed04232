"""HTTP surface for account registration, login and token validation."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from paylink.common.config import settings
from paylink.common.db import Base, SessionLocal, engine
from paylink.common.errors import PaylinkError
from paylink.common.logging import configure_logging
from paylink.common.metrics import metrics_response
from paylink.common.startup import log_startup_config
from paylink.common.tracing import configure_tracing
from paylink.services.identity.schemas import (
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    UserResponse,
    ValidateTokenRequest,
    ValidateTokenResponse,
)
from paylink.services.identity.service import IdentityService


def build_app(service: IdentityService, init_db=None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if init_db is not None:
            init_db()
        yield

    app = FastAPI(title="Paylink Identity", lifespan=lifespan)
    configure_tracing(app, settings.service_name)

    @app.exception_handler(PaylinkError)
    async def paylink_error_handler(_: Request, exc: PaylinkError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.post("/auth/register", response_model=UserResponse, status_code=201)
    def register(req: RegisterRequest):
        return service.register(req)

    @app.post("/auth/login", response_model=LoginResponse)
    def login(req: LoginRequest):
        return service.login(req)

    @app.post("/auth/validate", response_model=ValidateTokenResponse)
    def validate(req: ValidateTokenRequest):
        """Called by the payments service for every uncached bearer token."""

        return service.validate_token(req.token)

    @app.get("/metrics")
    def metrics():
        return metrics_response()

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "service": settings.service_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


def init_db() -> None:
    Base.metadata.create_all(bind=engine)


configure_logging()
log_startup_config(
    settings.service_name,
    ["SERVICE_NAME", "DATABASE_URL", "JWT_SECRET", "JWT_EXPIRES_IN_SECONDS"],
)
app = build_app(
    IdentityService(SessionLocal, settings.jwt_secret, settings.jwt_expires_in_seconds),
    init_db=init_db,
)
