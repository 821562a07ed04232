"""HTTP surface for payment records, status updates and provider webhooks."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from time import perf_counter
from uuid import uuid4

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from paylink.common.cache import build_cache
from paylink.common.config import settings
from paylink.common.db import Base, SessionLocal, engine
from paylink.common.errors import PaylinkError
from paylink.common.logging import configure_logging, log_context, logger
from paylink.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from paylink.common.startup import log_startup_config
from paylink.common.tracing import configure_tracing
from paylink.services.payments.auth import HttpTokenValidator, TokenValidationGateway, require_user
from paylink.services.payments.repository import PaymentRepository
from paylink.services.payments.schemas import (
    PaymentCreateRequest,
    PaymentResponse,
    TimelineEntry,
    UpdateStatusRequest,
    UserRef,
    WebhookRequest,
    WebhookResponse,
)
from paylink.services.payments.service import PaymentLifecycleCoordinator


def build_app(coordinator: PaymentLifecycleCoordinator, gateway: TokenValidationGateway, init_db=None) -> FastAPI:
    """Wire routes to an explicit coordinator and token gateway."""

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if init_db is not None:
            init_db()
        yield
        await coordinator.cache.close()
        if gateway.cache is not coordinator.cache:
            await gateway.cache.close()

    app = FastAPI(title="Paylink Payments", lifespan=lifespan)
    app.state.coordinator = coordinator
    app.state.gateway = gateway
    configure_tracing(app, settings.service_name)

    @app.exception_handler(PaylinkError)
    async def paylink_error_handler(_: Request, exc: PaylinkError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request count and latency, and bind a trace id for logging."""

        trace_id = request.headers.get("x-trace-id") or str(uuid4())
        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            with log_context(trace_id=trace_id):
                response = await call_next(request)
            response.headers["x-trace-id"] = trace_id
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    @app.post("/payments/initiate", response_model=PaymentResponse, status_code=201)
    async def initiate_payment(req: PaymentCreateRequest, _: UserRef = Depends(require_user)):
        """Create a payment in `INITIATED` under a fresh reference."""

        return await coordinator.initiate(req)

    @app.post("/payments/webhook", response_model=WebhookResponse)
    async def payment_webhook(req: WebhookRequest):
        """Provider callback. Authenticated by the provider channel, not by bearer token."""

        outcome = await coordinator.ingest_webhook(
            req.payment_reference,
            req.status,
            req.provider_transaction_id,
            req.timestamp,
        )
        return WebhookResponse(
            success=outcome.success,
            message=outcome.message,
            payment_reference=outcome.payment_reference,
        )

    @app.get("/payments/{reference}", response_model=PaymentResponse)
    async def get_payment(reference: str, _: UserRef = Depends(require_user)):
        return await coordinator.get_by_reference(reference)

    @app.get("/payments/{reference}/timeline", response_model=list[TimelineEntry])
    async def get_payment_timeline(reference: str, _: UserRef = Depends(require_user)):
        """Every persisted status write for one payment, oldest first."""

        return await coordinator.timeline(reference)

    @app.patch("/payments/{reference}/status", response_model=PaymentResponse)
    async def update_payment_status(
        reference: str,
        req: UpdateStatusRequest,
        _: UserRef = Depends(require_user),
    ):
        return await coordinator.update_status(reference, req.status, req.provider_transaction_id)

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Container health check endpoint."""

        return {
            "status": "ok",
            "service": settings.service_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
    logger.info("payments schema ready")


configure_logging()
log_startup_config(
    settings.service_name,
    [
        "SERVICE_NAME",
        "DATABASE_URL",
        "REDIS_URL",
        "CACHE_BACKEND",
        "AUTH_SERVICE_URL",
        "TOKEN_CACHE_TTL_SECONDS",
        "IDEMPOTENCY_TTL_SECONDS",
    ],
)
cache = build_cache(settings)
app = build_app(
    PaymentLifecycleCoordinator(
        PaymentRepository(SessionLocal),
        cache,
        idempotency_ttl_seconds=settings.idempotency_ttl_seconds,
        service_name=settings.service_name,
    ),
    TokenValidationGateway(
        cache,
        HttpTokenValidator(settings.auth_service_url, settings.auth_request_timeout_seconds),
        ttl_seconds=settings.token_cache_ttl_seconds,
        service_name=settings.service_name,
    ),
    init_db=init_db,
)
