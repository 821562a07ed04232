"""Bearer-token authorization against the remote identity service.

Every verdict the identity service returns, valid or not, is cached under the
raw token for a short TTL so repeated calls skip the network entirely. Any
failure to reach a verdict is treated as unauthorized.
"""

import httpx
from fastapi import Header, Request
from pydantic import BaseModel, ValidationError

from paylink.common.cache import Cache, safe_get, safe_set
from paylink.common.errors import ServiceUnavailable, Unauthorized
from paylink.common.logging import logger
from paylink.common.metrics import token_validation_total
from paylink.services.payments.schemas import UserRef


class TokenVerdict(BaseModel):
    """Response body of `POST /auth/validate`."""

    valid: bool
    user: UserRef | None = None
    message: str | None = None


class HttpTokenValidator:
    """Calls the identity service's validation endpoint over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def validate(self, token: str) -> TokenVerdict:
        """Return the identity service's verdict or raise `ServiceUnavailable`."""

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                resp = await client.post(f"{self.base_url}/auth/validate", json={"token": token})
            resp.raise_for_status()
            verdict = TokenVerdict.model_validate(resp.json())
        except (httpx.HTTPError, ValueError) as exc:
            raise ServiceUnavailable(f"identity service call failed: {exc}") from exc
        if verdict.valid and verdict.user is None:
            raise ServiceUnavailable("identity service returned a valid verdict without a user")
        return verdict


def token_cache_key(token: str) -> str:
    return f"token:{token}"


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token of an `Authorization: Bearer <token>` header, if any."""

    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme != "Bearer" or not token.strip():
        return None
    return token.strip()


class TokenValidationGateway:
    """Turns a bearer token into a `UserRef` or raises `Unauthorized`."""

    def __init__(self, cache: Cache, validator, ttl_seconds: int = 300, service_name: str = "payments") -> None:
        self.cache = cache
        self.validator = validator
        self.ttl_seconds = ttl_seconds
        self.service_name = service_name

    async def authorize(self, token: str | None) -> UserRef:
        if not token:
            logger.warning("no token provided in request")
            token_validation_total.labels(service=self.service_name, source="none", result="missing").inc()
            raise Unauthorized("No token provided")

        key = token_cache_key(token)
        verdict = await self._cached_verdict(key)
        if verdict is not None:
            logger.info("token validation retrieved from cache")
            return self._resolve(verdict, source="cache")

        try:
            verdict = await self.validator.validate(token)
        except Exception as exc:
            logger.error("token validation error: %s", exc)
            token_validation_total.labels(service=self.service_name, source="remote", result="error").inc()
            raise Unauthorized("Failed to validate token") from exc

        # Cache before branching so a quick retry of a rejected token is also served locally.
        await safe_set(self.cache, key, verdict.model_dump(mode="json"), self.ttl_seconds)
        return self._resolve(verdict, source="remote")

    async def _cached_verdict(self, key: str) -> TokenVerdict | None:
        cached = await safe_get(self.cache, key)
        if cached is None:
            return None
        try:
            return TokenVerdict.model_validate(cached)
        except ValidationError as exc:
            logger.warning("discarding unreadable cached token verdict errors=%d", exc.error_count())
            return None

    def _resolve(self, verdict: TokenVerdict, source: str) -> UserRef:
        if not verdict.valid or verdict.user is None:
            logger.warning("token rejected source=%s reason=%s", source, verdict.message)
            token_validation_total.labels(service=self.service_name, source=source, result="invalid").inc()
            raise Unauthorized("Invalid token")
        token_validation_total.labels(service=self.service_name, source=source, result="valid").inc()
        logger.info("token validated for user=%s source=%s", verdict.user.id, source)
        return verdict.user


async def require_user(request: Request, authorization: str | None = Header(default=None)) -> UserRef:
    """FastAPI dependency placed in front of every authenticated payments route."""

    gateway: TokenValidationGateway = request.app.state.gateway
    user = await gateway.authorize(extract_bearer_token(authorization))
    request.state.user = user
    return user
