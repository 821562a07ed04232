"""Tests for bearer-token authorization against the identity service."""

import json

import httpx
import pytest

from paylink.common.errors import ServiceUnavailable, Unauthorized
from paylink.services.payments.auth import (
    HttpTokenValidator,
    TokenValidationGateway,
    TokenVerdict,
    extract_bearer_token,
    token_cache_key,
)
from tests.fakes import ALICE, FakeValidator


@pytest.mark.asyncio
async def test_missing_token_never_reaches_cache_or_remote(gateway, valid_validator, cache):
    with pytest.raises(Unauthorized, match="No token provided"):
        await gateway.authorize(None)
    with pytest.raises(Unauthorized):
        await gateway.authorize("")

    assert valid_validator.calls == []
    assert await cache.get(token_cache_key("")) is None


@pytest.mark.asyncio
async def test_valid_token_is_cached_and_second_call_skips_remote(gateway, valid_validator):
    """Two authorizations in a row cost exactly one remote call."""

    first = await gateway.authorize("tok-1")
    second = await gateway.authorize("tok-1")

    assert first == ALICE
    assert second == ALICE
    assert valid_validator.calls == ["tok-1"]


@pytest.mark.asyncio
async def test_cached_valid_verdict_short_circuits(cache, valid_validator):
    await cache.set(token_cache_key("tok-2"), {"valid": True, "user": ALICE.model_dump()}, 300)
    gateway = TokenValidationGateway(cache, valid_validator, ttl_seconds=300)

    assert await gateway.authorize("tok-2") == ALICE
    assert valid_validator.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("garbage", [{"valid": "maybe"}, "not-a-verdict", {"valid": True, "user": {"id": "user-1"}}])
async def test_unreadable_cached_verdict_is_treated_as_miss(cache, valid_validator, garbage):
    """A cached value that is not a verdict falls through to the identity service."""

    await cache.set(token_cache_key("tok-4"), garbage, 300)
    gateway = TokenValidationGateway(cache, valid_validator, ttl_seconds=300)

    assert await gateway.authorize("tok-4") == ALICE
    assert valid_validator.calls == ["tok-4"]
    assert (await cache.get(token_cache_key("tok-4")))["user"]["id"] == ALICE.id


@pytest.mark.asyncio
async def test_invalid_verdict_is_cached_before_rejecting(cache):
    validator = FakeValidator(TokenVerdict(valid=False, message="jwt expired"))
    gateway = TokenValidationGateway(cache, validator, ttl_seconds=300)

    with pytest.raises(Unauthorized, match="Invalid token"):
        await gateway.authorize("stale")
    with pytest.raises(Unauthorized, match="Invalid token"):
        await gateway.authorize("stale")

    assert validator.calls == ["stale"]
    assert (await cache.get(token_cache_key("stale")))["valid"] is False


@pytest.mark.asyncio
async def test_cached_verdict_expires_after_ttl(gateway, valid_validator, clock):
    await gateway.authorize("tok-3")
    clock.advance(301)
    await gateway.authorize("tok-3")

    assert valid_validator.calls == ["tok-3", "tok-3"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [ServiceUnavailable("identity down"), RuntimeError("boom"), TimeoutError()],
)
async def test_remote_failure_fails_closed(cache, error):
    """No remote failure may ever produce a user."""

    validator = FakeValidator(error=error)
    gateway = TokenValidationGateway(cache, validator, ttl_seconds=300)

    with pytest.raises(Unauthorized, match="Failed to validate token"):
        await gateway.authorize("tok-4")
    assert await cache.get(token_cache_key("tok-4")) is None


@pytest.mark.parametrize(
    "header, expected",
    [
        ("Bearer abc.def", "abc.def"),
        ("  Bearer abc  ", "abc"),
        ("Basic abc", None),
        ("bearer abc", None),
        ("Bearer ", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_bearer_token(header, expected):
    assert extract_bearer_token(header) == expected


def _validator(handler) -> HttpTokenValidator:
    return HttpTokenValidator("http://identity:8001/", timeout_seconds=1.0, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_http_validator_posts_token_and_parses_verdict():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(
            200,
            json={"valid": True, "user": {**ALICE.model_dump(), "created_at": "2026-01-01T00:00:00Z"}},
        )

    verdict = await _validator(handler).validate("tok-5")

    assert seen["url"] == "http://identity:8001/auth/validate"
    assert json.loads(seen["body"]) == {"token": "tok-5"}
    assert verdict.valid is True
    assert verdict.user == ALICE


@pytest.mark.asyncio
async def test_http_validator_returns_invalid_verdict():
    verdict = await _validator(
        lambda request: httpx.Response(200, json={"valid": False, "message": "invalid signature"})
    ).validate("bad")

    assert verdict.valid is False
    assert verdict.message == "invalid signature"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(500, json={"detail": "boom"}),
        lambda request: httpx.Response(200, text="not json"),
        lambda request: httpx.Response(200, json={"valid": True}),
    ],
)
async def test_http_validator_wraps_bad_responses(handler):
    with pytest.raises(ServiceUnavailable):
        await _validator(handler).validate("tok")


@pytest.mark.asyncio
async def test_http_validator_wraps_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(ServiceUnavailable):
        await _validator(handler).validate("tok")
