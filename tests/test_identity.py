"""Tests for bearer token resolution."""

import httpx
import pytest

from cardscout.api.identity import IdentityClient
from cardscout.errors import IdentityError


def _identity(handler, url="https://auth.test/user", api_key="anon-key"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return IdentityClient(url=url, api_key=api_key, client=client)


@pytest.mark.asyncio
async def test_resolves_owner_and_forwards_headers():
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, json={"id": "a1b2", "email": "o@example.test"})

    identity = _identity(handler)
    owner = await identity.resolve("tok")
    await identity.close()

    assert owner.id == "a1b2"
    assert owner.email == "o@example.test"
    assert seen["authorization"] == "Bearer tok"
    assert seen["apikey"] == "anon-key"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_rejected_token_resolves_to_none(status):
    identity = _identity(lambda request: httpx.Response(status))
    assert await identity.resolve("expired") is None


@pytest.mark.asyncio
async def test_provider_errors_raise_identity_error():
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(IdentityError):
        await _identity(unreachable).resolve("tok")
    with pytest.raises(IdentityError):
        await _identity(lambda request: httpx.Response(502)).resolve("tok")
    with pytest.raises(IdentityError):
        await _identity(lambda request: httpx.Response(200, text="<html>")).resolve("tok")


@pytest.mark.asyncio
async def test_unconfigured_provider_raises():
    with pytest.raises(IdentityError):
        await IdentityClient(url="", client=httpx.AsyncClient()).resolve("tok")
