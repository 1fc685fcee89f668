"""
Unit tests for the Whop API client
"""

import httpx
import pytest

from member_directory.services.whop import WhopAPIClient


def make_client(handler, api_key="default-key"):
    return WhopAPIClient(
        api_key=api_key,
        base_url="https://api.example.test/api/v2",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_get_membership_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"id": "mem_1", "user": {"id": "user_1"}})

    client = make_client(handler)
    record = await client.get_membership("mem_1")
    await client.aclose()

    assert record == {"id": "mem_1", "user": {"id": "user_1"}}
    assert seen["url"] == "https://api.example.test/api/v2/memberships/mem_1"
    assert seen["auth"] == "Bearer default-key"


@pytest.mark.asyncio
async def test_tenant_key_overrides_default():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={})

    client = make_client(handler)
    await client.get_membership("mem_1", api_key="Bearer tenant-key")
    await client.aclose()

    assert seen["auth"] == "Bearer tenant-key"


@pytest.mark.asyncio
async def test_no_key_skips_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = make_client(handler, api_key=None)
    assert await client.get_membership("mem_1") is None
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404, json={"error": "not found"}),
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json=["not", "an", "object"]),
    ],
)
async def test_failures_return_none(response):
    client = make_client(lambda request: response)
    assert await client.get_membership("mem_1") is None
    await client.aclose()


@pytest.mark.asyncio
async def test_network_error_returns_none():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    assert await client.get_membership("mem_1") is None
    await client.aclose()
