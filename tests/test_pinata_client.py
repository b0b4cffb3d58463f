"""Pinata metadata upload tests using httpx.MockTransport."""

import json

import httpx
import pytest

from vaultmint.services.exceptions import (
    IPFSAuthError,
    IPFSNetworkError,
    IPFSRateLimitError,
    IPFSValidationError,
    PermanentError,
    TransientError,
)
from vaultmint.services.ipfs.pinata_client import PinataClient


def client_for(handler) -> PinataClient:
    return PinataClient(
        jwt_token="test-jwt",
        base_url="https://pinata.test/",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_upload_metadata_returns_cid():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"IpfsHash": "bafymeta", "PinSize": 120})

    cid = await client_for(handler).upload_metadata({"name": "Drop #1"}, "DROP-token")

    assert cid == "bafymeta"
    request = requests[0]
    assert str(request.url) == "https://pinata.test/pinning/pinJSONToIPFS"
    assert request.headers["Authorization"] == "Bearer test-jwt"
    body = json.loads(request.content)
    assert body["pinataContent"] == {"name": "Drop #1"}
    assert body["pinataMetadata"] == {"name": "DROP-token"}
    assert body["pinataOptions"] == {"cidVersion": 1}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,error_type,base",
    [
        (429, IPFSRateLimitError, TransientError),
        (503, TransientError, TransientError),
        (502, TransientError, TransientError),
        (401, IPFSAuthError, PermanentError),
        (403, IPFSAuthError, PermanentError),
        (400, IPFSValidationError, PermanentError),
        (404, IPFSNetworkError, TransientError),
    ],
)
async def test_error_classification(status_code, error_type, base):
    client = client_for(lambda request: httpx.Response(status_code, text="nope"))

    with pytest.raises(error_type) as exc_info:
        await client.upload_metadata({}, "pin")

    assert isinstance(exc_info.value, base)


@pytest.mark.asyncio
async def test_network_failure_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(IPFSNetworkError):
        await client_for(handler).upload_metadata({}, "pin")


@pytest.mark.asyncio
async def test_timeout_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(IPFSNetworkError, match="timeout"):
        await client_for(handler).upload_metadata({}, "pin")
