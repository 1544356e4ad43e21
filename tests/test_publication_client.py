"""Pruebas del cliente de publicación Pinata.

Tests for the Pinata publication client.
"""

import asyncio
import json

import httpx
import pytest

from escrutinio.clients.publication import PinataPublicationClient
from escrutinio.errors import (
    MissingCredentialError,
    PublicationError,
    PublicationRetrievalError,
    PublicationUploadError,
)

pytest.importorskip("pytest_httpx")

API_URL = "https://api.pinata.test/pinning/pinJSONToIPFS"
GATEWAY_URL = "https://gateway.pinata.test/ipfs"
CID = "bafkreiexamplecid"


def make_client(**kwargs):
    kwargs.setdefault("backoff_seconds", 0)
    return PinataPublicationClient("jwt-token", api_url=API_URL, gateway_url=GATEWAY_URL, **kwargs)


def test_publish_sends_authenticated_cid_v1_request(httpx_mock):
    httpx_mock.add_response(url=API_URL, method="POST", json={"IpfsHash": CID})

    async def run():
        async with make_client() as client:
            return await client.publish({"results": {"Alice": 1}})

    assert asyncio.run(run()) == CID

    request = httpx_mock.get_requests()[0]
    assert request.headers["Authorization"] == "Bearer jwt-token"
    body = json.loads(request.content)
    assert body["pinataOptions"] == {"cidVersion": 1}
    assert body["pinataContent"] == {"results": {"Alice": 1}}


def test_publish_non_success_status_raises(httpx_mock):
    httpx_mock.add_response(url=API_URL, method="POST", status_code=401)

    async def run():
        async with make_client() as client:
            await client.publish({})

    with pytest.raises(PublicationUploadError) as excinfo:
        asyncio.run(run())
    assert "401" in excinfo.value.message


def test_publish_retries_transient_status(httpx_mock):
    httpx_mock.add_response(url=API_URL, method="POST", status_code=503)
    httpx_mock.add_response(url=API_URL, method="POST", json={"IpfsHash": CID})

    async def run():
        async with make_client() as client:
            return await client.publish({})

    assert asyncio.run(run()) == CID
    assert len(httpx_mock.get_requests()) == 2


def test_publish_gives_up_after_max_attempts(httpx_mock):
    httpx_mock.add_response(url=API_URL, method="POST", status_code=502)
    httpx_mock.add_response(url=API_URL, method="POST", status_code=502)

    async def run():
        async with make_client(max_attempts=2) as client:
            await client.publish({})

    with pytest.raises(PublicationUploadError):
        asyncio.run(run())
    assert len(httpx_mock.get_requests()) == 2


def test_publish_retries_transport_errors(httpx_mock):
    httpx_mock.add_exception(httpx.ConnectError("connection refused"))
    httpx_mock.add_response(url=API_URL, method="POST", json={"IpfsHash": CID})

    async def run():
        async with make_client() as client:
            return await client.publish({})

    assert asyncio.run(run()) == CID


def test_publish_response_without_hash_raises(httpx_mock):
    httpx_mock.add_response(url=API_URL, method="POST", json={"unexpected": True})

    async def run():
        async with make_client() as client:
            await client.publish({})

    with pytest.raises(PublicationUploadError):
        asyncio.run(run())


@pytest.mark.parametrize("jwt", [None, "", "   "])
def test_missing_credential_fails_before_any_request(httpx_mock, jwt):
    with pytest.raises(MissingCredentialError) as excinfo:
        PinataPublicationClient(jwt)
    assert excinfo.value.message == "Pinata JWT not configured"
    assert httpx_mock.get_requests() == []


def test_retrieve_fetches_from_gateway(httpx_mock):
    httpx_mock.add_response(url=f"{GATEWAY_URL}/{CID}", method="GET", json={"results": {"Alice": 1}})

    async def run():
        async with make_client() as client:
            return await client.retrieve(CID)

    assert asyncio.run(run()) == {"results": {"Alice": 1}}


def test_retrieve_not_found_raises(httpx_mock):
    httpx_mock.add_response(url=f"{GATEWAY_URL}/{CID}", method="GET", status_code=404)

    async def run():
        async with make_client() as client:
            await client.retrieve(CID)

    with pytest.raises(PublicationRetrievalError) as excinfo:
        asyncio.run(run())
    assert "404" in excinfo.value.message


def test_check_connection_round_trip(httpx_mock):
    httpx_mock.add_response(url=API_URL, method="POST", json={"IpfsHash": CID})
    httpx_mock.add_response(
        url=f"{GATEWAY_URL}/{CID}",
        method="GET",
        json={"test": "Hello Pinata IPFS", "timestamp": "2024-05-01T00:00:00+00:00"},
    )

    async def run():
        async with make_client() as client:
            return await client.check_connection(), client.gateway_url(CID)

    content_hash, url = asyncio.run(run())
    assert content_hash == CID
    assert url == f"{GATEWAY_URL}/{CID}"


def test_check_connection_detects_mismatch(httpx_mock):
    httpx_mock.add_response(url=API_URL, method="POST", json={"IpfsHash": CID})
    httpx_mock.add_response(url=f"{GATEWAY_URL}/{CID}", method="GET", json={"test": "other"})

    async def run():
        async with make_client() as client:
            await client.check_connection()

    with pytest.raises(PublicationError):
        asyncio.run(run())
