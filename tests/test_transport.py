"""Tests for the httpx transport and file storage adapters."""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from mixpanel_analytics.storage import InMemoryStorage, JsonFileStorage, KeyValueStorage
from mixpanel_analytics.transport import HttpxTransport, Transport, TransportResponse


def _mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpxTransport:
    """Test HttpxTransport against httpx.MockTransport."""

    @pytest.mark.asyncio
    async def test_get_returns_status_and_body(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text="1")

        async with _mock_client(handler) as client:
            transport = HttpxTransport(client=client)
            response = await transport.get(
                "https://api.mixpanel.test/track/?data=abc&verbose=0",
                headers={"Content-type": "application/json"},
            )

        assert response == TransportResponse(status_code=200, body="1")
        assert seen[0].method == "GET"
        assert seen[0].url.params["data"] == "abc"
        assert seen[0].headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_post_sends_form_data(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(500, text="oops")

        async with _mock_client(handler) as client:
            transport = HttpxTransport(client=client)
            response = await transport.post(
                "https://api.mixpanel.test/engage/?verbose=0",
                headers={"Content-type": "application/x-www-form-urlencoded"},
                data={"data": "eyJhIjogMX0="},
            )

        assert response.status_code == 500
        assert response.body == "oops"
        assert seen[0].method == "POST"
        assert parse_qs(seen[0].content.decode()) == {"data": ["eyJhIjogMX0="]}

    @pytest.mark.asyncio
    async def test_network_errors_propagate(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        async with _mock_client(handler) as client:
            transport = HttpxTransport(client=client)
            with pytest.raises(httpx.ConnectError):
                await transport.get("https://api.mixpanel.test/track/", headers={})

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self):
        async with _mock_client(lambda request: httpx.Response(200, text="1")) as client:
            transport = HttpxTransport(client=client)
            await transport.aclose()
            assert client.is_closed is False

    @pytest.mark.asyncio
    async def test_aclose_closes_owned_client(self):
        transport = HttpxTransport(timeout=2.0)
        client = transport._get_client()
        await transport.aclose()
        assert client.is_closed is True

    def test_satisfies_protocol(self):
        assert isinstance(HttpxTransport(), Transport)


class TestJsonFileStorage:
    """Test the JSON file key-value store."""

    @pytest.mark.asyncio
    async def test_missing_file_returns_none(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "queue.json")
        assert await storage.get_string("mixpanel.analytics") is None

    @pytest.mark.asyncio
    async def test_set_then_get(self, tmp_path):
        path = tmp_path / "nested" / "queue.json"
        storage = JsonFileStorage(path)

        assert await storage.set_string("mixpanel.analytics", '{"track": []}') is True

        assert await storage.get_string("mixpanel.analytics") == '{"track": []}'
        assert json.loads(path.read_text()) == {"mixpanel.analytics": '{"track": []}'}

    @pytest.mark.asyncio
    async def test_keys_share_one_file(self, tmp_path):
        path = tmp_path / "queue.json"
        storage = JsonFileStorage(path)

        await storage.set_string("a", "1")
        await storage.set_string("b", "2")

        reopened = JsonFileStorage(path)
        assert await reopened.get_string("a") == "1"
        assert await reopened.get_string("b") == "2"
        assert not (tmp_path / "queue.json.tmp").exists()

    @pytest.mark.asyncio
    async def test_empty_file_treated_as_empty(self, tmp_path):
        path = tmp_path / "queue.json"
        path.write_text("")
        assert await JsonFileStorage(path).get_string("a") is None

    @pytest.mark.asyncio
    async def test_non_object_file_raises(self, tmp_path):
        path = tmp_path / "queue.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            await JsonFileStorage(path).get_string("a")

    def test_adapters_satisfy_protocol(self, tmp_path):
        assert isinstance(JsonFileStorage(tmp_path / "q.json"), KeyValueStorage)
        assert isinstance(InMemoryStorage(), KeyValueStorage)
