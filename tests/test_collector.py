"""Tests for the collector HTTP/WebSocket client against a fake collector."""
from __future__ import annotations

import pytest
from aiohttp.test_utils import unused_port

from browser_relay.collector import CollectorClient
from browser_relay.errors import TransportError
from browser_relay.models import Settings


@pytest.fixture
async def client(settings):
    client = CollectorClient(settings, identity_timeout=1)
    yield client
    await client.close()


@pytest.fixture
async def dead_client():
    client = CollectorClient(Settings(server_host="127.0.0.1", server_port=unused_port()), identity_timeout=1)
    yield client
    await client.close()


async def test_identity_ok(client, collector):
    result = await client.check_identity()
    assert result.ok
    assert result.status == 200
    assert result.server_info.name == "fake-collector"
    assert result.server_info.version == "1.2.3"


async def test_identity_accepts_non_string_metadata(client, collector):
    collector.identity_extra = {"name": 7, "version": 1.2, "uptime": 30}
    result = await client.check_identity()
    assert result.ok
    assert result.server_info.name == "7"
    assert result.server_info.version == "1.2"


async def test_identity_null_metadata(client, collector):
    collector.identity_extra = {"name": None}
    result = await client.check_identity()
    assert result.ok
    assert result.server_info.name == ""

    collector.identity_extra = {"signature": None}
    result = await client.check_identity()
    assert not result.ok
    assert result.reason == "invalid_signature"


async def test_identity_wrong_signature(client, collector):
    collector.signature = "some-other-service"
    result = await client.check_identity()
    assert not result.ok
    assert result.reason == "invalid_signature"


async def test_identity_http_error(client, collector):
    collector.identity_status = 503
    result = await client.check_identity()
    assert not result.ok
    assert result.reason == "http_error"
    assert result.status == 503


async def test_identity_connection_error(dead_client):
    result = await dead_client.check_identity()
    assert not result.ok
    assert result.reason == "connection_error"
    assert result.error


async def test_identity_follows_settings_replacement(client, collector):
    client.settings = client.settings.model_copy(update={"server_port": unused_port()})
    result = await client.check_identity()
    assert result.reason == "connection_error"
    assert collector.identity_calls == 0


async def test_post_log_and_wipe(client, collector):
    await client.post_log({"data": {"type": "console-log"}, "settings": {}})
    await client.wipe_logs()
    assert collector.logs == [{"data": {"type": "console-log"}, "settings": {}}]
    assert collector.wipes == 1


async def test_post_log_http_error_raises(client, collector):
    collector.log_status = 500
    with pytest.raises(TransportError):
        await client.post_log({"data": {}})


async def test_post_to_dead_collector_raises(dead_client):
    with pytest.raises(TransportError):
        await dead_client.wipe_logs()


async def test_open_websocket_to_dead_collector_raises(dead_client):
    with pytest.raises(TransportError):
        await dead_client.open_websocket()


async def test_urls_derive_from_settings(settings):
    client = CollectorClient(settings)
    assert client.base_url == f"http://127.0.0.1:{settings.server_port}"
    assert client.ws_url == f"ws://127.0.0.1:{settings.server_port}/extension-ws"
