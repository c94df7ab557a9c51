import json

import httpx
import pytest

from keycarousel import AsyncKeyRotator, HttpxUpstashStore, KeyConfig, StoreUnavailableError


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_httpx_store_commands():
    seen = []
    counters = {}

    def handler(request):
        cmd = json.loads(request.content)
        seen.append((cmd, request.headers["Authorization"]))
        if cmd[0] == "INCR":
            counters[cmd[1]] = counters.get(cmd[1], 0) + 1
            return httpx.Response(200, json={"result": counters[cmd[1]]})
        return httpx.Response(200, json={"result": 1})

    async with _client(handler) as client:
        store = HttpxUpstashStore("https://kv.example.com", "TOKEN", client=client)
        assert await store.incr("k") == 1
        assert await store.incr("k") == 2  # noqa: PLR2004
        assert await store.expire("k", 120) is True
        await store.close()

    assert seen[0] == (["INCR", "k"], "Bearer TOKEN")
    assert seen[-1][0] == ["EXPIRE", "k", 120]


@pytest.mark.asyncio
async def test_httpx_store_error_reply():
    async with _client(lambda request: httpx.Response(401, json={"error": "Unauthorized"})) as client:
        store = HttpxUpstashStore("https://kv.example.com", "BAD", client=client)
        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.incr("k")
    assert "Unauthorized" in str(exc_info.value)


@pytest.mark.asyncio
async def test_httpx_store_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        store = HttpxUpstashStore("https://kv.example.com", "TOKEN", client=client)
        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.incr("k")
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_async_rotator_over_httpx_store():
    commands = []

    def handler(request):
        commands.append(json.loads(request.content)[0])
        return httpx.Response(200, json={"result": 1})

    async with _client(handler) as client:
        store = HttpxUpstashStore("https://kv.example.com", "TOKEN", client=client)
        rot = AsyncKeyRotator([KeyConfig("a", "A"), KeyConfig("b", "B")], store)
        assert await rot.acquire_credential() == "B"
    assert commands == ["INCR", "INCR", "EXPIRE"]
