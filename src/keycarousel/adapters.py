"""Upstash-style Redis-over-REST counter stores.

Each command is POSTed as a JSON array (["INCR", key]) to the REST URL with a
bearer token; the reply is {"result": ...} on success or {"error": ...}.
"""

import asyncio
import contextlib
import os
from typing import Any, Union

from .env import _parse_env_file
from .errors import StoreUnavailableError

DEFAULT_TIMEOUT = 5.0

_URL_VARS = ("UPSTASH_REDIS_REST_URL", "KV_REST_API_URL")
_TOKEN_VARS = ("UPSTASH_REDIS_REST_TOKEN", "KV_REST_API_TOKEN")


def _rest_credentials_from_env(env_path: Union[str, None] = None) -> tuple[str, str]:
    file_env = _parse_env_file(env_path) if env_path else {}
    env_map = {**file_env, **os.environ}
    url = next((env_map[v] for v in _URL_VARS if env_map.get(v)), None)
    token = next((env_map[v] for v in _TOKEN_VARS if env_map.get(v)), None)
    if not url or not token:
        raise ValueError(
            f"REST store needs one of {_URL_VARS} and one of {_TOKEN_VARS} in the environment"
        )
    return url, token


def _parse_reply(operation: str, key: str, status: int, body: Any) -> Any:
    if not isinstance(body, dict):
        raise StoreUnavailableError(operation, key, f"unexpected reply status={status}")
    if "error" in body:
        raise StoreUnavailableError(operation, key, f"status={status} error={body['error']}")
    if status >= 400 or "result" not in body:  # noqa: PLR2004, http status code can be constant
        raise StoreUnavailableError(operation, key, f"unexpected reply status={status}")
    return body["result"]


class _RestStore:
    def __init__(self, url: str, token: str, timeout: float = DEFAULT_TIMEOUT):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self._headers = {"Authorization": f"Bearer {token}"}

    @classmethod
    def from_env(cls, env_path: Union[str, None] = None, **kwargs):
        url, token = _rest_credentials_from_env(env_path)
        return cls(url, token, **kwargs)


# ---------- requests (sync) ----------


class RequestsUpstashStore(_RestStore):
    def __init__(self, url: str, token: str, session=None, timeout: float = DEFAULT_TIMEOUT):
        super().__init__(url, token, timeout)
        if session is None:
            import requests  # noqa: PLC0415

            self.session = requests.Session()
            self._own_session = True
        else:
            self.session = session
            self._own_session = False

    def _command(self, operation: str, key: str, *args) -> Any:
        import requests  # noqa: PLC0415

        try:
            resp = self.session.post(
                self.url, json=[operation, key, *args], headers=self._headers, timeout=self.timeout
            )
            body = resp.json()
        except requests.RequestException as e:
            raise StoreUnavailableError(operation, key, str(e)) from e
        except ValueError as e:
            raise StoreUnavailableError(operation, key, "reply is not JSON") from e
        return _parse_reply(operation, key, resp.status_code, body)

    def incr(self, key: str) -> int:
        return int(self._command("INCR", key))

    def expire(self, key: str, seconds: int) -> bool:
        return bool(self._command("EXPIRE", key, seconds))

    def close(self) -> None:
        if self._own_session:
            with contextlib.suppress(Exception):
                self.session.close()


# ---------- httpx (async) ----------


class HttpxUpstashStore(_RestStore):
    def __init__(self, url: str, token: str, client=None, timeout: float = DEFAULT_TIMEOUT):
        super().__init__(url, token, timeout)
        self.client = client
        self._internal_client = None

    def _get_client(self):
        import httpx  # noqa: PLC0415

        if self.client is not None:
            return self.client
        if self._internal_client is None:
            self._internal_client = httpx.AsyncClient(timeout=self.timeout)
        return self._internal_client

    async def _command(self, operation: str, key: str, *args) -> Any:
        import httpx  # noqa: PLC0415

        client = self._get_client()
        try:
            resp = await client.post(self.url, json=[operation, key, *args], headers=self._headers)
            body = resp.json()
        except httpx.HTTPError as e:
            raise StoreUnavailableError(operation, key, str(e)) from e
        except ValueError as e:
            raise StoreUnavailableError(operation, key, "reply is not JSON") from e
        return _parse_reply(operation, key, resp.status_code, body)

    async def incr(self, key: str) -> int:
        return int(await self._command("INCR", key))

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self._command("EXPIRE", key, seconds))

    async def close(self) -> None:
        if self._internal_client is not None:
            with contextlib.suppress(Exception):
                await self._internal_client.aclose()
            self._internal_client = None


# ---------- aiohttp (async) ----------


class AiohttpUpstashStore(_RestStore):
    def __init__(self, url: str, token: str, session=None, timeout: float = DEFAULT_TIMEOUT):
        super().__init__(url, token, timeout)
        # aiohttp sessions must be created inside a running loop, so ours is lazy
        self.session = session
        self._own_session = session is None

    def _get_session(self):
        if self.session is None:
            import aiohttp  # noqa: PLC0415

            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self.session

    async def _command(self, operation: str, key: str, *args) -> Any:
        import aiohttp  # noqa: PLC0415

        session = self._get_session()
        try:
            async with session.post(
                self.url, json=[operation, key, *args], headers=self._headers
            ) as resp:
                status = resp.status
                body = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StoreUnavailableError(operation, key, str(e) or type(e).__name__) from e
        except ValueError as e:
            raise StoreUnavailableError(operation, key, "reply is not JSON") from e
        return _parse_reply(operation, key, status, body)

    async def incr(self, key: str) -> int:
        return int(await self._command("INCR", key))

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self._command("EXPIRE", key, seconds))

    async def close(self) -> None:
        if self._own_session and self.session is not None:
            await self.session.close()
            self.session = None
