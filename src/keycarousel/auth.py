from typing import Union

import httpx

from .pool import AsyncKeyRotator, KeyRotator
from .types import AuthConfig, RetryConfig


class RotatingAuth(httpx.Auth):
    """Inject a freshly acquired credential into every outgoing request.

    - requests: uses the __call__(request) auth protocol (header or query param).
    - httpx: overrides sync_auth_flow / async_auth_flow; on 429 for a retryable
        method the request is resent with a newly acquired credential.
    - aiohttp: trace_config() injects the header when a request starts.

    Acquisition errors (ExhaustedError, StoreUnavailableError) propagate to the
    code issuing the request.
    """

    def __init__(
        self,
        rotator: Union[KeyRotator, AsyncKeyRotator],
        auth_config: Union[AuthConfig, None] = None,
        retry_config: Union[RetryConfig, None] = None,
    ):
        self.rotator = rotator
        self.auth_config = auth_config or AuthConfig()
        retry = retry_config or RetryConfig()
        self.retry_attempts = max(1, retry.retry_attempts)
        # By default we retry idempotent methods only; caller can extend to POST, etc.
        self.retry_for_methods = {m.upper() for m in retry.retry_for_methods}
        self._async = isinstance(rotator, AsyncKeyRotator)

    def _header_value(self, token: str) -> str:
        return f"{self.auth_config.scheme} {token}".strip()

    def _should_rotate(self, method: str, status: Union[int, None]) -> bool:
        return method.upper() in self.retry_for_methods and status == 429  # noqa: PLR2004, http status code can be constant

    # ------------------------ requests auth protocol ------------------------
    def __call__(self, r):
        if self._async:
            raise RuntimeError("requests needs a KeyRotator, not an AsyncKeyRotator.")
        token = self.rotator.acquire_credential()
        ac = self.auth_config
        if ac.in_ == "query":
            r.prepare_url(r.url, {ac.query_param: token})
        else:
            r.headers[ac.header] = self._header_value(token)
        return r

    # ------------------------ httpx ------------------------
    def _inject_httpx(self, request, token: str):
        ac = self.auth_config
        if ac.in_ == "query":
            request.url = request.url.copy_merge_params({ac.query_param: token})
        else:
            request.headers[ac.header] = self._header_value(token)
        return request

    def sync_auth_flow(self, request):
        if self._async:
            raise RuntimeError("Use an AsyncClient with an AsyncKeyRotator.")
        attempts = 0
        while True:
            attempts += 1
            response = yield self._inject_httpx(request, self.rotator.acquire_credential())
            if attempts >= self.retry_attempts or not self._should_rotate(
                request.method, getattr(response, "status_code", None)
            ):
                return
            self.rotator._logger.info(f"429 on {request.method} {request.url.host}; rotating key")

    async def async_auth_flow(self, request):
        if not self._async:
            raise RuntimeError("Use a Client with a KeyRotator.")
        attempts = 0
        while True:
            attempts += 1
            token = await self.rotator.acquire_credential()
            response = yield self._inject_httpx(request, token)
            if attempts >= self.retry_attempts or not self._should_rotate(
                request.method, getattr(response, "status_code", None)
            ):
                return
            self.rotator._logger.info(f"429 on {request.method} {request.url.host}; rotating key")

    # ------------------------ aiohttp helpers ------------------------
    def trace_config(self):
        """Return an aiohttp.TraceConfig that injects the credential header on request start."""
        import aiohttp  # noqa: PLC0415

        if self.auth_config.in_ == "query":
            raise ValueError("aiohttp tracing can only inject headers; use AuthConfig(in_='header').")
        if not self._async:
            raise RuntimeError("aiohttp tracing runs on the event loop; use an AsyncKeyRotator.")
        tc = aiohttp.TraceConfig()

        @tc.on_request_start.append
        async def _start(session, ctx, params):
            # if caller didn't pre-inject, inject here
            if self.auth_config.header not in params.headers:
                token = await self.rotator.acquire_credential()
                params.headers[self.auth_config.header] = self._header_value(token)

        return tc
