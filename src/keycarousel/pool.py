import asyncio
import contextlib
import dataclasses
import logging
import time
from collections.abc import Sequence
from typing import Callable, Union

from .env import load_keyconfigs_from_env, load_numbered_keyconfigs, load_rotation_config
from .errors import ExhaustedError, MisconfiguredError, StoreUnavailableError
from .policies import WindowFn, coerce_window, rotation_order, seconds_until_next_window
from .state import Allocation
from .stores import AsyncCounterStore, CounterStore
from .types import AuthConfig, KeyConfig, RetryConfig, RotationConfig

# ---------- Base rotator (shared logic; store I/O handled by subclasses) ----------


class _Rotator:
    def __init__(
        self,
        keys: Sequence[KeyConfig],
        config: Union[RotationConfig, None],
        window: Union[str, WindowFn, None],
        clock: Callable[[], float],
        log_level: Union[int, None],
        **kwargs,
    ):
        """Initialize a _Rotator.

        Args:
            keys (Sequence[KeyConfig]): the credential pool, in rotation order
            config (RotationConfig | None): quota, counter expiry and key namespace
            window (str | callable | None): "utc" | "local" | callable(now) -> window id
            clock (callable): time source returning UNIX seconds
            log_level (int | None): level for the "keycarousel" logger
            kwargs: quota, expiry_seconds, namespace override fields of config

        Raises:
            MisconfiguredError: if the pool is empty
            TypeError: on a keyword that is not a RotationConfig field
        """
        unknown = sorted(set(kwargs) - {"quota", "expiry_seconds", "namespace"})
        if unknown:
            raise TypeError(f"Unexpected keyword argument(s): {', '.join(unknown)}")
        if not keys:
            raise MisconfiguredError("No API keys configured.")
        base = config or RotationConfig()
        overrides = {
            k: kwargs[k] for k in ("quota", "expiry_seconds", "namespace") if kwargs.get(k) is not None
        }
        self.config = dataclasses.replace(base, **overrides) if overrides else base
        self._keys: tuple[KeyConfig, ...] = tuple(keys)
        self._window_fn = coerce_window(window)
        self._clock = clock
        self._logger = logging.getLogger("keycarousel")
        if log_level is not None:
            with contextlib.suppress(Exception):
                self._logger.setLevel(log_level)

    @property
    def size(self) -> int:
        return len(self._keys)

    @property
    def quota(self) -> int:
        return self.config.quota

    @property
    def cursor_key(self) -> str:
        return self.config.cursor_key

    def usage_key(self, index: int, window: str) -> str:
        return self.config.usage_key(index, window)

    def auth(
        self,
        auth_config: Union[AuthConfig, None] = None,
        retry_config: Union[RetryConfig, None] = None,
    ):
        """Return a RotatingAuth usable with requests + httpx; aiohttp via trace_config()."""
        from .auth import RotatingAuth  # noqa: PLC0415

        return RotatingAuth(self, auth_config, retry_config)

    def _now(self) -> float:
        return self._clock()

    def _current_window(self) -> tuple[str, float]:
        now = self._now()
        return self._window_fn(now), now

    def _candidates(self, cursor: int) -> list[int]:
        order = rotation_order(cursor, len(self._keys))
        self._logger.debug(f"cursor={cursor} start_index={order[0]} pool_size={len(order)}")
        return order

    def _accept(self, index: int, usage: int, window: str, cursor: int) -> Union[Allocation, None]:
        key = self._keys[index]
        if usage <= self.config.quota:
            self._logger.info(
                f"using key index={index + 1} name={key.name} usage={usage}/{self.config.quota}"
            )
            return Allocation(index, key.name, key.token, usage, window, cursor)
        self._logger.info(
            f"skipping key index={index + 1} name={key.name} usage={usage}/{self.config.quota}"
        )
        return None

    def _exhausted(self, window: str, now: float) -> ExhaustedError:
        err = ExhaustedError(window, len(self._keys), seconds_until_next_window(now))
        self._logger.warning(f"all keys rate limited window={window}; {err.retry_after:.1f}s to reset")
        return err

    def _store_failed(self, op: str, key: str, err: Exception) -> StoreUnavailableError:
        self._logger.warning(f"store {op} failed key={key}: {err}")
        if isinstance(err, StoreUnavailableError):
            return err
        wrapped = StoreUnavailableError(op, key, str(err))
        wrapped.__cause__ = err
        return wrapped

    def _expiry_result(self, key: str, ok: bool) -> None:
        if not ok:
            self._logger.warning(f"EXPIRE returned false key={key}; counter may linger")

    def _next_delay(self, retry: RetryConfig, attempt: int, err: Exception) -> float:
        delay = retry.delay(attempt)
        if isinstance(err, ExhaustedError) and err.retry_after > 0:
            delay = min(delay, err.retry_after)
        return delay

    def _should_retry(self, retry: RetryConfig, err: Exception) -> bool:
        if isinstance(err, ExhaustedError):
            return True
        return isinstance(err, StoreUnavailableError) and retry.retry_on_unavailable


# errors a custom store may raise for network trouble instead of StoreUnavailableError
_STORE_ERRORS = (StoreUnavailableError, OSError)


# ---------- Sync rotator ----------


class KeyRotator(_Rotator):
    def __init__(
        self,
        keys: Sequence[KeyConfig],
        store: CounterStore,
        config: Union[RotationConfig, None] = None,
        window: Union[str, WindowFn, None] = None,
        clock: Callable[[], float] = time.time,
        log_level: Union[int, None] = None,
        **kwargs,
    ):
        """Initialize a KeyRotator over a blocking counter store.

        Args:
            keys (Sequence[KeyConfig]): the credential pool
            store (CounterStore): shared INCR/EXPIRE store
            config (RotationConfig | None): rotation tuning
            window, clock, log_level, kwargs: see _Rotator
        """
        super().__init__(keys, config, window, clock, log_level, **kwargs)
        self.store = store

    def close(self):
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # public API
    def acquire(self) -> Allocation:
        """Return the first credential in rotation order that is under quota.

        Raises:
            ExhaustedError: every credential is over quota this window
            StoreUnavailableError: a cursor or counter increment failed
        """
        window, now = self._current_window()
        cursor = self._incr(self.cursor_key)
        for index in self._candidates(cursor):
            usage_key = self.usage_key(index, window)
            usage = self._incr(usage_key)
            if usage == 1:
                self._expire(usage_key)
            allocation = self._accept(index, usage, window, cursor)
            if allocation is not None:
                return allocation
        raise self._exhausted(window, now)

    def acquire_credential(self) -> str:
        return self.acquire().token

    def wait_for_credential(self, retry_config: Union[RetryConfig, None] = None) -> str:
        """Acquire with exponential backoff; re-raises the last error when attempts run out."""
        retry = retry_config or RetryConfig()
        attempt = 0
        while True:
            try:
                return self.acquire().token
            except (ExhaustedError, StoreUnavailableError) as e:
                attempt += 1
                if attempt >= retry.retry_attempts or not self._should_retry(retry, e):
                    raise
                delay = self._next_delay(retry, attempt - 1, e)
                self._logger.info(f"acquire attempt={attempt} failed ({e}); sleeping ~{delay:.2f}s")
                time.sleep(delay)

    # ---------- convenience: build keys from env ----------
    @classmethod
    def from_env(
        cls,
        store: CounterStore,
        names=None,
        prefix: Union[str, None] = None,
        numbered: Union[str, None] = None,
        env_path: Union[str, None] = None,
        **kwargs,
    ):
        """Create a KeyRotator whose pool and tuning come from the environment.

        Args:
            store (CounterStore): shared counter store
            names (Iterable[str] | None): explicit env var names
            prefix (str | None): env var prefix to scan
            numbered (str | None): prefix of numbered vars, e.g. "GOOGLE_API_KEY" for 1..10
            env_path (str | None): optional .env file

            kwargs keywords:
            to_lower_names, split_commas, strip_prefix: forwarded to the env loader
            config: RotationConfig (default: loaded from KEYCAROUSEL_* variables)
            anything else is passed to KeyRotator
        """
        keys, kwargs = _keys_from_env(names, prefix, numbered, env_path, kwargs)
        return cls(keys, store, **kwargs)

    # internal
    def _incr(self, key: str) -> int:
        try:
            return self.store.incr(key)
        except _STORE_ERRORS as e:
            raise self._store_failed("INCR", key, e)

    def _expire(self, key: str) -> None:
        try:
            ok = self.store.expire(key, self.config.expiry_seconds)
        except _STORE_ERRORS as e:
            self._store_failed("EXPIRE", key, e)
            return
        self._expiry_result(key, ok)


# ---------- Async rotator ----------


class AsyncKeyRotator(_Rotator):
    def __init__(
        self,
        keys: Sequence[KeyConfig],
        store: AsyncCounterStore,
        config: Union[RotationConfig, None] = None,
        window: Union[str, WindowFn, None] = None,
        clock: Callable[[], float] = time.time,
        log_level: Union[int, None] = None,
        **kwargs,
    ):
        """Initialize an AsyncKeyRotator over an awaitable counter store."""
        super().__init__(keys, config, window, clock, log_level, **kwargs)
        self.store = store

    async def close(self):
        await self.store.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
        return False

    async def acquire(self) -> Allocation:
        window, now = self._current_window()
        cursor = await self._incr(self.cursor_key)
        for index in self._candidates(cursor):
            usage_key = self.usage_key(index, window)
            usage = await self._incr(usage_key)
            if usage == 1:
                await self._expire(usage_key)
            allocation = self._accept(index, usage, window, cursor)
            if allocation is not None:
                return allocation
        raise self._exhausted(window, now)

    async def acquire_credential(self) -> str:
        return (await self.acquire()).token

    async def wait_for_credential(self, retry_config: Union[RetryConfig, None] = None) -> str:
        retry = retry_config or RetryConfig()
        attempt = 0
        while True:
            try:
                return (await self.acquire()).token
            except (ExhaustedError, StoreUnavailableError) as e:
                attempt += 1
                if attempt >= retry.retry_attempts or not self._should_retry(retry, e):
                    raise
                delay = self._next_delay(retry, attempt - 1, e)
                self._logger.info(f"acquire attempt={attempt} failed ({e}); sleeping ~{delay:.2f}s")
                await asyncio.sleep(delay)

    @classmethod
    def from_env(
        cls,
        store: AsyncCounterStore,
        names=None,
        prefix: Union[str, None] = None,
        numbered: Union[str, None] = None,
        env_path: Union[str, None] = None,
        **kwargs,
    ):
        keys, kwargs = _keys_from_env(names, prefix, numbered, env_path, kwargs)
        return cls(keys, store, **kwargs)

    async def _incr(self, key: str) -> int:
        try:
            return await self.store.incr(key)
        except _STORE_ERRORS as e:
            raise self._store_failed("INCR", key, e)

    async def _expire(self, key: str) -> None:
        try:
            ok = await self.store.expire(key, self.config.expiry_seconds)
        except _STORE_ERRORS as e:
            self._store_failed("EXPIRE", key, e)
            return
        self._expiry_result(key, ok)


def _keys_from_env(names, prefix, numbered, env_path, kwargs) -> tuple[list[KeyConfig], dict]:
    # Only forward explicit loader flags; loader has sensible defaults
    loader_keys = {
        k: kwargs.pop(k)
        for k in list(kwargs.keys())
        if k in {"to_lower_names", "split_commas", "strip_prefix"}
    }
    keys: list[KeyConfig] = []
    if numbered:
        keys.extend(load_numbered_keyconfigs(numbered, env_path=env_path))
    if names or prefix:
        keys.extend(
            load_keyconfigs_from_env(names=names, prefix=prefix, env_path=env_path, **loader_keys)
        )
    if kwargs.get("config") is None:
        kwargs["config"] = load_rotation_config(env_path=env_path)
    return keys, kwargs
