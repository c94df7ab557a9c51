from .adapters import AiohttpUpstashStore, HttpxUpstashStore, RequestsUpstashStore
from .auth import RotatingAuth
from .env import load_keyconfigs_from_env, load_numbered_keyconfigs, load_rotation_config
from .errors import ExhaustedError, MisconfiguredError, RotationError, StoreUnavailableError
from .policies import coerce_window, local_minute_window, rotation_order, utc_minute_window
from .pool import AsyncKeyRotator, KeyRotator
from .state import Allocation
from .stores import (
    AsyncCounterStore,
    AsyncMemoryCounterStore,
    AsyncRedisCounterStore,
    CounterStore,
    MemoryCounterStore,
    RedisCounterStore,
)
from .types import AuthConfig, KeyConfig, RetryConfig, RotationConfig

__all__ = [
    "KeyConfig",
    "RotationConfig",
    "AuthConfig",
    "RetryConfig",
    "Allocation",
    "KeyRotator",
    "AsyncKeyRotator",
    "RotationError",
    "MisconfiguredError",
    "ExhaustedError",
    "StoreUnavailableError",
    "CounterStore",
    "AsyncCounterStore",
    "MemoryCounterStore",
    "AsyncMemoryCounterStore",
    "RedisCounterStore",
    "AsyncRedisCounterStore",
    "RequestsUpstashStore",
    "HttpxUpstashStore",
    "AiohttpUpstashStore",
    "RotatingAuth",
    "coerce_window",
    "rotation_order",
    "utc_minute_window",
    "local_minute_window",
    "load_keyconfigs_from_env",
    "load_numbered_keyconfigs",
    "load_rotation_config",
]
