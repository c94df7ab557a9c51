from dataclasses import dataclass, field
from typing import Literal

# Rotation defaults; counters must outlive a one-minute window plus clock skew.
DEFAULT_QUOTA = 3
DEFAULT_EXPIRY_SECONDS = 120
MIN_EXPIRY_SECONDS = 60
DEFAULT_NAMESPACE = "keycarousel"


@dataclass(frozen=True)
class KeyConfig:
    name: str
    token: str = field(repr=False)


@dataclass(frozen=True)
class RotationConfig:
    """Tuning for a rotator.

    quota: accepted allocations per credential per window.
    expiry_seconds: TTL applied to a usage counter on its first increment.
    namespace: prefix for the cursor and usage counter keys in the store.
    """

    quota: int = DEFAULT_QUOTA
    expiry_seconds: int = DEFAULT_EXPIRY_SECONDS
    namespace: str = DEFAULT_NAMESPACE

    def __post_init__(self):
        if self.quota < 1:
            raise ValueError("quota must be >= 1")
        if self.expiry_seconds <= MIN_EXPIRY_SECONDS:
            raise ValueError(f"expiry_seconds must be > {MIN_EXPIRY_SECONDS}")
        if not self.namespace:
            raise ValueError("namespace must be a non-empty string")

    @property
    def cursor_key(self) -> str:
        return f"{self.namespace}:global_request_counter"

    def usage_key(self, index: int, window: str) -> str:
        return f"{self.namespace}:usage:{index}:{window}"


@dataclass(frozen=True)
class AuthConfig:
    header: str = "Authorization"
    scheme: str = "Bearer"
    in_: Literal["header", "query"] = "header"
    query_param: str = "key"


@dataclass(frozen=True)
class RetryConfig:
    # Backoff between acquisition attempts (wait_for_credential)
    base: float = 0.1
    growth: float = 2.0
    cap: float = 60.0
    retry_on_unavailable: bool = True

    # retry attempts and methods (also used by RotatingAuth on 429)
    retry_attempts: int = 8
    retry_for_methods: list[str] = field(default_factory=lambda: ["GET", "HEAD", "OPTIONS"])

    def delay(self, attempt: int) -> float:
        return min(self.cap, self.base * (self.growth ** attempt))
