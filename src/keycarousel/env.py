import os
from collections.abc import Iterable
from typing import Union

from .types import DEFAULT_EXPIRY_SECONDS, DEFAULT_NAMESPACE, DEFAULT_QUOTA, KeyConfig, RotationConfig

DEFAULT_CONFIG_PREFIX = "KEYCAROUSEL_"


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs, ignoring comments and blank lines.
    Surrounding single/double quotes are stripped if present.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                if key.startswith("export "):
                    key = key[len("export ") :].strip()
                val = val.strip().strip('"').strip("'")
                if key:
                    values[key] = val
    except FileNotFoundError:
        pass
    return values


def _env_map(env_path: Union[str, None]) -> dict[str, str]:
    # actual environment takes precedence over the .env file
    file_env = _parse_env_file(env_path) if env_path else {}
    return {**file_env, **os.environ}


def _expand(cfg_name: str, token: str, split_commas: bool) -> list[KeyConfig]:
    parts = [t.strip() for t in token.split(",")] if split_commas and "," in token else [token]
    parts = [p for p in parts if p]
    if len(parts) == 1:
        return [KeyConfig(name=cfg_name, token=parts[0])]
    return [KeyConfig(name=f"{cfg_name}_{i + 1}", token=p) for i, p in enumerate(parts)]


def load_keyconfigs_from_env(
    names: Union[Iterable[str], None] = None,
    prefix: Union[str, None] = None,
    env_path: Union[str, None] = None,
    **kwargs,
) -> list[KeyConfig]:
    """Create KeyConfig objects from environment variables.

    - 'names': explicit env var names, looked up in the given order.
    - 'prefix': every env var starting with the prefix, sorted by name so the
        pool order is stable across processes.
    - both: names first, then prefix matches not already taken.
    - 'env_path': a .env file used to augment lookups; the real environment wins.

    kwargs keywords:
    split_commas: split comma-separated values (default True)
    to_lower_names: make names lowercase (default False)
    strip_prefix: strip prefix from names (default False)
    """
    env_map = _env_map(env_path)
    split_commas = kwargs.get("split_commas", True)
    to_lower_names = kwargs.get("to_lower_names", False)
    strip_prefix = kwargs.get("strip_prefix", False)

    results: list[KeyConfig] = []
    seen: set[str] = set()

    for var in names or ():
        token = env_map.get(var)
        seen.add(var)
        if not token:
            continue
        cfg_name = var.lower() if to_lower_names else var
        results.extend(_expand(cfg_name, token, split_commas))

    if prefix:
        for var in sorted(env_map):
            token = env_map[var]
            if var in seen or not (var.startswith(prefix) and token):
                continue
            name_part = var[len(prefix) :] if strip_prefix else var
            cfg_name = name_part.lower() if to_lower_names else name_part
            results.extend(_expand(cfg_name, token, split_commas))

    return results


def load_numbered_keyconfigs(
    prefix: str,
    start: int = 1,
    stop: int = 10,
    env_path: Union[str, None] = None,
) -> list[KeyConfig]:
    """Load PREFIX{start}..PREFIX{stop} in numeric order.

    Missing or empty slots are skipped, so the pool is the compacted list of
    present values; GOOGLE_API_KEY1 and GOOGLE_API_KEY3 become indices 0 and 1.
    """
    env_map = _env_map(env_path)
    results: list[KeyConfig] = []
    for n in range(start, stop + 1):
        var = f"{prefix}{n}"
        token = (env_map.get(var) or "").strip()
        if token:
            results.append(KeyConfig(name=var, token=token))
    return results


def _int_setting(env_map: dict[str, str], var: str, default: int) -> int:
    raw = (env_map.get(var) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{var} must be an integer, got {raw!r}") from None


def load_rotation_config(
    env_path: Union[str, None] = None,
    prefix: str = DEFAULT_CONFIG_PREFIX,
) -> RotationConfig:
    """Build a RotationConfig from {prefix}QUOTA, {prefix}EXPIRY_SECONDS and {prefix}NAMESPACE."""
    env_map = _env_map(env_path)
    return RotationConfig(
        quota=_int_setting(env_map, f"{prefix}QUOTA", DEFAULT_QUOTA),
        expiry_seconds=_int_setting(env_map, f"{prefix}EXPIRY_SECONDS", DEFAULT_EXPIRY_SECONDS),
        namespace=(env_map.get(f"{prefix}NAMESPACE") or "").strip() or DEFAULT_NAMESPACE,
    )
