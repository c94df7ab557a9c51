import math
from datetime import datetime, timezone
from typing import Callable, Union

WINDOW_SECONDS = 60
WINDOW_FORMAT = "%Y-%m-%dT%H:%M"

WindowFn = Callable[[float], str]


def utc_minute_window(now: float) -> str:
    """Window id for the UTC calendar minute containing ``now``."""
    return datetime.fromtimestamp(now, tz=timezone.utc).strftime(WINDOW_FORMAT)


def local_minute_window(now: float) -> str:
    """Window id for the local-time calendar minute containing ``now``.

    Only safe when every process sharing the store runs in the same timezone.
    """
    return datetime.fromtimestamp(now).strftime(WINDOW_FORMAT)


def seconds_until_next_window(now: float) -> float:
    # minute boundaries coincide in UTC and every whole-minute-offset timezone
    return (math.floor(now / WINDOW_SECONDS) + 1) * WINDOW_SECONDS - now


def rotation_order(cursor: int, size: int) -> list[int]:
    """Candidate indices for one scan: start at cursor mod size and wrap around."""
    if size <= 0:
        return []
    start = cursor % size
    return [(start + i) % size for i in range(size)]


def coerce_window(window: Union[str, WindowFn, None]) -> WindowFn:
    """Turn None | str | callable into a window function.

    Accepted inputs:
      - None     -> utc_minute_window
      - "utc"    -> utc_minute_window
      - "local"  -> local_minute_window
      - callable taking a UNIX timestamp and returning the window id
    """
    if window is None:
        return utc_minute_window
    if isinstance(window, str):
        name = window.lower()
        if name == "utc":
            return utc_minute_window
        if name == "local":
            return local_minute_window
        raise ValueError("Unknown window string. Use 'utc' or 'local', or pass a callable.")
    if callable(window):
        return window
    raise TypeError("window must be None, 'utc'|'local', or a callable")
