from keycarousel import MemoryCounterStore

# 2024-01-01T10:00:00Z
T0 = 1704103200.0


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now


class RecordingStore(MemoryCounterStore):
    """MemoryCounterStore that records every INCR/EXPIRE call."""

    def __init__(self, clock=None):
        super().__init__(clock=clock or FakeClock())
        self.calls = []

    def incr(self, key):
        self.calls.append(("INCR", key))
        return super().incr(key)

    def expire(self, key, seconds):
        self.calls.append(("EXPIRE", key, seconds))
        return super().expire(key, seconds)

    def count(self, op):
        return sum(1 for c in self.calls if c[0] == op)
