from dataclasses import dataclass, field


@dataclass(frozen=True)
class Allocation:
    index: int
    name: str
    token: str = field(repr=False)
    usage: int = 0  # counter value after this attempt's increment
    window: str = ""
    cursor: int = 0

    @property
    def position(self) -> int:
        """1-based position in the pool, as shown in logs."""
        return self.index + 1
