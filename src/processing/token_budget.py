"""
Rolling token quota for the summarization service.

TokenWindow is an immutable value: every check returns a new window, so the
analyzer threads it through its batches and tests can drive time directly.
"""
import math
from dataclasses import dataclass, replace

CHARS_PER_TOKEN = 3.5
OUTPUT_TOKENS_PER_ITEM = 150


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass(frozen=True)
class Admission:
    window: "TokenWindow"
    wait_seconds: float = 0.0

    @property
    def must_wait(self) -> bool:
        return self.wait_seconds > 0


@dataclass(frozen=True)
class TokenWindow:
    limit: int = 5600
    length: float = 62.0
    consumed: int = 0
    started_at: float = 0.0
    margin: float = 2.0

    @classmethod
    def open(cls, now: float, *, limit: int = 5600, length: float = 62.0, margin: float = 2.0) -> "TokenWindow":
        return cls(limit=limit, length=length, consumed=0, started_at=now, margin=margin)

    def rolled(self, now: float) -> "TokenWindow":
        """Reset the window if its length has elapsed."""
        if now - self.started_at >= self.length:
            return replace(self, consumed=0, started_at=now)
        return self

    def admit(self, estimated: int, now: float) -> Admission:
        """
        Decide whether a batch costing `estimated` tokens may start at `now`.

        When it may not, the returned admission carries the wait and a fresh,
        empty window that starts when the wait ends. An empty window always
        admits, even a batch larger than the limit, since waiting cannot help.
        """
        window = self.rolled(now)
        if window.consumed == 0 or window.consumed + estimated <= window.limit:
            return Admission(window=window)

        elapsed = now - window.started_at
        wait = max(window.length - elapsed + window.margin, window.margin)
        return Admission(
            window=replace(window, consumed=0, started_at=now + wait),
            wait_seconds=wait,
        )

    def record(self, tokens: int) -> "TokenWindow":
        return replace(self, consumed=self.consumed + max(tokens, 0))
