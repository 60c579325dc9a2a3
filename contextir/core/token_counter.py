from __future__ import annotations

from math import ceil

# Fixed characters-per-token ratio. Budget arithmetic across the package
# depends on this exact value, so it is not configurable.
CHARS_PER_TOKEN = 4


class HeuristicTokenCounter:
    def count(self, text: str) -> int:
        return ceil(len(text) / CHARS_PER_TOKEN)


_COUNTER = HeuristicTokenCounter()


def estimate_tokens(text: str) -> int:
    return _COUNTER.count(text)


__all__ = ["CHARS_PER_TOKEN", "HeuristicTokenCounter", "estimate_tokens"]
