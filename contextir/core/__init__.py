"""Core: logging setup and token estimation."""

from contextir.core.logging import correlation_scope, setup_logging
from contextir.core.token_counter import HeuristicTokenCounter, estimate_tokens

__all__ = [
    "HeuristicTokenCounter",
    "correlation_scope",
    "estimate_tokens",
    "setup_logging",
]
