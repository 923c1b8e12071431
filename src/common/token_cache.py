"""
In-memory cache for short-lived API access tokens.

Tokens are treated as expired a little before their real expiry so a request
never goes out with a token that lapses in flight.
"""

import time
from typing import Callable, Dict, Optional, Tuple

# Refresh tokens this many seconds before they actually expire
REFRESH_MARGIN_SECONDS = 300


class TokenCache:
    """Token cache with TTL support and an early-refresh margin."""

    def __init__(
        self,
        refresh_margin: float = REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._tokens: Dict[str, Tuple[str, float]] = {}
        self.refresh_margin = refresh_margin
        self.clock = clock

    def get(self, key: str) -> Optional[str]:
        if key in self._tokens:
            token, expires_at = self._tokens[key]
            if self.clock() < expires_at - self.refresh_margin:
                return token
            del self._tokens[key]
        return None

    def set(self, key: str, token: str, expires_in: float) -> None:
        self._tokens[key] = (token, self.clock() + expires_in)

    def invalidate(self, key: str) -> None:
        self._tokens.pop(key, None)

    def clear(self) -> None:
        self._tokens.clear()
