"""
ChromeSec - Client identity
Randomized user-agent strings, one drawn per browser launch.
"""

import random
from typing import Optional, Sequence

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36 Edg/124.0.0.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
)


class IdentityProvider:
    """Draws a user-agent string uniformly at random from a fixed catalog."""

    def __init__(self, agents: Sequence[str] = USER_AGENTS, rng: Optional[random.Random] = None):
        if not agents:
            raise ValueError("User-agent catalog must not be empty")
        self._agents = tuple(agents)
        self._rng = rng or random.Random()

    def next(self) -> str:
        return self._rng.choice(self._agents)
