"""
ChromeSec - Proxy rotation
Round-robin selection of egress proxies across successive browser launches.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple


@dataclass(frozen=True)
class ProxyEndpoint:
    """One egress proxy, optionally with credentials."""
    address: str
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.username) and bool(self.password)

    @classmethod
    def from_dict(cls, data: Dict) -> "ProxyEndpoint":
        if not isinstance(data, dict):
            raise ValueError(f"Proxy entry must be an object, got {type(data).__name__}")
        address = str(data.get("address", "") or "").strip()
        if not address:
            raise ValueError("Proxy entry requires a non-empty 'address'")
        return cls(
            address=address,
            username=data.get("username") or None,
            password=data.get("password") or None,
        )

    def to_dict(self, mask_password: bool = False) -> dict:
        password = self.password
        if mask_password and password:
            password = "****"
        return {
            "address": self.address,
            "username": self.username,
            "password": password,
        }


class ProxyRotator:
    """Hands out configured proxies in order, wrapping around."""

    def __init__(self, proxies: Iterable[ProxyEndpoint] = ()):
        self._proxies: Tuple[ProxyEndpoint, ...] = tuple(proxies)
        self._cursor = 0

    def configure(self, proxies: Iterable[ProxyEndpoint]):
        """Replace the proxy list. The cursor keeps counting from where it was."""
        self._proxies = tuple(proxies)

    @property
    def proxies(self) -> Tuple[ProxyEndpoint, ...]:
        return self._proxies

    def next(self) -> Optional[ProxyEndpoint]:
        """Return the next proxy, or None for direct egress."""
        if not self._proxies:
            return None
        proxy = self._proxies[self._cursor % len(self._proxies)]
        self._cursor += 1
        return proxy

    def __len__(self) -> int:
        return len(self._proxies)
