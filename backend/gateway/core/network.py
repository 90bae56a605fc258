import logging
import os
import threading
from collections.abc import Iterable
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)


def _split_hosts(value: str) -> set[str]:
    return {item.strip() for item in value.split(",") if item.strip()}


def endpoint_hostname(endpoint: str) -> str | None:
    try:
        hostname = urlsplit(endpoint).hostname
    except ValueError:
        return None
    return hostname or None


class NoProxyRegistry:
    """Process-wide set of hosts that storage clients reach without a proxy.

    Registration is a set union, so concurrent callers never conflict.
    """

    def __init__(self, hosts: Iterable[str] = ()) -> None:
        self._hosts: set[str] = {host for host in hosts if host}
        self._lock = threading.Lock()

    @classmethod
    def from_environ(cls) -> "NoProxyRegistry":
        raw = os.environ.get("NO_PROXY") or os.environ.get("no_proxy") or ""
        return cls(_split_hosts(raw))

    def register(self, endpoint: str) -> str | None:
        """Add the endpoint's hostname; malformed endpoints are ignored."""
        hostname = endpoint_hostname(endpoint)
        if hostname is None:
            return None
        with self._lock:
            if hostname not in self._hosts:
                self._hosts.add(hostname)
                logger.info("Storage host %s added to proxy bypass list", hostname)
        return hostname

    def hosts(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._hosts)

    def bypasses(self, endpoint: str) -> bool:
        hostname = endpoint_hostname(endpoint)
        return hostname is not None and hostname in self.hosts()

    @property
    def value(self) -> str:
        return ",".join(sorted(self.hosts()))
