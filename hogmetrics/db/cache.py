"""Time-bounded cache for warehouse clients."""

import logging
import threading
import time
from collections.abc import Callable

from hogmetrics.db.base import BaseWarehouseClient

logger = logging.getLogger(__name__)


class ClientCache:
    """Holds one warehouse client and rebuilds it after a TTL.

    Build one at process start and pass it to the assemblers. Rebuilding after
    the TTL picks up rotated credentials; ``invalidate`` forces a rebuild on
    the next ``get``.

    Args:
        factory: Builds a new client
        ttl_seconds: Client lifetime
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        factory: Callable[[], BaseWarehouseClient],
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._client: BaseWarehouseClient | None = None
        self._created_at = 0.0

    def get(self) -> BaseWarehouseClient:
        """Return the cached client, building a new one if absent or expired."""
        with self._lock:
            now = self._clock()
            if self._client is not None and now - self._created_at < self._ttl:
                return self._client

            if self._client is not None:
                logger.debug("Warehouse client expired, rebuilding")
                self._client.close()
            self._client = self._factory()
            self._created_at = now
            return self._client

    def invalidate(self) -> None:
        """Drop the cached client."""
        with self._lock:
            if self._client is not None:
                self._client.close()
            self._client = None
