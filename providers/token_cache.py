"""Process-wide cache for short-lived access tokens."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Hashable

import config

logger = logging.getLogger(__name__)


@dataclass
class CachedToken:
    value: str
    expires_at: float


@dataclass
class _Flight:
    done: threading.Event = field(default_factory=threading.Event)
    value: str | None = None
    error: BaseException | None = None


class SingleFlightTokenCache:
    """Thread-safe token cache with single-flight refresh.

    A token is reused until less than ``refresh_margin`` seconds of its
    lifetime remain. Concurrent callers that miss the cache for the same key
    wait on the one fetch already in flight instead of starting their own.

    Args:
        refresh_margin: Seconds before expiry at which a token is refreshed.
        clock: Wall-clock source, injectable for tests.
    """

    def __init__(self, refresh_margin: float = config.TOKEN_REFRESH_MARGIN_SECONDS, clock=time.time):
        self.refresh_margin = refresh_margin
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens: dict[Hashable, CachedToken] = {}
        self._in_flight: dict[Hashable, _Flight] = {}

    def get(self, key: Hashable, fetch: Callable[[], tuple[str, float]]) -> str:
        """Return a fresh token for ``key``.

        Args:
            key: Credential identity.
            fetch: Called with no arguments on a miss; returns
                ``(token, expires_in_seconds)``.
        """
        with self._lock:
            cached = self._tokens.get(key)
            if cached is not None and cached.expires_at - self.refresh_margin > self._clock():
                return cached.value
            flight = self._in_flight.get(key)
            leader = flight is None
            if leader:
                flight = _Flight()
                self._in_flight[key] = flight

        if not leader:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.value

        try:
            token, expires_in = fetch()
            flight.value = token
            with self._lock:
                self._tokens[key] = CachedToken(token, self._clock() + float(expires_in))
            logger.debug("Cached access token, expires in %ss", expires_in)
            return token
        except Exception as exc:
            flight.error = exc
            raise
        finally:
            with self._lock:
                self._in_flight.pop(key, None)
            flight.done.set()

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._tokens.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()
