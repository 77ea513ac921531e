"""Session pool.

Keeps up to ``nr_of_sessions`` concurrently active sessions per distinct
set of resolved connection parameters and reuses idle ones.  Sessions idle
for longer than ``sessions_idle_timeout`` seconds are closed the next time
the pool is touched (or when :meth:`SessionPool.reap` is called); a timeout
of 0 keeps idle sessions until the pool is closed.

Sessions are opaque to the pool: the connector supplies ``opener``,
``closer`` and optionally ``resetter`` callables.  Callers should use the
:meth:`SessionPool.session` context manager so the session is released
exactly once, whether the caller finishes, fails or abandons the work.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from idconnect.errors import ConnectionError
from idconnect.params.schemas import SessionPolicy
from idconnect.params.values import session_policy
from idconnect.settings import settings

logger = logging.getLogger(__name__)


class _IdleSession:
    def __init__(self, session: Any, since: float) -> None:
        self.session = session
        self.since = since


class _Bucket:
    """Sessions sharing one connection-parameter set."""

    def __init__(self, policy: SessionPolicy) -> None:
        self.policy = policy
        self.active = 0
        self.waiting = 0
        self.idle: deque[_IdleSession] = deque()

    @property
    def unused(self) -> bool:
        return not (self.active or self.waiting or self.idle)


def pool_key(connection_params: Mapping[str, Any]) -> str:
    """Stable key of a resolved connection-parameter set."""
    canonical = json.dumps(connection_params, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class SessionPool:
    def __init__(
        self,
        opener: Callable[[Mapping[str, Any]], Any],
        closer: Callable[[Any], None],
        resetter: Callable[[Any], None] | None = None,
        acquire_timeout: float | None = settings.SESSION_ACQUIRE_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._opener = opener
        self._closer = closer
        self._resetter = resetter
        self._acquire_timeout = acquire_timeout
        self._clock = clock
        self._cond = threading.Condition()
        self._buckets: dict[str, _Bucket] = {}
        # id(session) -> bucket key of every outstanding lease of that object;
        # an opener may hand out the same object (or None) more than once
        self._leases: dict[int, list[str]] = {}
        self._closed = False

    def __len__(self) -> int:
        """Number of connection-parameter sets currently holding sessions."""
        with self._cond:
            return len(self._buckets)

    # -- Leasing ---------------------------------------------------------------

    def acquire(self, connection_params: Mapping[str, Any]) -> Any:
        """Lease a session, blocking while the maximum is in use.

        Raises ``ConnectionError`` when the pool is closed, when no session
        frees up within the acquire timeout, or when opening fails.
        """
        policy = session_policy(connection_params)
        key = pool_key(connection_params)
        self._close_sessions(self._reap())

        with self._cond:
            if self._closed:
                raise ConnectionError("Session pool is closed")
            bucket = self._buckets.setdefault(key, _Bucket(policy))
            deadline = (
                None if self._acquire_timeout is None else self._clock() + self._acquire_timeout
            )
            bucket.waiting += 1
            try:
                while bucket.active >= bucket.policy.nr_of_sessions:
                    remaining = None if deadline is None else deadline - self._clock()
                    if remaining is not None and remaining <= 0:
                        raise ConnectionError(
                            f"Timed out waiting for one of {bucket.policy.nr_of_sessions} sessions"
                        )
                    self._cond.wait(remaining)
                    if self._closed:
                        raise ConnectionError("Session pool is closed")
            except BaseException:
                bucket.waiting -= 1
                self._prune(key)
                raise
            bucket.waiting -= 1
            bucket.active += 1
            reused = bucket.idle.pop() if bucket.idle else None
            if reused is not None:
                self._add_lease(reused.session, key)

        if reused is not None:
            logger.debug("acquire: reusing idle session (active=%d)", bucket.active)
            return reused.session

        try:
            session = self._opener(connection_params)
        except BaseException:
            with self._cond:
                bucket.active -= 1
                self._prune(key)
                self._cond.notify()
            raise

        with self._cond:
            self._add_lease(session, key)
        logger.debug("acquire: opened new session (active=%d)", bucket.active)
        return session

    def release(self, session: Any, discard: bool = False) -> None:
        """Return a leased session.  ``discard`` closes it instead of pooling it.

        Sessions going back to the pool are reset first; one that fails to
        reset is closed instead.
        """
        with self._cond:
            if not self._leases.get(id(session)):
                raise ValueError("Session is not leased from this pool")

        if not discard and self._resetter is not None:
            try:
                self._resetter(session)
            except Exception as exc:
                logger.warning("release: reset failed, discarding session: %s", exc)
                discard = True

        with self._cond:
            keys = self._leases.get(id(session))
            if not keys:
                raise ValueError("Session is not leased from this pool")
            key = keys.pop()
            if not keys:
                del self._leases[id(session)]
            bucket = self._buckets[key]
            bucket.active -= 1
            close_now = discard or self._closed
            if not close_now:
                bucket.idle.append(_IdleSession(session, self._clock()))
            active = bucket.active
            self._prune(key)
            self._cond.notify()

        if close_now:
            self._close_sessions([session])
        logger.debug("release: session %s (active=%d)", "closed" if close_now else "pooled", active)

    @contextmanager
    def session(self, connection_params: Mapping[str, Any]) -> Iterator[Any]:
        """Lease a session for the duration of the ``with`` block.

        A session that failed with ``ConnectionError`` is discarded.
        """
        leased = self.acquire(connection_params)
        discard = False
        try:
            yield leased
        except ConnectionError:
            discard = True
            raise
        finally:
            self.release(leased, discard=discard)

    def _add_lease(self, session: Any, key: str) -> None:
        self._leases.setdefault(id(session), []).append(key)

    def _prune(self, key: str) -> None:
        # Caller holds self._cond
        bucket = self._buckets.get(key)
        if bucket is not None and bucket.unused:
            del self._buckets[key]

    # -- Housekeeping ------------------------------------------------------------

    def _reap(self) -> list[Any]:
        now = self._clock()
        expired: list[Any] = []
        with self._cond:
            for key, bucket in list(self._buckets.items()):
                if not bucket.policy.expires:
                    continue
                keep: deque[_IdleSession] = deque()
                for idle in bucket.idle:
                    if now - idle.since >= bucket.policy.sessions_idle_timeout:
                        expired.append(idle.session)
                    else:
                        keep.append(idle)
                bucket.idle = keep
                self._prune(key)
        return expired

    def reap(self) -> int:
        """Close idle sessions past their expiry.  Returns how many were closed."""
        expired = self._reap()
        self._close_sessions(expired)
        if expired:
            logger.info("reap: closed %d idle session(s)", len(expired))
        return len(expired)

    def close_all(self) -> None:
        """Close every idle session and refuse new leases.

        Sessions still leased are closed when they are released.
        """
        with self._cond:
            self._closed = True
            idle = [i.session for b in self._buckets.values() for i in b.idle]
            for key, bucket in list(self._buckets.items()):
                bucket.idle.clear()
                self._prune(key)
            self._cond.notify_all()
        self._close_sessions(idle)
        logger.info("close_all: closed %d idle session(s)", len(idle))

    def _close_sessions(self, sessions: list[Any]) -> None:
        for session in sessions:
            try:
                self._closer(session)
            except Exception as exc:
                logger.error("close: failed to close session: %s", exc, exc_info=True)

    # -- Introspection -------------------------------------------------------------

    def active_count(self, connection_params: Mapping[str, Any]) -> int:
        with self._cond:
            bucket = self._buckets.get(pool_key(connection_params))
            return bucket.active if bucket else 0

    def idle_count(self, connection_params: Mapping[str, Any]) -> int:
        with self._cond:
            bucket = self._buckets.get(pool_key(connection_params))
            return len(bucket.idle) if bucket else 0
