"""
Per-order refund lock.

Status changes need no lock: the ledger's compare-and-set drops a losing
writer. Refunds do, since two requests for the same order could both pass
the balance check and both reach the provider. RefundService holds
``DistributedLock(f"refund:{order_id}")`` across read, provider call and
write-back.

The lock is a cache key set with ``cache.add`` (SET NX EX on the
django-redis backend). With the local-memory cache it only excludes
threads of one process, which is what the test suite relies on.
"""

from __future__ import annotations

import logging
import time
import uuid as uuid_module

from django.core.cache import cache

from payments.exceptions import LockAcquisitionError

logger = logging.getLogger(__name__)


class DistributedLock:
    """
    Token-owned cache lock with an expiry.

    ``ttl`` must outlast the provider round trip; a holder that crashes
    frees the key when it expires. With ``blocking=False`` a held lock
    raises at once, otherwise acquisition polls for up to ``timeout``
    seconds. Both paths raise LockAcquisitionError (LOCK_ACQUISITION_FAILED).
    """

    POLL_INTERVAL_SECONDS = 0.05

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None

    def acquire(self) -> bool:
        self._token = str(uuid_module.uuid4())

        if not self.blocking:
            if self._try_acquire():
                return True
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )

        deadline = time.monotonic() + self.timeout
        while time.monotonic() < deadline:
            if self._try_acquire():
                return True
            time.sleep(self.POLL_INTERVAL_SECONDS)

        raise LockAcquisitionError(
            f"Failed to acquire lock '{self.key}' within {self.timeout}s",
            details={"key": self.key, "timeout": self.timeout},
        )

    def _try_acquire(self) -> bool:
        return bool(cache.add(self.key, self._token, timeout=self.ttl))

    def release(self) -> bool:
        """Delete the key if our token still owns it; False if it expired."""
        if self._token is None:
            return False

        owned = cache.get(self.key) == self._token
        if owned:
            cache.delete(self.key)
        else:
            logger.warning("Lock expired before release", extra={"lock_key": self.key})
        self._token = None
        return owned

    @property
    def is_held(self) -> bool:
        return self._token is not None and cache.get(self.key) == self._token

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
