# Overview: Service-layer concurrency primitives; per-key serialization, row locks and atomic units.

"""
Concurrency Primitives for Balance-Mutating Coordinators

WHY: A ledger append is read-balance -> compute -> insert. Two requests for
the same customer interleaving between the read and the insert would both
compute from the same prior balance and one of the movements would vanish
from the running balance. The same holds for bank balance counters.

DESIGN:
- customer_lock(*ids) / bank_lock(*ids) / purchase_order_lock(*ids):
  in-process keyed locks. Keys are acquired in sorted order so two
  coordinators touching the same pair of customers can never deadlock.
- lock_for_update(query): SELECT ... FOR UPDATE on the owning row, which
  extends the serialization across processes on databases that honor it.
- atomic(operation): one unit of work. Commits on success. Domain errors
  roll back and propagate unchanged; anything else rolls back and is
  re-raised as TransactionFailure with the cause chained.

There is no automatic retry. A failed coordinator leaves no partial writes
and the caller decides whether to try again.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Hashable, Iterator

from ..errors import ShopbooksError, TransactionFailure
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


class KeyedLock:
    """
    A family of re-entrant locks, one per key.

    A key's lock exists only while some thread holds or waits for it; the
    entry is dropped when its user count returns to zero.
    """

    def __init__(self, name: str):
        self.name = name
        self._guard = threading.Lock()
        # key -> [lock, users]
        self._locks: dict[Hashable, list] = {}

    def _checkout(self, key: Hashable) -> threading.RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        ordered = sorted({k for k in keys if k is not None})
        acquired: list[tuple[Hashable, threading.RLock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)


_customer_locks = KeyedLock("customer")
_bank_locks = KeyedLock("bank")
_purchase_order_locks = KeyedLock("purchase_order")


def customer_lock(*customer_ids: int | None):
    """Serialize ledger writers for the given customers (None ids are skipped)."""
    return _customer_locks.hold(*customer_ids)


def bank_lock(*bank_ids: int | None):
    """Serialize balance writers for the given bank accounts."""
    return _bank_locks.hold(*bank_ids)


def purchase_order_lock(*order_ids: int | None):
    """Serialize status writers for the given purchase orders (stock follows status)."""
    return _purchase_order_locks.hold(*order_ids)


@contextmanager
def atomic(operation: str) -> Iterator[None]:
    """
    Run the enclosed block as one committed unit.

    Usage:
        with customer_lock(customer_id), atomic("create invoice"):
            ...

    The lock must be the outer context so it is held until after commit.
    """
    try:
        yield
        db.session.commit()
    except ShopbooksError:
        db.session.rollback()
        raise
    except Exception as exc:
        db.session.rollback()
        logger.error("%s failed; transaction rolled back", operation, exc_info=True)
        raise TransactionFailure(f"Failed to {operation}") from exc
