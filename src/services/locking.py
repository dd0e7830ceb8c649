"""
In-process keyed locks for stock and order mutations.

Every mutation of a raw material's lots, of a production order's items, or
of a sales order's pallets runs while holding the lock for that entity.
Locks are re-entrant so a service holding a key can call another service
that takes the same key.

Keys are (kind, id) tuples:
    ("production_order", 12)
    ("raw_material", 4)
    ("sales_order", 7)

locked() sorts the keys before acquiring them, so two callers that need
overlapping sets of entities always acquire them in the same order.

A lock exists only while some caller holds or waits for it. Each entry
counts its users and is dropped when the last one leaves locked(); the
registry only holds keys in use.

Usage:
    from src.services.locking import locked, raw_material_key

    with locked(raw_material_key(4)):
        ...  # read lots, deduct, commit
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple

LockKey = Tuple[str, int]

# key -> [lock, number of callers holding or waiting for it]
_registry: Dict[LockKey, list] = {}
_registry_guard = threading.Lock()


def raw_material_key(raw_material_id: int) -> LockKey:
    return ("raw_material", raw_material_id)


def production_order_key(order_id: int) -> LockKey:
    return ("production_order", order_id)


def sales_order_key(sales_order_id: int) -> LockKey:
    return ("sales_order", sales_order_id)


def _checkout(key: LockKey) -> threading.RLock:
    """Return the lock for a key, creating it on first use, and count one more user."""
    with _registry_guard:
        entry = _registry.get(key)
        if entry is None:
            entry = [threading.RLock(), 0]
            _registry[key] = entry
        entry[1] += 1
        return entry[0]


def _checkin(key: LockKey) -> None:
    """Count one user less; forget the lock when nobody uses it."""
    with _registry_guard:
        entry = _registry.get(key)
        if entry is None:
            return
        entry[1] -= 1
        if entry[1] <= 0:
            del _registry[key]


def registered_keys() -> List[LockKey]:
    """Keys that currently have a lock, sorted."""
    with _registry_guard:
        return sorted(_registry)


@contextmanager
def locked(*keys: LockKey) -> Iterator[None]:
    """
    Hold the locks for all given keys for the duration of the block.

    Duplicate keys are collapsed. Locks are acquired in sorted key order and
    released in reverse.

    Args:
        *keys: (kind, id) tuples
    """
    ordered = sorted(set(keys))
    checked_out = []
    acquired = []
    try:
        for key in ordered:
            lock = _checkout(key)
            checked_out.append(key)
            lock.acquire()
            acquired.append(lock)
        yield
    finally:
        for lock in reversed(acquired):
            lock.release()
        for key in reversed(checked_out):
            _checkin(key)


def clear_locks() -> None:
    """
    Forget all registered locks.

    Only safe when no lock is held; used by tests between cases.
    """
    with _registry_guard:
        _registry.clear()
