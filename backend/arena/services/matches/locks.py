"""
Concurrency helpers.

Two layers guard the match invariants:

- ``KeyedLocks`` serializes work inside this process per key (one lock per
  match id, one per account id), so two connections racing on the same match
  never interleave, while unrelated matches proceed in parallel.
- ``with_match_lock`` re-reads the match row with ``SELECT ... FOR UPDATE``
  so databases that support row locks also serialize across processes.

Lock ordering is always account lock, then match lock.
"""
import threading
from contextlib import contextmanager

from arena import db
from arena.models import Match


class KeyedLocks:
    """A table of re-entrant locks, one per key while anyone holds or waits on it.

    Entries are reference counted and dropped once the last holder leaves, so
    the table only ever contains keys in use and every caller for a key shares
    the same lock.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, holders and waiters]
        self._locks = {}

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.RLock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)


account_locks = KeyedLocks()
match_locks = KeyedLocks()


def with_match_lock(match_id):
    """
    Query a match row for update, refreshing any stale copy already loaded
    into the session.

    Returns a Query; call ``.first()`` on it.
    """
    return Match.query.filter(
        Match.id == match_id
    ).populate_existing().with_for_update(nowait=False)


def current_state(match_id):
    """Read a match's state straight from the database, bypassing the session's identity map."""
    return db.session.query(Match.state).filter(Match.id == match_id).scalar()
