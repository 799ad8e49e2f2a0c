import threading
from contextlib import contextmanager
from typing import Dict, Hashable, List

# Lock order: code_locks -> referral_locks -> quota_locks -> admission_lock.
# Every lock a unit needs is taken before its first write. Helpers that run
# inside a caller's transaction take none and rely on conditional UPDATEs and
# unique constraints, so no thread ever waits on a Python lock while holding
# the database write lock.

# Serialises the read -> decide -> write admission unit within this process.
# Cross-process safety comes from the conditional UPDATE on capacity_config.
admission_lock = threading.RLock()


class KeyedLocks:
    """Independent mutexes per key (one invite code, one referred applicant...).

    An entry lives only while some thread holds or waits for it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, List] = {}  # key -> [lock, holders and waiters]

    @contextmanager
    def hold(self, key: Hashable):
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

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


code_locks = KeyedLocks()
referral_locks = KeyedLocks()
quota_locks = KeyedLocks()
