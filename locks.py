"""Per-user locks serializing cart mutations and checkout inside one process."""

import threading
from contextlib import contextmanager

from bson import ObjectId


class UserLocks:
    """A lock per user, dropped once no thread holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        # user_id -> [lock, threads holding or waiting]
        self._locks = {}

    @contextmanager
    def hold(self, user_id: ObjectId):
        with self._guard:
            entry = self._locks.setdefault(user_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[user_id]

    def __len__(self):
        return len(self._locks)
