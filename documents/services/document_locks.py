"""Per-document lock registry.

Every load -> mutate -> save cycle of the signing service runs under the
lock of its document, so two signers acting at the same time are applied
one after the other instead of the second save overwriting the first.
The store's optimistic version check still guards writers in other
processes.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class DocumentLocks:

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}
        self._users: Dict[str, int] = {}

    @contextmanager
    def hold(self, doc_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(doc_id)
            if lock is None:
                lock = self._locks[doc_id] = threading.RLock()
            self._users[doc_id] = self._users.get(doc_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[doc_id] -= 1
                if self._users[doc_id] == 0:
                    del self._users[doc_id]
                    del self._locks[doc_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
