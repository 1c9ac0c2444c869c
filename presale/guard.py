import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from .errors import PresaleErrors, ReentrantCallError


class ReentrancyGuard:
    """Serializes ledger entry points and rejects re-entry.

    Calls from other threads wait for the holder to finish. A mutating call
    from the thread already inside a guarded section fails instead of
    deadlocking; a read from that thread passes straight through.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._holder: Optional[int] = None

    @property
    def entered(self) -> bool:
        return self._holder == threading.get_ident()

    @contextmanager
    def hold(self) -> Iterator[None]:
        if self.entered:
            raise ReentrantCallError(PresaleErrors.REENTRANT_CALL)
        with self._acquire():
            yield

    @contextmanager
    def read(self) -> Iterator[None]:
        if self.entered:
            yield
            return
        with self._acquire():
            yield

    @contextmanager
    def _acquire(self) -> Iterator[None]:
        with self._lock:
            self._holder = threading.get_ident()
            try:
                yield
            finally:
                self._holder = None
