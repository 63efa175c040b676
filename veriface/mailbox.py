import threading
import time
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PendingSelfie:
    data_uri: str
    version: int
    received_at: float


class SelfieMailbox:
    """
    Single-slot hand-off for the most recently received selfie.

    Writers overwrite the slot (last write wins) and bump a monotonic version,
    so readers can tell two identical consecutive selfies apart. Readers either
    peek (slot untouched) or take (slot emptied in the same critical section).
    """

    def __init__(self):
        self.lock = threading.Lock()
        self._slot: Optional[PendingSelfie] = None
        self._version = 0

    def put(self, data_uri: str) -> PendingSelfie:
        with self.lock:
            self._version += 1
            self._slot = PendingSelfie(data_uri=data_uri, version=self._version, received_at=time.time())
            return self._slot

    def peek(self) -> Optional[PendingSelfie]:
        with self.lock:
            return self._slot

    def take(self) -> Optional[PendingSelfie]:
        with self.lock:
            slot, self._slot = self._slot, None
            return slot

    def read(self, consume: bool) -> Optional[PendingSelfie]:
        return self.take() if consume else self.peek()

    def clear(self):
        with self.lock:
            self._slot = None

    @property
    def version(self) -> int:
        with self.lock:
            return self._version
