import threading
import time

from .models import Snapshot

class ReadinessGate:
    """One-way latch: false until the first refresh cycle completes, then true forever."""

    def __init__(self):
        self._ready = threading.Event()

    def mark_ready(self) -> None:
        self._ready.set()

    def is_ready(self) -> bool:
        return self._ready.is_set()

class SnapshotCache:
    """Single-slot holder for the latest Snapshot.

    One writer (the refresher) and any number of readers. Snapshots are
    immutable and replaced by a single reference assignment, so a reader
    sees either the old or the new snapshot in full. Readers take no lock;
    the lock only serializes writers against each other.
    """

    def __init__(self, gate: ReadinessGate | None = None):
        self._lock = threading.Lock()
        self._snap: Snapshot | None = None
        self._committed_at: float | None = None
        self.gate = gate if gate is not None else ReadinessGate()

    def replace(self, snap: Snapshot) -> None:
        with self._lock:
            self._snap = snap
            self._committed_at = time.monotonic()

    def read(self) -> Snapshot | None:
        return self._snap

    def is_ready(self) -> bool:
        return self.gate.is_ready()

    def age_s(self) -> float | None:
        committed_at = self._committed_at
        if committed_at is None:
            return None
        return time.monotonic() - committed_at
