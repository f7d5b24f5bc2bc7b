from numberzz.sync.propagator import Broadcaster, SyncPropagator
from numberzz.sync.snapshot import Snapshot, SnapshotEntry

__all__ = [
    "Broadcaster",
    "Snapshot",
    "SnapshotEntry",
    "SyncPropagator",
]
