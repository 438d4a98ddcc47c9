"""Directory snapshots and stability detection."""

from markwiki.snapshot.engine import DEFAULT_MAX_DEPTH, take_snapshot
from markwiki.snapshot.models import FileFingerprint, Snapshot, snapshots_equal
from markwiki.snapshot.stability import StabilityTask, wait_for_stability

__all__ = [
    "DEFAULT_MAX_DEPTH",
    "FileFingerprint",
    "Snapshot",
    "StabilityTask",
    "snapshots_equal",
    "take_snapshot",
    "wait_for_stability",
]
