"""Background orchestration: workflow expiry sweep and its Redis lock."""

from src.orchestrator.cleanup import CleanupRunResult, CleanupScheduler
from src.orchestrator.locks import SweepLockManager

__all__ = [
    "CleanupRunResult",
    "CleanupScheduler",
    "SweepLockManager",
]
