"""Generic bounded-concurrency batch execution.

Used by the installation orchestrator, the sync engine and the CLI's
batch verbs; the engine itself knows nothing about components.
"""

from compsync.core.batch.engine import BatchExecutor, default_key, run_batch
from compsync.core.batch.models import (
    BatchFailure,
    BatchOptions,
    BatchResult,
    BatchStats,
    RetryPolicy,
)

__all__ = [
    "BatchExecutor",
    "BatchFailure",
    "BatchOptions",
    "BatchResult",
    "BatchStats",
    "RetryPolicy",
    "default_key",
    "run_batch",
]
