"""
Forge module for Shipyard.

Executes plans through runtime adapters and persists Releases.
"""

from .executor import (
    CancellationToken,
    ExecutionResult,
    PlanExecutor,
    resulting_state,
)

from .runtime import (
    InMemoryRuntime,
    RuntimeAdapter,
    RuntimeRegistry,
)

from .state import (
    FileReleaseStore,
    InMemoryReleaseStore,
    ReleaseStore,
)

__all__ = [
    # Execution
    "CancellationToken",
    "ExecutionResult",
    "PlanExecutor",
    "resulting_state",
    # Runtimes
    "InMemoryRuntime",
    "RuntimeAdapter",
    "RuntimeRegistry",
    # Release stores
    "FileReleaseStore",
    "InMemoryReleaseStore",
    "ReleaseStore",
]
