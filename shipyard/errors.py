"""
Shipyard errors.

Every failure the engine can surface derives from ShipyardError so callers can
catch the whole family with one clause.
"""

from typing import Sequence


class ShipyardError(Exception):
    """Base exception for all Shipyard errors."""
    pass


class ConfigurationError(ShipyardError):
    """Malformed workspace, module or secret-store configuration."""
    pass


# =============================================================================
# Graph errors
# =============================================================================

class GraphError(ShipyardError):
    """Base class for resource graph validation failures."""
    pass


class DuplicateIDError(GraphError):
    """Two resources in the same collection share an ID."""

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"Duplicate resource ID: {resource_id}")


class DanglingDependencyError(GraphError):
    """A dependsOn entry names a resource that is not in the collection."""

    def __init__(self, resource_id: str, missing: str):
        self.resource_id = resource_id
        self.missing = missing
        super().__init__(
            f"Resource {resource_id} depends on unknown resource {missing}"
        )


class CyclicDependencyError(GraphError):
    """The dependency relation contains a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle detected: {' → '.join(self.cycle)}")


# =============================================================================
# Generation errors
# =============================================================================

class GenerationError(ShipyardError):
    """A generator failed while building the intent."""
    pass


class PatchError(ShipyardError):
    """A patcher failed while mutating generated resources."""
    pass


class SecretResolutionError(ShipyardError):
    """A secret reference could not be resolved by its provider."""
    pass


# =============================================================================
# Execution and persistence errors
# =============================================================================

class BackendActionError(ShipyardError):
    """A runtime adapter failed to apply or delete a specific resource."""

    def __init__(self, resource_id: str, action: str, message: str):
        self.resource_id = resource_id
        self.action = action
        super().__init__(f"{action} {resource_id} failed: {message}")


class InvalidTransitionError(ShipyardError):
    """A release phase change that the lifecycle does not allow."""
    pass


class ReleaseNotFoundError(ShipyardError):
    """The requested release does not exist."""
    pass


class RevisionConflictError(ShipyardError):
    """Two releases claimed the same revision. Indicates a data-integrity bug."""
    pass


class StoreError(ShipyardError):
    """The release store could not read or write a record."""
    pass
