"""
Centralized Pydantic models for the Shipyard delivery engine.

This module contains the core data models used throughout the release pipeline:
- Resource, Spec and State collections produced by intake and the runtime
- Release records and their phases
- Per-action outcome records kept on every mutating Release

Serialized field names are camelCase (``dependsOn``, ``createTime``...) and are
part of the persisted record format.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import ConfigurationError


# =============================================================================
# Core Enums
# =============================================================================

class ResourceType(str, Enum):
    """Backend that owns a resource."""
    KUBERNETES = "Kubernetes"
    TERRAFORM = "Terraform"


class ReleasePhase(str, Enum):
    """Phase of a Release."""
    GENERATING = "generating"
    PREVIEWING = "previewing"
    APPLYING = "applying"
    DESTROYING = "destroying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_PHASES = frozenset({ReleasePhase.SUCCEEDED, ReleasePhase.FAILED})


class ActionType(str, Enum):
    """Action the differ assigns to a resource."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NO_CHANGE = "no_change"


class ActionStatus(str, Enum):
    """Execution status of a planned action."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


# Extension keys understood by the core and the built-in patchers
EXTENSION_GVK = "GVK"
EXTENSION_KUBECONFIG = "kubeConfig"


class ShipyardModel(BaseModel):
    """Base model with the camelCase wire format."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_dict(self) -> Dict[str, Any]:
        """Dump using the persisted (camelCase, JSON-compatible) field names."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Create from a persisted record."""
        return cls.model_validate(data)


# =============================================================================
# Resource identity
# =============================================================================

def kubernetes_resource_id(api_version: str, kind: str, name: str, namespace: str = "") -> str:
    """Build the ID of a Kubernetes resource.

    Namespaced resources use ``apiVersion:kind:namespace:name``; cluster-scoped
    resources omit the namespace segment.

    Example:
        >>> kubernetes_resource_id("apps/v1", "Deployment", "web", "prod")
        'apps/v1:Deployment:prod:web'
    """
    if not api_version or not kind or not name:
        raise ValueError("apiVersion, kind and name are required for a Kubernetes resource ID")
    parts = [api_version, kind]
    if namespace:
        parts.append(namespace)
    parts.append(name)
    return ":".join(parts)


def parse_provider_source(source: str) -> Tuple[str, str]:
    """Split a Terraform provider source into (namespace, name).

    Accepts ``namespace/name``, ``host/namespace/name``, ``namespace/name/version``
    and ``host/namespace/name/version``.
    """
    parts = [part for part in source.split("/") if part]
    if len(parts) == 2:
        return parts[0], parts[1]
    if len(parts) == 3:
        # A registry host always contains a dot, a namespace never does
        if "." in parts[0]:
            return parts[1], parts[2]
        return parts[0], parts[1]
    if len(parts) == 4:
        return parts[1], parts[2]
    raise ConfigurationError(f"Invalid Terraform provider source: {source!r}")


def terraform_resource_id(provider_source: str, resource_type: str, resource_name: str) -> str:
    """Build the ID of a Terraform resource.

    Example:
        >>> terraform_resource_id("registry.terraform.io/hashicorp/aws/5.0.1", "aws_db_instance", "db")
        'hashicorp:aws:aws_db_instance:db'
    """
    namespace, name = parse_provider_source(provider_source)
    return ":".join([namespace, name, resource_type, resource_name])


# =============================================================================
# Resources
# =============================================================================

class Resource(ShipyardModel):
    """A single desired or recorded backend object."""

    id: str = Field(..., min_length=1)
    type: ResourceType
    attributes: Dict[str, Any] = Field(default_factory=dict)
    depends_on: List[str] = Field(default_factory=list)
    extensions: Dict[str, Any] = Field(default_factory=dict)

    def kind_key(self) -> str:
        """Key used to group resources of the same kind for patchers.

        Kubernetes resources group by ``apiVersion:kind`` (or the GVK extension
        when a generator recorded one), Terraform resources by
        ``providerNamespace:providerName:resourceType``.
        """
        if self.type == ResourceType.KUBERNETES:
            gvk = self.extensions.get(EXTENSION_GVK)
            if gvk:
                return str(gvk)
            return ":".join(self.id.split(":")[:2])
        return ":".join(self.id.split(":")[:3])


class ResourceCollection(ShipyardModel):
    """Ordered collection of resources."""

    resources: List[Resource] = Field(default_factory=list)

    def ids(self) -> List[str]:
        """Resource IDs in collection order."""
        return [resource.id for resource in self.resources]

    def get(self, resource_id: str) -> Optional[Resource]:
        """Return the resource with the given ID, or None."""
        for resource in self.resources:
            if resource.id == resource_id:
                return resource
        return None


class Spec(ResourceCollection):
    """Desired resources of one Release. Frozen once attached."""
    pass


class State(ResourceCollection):
    """Resources confirmed to exist in the backends."""
    pass


# =============================================================================
# Releases
# =============================================================================

class ActionRecord(ShipyardModel):
    """Outcome of one planned backend action."""

    resource_id: str
    action: ActionType
    status: ActionStatus = ActionStatus.PENDING
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class Release(ShipyardModel):
    """One versioned attempt to reconcile a Spec against backend reality.

    (project, workspace, stack, revision) identifies a Release uniquely.
    """

    project: str
    workspace: str
    stack: str
    revision: int = Field(..., ge=1)
    spec: Optional[Spec] = None
    state: State = Field(default_factory=State)
    phase: ReleasePhase = ReleasePhase.GENERATING
    create_time: datetime = Field(default_factory=datetime.now)
    modified_time: datetime = Field(default_factory=datetime.now)
    actions: List[ActionRecord] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str, str]:
        """The (project, workspace, stack) triple."""
        return (self.project, self.workspace, self.stack)

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def failed_actions(self) -> List[ActionRecord]:
        """Actions that errored or timed out."""
        return [record for record in self.actions if record.status == ActionStatus.FAILED]

    def describe(self) -> str:
        return f"{self.project}/{self.workspace}/{self.stack}@{self.revision}"


__all__ = [
    # Enums
    'ResourceType', 'ReleasePhase', 'ActionType', 'ActionStatus', 'TERMINAL_PHASES',

    # Identity
    'kubernetes_resource_id', 'terraform_resource_id', 'parse_provider_source',
    'EXTENSION_GVK', 'EXTENSION_KUBECONFIG',

    # Resources
    'ShipyardModel', 'Resource', 'ResourceCollection', 'Spec', 'State',

    # Releases
    'ActionRecord', 'Release',
]
