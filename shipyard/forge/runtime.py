"""Runtime adapter boundary.

A runtime adapter talks to one kind of backend (a Kubernetes cluster, a
Terraform provider set). The engine only ever calls ``apply``, ``delete`` and
``read``; attribute schemas are the adapter's business.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Tuple

from ..errors import ConfigurationError
from ..models import Resource, ResourceType

logger = logging.getLogger(__name__)


class RuntimeAdapter(ABC):
    """Executes backend mutations for one resource type."""

    @abstractmethod
    async def apply(self, resource: Resource) -> Optional[Resource]:
        """Create or update the resource.

        Returns:
            The resource as the backend now holds it, or None to record the
            desired resource unchanged
        """

    @abstractmethod
    async def delete(self, resource: Resource) -> None:
        """Delete the resource. Deleting an absent resource is not an error."""

    @abstractmethod
    async def read(self, resource: Resource) -> Optional[Resource]:
        """Return the live resource, or None if the backend does not have it."""


class RuntimeRegistry:
    """Adapters by resource type, built per operation by the caller.

    Example:
        runtimes = RuntimeRegistry({
            ResourceType.KUBERNETES: my_kubernetes_adapter,
            ResourceType.TERRAFORM: my_terraform_adapter,
        })
    """

    def __init__(self, adapters: Optional[Mapping[ResourceType, RuntimeAdapter]] = None):
        self._adapters: Dict[ResourceType, RuntimeAdapter] = dict(adapters or {})

    def register(self, resource_type: ResourceType, adapter: RuntimeAdapter) -> "RuntimeRegistry":
        self._adapters[resource_type] = adapter
        return self

    def adapter_for(self, resource: Resource) -> RuntimeAdapter:
        """
        Look up the adapter for a resource.

        Raises:
            ConfigurationError: If no adapter handles the resource's type
        """
        adapter = self._adapters.get(resource.type)
        if adapter is None:
            raise ConfigurationError(f"No runtime adapter registered for {resource.type.value} resources")
        return adapter


class InMemoryRuntime(RuntimeAdapter):
    """
    Dict-backed runtime for dry runs and tests.

    Attributes:
        objects: Live resources by ID
        calls: Every call made, as (operation, resource ID), in call order
    """

    def __init__(
        self,
        failures: Optional[Mapping[str, str]] = None,
        delays: Optional[Mapping[str, float]] = None,
    ):
        """
        Initialize InMemoryRuntime.

        Args:
            failures: Resource ID -> error message raised by apply/delete
            delays: Resource ID -> seconds each call on it takes
        """
        self.objects: Dict[str, Resource] = {}
        self.calls: List[Tuple[str, str]] = []
        self.failures: Dict[str, str] = dict(failures or {})
        self.delays: Dict[str, float] = dict(delays or {})

    async def _call(self, operation: str, resource: Resource) -> None:
        self.calls.append((operation, resource.id))
        delay = self.delays.get(resource.id)
        if delay:
            await asyncio.sleep(delay)
        if operation != "read" and resource.id in self.failures:
            raise RuntimeError(self.failures[resource.id])

    async def apply(self, resource: Resource) -> Optional[Resource]:
        await self._call("apply", resource)
        self.objects[resource.id] = resource.model_copy(deep=True)
        logger.debug(f"In-memory runtime applied {resource.id}")
        return resource.model_copy(deep=True)

    async def delete(self, resource: Resource) -> None:
        await self._call("delete", resource)
        self.objects.pop(resource.id, None)
        logger.debug(f"In-memory runtime deleted {resource.id}")

    async def read(self, resource: Resource) -> Optional[Resource]:
        await self._call("read", resource)
        live = self.objects.get(resource.id)
        return live.model_copy(deep=True) if live is not None else None
