"""
Pytest configuration and fixtures for Shipyard tests.
"""

import tempfile
from pathlib import Path

import pytest

from shipyard.forge.runtime import InMemoryRuntime, RuntimeRegistry
from shipyard.forge.state import InMemoryReleaseStore
from shipyard.intake.pipeline import Generator
from shipyard.models import Resource, ResourceType


def k8s(name, depends_on=None, namespace="default", **attributes):
    """Build a namespaced ConfigMap resource for tests."""
    return Resource(
        id=f"v1:ConfigMap:{namespace}:{name}",
        type=ResourceType.KUBERNETES,
        attributes={"metadata": {"name": name, "namespace": namespace}, **attributes},
        depends_on=list(depends_on or []),
    )


def tf(name, depends_on=None, **attributes):
    """Build a Terraform random_password resource for tests."""
    return Resource(
        id=f"hashicorp:random:random_password:{name}",
        type=ResourceType.TERRAFORM,
        attributes=dict(attributes),
        depends_on=list(depends_on or []),
    )


class StaticGenerator(Generator):
    """Generator that appends a fixed list of resources."""

    def __init__(self, *resources):
        self.resources = list(resources)

    def generate(self, intent):
        intent.add(*[resource.model_copy(deep=True) for resource in self.resources])


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def store():
    """Provide an empty in-memory release store."""
    return InMemoryReleaseStore()


@pytest.fixture
def runtime():
    """Provide an in-memory runtime serving both resource types."""
    return InMemoryRuntime()


@pytest.fixture
def runtimes(runtime):
    """Provide a registry routing both resource types to the runtime fixture."""
    return RuntimeRegistry({
        ResourceType.KUBERNETES: runtime,
        ResourceType.TERRAFORM: runtime,
    })
