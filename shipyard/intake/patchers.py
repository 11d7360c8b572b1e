"""
Built-in patchers driven by project/stack extensions and runtime config.

- NamespacePatcher: moves namespaced Kubernetes resources to one namespace
- MetadataPatcher: merges labels and annotations into Kubernetes metadata
- KubeConfigPatcher: records which kubeconfig a Kubernetes resource uses
"""

import logging
from typing import Dict, List, Optional

from ..models import EXTENSION_KUBECONFIG, Resource, ResourceType
from ..workspace import ExtensionKind, Project, Stack, Workspace
from .pipeline import Patcher

logger = logging.getLogger(__name__)


def _kubernetes(resources: Dict[str, List[Resource]]):
    for group in resources.values():
        for resource in group:
            if resource.type == ResourceType.KUBERNETES:
                yield resource


class NamespacePatcher(Patcher):
    """
    Override the namespace of namespaced Kubernetes resources.

    The namespace is part of a Kubernetes resource ID, so patched resources
    are re-keyed and every dependsOn entry that named an old ID is rewritten.
    Cluster-scoped resources (three-part IDs) are left alone.
    """

    def __init__(self, namespace: str):
        self.namespace = namespace

    def patch(self, resources: Dict[str, List[Resource]]) -> None:
        renamed = {}
        for resource in _kubernetes(resources):
            parts = resource.id.split(":")
            if len(parts) != 4:
                continue
            parts[2] = self.namespace
            new_id = ":".join(parts)
            metadata = resource.attributes.setdefault("metadata", {})
            metadata["namespace"] = self.namespace
            if new_id != resource.id:
                renamed[resource.id] = new_id
                resource.id = new_id

        if not renamed:
            return

        for group in resources.values():
            for resource in group:
                resource.depends_on = [renamed.get(dep, dep) for dep in resource.depends_on]
        logger.debug(f"Moved {len(renamed)} resources to namespace {self.namespace}")


class MetadataPatcher(Patcher):
    """Merge labels and annotations into ``metadata`` of Kubernetes resources."""

    def __init__(self, labels: Optional[Dict[str, str]] = None,
                 annotations: Optional[Dict[str, str]] = None):
        self.labels = dict(labels or {})
        self.annotations = dict(annotations or {})

    def patch(self, resources: Dict[str, List[Resource]]) -> None:
        for resource in _kubernetes(resources):
            metadata = resource.attributes.setdefault("metadata", {})
            if self.labels:
                metadata.setdefault("labels", {}).update(self.labels)
            if self.annotations:
                metadata.setdefault("annotations", {}).update(self.annotations)


class KubeConfigPatcher(Patcher):
    """Set the kubeConfig extension on Kubernetes resources that lack one."""

    def __init__(self, kube_config: str):
        self.kube_config = kube_config

    def patch(self, resources: Dict[str, List[Resource]]) -> None:
        for resource in _kubernetes(resources):
            resource.extensions.setdefault(EXTENSION_KUBECONFIG, self.kube_config)


def patchers_for(project: Project, stack: Stack, workspace: Optional[Workspace] = None) -> List[Patcher]:
    """
    Build the built-in patchers for a project and stack.

    Stack extensions are read after project extensions: a stack namespace
    replaces the project's, stack labels and annotations win on key clashes.

    Returns:
        Patchers in the order namespace, metadata, kubeconfig; a patcher with
        nothing to do is left out
    """
    namespace = ""
    labels: Dict[str, str] = {}
    annotations: Dict[str, str] = {}

    for extension in list(project.extensions) + list(stack.extensions):
        if extension.kind == ExtensionKind.KUBERNETES_NAMESPACE:
            if extension.kube_namespace.namespace:
                namespace = extension.kube_namespace.namespace
        elif extension.kind == ExtensionKind.KUBERNETES_METADATA:
            labels.update(extension.kube_metadata.labels)
            annotations.update(extension.kube_metadata.annotations)

    patchers: List[Patcher] = []
    if namespace:
        patchers.append(NamespacePatcher(namespace))
    if labels or annotations:
        patchers.append(MetadataPatcher(labels, annotations))

    runtimes = workspace.runtimes if workspace is not None else None
    if runtimes is not None and runtimes.kubernetes is not None and runtimes.kubernetes.kube_config:
        patchers.append(KubeConfigPatcher(runtimes.kubernetes.kube_config))

    logger.debug(
        f"Patchers for {project.name}/{stack.name}: {[patcher.name for patcher in patchers]}"
    )
    return patchers
