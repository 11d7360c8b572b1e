"""
Platform and project configuration models.

A Workspace carries module defaults and per-project patch blocks, runtime
backend settings and the secret store. Projects and stacks carry extensions
that customize how generated resources look. All of these are read-only
inputs to generation.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field, model_validator

from .errors import ConfigurationError
from .models import ShipyardModel
from .secrets.providers import SecretStoreSpec

logger = logging.getLogger(__name__)

DEFAULT_BLOCK = "default"
PROJECT_SELECTOR_FIELD = "projectSelector"


# =============================================================================
# Extensions
# =============================================================================

class ExtensionKind(str, Enum):
    KUBERNETES_METADATA = "kubernetesMetadata"
    KUBERNETES_NAMESPACE = "kubernetesNamespace"


class KubeNamespaceExtension(ShipyardModel):
    """Overrides the namespace of namespaced Kubernetes resources."""
    namespace: str = ""


class KubeMetadataExtension(ShipyardModel):
    """Labels and annotations appended to Kubernetes resources."""
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)


class Extension(ShipyardModel):
    kind: ExtensionKind
    kube_namespace: KubeNamespaceExtension = Field(
        default_factory=KubeNamespaceExtension, alias="kubernetesNamespace"
    )
    kube_metadata: KubeMetadataExtension = Field(
        default_factory=KubeMetadataExtension, alias="kubernetesMetadata"
    )


class Stack(ShipyardModel):
    name: str
    workspace: str = ""
    backend: str = ""
    description: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    path: str = ""
    extensions: List[Extension] = Field(default_factory=list)


class Project(ShipyardModel):
    name: str
    description: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    path: str = ""
    stacks: List[Stack] = Field(default_factory=list)
    extensions: List[Extension] = Field(default_factory=list)


# =============================================================================
# Module configuration
# =============================================================================

class ModulePatcherConfig(ShipyardModel):
    """A patch block applied to the projects named in its selector.

    Accepts the inline form, where every key except ``projectSelector`` is
    module config: ``{"replicas": 3, "projectSelector": ["foo"]}``.
    """

    config: Dict[str, Any] = Field(default_factory=dict)
    project_selector: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _inline_config(cls, data: Any) -> Any:
        if isinstance(data, dict) and "config" not in data:
            data = dict(data)
            selector = data.pop(PROJECT_SELECTOR_FIELD, data.pop("project_selector", []))
            return {"config": data, "project_selector": selector}
        return data


class ModuleConfigs(ShipyardModel):
    """Default block plus named patch blocks.

    Accepts the inline form ``{"default": {...}, "<patcher>": {...}}``.
    """

    default: Dict[str, Any] = Field(default_factory=dict)
    patchers: Dict[str, ModulePatcherConfig] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _inline_patchers(cls, data: Any) -> Any:
        if isinstance(data, dict) and "patchers" not in data:
            data = dict(data)
            default = data.pop(DEFAULT_BLOCK, None) or {}
            return {"default": default, "patchers": data}
        return data


class ModuleConfig(ShipyardModel):
    """Platform configuration of one module."""

    path: str = ""
    version: str = ""
    configs: ModuleConfigs = Field(default_factory=ModuleConfigs)

    def selecting_patchers(self, project: str) -> List[str]:
        """Names of the patch blocks whose selector includes the project."""
        return [
            name for name, patcher in self.configs.patchers.items()
            if project in patcher.project_selector
        ]

    def project_config(self, project: str) -> Dict[str, Any]:
        """Effective config for a project.

        A project selected by a patch block gets the default block with the
        patcher's keys laid over it; any other project gets the default block.

        Raises:
            ConfigurationError: If more than one patch block selects the project
        """
        names = self.selecting_patchers(project)
        if len(names) > 1:
            raise ConfigurationError(
                f"project {project} is selected by multiple patchers: {', '.join(names)}"
            )
        effective = dict(self.configs.default)
        if names:
            effective.update(self.configs.patchers[names[0]].config)
        return effective


# =============================================================================
# Runtime configuration
# =============================================================================

class KubernetesConfig(ShipyardModel):
    kube_config: str = ""


class ProviderConfig(ShipyardModel):
    """Terraform provider settings; provider-specific keys are kept as extras."""

    model_config = ConfigDict(extra="allow")

    source: str
    version: str = ""


class RuntimeConfigs(ShipyardModel):
    kubernetes: Optional[KubernetesConfig] = None
    terraform: Dict[str, ProviderConfig] = Field(default_factory=dict)


class Workspace(ShipyardModel):
    """Platform-level configuration shared by every project in a workspace."""

    name: str = ""
    modules: Dict[str, ModuleConfig] = Field(default_factory=dict)
    runtimes: Optional[RuntimeConfigs] = None
    secret_store: Optional[SecretStoreSpec] = None
