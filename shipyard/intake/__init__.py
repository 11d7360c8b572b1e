"""
Intake module for Shipyard.

Turns workspace configuration and module generators into a validated Spec.
"""

from .pipeline import (
    GenerationPipeline,
    Generator,
    Intent,
    Patcher,
    group_by_kind,
)

from .patchers import (
    KubeConfigPatcher,
    MetadataPatcher,
    NamespacePatcher,
    patchers_for,
)

from .validator import (
    module_config_issues,
    validate_workspace,
)

__all__ = [
    # Pipeline
    "GenerationPipeline",
    "Generator",
    "Intent",
    "Patcher",
    "group_by_kind",
    # Built-in patchers
    "KubeConfigPatcher",
    "MetadataPatcher",
    "NamespacePatcher",
    "patchers_for",
    # Validation
    "module_config_issues",
    "validate_workspace",
]
