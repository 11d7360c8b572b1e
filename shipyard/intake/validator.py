"""
Validation of workspace configuration.

Runs before any Release is created so that malformed module or secret store
configuration never reaches generation.
"""

import logging
from typing import List

from ..errors import ConfigurationError
from ..models import parse_provider_source
from ..workspace import DEFAULT_BLOCK, ModuleConfig, Workspace

logger = logging.getLogger(__name__)


def module_config_issues(name: str, config: ModuleConfig) -> List[str]:
    """
    Collect problems in one module config.

    Checks:
    - the module config is not empty
    - no patch block is named like the default block
    - every patch block selects at least one project
    - no project is selected by more than one patch block

    Args:
        name: Module name, used in messages
        config: Module config to check

    Returns:
        Human-readable issue descriptions, empty when the config is valid
    """
    issues = []
    configs = config.configs

    if not configs.default and not configs.patchers:
        issues.append(f"module {name}: empty module config")

    owner = {}
    for patcher_name, patcher in configs.patchers.items():
        if patcher_name == DEFAULT_BLOCK:
            issues.append(f"module {name}: patcher block cannot be named '{DEFAULT_BLOCK}'")
        if not patcher.project_selector:
            issues.append(f"module {name}: patcher {patcher_name} has an empty projectSelector")
        for project in patcher.project_selector:
            if project in owner and owner[project] != patcher_name:
                issues.append(
                    f"module {name}: project {project} is selected by both "
                    f"{owner[project]} and {patcher_name}"
                )
            else:
                owner[project] = patcher_name

    return issues


def validate_workspace(workspace: Workspace) -> None:
    """
    Validate a workspace configuration.

    Raises:
        ConfigurationError: Listing every issue found
    """
    issues = []

    for name, config in workspace.modules.items():
        issues.extend(module_config_issues(name, config))

    if workspace.runtimes is not None:
        for provider_name, provider in workspace.runtimes.terraform.items():
            try:
                parse_provider_source(provider.source)
            except ConfigurationError as e:
                issues.append(f"terraform provider {provider_name}: {e}")

    if workspace.secret_store is not None:
        if workspace.secret_store.provider is None:
            issues.append("secret store: provider is required")
        else:
            try:
                workspace.secret_store.provider.kind()
            except ConfigurationError as e:
                issues.append(f"secret store: {e}")

    if issues:
        for issue in issues:
            logger.error(f"Workspace {workspace.name or '<unnamed>'}: {issue}")
        raise ConfigurationError("; ".join(issues))

    logger.debug(f"Workspace {workspace.name or '<unnamed>'} is valid")
