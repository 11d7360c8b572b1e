"""
Tests for workspace configuration models and their validation.
"""

import pytest

from shipyard.errors import ConfigurationError
from shipyard.intake.validator import module_config_issues, validate_workspace
from shipyard.workspace import ModuleConfig, Workspace


def module(configs):
    return ModuleConfig.model_validate({"path": "oci://modules/service", "version": "1.0.0", "configs": configs})


class TestModuleConfig:
    """Test module config parsing and per-project resolution."""

    def test_inline_form(self):
        config = module({
            "default": {"replicas": 1, "port": 80},
            "large": {"replicas": 3, "projectSelector": ["shop", "cart"]},
        })
        assert config.configs.default == {"replicas": 1, "port": 80}
        patcher = config.configs.patchers["large"]
        assert patcher.config == {"replicas": 3}
        assert patcher.project_selector == ["shop", "cart"]

    def test_selected_project_gets_patcher_over_default(self):
        config = module({
            "default": {"replicas": 1, "port": 80},
            "large": {"replicas": 3, "projectSelector": ["shop"]},
        })
        assert config.project_config("shop") == {"replicas": 3, "port": 80}

    def test_unselected_project_gets_default(self):
        config = module({
            "default": {"replicas": 1},
            "large": {"replicas": 3, "projectSelector": ["shop"]},
        })
        assert config.project_config("blog") == {"replicas": 1}

    def test_project_config_does_not_mutate_default(self):
        config = module({
            "default": {"replicas": 1},
            "large": {"replicas": 3, "projectSelector": ["shop"]},
        })
        config.project_config("shop")
        assert config.configs.default == {"replicas": 1}

    def test_project_in_two_patchers(self):
        config = module({
            "default": {"replicas": 1},
            "large": {"replicas": 3, "projectSelector": ["shop"]},
            "huge": {"replicas": 9, "projectSelector": ["shop"]},
        })
        assert config.selecting_patchers("shop") == ["large", "huge"]
        with pytest.raises(ConfigurationError):
            config.project_config("shop")


class TestModuleConfigIssues:
    """Test module config validation rules."""

    def test_valid(self):
        config = module({"default": {"replicas": 1}, "large": {"replicas": 3, "projectSelector": ["shop"]}})
        assert module_config_issues("service", config) == []

    def test_empty(self):
        assert module_config_issues("service", module({})) == ["module service: empty module config"]

    def test_empty_selector(self):
        issues = module_config_issues("service", module({"large": {"replicas": 3}}))
        assert issues == ["module service: patcher large has an empty projectSelector"]

    def test_duplicate_selector(self):
        config = module({
            "large": {"replicas": 3, "projectSelector": ["shop"]},
            "huge": {"replicas": 9, "projectSelector": ["shop"]},
        })
        issues = module_config_issues("service", config)
        assert issues == ["module service: project shop is selected by both large and huge"]

    def test_patcher_named_default(self):
        config = ModuleConfig.model_validate({
            "configs": {"default": {}, "patchers": {"default": {"config": {"x": 1}, "projectSelector": ["a"]}}},
        })
        assert any("cannot be named 'default'" in issue for issue in module_config_issues("m", config))


class TestValidateWorkspace:
    """Test whole-workspace validation."""

    def test_valid_workspace(self):
        workspace = Workspace.model_validate({
            "name": "dev",
            "modules": {"service": {"configs": {"default": {"replicas": 1}}}},
            "runtimes": {
                "kubernetes": {"kubeConfig": "/etc/kubeconfig.yaml"},
                "terraform": {"aws": {"source": "hashicorp/aws", "version": "5.0.1", "region": "us-east-1"}},
            },
            "secretStore": {"provider": {"fake": {"data": [{"key": "db", "value": "pw"}]}}},
        })
        validate_workspace(workspace)
        assert workspace.runtimes.kubernetes.kube_config == "/etc/kubeconfig.yaml"
        assert workspace.runtimes.terraform["aws"].model_extra == {"region": "us-east-1"}

    def test_duplicate_selector_is_configuration_error(self):
        workspace = Workspace.model_validate({
            "modules": {"service": {"configs": {
                "large": {"replicas": 3, "projectSelector": ["shop"]},
                "huge": {"replicas": 9, "projectSelector": ["shop"]},
            }}},
        })
        with pytest.raises(ConfigurationError, match="selected by both"):
            validate_workspace(workspace)

    def test_bad_provider_source(self):
        workspace = Workspace.model_validate({"runtimes": {"terraform": {"aws": {"source": "aws"}}}})
        with pytest.raises(ConfigurationError, match="terraform provider aws"):
            validate_workspace(workspace)

    def test_secret_store_with_two_providers(self):
        workspace = Workspace.model_validate({
            "secretStore": {"provider": {"fake": {}, "aws": {"region": "us-east-1"}}},
        })
        with pytest.raises(ConfigurationError, match="multiple providers"):
            validate_workspace(workspace)

    def test_secret_store_without_provider(self):
        workspace = Workspace.model_validate({"secretStore": {}})
        with pytest.raises(ConfigurationError, match="provider is required"):
            validate_workspace(workspace)

    def test_all_issues_are_reported_together(self):
        workspace = Workspace.model_validate({
            "modules": {"a": {}, "b": {}},
        })
        with pytest.raises(ConfigurationError) as exc_info:
            validate_workspace(workspace)
        assert "module a" in str(exc_info.value)
        assert "module b" in str(exc_info.value)
