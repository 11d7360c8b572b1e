"""
Tests for secret provider specs and secret resolution.
"""

import json

import pytest

from shipyard.errors import ConfigurationError, SecretResolutionError
from shipyard.secrets import (
    ExternalSecretRef,
    ProviderSpec,
    SecretProviderRegistry,
    SecretStore,
    VaultKVStoreVersion,
    default_secret_providers,
    resolve_secret,
)


@pytest.fixture
def fake_spec():
    return ProviderSpec.model_validate({
        "fake": {
            "data": [
                {"key": "db-password", "value": "v1-secret", "version": "v1"},
                {"key": "db-password", "value": "latest-secret"},
                {"key": "db", "valueMap": {"user": "admin", "password": "hunter2"}},
            ],
        },
    })


class TestProviderSpec:
    """Test the one-provider rule."""

    def test_single_provider(self):
        spec = ProviderSpec.model_validate({"vault": {"server": "https://vault:8200"}})
        assert spec.kind() == "vault"
        assert spec.config().version == VaultKVStoreVersion.V2

    def test_no_provider(self):
        with pytest.raises(ConfigurationError):
            ProviderSpec().kind()

    def test_several_providers(self):
        spec = ProviderSpec.model_validate({"aws": {"region": "us-east-1"}, "alicloud": {"region": "cn-hangzhou"}})
        with pytest.raises(ConfigurationError, match="alicloud, aws"):
            spec.kind()

    def test_azure_fields(self):
        spec = ProviderSpec.model_validate({
            "azure": {"vaultUrl": "https://kv.vault.azure.net", "tenantId": "t", "environmentType": "ChinaCloud"},
        })
        assert spec.config().vault_url == "https://kv.vault.azure.net"
        assert spec.config().environment_type.value == "ChinaCloud"


class TestFakeResolution:
    """Test resolution through the built-in fake provider."""

    def test_value(self, fake_spec):
        assert resolve_secret(ExternalSecretRef(name="db-password"), fake_spec) == "latest-secret"

    def test_version(self, fake_spec):
        ref = ExternalSecretRef(name="db-password", version="v1")
        assert resolve_secret(ref, fake_spec) == "v1-secret"

    def test_property(self, fake_spec):
        ref = ExternalSecretRef(name="db", property="password")
        assert resolve_secret(ref, fake_spec) == "hunter2"

    def test_value_map_without_property(self, fake_spec):
        value = resolve_secret(ExternalSecretRef(name="db"), fake_spec)
        assert json.loads(value) == {"user": "admin", "password": "hunter2"}

    def test_missing_key(self, fake_spec):
        with pytest.raises(SecretResolutionError, match="not found"):
            resolve_secret(ExternalSecretRef(name="nope"), fake_spec)

    def test_missing_version(self, fake_spec):
        with pytest.raises(SecretResolutionError):
            resolve_secret(ExternalSecretRef(name="db-password", version="v9"), fake_spec)

    def test_missing_property(self, fake_spec):
        with pytest.raises(SecretResolutionError, match="no property"):
            resolve_secret(ExternalSecretRef(name="db", property="host"), fake_spec)


class CountingStore(SecretStore):
    def __init__(self, values, calls):
        self.values = values
        self.calls = calls

    def get_secret(self, ref):
        self.calls.append(ref.name)
        return self.values[ref.name]


class TestRegistry:
    """Test resolution through registered providers."""

    def test_unregistered_provider(self):
        spec = ProviderSpec.model_validate({"vault": {"server": "https://vault:8200"}})
        with pytest.raises(SecretResolutionError, match="no secret store registered for provider vault"):
            resolve_secret(ExternalSecretRef(name="db"), spec)

    def test_registered_provider_reads_every_time(self):
        calls = []
        registry = default_secret_providers().register(
            "vault", lambda config: CountingStore({"db": "from-vault"}, calls),
        )
        spec = ProviderSpec.model_validate({"vault": {"server": "https://vault:8200"}})
        ref = ExternalSecretRef(name="db")
        assert resolve_secret(ref, spec, registry) == "from-vault"
        assert resolve_secret(ref, spec, registry) == "from-vault"
        assert calls == ["db", "db"]

    def test_store_failures_are_wrapped(self):
        registry = SecretProviderRegistry({"aws": lambda config: CountingStore({}, [])})
        spec = ProviderSpec.model_validate({"aws": {"region": "us-east-1"}})
        with pytest.raises(SecretResolutionError, match="failed to read secret db"):
            resolve_secret(ExternalSecretRef(name="db"), spec, registry)

    def test_malformed_spec_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            resolve_secret(ExternalSecretRef(name="db"), ProviderSpec())

    def test_kinds(self):
        assert default_secret_providers().kinds() == ["fake"]
