"""
Secrets module for Shipyard.

Provider configuration models and read-only resolution of external secret
references.
"""

from .providers import (
    AlicloudProvider,
    AWSProvider,
    AzureEnvironmentType,
    AzureKVProvider,
    ExternalSecretRef,
    FakeProvider,
    FakeProviderData,
    ProviderSpec,
    SecretStoreSpec,
    VaultKVStoreVersion,
    VaultProvider,
)

from .resolver import (
    FakeSecretStore,
    SecretProviderRegistry,
    SecretStore,
    default_secret_providers,
    resolve_secret,
)

__all__ = [
    # Provider models
    "AlicloudProvider",
    "AWSProvider",
    "AzureEnvironmentType",
    "AzureKVProvider",
    "ExternalSecretRef",
    "FakeProvider",
    "FakeProviderData",
    "ProviderSpec",
    "SecretStoreSpec",
    "VaultKVStoreVersion",
    "VaultProvider",
    # Resolution
    "FakeSecretStore",
    "SecretProviderRegistry",
    "SecretStore",
    "default_secret_providers",
    "resolve_secret",
]
