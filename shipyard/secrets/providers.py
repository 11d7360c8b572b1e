"""Secret store provider configuration models.

A ``ProviderSpec`` is a discriminated union written as an object with exactly
one populated provider block, e.g. ``{"vault": {"server": "..."}}``.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field

from ..errors import ConfigurationError
from ..models import ShipyardModel


class ExternalSecretRef(ShipyardModel):
    """Reference to a value held by an external secret store."""

    name: str = Field(..., min_length=1)
    version: str = ""
    property: str = ""


class AlicloudProvider(ShipyardModel):
    region: str


class AWSProvider(ShipyardModel):
    region: str
    profile: str = ""


class VaultKVStoreVersion(str, Enum):
    V1 = "v1"
    V2 = "v2"


class VaultProvider(ShipyardModel):
    server: str
    path: Optional[str] = None
    version: VaultKVStoreVersion = VaultKVStoreVersion.V2


class AzureEnvironmentType(str, Enum):
    PUBLIC_CLOUD = "PublicCloud"
    US_GOVERNMENT_CLOUD = "USGovernmentCloud"
    CHINA_CLOUD = "ChinaCloud"
    GERMAN_CLOUD = "GermanCloud"


class AzureKVProvider(ShipyardModel):
    vault_url: Optional[str] = None
    tenant_id: Optional[str] = None
    environment_type: AzureEnvironmentType = AzureEnvironmentType.PUBLIC_CLOUD


class FakeProviderData(ShipyardModel):
    """One canned secret served by the fake provider."""

    key: str
    value: str = ""
    value_map: Dict[str, str] = Field(default_factory=dict)
    version: str = ""


class FakeProvider(ShipyardModel):
    data: List[FakeProviderData] = Field(default_factory=list)


PROVIDER_KINDS = ("alicloud", "aws", "vault", "azure", "fake")


class ProviderSpec(ShipyardModel):
    """Exactly one secret store provider."""

    alicloud: Optional[AlicloudProvider] = None
    aws: Optional[AWSProvider] = None
    vault: Optional[VaultProvider] = None
    azure: Optional[AzureKVProvider] = None
    fake: Optional[FakeProvider] = None

    def configured_kinds(self) -> List[str]:
        return [kind for kind in PROVIDER_KINDS if getattr(self, kind) is not None]

    def kind(self) -> str:
        """Name of the single configured provider.

        Raises:
            ConfigurationError: If zero or more than one provider is configured
        """
        kinds = self.configured_kinds()
        if not kinds:
            raise ConfigurationError("secret store provider spec configures no provider")
        if len(kinds) > 1:
            raise ConfigurationError(
                f"secret store provider spec configures multiple providers: {', '.join(kinds)}"
            )
        return kinds[0]

    def config(self) -> ShipyardModel:
        """Configuration block of the single configured provider."""
        return getattr(self, self.kind())


class SecretStoreSpec(ShipyardModel):
    provider: Optional[ProviderSpec] = None
