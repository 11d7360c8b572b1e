"""
Secret reference resolution.

``resolve_secret()`` turns an ExternalSecretRef into its value through the one
provider a ProviderSpec configures. Stores are built from the spec through a
SecretProviderRegistry the caller passes in, so every resolution reads the
provider afresh and nothing is cached between Releases.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from ..errors import ConfigurationError, SecretResolutionError
from ..models import ShipyardModel
from .providers import ExternalSecretRef, FakeProvider, ProviderSpec

logger = logging.getLogger(__name__)


class SecretStore(ABC):
    """Read-only access to one external secret store."""

    @abstractmethod
    def get_secret(self, ref: ExternalSecretRef) -> str:
        """
        Return the value a reference points at.

        Raises:
            SecretResolutionError: If the secret, version or property does
                not exist or the store cannot be reached
        """


class FakeSecretStore(SecretStore):
    """Serves the static values of a fake provider config."""

    def __init__(self, config: FakeProvider):
        self.config = config

    def get_secret(self, ref: ExternalSecretRef) -> str:
        for data in self.config.data:
            if data.key != ref.name or data.version != ref.version:
                continue

            if ref.property:
                if ref.property not in data.value_map:
                    raise SecretResolutionError(
                        f"secret {ref.name} has no property {ref.property}"
                    )
                return data.value_map[ref.property]

            if not data.value and data.value_map:
                return json.dumps(data.value_map, sort_keys=True)
            return data.value

        version = f" version {ref.version}" if ref.version else ""
        raise SecretResolutionError(f"secret {ref.name}{version} not found")


StoreFactory = Callable[[ShipyardModel], SecretStore]


class SecretProviderRegistry:
    """
    Secret store factories by provider kind.

    Example:
        registry = default_secret_providers()
        registry.register("vault", lambda config: MyVaultStore(config))
    """

    def __init__(self, factories: Optional[Dict[str, StoreFactory]] = None):
        self._factories: Dict[str, StoreFactory] = dict(factories or {})

    def register(self, kind: str, factory: StoreFactory) -> "SecretProviderRegistry":
        self._factories[kind] = factory
        return self

    def kinds(self):
        return sorted(self._factories)

    def store_for(self, provider_spec: ProviderSpec) -> SecretStore:
        """
        Build a store for the provider a spec configures.

        Raises:
            ConfigurationError: If the spec configures zero or several providers
            SecretResolutionError: If no factory is registered for the kind
        """
        kind = provider_spec.kind()
        factory = self._factories.get(kind)
        if factory is None:
            raise SecretResolutionError(f"no secret store registered for provider {kind}")
        return factory(provider_spec.config())


def default_secret_providers() -> SecretProviderRegistry:
    """Registry with the built-in fake provider."""
    return SecretProviderRegistry({"fake": FakeSecretStore})


def resolve_secret(
    ref: ExternalSecretRef,
    provider_spec: ProviderSpec,
    registry: Optional[SecretProviderRegistry] = None,
) -> str:
    """
    Resolve a secret reference through its provider.

    Args:
        ref: Secret to read
        provider_spec: Secret store configuration with exactly one provider
        registry: Store factories; defaults to the built-in fake provider only

    Returns:
        The secret value

    Raises:
        ConfigurationError: If the provider spec is malformed
        SecretResolutionError: If the value cannot be read
    """
    registry = registry or default_secret_providers()
    store = registry.store_for(provider_spec)

    try:
        value = store.get_secret(ref)
    except (SecretResolutionError, ConfigurationError):
        raise
    except Exception as e:
        logger.error(f"Secret store {provider_spec.kind()} failed reading {ref.name}: {e}")
        raise SecretResolutionError(f"failed to read secret {ref.name}: {e}") from e

    if value is None:
        raise SecretResolutionError(f"secret store returned no value for {ref.name}")

    logger.debug(f"Resolved secret {ref.name} from {provider_spec.kind()} provider")
    return value
