"""
Generator/patcher pipeline.

Generators run one after another in registration order, each appending
resources to a shared Intent. Once every generator has succeeded, patchers run
in their own order over the resources grouped by kind. The first error
anywhere aborts the run and nothing it produced is kept.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence

from ..errors import GenerationError, PatchError, SecretResolutionError
from ..models import Resource, Spec

logger = logging.getLogger(__name__)


class Intent:
    """Resources accumulated by generators during one run."""

    def __init__(self):
        self.resources: List[Resource] = []

    def add(self, *resources: Resource) -> None:
        self.resources.extend(resources)

    def __len__(self) -> int:
        return len(self.resources)


class Generator(ABC):
    """Produces resources for one module of a project."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    def generate(self, intent: Intent) -> None:
        """Append the module's resources to the intent."""


class Patcher(ABC):
    """Cross-cutting mutation of the generated resources."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    def patch(self, resources: Dict[str, List[Resource]]) -> None:
        """Mutate resources in place. Keys are resource kind keys."""


def group_by_kind(resources: Iterable[Resource]) -> Dict[str, List[Resource]]:
    """Group resources by ``Resource.kind_key()``, keeping first-seen order."""
    grouped: Dict[str, List[Resource]] = {}
    for resource in resources:
        grouped.setdefault(resource.kind_key(), []).append(resource)
    return grouped


class GenerationPipeline:
    """
    Runs generators and patchers to produce a Spec.

    Example:
        pipeline = GenerationPipeline([WorkloadGenerator(app)], patchers_for(project, stack, ws))
        spec = pipeline.run()
    """

    def __init__(self, generators: Sequence[Generator], patchers: Optional[Sequence[Patcher]] = None):
        self.generators = list(generators)
        self.patchers = list(patchers or [])

    def run(self) -> Spec:
        """
        Run the pipeline.

        Returns:
            Spec: Generated and patched resources, in generation order

        Raises:
            GenerationError: If a generator failed; no patcher ran
            PatchError: If a patcher failed
            SecretResolutionError: If a generator could not resolve a secret
        """
        intent = Intent()

        for generator in self.generators:
            logger.debug(f"Running generator {generator.name}")
            try:
                generator.generate(intent)
            except (GenerationError, SecretResolutionError) as e:
                logger.error(f"Generator {generator.name} failed: {e}")
                raise
            except Exception as e:
                logger.error(f"Generator {generator.name} failed: {e}")
                raise GenerationError(f"generator {generator.name} failed: {e}") from e

        logger.info(f"Generated {len(intent)} resources from {len(self.generators)} generators")

        # Patchers work on copies so generator-owned objects are never mutated
        generated = [resource.model_copy(deep=True) for resource in intent.resources]
        grouped = group_by_kind(generated)
        for patcher in self.patchers:
            logger.debug(f"Running patcher {patcher.name}")
            try:
                patcher.patch(grouped)
            except PatchError as e:
                logger.error(f"Patcher {patcher.name} failed: {e}")
                raise
            except Exception as e:
                logger.error(f"Patcher {patcher.name} failed: {e}")
                raise PatchError(f"patcher {patcher.name} failed: {e}") from e

        return Spec(resources=_flatten(generated, grouped))


def _flatten(generated: List[Resource], grouped: Dict[str, List[Resource]]) -> List[Resource]:
    """Generated resources still present in order, then any a patcher added."""
    kept = {id(resource) for group in grouped.values() for resource in group}
    resources = [resource for resource in generated if id(resource) in kept]
    known = {id(resource) for resource in generated}
    for group in grouped.values():
        resources.extend(resource for resource in group if id(resource) not in known)
    return resources
