"""
Resource dependency graph.

Materializes the implicit ``dependsOn`` lists of a resource collection as an
adjacency structure over dense integer indices. Validation happens once at
construction; a built graph is always free of duplicates, dangling edges and
cycles.
"""

import heapq
import logging
from typing import Dict, Iterable, List, Optional

from ..errors import CyclicDependencyError, DanglingDependencyError, DuplicateIDError
from ..models import Resource

logger = logging.getLogger(__name__)


class ResourceGraph:
    """Validated dependency graph of a resource collection.

    Edges point from a resource to the resources it depends on. Node indices
    follow the insertion order of the collection and are the tie-breaker for
    every ordering the graph produces.

    Use ``build_graph()`` rather than constructing directly.
    """

    def __init__(self, resources: List[Resource], index: Dict[str, int],
                 dependencies: List[List[int]], dependents: List[List[int]]):
        self._resources = resources
        self._index = index
        self._dependencies = dependencies
        self._dependents = dependents

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._index

    @property
    def ids(self) -> List[str]:
        """Resource IDs in insertion order."""
        return [resource.id for resource in self._resources]

    def index_of(self, resource_id: str) -> int:
        return self._index[resource_id]

    def resource(self, resource_id: str) -> Resource:
        return self._resources[self._index[resource_id]]

    def dependencies(self, resource_id: str) -> List[str]:
        """IDs this resource depends on, in dependsOn order."""
        return [self._resources[i].id for i in self._dependencies[self._index[resource_id]]]

    def dependents(self, resource_id: str) -> List[str]:
        """IDs that depend on this resource, in insertion order."""
        return [self._resources[i].id for i in self._dependents[self._index[resource_id]]]

    def topological_order(self) -> List[str]:
        """Apply order: every resource after all of its dependencies.

        Among resources that are ready at the same time, the one inserted
        first comes first, so the same collection always yields the same order.
        """
        indegree = [len(deps) for deps in self._dependencies]
        ready = [i for i, degree in enumerate(indegree) if degree == 0]
        heapq.heapify(ready)

        order = []
        while ready:
            node = heapq.heappop(ready)
            order.append(self._resources[node].id)
            for dependent in self._dependents[node]:
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    heapq.heappush(ready, dependent)

        # build_graph() rejects cycles, so every node is emitted
        return order

    def destroy_order(self) -> List[str]:
        """Reverse of the apply order: dependents before their dependencies."""
        return list(reversed(self.topological_order()))


def build_graph(resources: Iterable[Resource], strict: bool = True) -> ResourceGraph:
    """
    Build and validate the dependency graph of a resource collection.

    Args:
        resources: Resources in collection order
        strict: When False, dependsOn entries naming absent resources are
            dropped instead of rejected. Used for recorded State, which may be
            the partial result of a failed Release.

    Returns:
        ResourceGraph over the resources

    Raises:
        DuplicateIDError: If two resources share an ID
        DanglingDependencyError: If a dependsOn entry is not in the collection (strict only)
        CyclicDependencyError: If the dependency relation has a cycle
    """
    resources = list(resources)

    index: Dict[str, int] = {}
    for position, resource in enumerate(resources):
        if resource.id in index:
            logger.error(f"Duplicate resource ID: {resource.id}")
            raise DuplicateIDError(resource.id)
        index[resource.id] = position

    dependencies: List[List[int]] = [[] for _ in resources]
    dependents: List[List[int]] = [[] for _ in resources]
    for position, resource in enumerate(resources):
        for dependency_id in resource.depends_on:
            target = index.get(dependency_id)
            if target is None:
                if not strict:
                    logger.warning(
                        f"Ignoring dependency of {resource.id} on missing resource {dependency_id}"
                    )
                    continue
                logger.error(f"Resource {resource.id} depends on unknown resource {dependency_id}")
                raise DanglingDependencyError(resource.id, dependency_id)
            if target not in dependencies[position]:
                dependencies[position].append(target)
                dependents[target].append(position)

    for adjacency in dependents:
        adjacency.sort()

    cycle = _find_cycle(dependencies)
    if cycle is not None:
        cycle_ids = [resources[i].id for i in cycle]
        logger.error(f"Dependency cycle detected: {' → '.join(cycle_ids)}")
        raise CyclicDependencyError(cycle_ids)

    logger.debug(f"Built dependency graph with {len(resources)} resources")
    return ResourceGraph(resources, index, dependencies, dependents)


def topological_order(graph: ResourceGraph) -> List[str]:
    """Deterministic apply order of a graph. See ``ResourceGraph.topological_order``."""
    return graph.topological_order()


def _find_cycle(dependencies: List[List[int]]) -> Optional[List[int]]:
    """Return one cycle as a closed path of node indices, or None.

    Iterative three-color DFS, visiting roots and edges in index order so the
    reported cycle is stable across runs.
    """
    WHITE, GREY, BLACK = 0, 1, 2
    color = [WHITE] * len(dependencies)

    for root in range(len(dependencies)):
        if color[root] != WHITE:
            continue

        path = [root]
        cursors = [0]
        color[root] = GREY

        while path:
            node = path[-1]
            cursor = cursors[-1]
            if cursor < len(dependencies[node]):
                cursors[-1] += 1
                nxt = dependencies[node][cursor]
                if color[nxt] == GREY:
                    start = path.index(nxt)
                    return path[start:] + [nxt]
                if color[nxt] == WHITE:
                    color[nxt] = GREY
                    path.append(nxt)
                    cursors.append(0)
            else:
                color[node] = BLACK
                path.pop()
                cursors.pop()

    return None
