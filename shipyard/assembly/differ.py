"""
Differ module for computing the plan of a Release.

This module compares the desired Spec against the last recorded State and
assigns every resource exactly one action. It never talks to a backend; live
state only enters through ``detect_drift()``, which reports divergence
without planning anything.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging

from ..models import ActionType, Resource
from .graph import build_graph


logger = logging.getLogger(__name__)


class DriftType(Enum):
    """Ways a live resource can diverge from its recorded state."""

    MODIFIED = "modified"    # Live attributes differ from recorded attributes
    MISSING = "missing"      # Recorded resource no longer exists in the backend


@dataclass
class ResourceChange:
    """
    The action planned for one resource.

    Attributes:
        resource_id: Resource identifier
        action: Action assigned by the differ
        current: Recorded version of the resource (None for CREATE)
        desired: Desired version of the resource (None for DELETE)
        field_diffs: Changed attribute paths for UPDATE, as
            ``{"spec.replicas": {"current": 1, "desired": 3}}``
        replacement: True when the change is half of a Delete+Create pair
            caused by a backend type change
    """

    resource_id: str
    action: ActionType
    current: Optional[Resource] = None
    desired: Optional[Resource] = None
    field_diffs: Dict[str, Any] = field(default_factory=dict)
    replacement: bool = False

    def __post_init__(self):
        """Validate change after initialization."""
        if not self.resource_id:
            raise ValueError("Resource ID cannot be empty")

        if self.action == ActionType.CREATE and (self.current is not None or self.desired is None):
            raise ValueError("CREATE change must have only a desired resource")

        if self.action == ActionType.DELETE and (self.desired is not None or self.current is None):
            raise ValueError("DELETE change must have only a current resource")

        if self.action in (ActionType.UPDATE, ActionType.NO_CHANGE):
            if self.current is None or self.desired is None:
                raise ValueError(f"{self.action.value} change must have current and desired resources")

    def is_significant(self) -> bool:
        """True if the change requires a backend action."""
        return self.action != ActionType.NO_CHANGE

    @property
    def resource(self) -> Resource:
        """The resource the backend action operates on."""
        return self.desired if self.desired is not None else self.current

    def get_summary(self) -> str:
        """
        Get a human-readable summary of this change.

        Returns:
            str: Summary string describing the change
        """
        if self.action == ActionType.CREATE:
            suffix = " (replacement)" if self.replacement else ""
            return f"Create {self.resource_id}{suffix}"
        elif self.action == ActionType.DELETE:
            suffix = " (replacement)" if self.replacement else ""
            return f"Delete {self.resource_id}{suffix}"
        elif self.action == ActionType.UPDATE:
            fields = list(self.field_diffs.keys())
            field_summary = f" (fields: {', '.join(fields)})" if fields else ""
            return f"Update {self.resource_id}{field_summary}"
        else:
            return f"No change for {self.resource_id}"


@dataclass
class Plan:
    """
    Output of the differ.

    ``changes`` lists deletes first, in the reverse dependency order of the
    recorded State, followed by every desired resource in the dependency order
    of the desired Spec.
    """

    changes: List[ResourceChange] = field(default_factory=list)

    def _with(self, action: ActionType) -> List[ResourceChange]:
        return [change for change in self.changes if change.action == action]

    @property
    def creates(self) -> List[ResourceChange]:
        return self._with(ActionType.CREATE)

    @property
    def updates(self) -> List[ResourceChange]:
        return self._with(ActionType.UPDATE)

    @property
    def deletes(self) -> List[ResourceChange]:
        return self._with(ActionType.DELETE)

    @property
    def unchanged(self) -> List[ResourceChange]:
        return self._with(ActionType.NO_CHANGE)

    @property
    def actions(self) -> List[ResourceChange]:
        """Changes that need a backend action, in plan order."""
        return [change for change in self.changes if change.is_significant()]

    def is_empty(self) -> bool:
        return not self.actions

    def changes_for(self, resource_id: str) -> List[ResourceChange]:
        return [change for change in self.changes if change.resource_id == resource_id]

    def summary(self) -> Dict[str, int]:
        return {
            "create": len(self.creates),
            "update": len(self.updates),
            "delete": len(self.deletes),
            "no_change": len(self.unchanged),
        }


@dataclass
class DriftReport:
    """Divergence between a recorded resource and its live counterpart."""

    resource_id: str
    drift_type: DriftType
    field_diffs: Dict[str, Any] = field(default_factory=dict)

    def get_summary(self) -> str:
        if self.drift_type == DriftType.MISSING:
            return f"{self.resource_id} no longer exists"
        return f"{self.resource_id} drifted (fields: {', '.join(self.field_diffs)})"


def compute_plan(desired: Iterable[Resource], last: Iterable[Resource]) -> Plan:
    """
    Compare the desired resources against the last recorded resources.

    - desired only: CREATE
    - both, same type: UPDATE if attributes differ, else NO_CHANGE
    - both, different type: DELETE of the recorded one plus CREATE of the
      desired one, since attributes of different backends are not comparable
    - recorded only: DELETE

    Args:
        desired: Desired resources (a Spec's resources)
        last: Last recorded resources (a State's resources)

    Returns:
        Plan: Every resource with exactly one action (two for a replacement)

    Raises:
        GraphError: If the desired resources do not form a valid graph
    """
    desired_graph = build_graph(desired)
    last_graph = build_graph(last, strict=False)

    logger.info(
        f"Computing plan for {len(desired_graph)} desired and {len(last_graph)} recorded resources"
    )

    deletes = []
    replaced = set()
    for resource_id in last_graph.destroy_order():
        current = last_graph.resource(resource_id)
        if resource_id not in desired_graph:
            deletes.append(ResourceChange(resource_id, ActionType.DELETE, current=current))
        elif desired_graph.resource(resource_id).type != current.type:
            logger.debug(
                f"{resource_id} changes type {current.type.value} → "
                f"{desired_graph.resource(resource_id).type.value}; planning replacement"
            )
            deletes.append(
                ResourceChange(resource_id, ActionType.DELETE, current=current, replacement=True)
            )
            replaced.add(resource_id)

    applies = []
    for resource_id in desired_graph.topological_order():
        desired_resource = desired_graph.resource(resource_id)
        if resource_id not in last_graph or resource_id in replaced:
            applies.append(ResourceChange(
                resource_id, ActionType.CREATE,
                desired=desired_resource, replacement=resource_id in replaced,
            ))
            continue

        current = last_graph.resource(resource_id)
        field_diffs = compute_field_diffs(current.attributes, desired_resource.attributes)
        action = ActionType.UPDATE if field_diffs else ActionType.NO_CHANGE
        applies.append(ResourceChange(
            resource_id, action, current=current, desired=desired_resource, field_diffs=field_diffs,
        ))

    plan = Plan(changes=deletes + applies)
    logger.info(f"Plan: {plan.summary()}")
    return plan


def detect_drift(
    recorded: Iterable[Resource],
    live: Mapping[str, Optional[Resource]],
) -> List[DriftReport]:
    """
    Compare recorded resources against what the backends report.

    Args:
        recorded: Resources of the last recorded State
        live: Live resource per ID, None when the backend no longer has it.
            IDs absent from the mapping were not read and are not reported.

    Returns:
        List[DriftReport]: One report per drifted resource, in recorded order
    """
    reports = []
    for resource in recorded:
        if resource.id not in live:
            continue
        live_resource = live[resource.id]
        if live_resource is None:
            reports.append(DriftReport(resource.id, DriftType.MISSING))
            continue
        field_diffs = compute_field_diffs(resource.attributes, live_resource.attributes)
        if field_diffs:
            reports.append(DriftReport(resource.id, DriftType.MODIFIED, field_diffs))

    if reports:
        logger.info(f"Detected drift on {len(reports)} resources")
    return reports


def compute_field_diffs(current: Mapping[str, Any], desired: Mapping[str, Any],
                        prefix: str = "") -> Dict[str, Any]:
    """
    Compute attribute-level differences between two attribute mappings.

    Nested mappings are walked and reported by dotted path; any other value,
    lists included, is compared as a whole with ``values_equal``. Key order
    never matters.

    Returns:
        Dict[str, Any]: ``{path: {"current": old, "desired": new}}``, where a
        missing side is None
    """
    diffs = {}

    for key in list(current.keys()) + [k for k in desired.keys() if k not in current]:
        path = f"{prefix}{key}"
        in_current = key in current
        in_desired = key in desired
        current_value = current.get(key)
        desired_value = desired.get(key)

        if in_current and in_desired and isinstance(current_value, Mapping) \
                and isinstance(desired_value, Mapping):
            diffs.update(compute_field_diffs(current_value, desired_value, prefix=f"{path}."))
        elif not (in_current and in_desired) or not values_equal(current_value, desired_value):
            diffs[path] = {"current": current_value, "desired": desired_value}

    return diffs


def values_equal(left: Any, right: Any) -> bool:
    """
    Compare two attribute values the way their JSON encodings would.

    Booleans never equal numbers, so ``true`` and ``1`` differ, while ``1`` and
    ``1.0`` are the same JSON number. Lists and mappings are compared element
    by element with the same rule.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        return left.keys() == right.keys() and all(values_equal(left[k], right[k]) for k in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(values_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, (list, tuple, Mapping)) or isinstance(right, (list, tuple, Mapping)):
        return False
    return left == right
