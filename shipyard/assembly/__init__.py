"""
Assembly module for Shipyard.

This module contains the dependency graph and the differ that turn a desired
Spec and a recorded State into an ordered Plan.
"""

from .graph import (
    ResourceGraph,
    build_graph,
    topological_order,
)

from .differ import (
    DriftReport,
    DriftType,
    Plan,
    ResourceChange,
    compute_field_diffs,
    compute_plan,
    detect_drift,
)

__all__ = [
    # Graph exports
    "ResourceGraph",
    "build_graph",
    "topological_order",
    # Differ exports
    "DriftReport",
    "DriftType",
    "Plan",
    "ResourceChange",
    "compute_field_diffs",
    "compute_plan",
    "detect_drift",
]
