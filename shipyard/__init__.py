"""
Shipyard - Declarative infrastructure delivery.

Turns a project's generated resources into versioned Releases:
- Generators and patchers produce the desired Spec
- The differ plans it against the last recorded State
- Runtime adapters execute the plan in dependency order
- Every Release records its phase, State and action outcomes
"""

from .core import OperationResult, ShipyardCore
from .settings import ShipyardSettings, get_settings, reload_settings

__version__ = "0.1.0"
__all__ = [
    "OperationResult",
    "ShipyardCore",
    "ShipyardSettings",
    "get_settings",
    "reload_settings",
]
