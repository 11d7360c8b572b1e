"""
Release lifecycle.

Phase progression of a Release::

    generating ─┬─> previewing ─┐
                ├─> applying  ──┼─> succeeded | failed
                ├─> destroying ─┘
                └─> failed

Only ``applying`` and ``destroying`` may change the recorded State, and the
Spec is frozen once a Release leaves ``generating``. ``succeeded`` and
``failed`` are terminal.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional

from .errors import InvalidTransitionError
from .models import Release, ReleasePhase, Spec, State, TERMINAL_PHASES

logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    """Operations that create a Release."""
    PREVIEW = "preview"
    APPLY = "apply"
    DESTROY = "destroy"


ALLOWED_TRANSITIONS: Dict[ReleasePhase, FrozenSet[ReleasePhase]] = {
    ReleasePhase.GENERATING: frozenset({
        ReleasePhase.PREVIEWING,
        ReleasePhase.APPLYING,
        ReleasePhase.DESTROYING,
        ReleasePhase.FAILED,
    }),
    ReleasePhase.PREVIEWING: frozenset({ReleasePhase.SUCCEEDED, ReleasePhase.FAILED}),
    ReleasePhase.APPLYING: frozenset({ReleasePhase.SUCCEEDED, ReleasePhase.FAILED}),
    ReleasePhase.DESTROYING: frozenset({ReleasePhase.SUCCEEDED, ReleasePhase.FAILED}),
    ReleasePhase.SUCCEEDED: frozenset(),
    ReleasePhase.FAILED: frozenset(),
}

OPERATION_PHASES = {
    OperationType.PREVIEW: ReleasePhase.PREVIEWING,
    OperationType.APPLY: ReleasePhase.APPLYING,
    OperationType.DESTROY: ReleasePhase.DESTROYING,
}

MUTATING_PHASES = frozenset({ReleasePhase.APPLYING, ReleasePhase.DESTROYING})


def can_transition(current: ReleasePhase, target: ReleasePhase) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def new_release(project: str, workspace: str, stack: str, revision: int,
                baseline: Optional[State] = None) -> Release:
    """
    Create a Release in the generating phase.

    Args:
        project: Project name
        workspace: Workspace name
        stack: Stack name
        revision: Revision allocated for the triple
        baseline: State of the previous Release, copied as the starting State

    Returns:
        Release: New Release in ``generating``
    """
    state = baseline.model_copy(deep=True) if baseline is not None else State()
    now = datetime.now()
    return Release(
        project=project,
        workspace=workspace,
        stack=stack,
        revision=revision,
        state=state,
        phase=ReleasePhase.GENERATING,
        create_time=now,
        modified_time=now,
    )


def transition(release: Release, target: ReleasePhase) -> Release:
    """
    Move a Release to another phase.

    Raises:
        InvalidTransitionError: If the move is not in the transition table
    """
    if not can_transition(release.phase, target):
        raise InvalidTransitionError(
            f"Release {release.describe()} cannot move from {release.phase.value} to {target.value}"
        )
    logger.info(f"Release {release.describe()}: {release.phase.value} → {target.value}")
    release.phase = target
    release.modified_time = datetime.now()
    return release


def attach_spec(release: Release, spec: Spec) -> Release:
    """
    Attach the generated Spec. Only allowed while generating.

    The Spec is deep-copied so later mutation of the generator output cannot
    reach the Release.
    """
    if release.phase != ReleasePhase.GENERATING:
        raise InvalidTransitionError(
            f"Spec of release {release.describe()} is frozen in phase {release.phase.value}"
        )
    release.spec = spec.model_copy(deep=True)
    release.modified_time = datetime.now()
    return release


def start_operation(release: Release, operation: OperationType) -> Release:
    """
    Leave ``generating`` for the phase that runs the operation.

    Preview and apply need an attached Spec. Destroy needs only the located
    baseline State, which every Release carries from creation.
    """
    if operation in (OperationType.PREVIEW, OperationType.APPLY) and release.spec is None:
        raise InvalidTransitionError(
            f"Release {release.describe()} has no Spec; cannot start {operation.value}"
        )
    return transition(release, OPERATION_PHASES[operation])


def checkpoint_state(release: Release, state: State) -> Release:
    """Record intermediate State while a mutating operation runs."""
    if release.phase not in MUTATING_PHASES:
        raise InvalidTransitionError(
            f"Release {release.describe()} cannot change State in phase {release.phase.value}"
        )
    release.state = state
    release.modified_time = datetime.now()
    return release


def succeed(release: Release, state: Optional[State] = None) -> Release:
    """
    Finish a Release successfully.

    Args:
        release: Release in previewing, applying or destroying
        state: Post-operation State. Required for applying and destroying,
            rejected for previewing, which never changes State.
    """
    _settle_state(release, state, required=release.phase in MUTATING_PHASES)
    return transition(release, ReleasePhase.SUCCEEDED)


def fail(release: Release, error: str, state: Optional[State] = None) -> Release:
    """
    Finish a Release as failed.

    Args:
        release: Any non-terminal Release
        error: What went wrong, kept on the record
        state: Best-effort partial State; only accepted for applying and
            destroying
    """
    if release.phase in TERMINAL_PHASES:
        raise InvalidTransitionError(f"Release {release.describe()} is already {release.phase.value}")
    _settle_state(release, state, required=False)
    release.error = error
    logger.error(f"Release {release.describe()} failed: {error}")
    return transition(release, ReleasePhase.FAILED)


def _settle_state(release: Release, state: Optional[State], required: bool) -> None:
    if state is None:
        if required:
            raise InvalidTransitionError(
                f"Release {release.describe()} must record a State when leaving {release.phase.value}"
            )
        return
    if release.phase not in MUTATING_PHASES:
        raise InvalidTransitionError(
            f"Release {release.describe()} cannot change State in phase {release.phase.value}"
        )
    release.state = state
