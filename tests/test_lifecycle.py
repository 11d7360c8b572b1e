"""
Tests for the Release lifecycle state machine.
"""

import pytest

from shipyard.errors import InvalidTransitionError
from shipyard.lifecycle import (
    ALLOWED_TRANSITIONS,
    OperationType,
    attach_spec,
    can_transition,
    checkpoint_state,
    fail,
    new_release,
    start_operation,
    succeed,
    transition,
)
from shipyard.models import ReleasePhase, Spec, State
from tests.conftest import k8s


@pytest.fixture
def release():
    return new_release("p", "w", "s", 1)


@pytest.fixture
def spec():
    return Spec(resources=[k8s("a")])


class TestTransitions:
    """Test the transition table."""

    @pytest.mark.parametrize("target", [
        ReleasePhase.PREVIEWING, ReleasePhase.APPLYING, ReleasePhase.DESTROYING, ReleasePhase.FAILED,
    ])
    def test_generating_targets(self, target):
        assert can_transition(ReleasePhase.GENERATING, target)

    def test_generating_cannot_succeed_directly(self):
        assert not can_transition(ReleasePhase.GENERATING, ReleasePhase.SUCCEEDED)

    def test_terminal_phases_have_no_exits(self):
        for phase in (ReleasePhase.SUCCEEDED, ReleasePhase.FAILED):
            assert ALLOWED_TRANSITIONS[phase] == frozenset()

    def test_operation_phases_cannot_switch(self):
        assert not can_transition(ReleasePhase.PREVIEWING, ReleasePhase.APPLYING)
        assert not can_transition(ReleasePhase.APPLYING, ReleasePhase.DESTROYING)

    def test_invalid_transition_raises(self, release):
        with pytest.raises(InvalidTransitionError):
            transition(release, ReleasePhase.SUCCEEDED)
        assert release.phase == ReleasePhase.GENERATING

    def test_transition_updates_modified_time(self, release):
        before = release.modified_time
        transition(release, ReleasePhase.FAILED)
        assert release.modified_time >= before


class TestNewRelease:
    """Test Release creation."""

    def test_starts_generating_with_empty_state(self, release):
        assert release.phase == ReleasePhase.GENERATING
        assert release.state.resources == []
        assert release.create_time == release.modified_time

    def test_baseline_is_copied(self):
        baseline = State(resources=[k8s("a")])
        release = new_release("p", "w", "s", 2, baseline=baseline)
        baseline.resources[0].attributes["mutated"] = True
        assert "mutated" not in release.state.resources[0].attributes


class TestOperations:
    """Test spec freezing and operation phases."""

    def test_spec_is_copied_on_attach(self, release, spec):
        attach_spec(release, spec)
        spec.resources[0].attributes["mutated"] = True
        assert "mutated" not in release.spec.resources[0].attributes

    def test_spec_frozen_after_generating(self, release, spec):
        attach_spec(release, spec)
        start_operation(release, OperationType.APPLY)
        with pytest.raises(InvalidTransitionError):
            attach_spec(release, Spec())

    @pytest.mark.parametrize("operation", [OperationType.PREVIEW, OperationType.APPLY])
    def test_preview_and_apply_need_a_spec(self, release, operation):
        with pytest.raises(InvalidTransitionError):
            start_operation(release, operation)

    def test_destroy_needs_no_spec(self, release):
        start_operation(release, OperationType.DESTROY)
        assert release.phase == ReleasePhase.DESTROYING

    def test_preview_never_changes_state(self, release, spec):
        attach_spec(release, spec)
        start_operation(release, OperationType.PREVIEW)
        with pytest.raises(InvalidTransitionError):
            checkpoint_state(release, State(resources=[k8s("a")]))
        with pytest.raises(InvalidTransitionError):
            succeed(release, State(resources=[k8s("a")]))
        succeed(release)
        assert release.phase == ReleasePhase.SUCCEEDED
        assert release.state.resources == []

    def test_generating_never_changes_state(self, release):
        with pytest.raises(InvalidTransitionError):
            checkpoint_state(release, State(resources=[k8s("a")]))
        with pytest.raises(InvalidTransitionError):
            fail(release, "boom", State(resources=[k8s("a")]))

    def test_apply_success_records_state(self, release, spec):
        attach_spec(release, spec)
        start_operation(release, OperationType.APPLY)
        succeed(release, State(resources=spec.resources))
        assert release.phase == ReleasePhase.SUCCEEDED
        assert release.state.ids() == ["v1:ConfigMap:default:a"]

    def test_apply_success_requires_state(self, release, spec):
        attach_spec(release, spec)
        start_operation(release, OperationType.APPLY)
        with pytest.raises(InvalidTransitionError):
            succeed(release)

    def test_fail_records_error_and_partial_state(self, release, spec):
        attach_spec(release, spec)
        start_operation(release, OperationType.APPLY)
        partial = State(resources=[k8s("a")])
        fail(release, "create b failed", partial)
        assert release.phase == ReleasePhase.FAILED
        assert release.error == "create b failed"
        assert release.state == partial

    def test_terminal_release_cannot_fail_again(self, release):
        fail(release, "first")
        with pytest.raises(InvalidTransitionError):
            fail(release, "second")
