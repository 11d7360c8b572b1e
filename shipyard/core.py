"""
Shipyard Core - Release orchestration for declarative infrastructure delivery.

Apply Pipeline: Create release → Generate spec → Plan against last state → Execute → Record state
Preview Pipeline: Create release → Generate spec → Plan (and optionally read live state for drift)
Destroy Pipeline: Locate last state → Create release → Plan deletes → Execute → Record state
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .assembly.differ import DriftReport, Plan, compute_plan, detect_drift
from .errors import (
    BackendActionError,
    GenerationError,
    GraphError,
    PatchError,
    ReleaseNotFoundError,
    SecretResolutionError,
    StoreError,
)
from .forge.executor import CancellationToken, ExecutionResult, PlanExecutor
from .forge.runtime import RuntimeRegistry
from .forge.state import ReleaseStore
from .intake.pipeline import GenerationPipeline
from .intake.validator import validate_workspace
from .lifecycle import (
    OperationType,
    attach_spec,
    checkpoint_state,
    fail,
    start_operation,
    succeed,
)
from .models import ActionRecord, Release, ReleasePhase, Spec, State
from .settings import get_settings
from .workspace import Workspace

logger = logging.getLogger(__name__)

# Errors that fail the Release instead of escaping the operation
_GENERATION_ERRORS = (GenerationError, PatchError, SecretResolutionError, GraphError)


@dataclass
class OperationResult:
    """
    Outcome of one apply, preview or destroy.

    Attributes:
        release: The Release as persisted in its terminal phase
        plan: Plan computed for the operation, if generation got that far
        drift: Drift found by a preview that read live state
        error: Why the Release failed, if it did
    """

    release: Release
    plan: Optional[Plan] = None
    drift: List[DriftReport] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.release.phase == ReleasePhase.SUCCEEDED

    @property
    def actions(self) -> List[ActionRecord]:
        return self.release.actions


class ShipyardCore:
    """Main coordinator for Release operations."""

    def __init__(
        self,
        store: ReleaseStore,
        runtimes: RuntimeRegistry,
        action_timeout: Optional[float] = None,
        max_concurrency: Optional[int] = None,
    ):
        """
        Initialize ShipyardCore.

        Args:
            store: Where Releases are persisted
            runtimes: Runtime adapters by resource type
            action_timeout: Seconds per backend action (overrides settings/.env)
            max_concurrency: Parallel backend actions (overrides settings/.env)
        """
        settings = get_settings()

        self.store = store
        self.runtimes = runtimes
        self.action_timeout = action_timeout or settings.action_timeout_seconds
        self.max_concurrency = max_concurrency or settings.max_concurrency
        self._locks: Dict[Tuple[str, str, str], asyncio.Lock] = {}
        self._lock_users: Dict[Tuple[str, str, str], int] = {}

        logger.info("ShipyardCore initialized")

    @asynccontextmanager
    async def _serialized(self, project: str, workspace: str, stack: str):
        """Hold the triple's lock; the lock is dropped once nobody holds or awaits it."""
        key = (project, workspace, stack)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    async def apply(
        self,
        project: str,
        workspace: str,
        stack: str,
        pipeline: GenerationPipeline,
        config: Optional[Workspace] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> OperationResult:
        """
        Full pipeline: generate → plan → execute → record.

        Args:
            project: Project name
            workspace: Workspace name
            stack: Stack name
            pipeline: Generators and patchers producing the desired Spec
            config: Workspace configuration, validated before anything else
            cancel_token: Stops scheduling new backend actions once cancelled

        Returns:
            OperationResult with the terminal Release

        Raises:
            ConfigurationError: If the workspace configuration is malformed;
                no Release is created
        """
        if config is not None:
            validate_workspace(config)

        async with self._serialized(project, workspace, stack):
            release = self.store.create_release(project, workspace, stack)
            baseline = release.state.model_copy(deep=True)

            generated = self._generate(release, pipeline, baseline)
            if isinstance(generated, OperationResult):
                return generated
            spec, plan = generated

            attach_spec(release, spec)
            start_operation(release, OperationType.APPLY)
            self.store.save_release(release)
            logger.info(f"Applying {release.describe()}: {plan.summary()}")

            return await self._execute(release, plan, baseline, cancel_token)

    async def preview(
        self,
        project: str,
        workspace: str,
        stack: str,
        pipeline: GenerationPipeline,
        config: Optional[Workspace] = None,
        read_live: bool = False,
    ) -> OperationResult:
        """
        Plan mode: generate and diff without touching any backend.

        Args:
            project: Project name
            workspace: Workspace name
            stack: Stack name
            pipeline: Generators and patchers producing the desired Spec
            config: Workspace configuration, validated before anything else
            read_live: Also read every recorded resource from its runtime and
                report drift. Drift is reported only, never planned.

        Returns:
            OperationResult with the plan and any drift; the Release's State
            is left as it was

        Raises:
            ConfigurationError: If the workspace configuration is malformed
        """
        if config is not None:
            validate_workspace(config)

        async with self._serialized(project, workspace, stack):
            release = self.store.create_release(project, workspace, stack)
            baseline = release.state.model_copy(deep=True)

            generated = self._generate(release, pipeline, baseline)
            if isinstance(generated, OperationResult):
                return generated
            spec, plan = generated

            attach_spec(release, spec)
            start_operation(release, OperationType.PREVIEW)
            self.store.save_release(release)

            drift: List[DriftReport] = []
            if read_live:
                try:
                    drift = await self._read_drift(baseline)
                except BackendActionError as e:
                    fail(release, str(e))
                    self.store.save_release(release)
                    return OperationResult(release=release, plan=plan, error=str(e))

            succeed(release)
            self.store.save_release(release)
            logger.info(f"Preview of {release.describe()} complete: {plan.summary()}")
            return OperationResult(release=release, plan=plan, drift=drift)

    async def destroy(
        self,
        project: str,
        workspace: str,
        stack: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> OperationResult:
        """
        Delete every resource of the last recorded State.

        Returns:
            OperationResult with the terminal Release

        Raises:
            ReleaseNotFoundError: If the triple has no Release to destroy;
                no Release is created
        """
        async with self._serialized(project, workspace, stack):
            if self.store.get_latest_release(project, workspace, stack) is None:
                logger.error(f"Nothing to destroy for {project}/{workspace}/{stack}")
                raise ReleaseNotFoundError(
                    f"No release found for {project}/{workspace}/{stack}; nothing to destroy"
                )

            release = self.store.create_release(project, workspace, stack)
            baseline = release.state.model_copy(deep=True)
            plan = compute_plan([], baseline.resources)

            start_operation(release, OperationType.DESTROY)
            self.store.save_release(release)
            logger.info(f"Destroying {release.describe()}: {len(plan.deletes)} resources")

            return await self._execute(release, plan, baseline, cancel_token)

    def _generate(self, release: Release, pipeline: GenerationPipeline, baseline: State):
        """Run generation and planning, failing the Release on error.

        Returns (spec, plan), or the OperationResult of the failed Release.
        """
        try:
            spec: Spec = pipeline.run()
            plan = compute_plan(spec.resources, baseline.resources)
        except _GENERATION_ERRORS as e:
            fail(release, str(e))
            self.store.save_release(release)
            return OperationResult(release=release, error=str(e))
        return spec, plan

    async def _execute(
        self,
        release: Release,
        plan: Plan,
        baseline: State,
        cancel_token: Optional[CancellationToken],
    ) -> OperationResult:
        """Run the plan's actions and settle the Release."""

        async def checkpoint(progress: ExecutionResult) -> None:
            checkpoint_state(release, progress.state)
            release.actions = progress.records
            self.store.save_release(release)

        executor = PlanExecutor(
            self.runtimes,
            timeout=self.action_timeout,
            max_concurrency=self.max_concurrency,
            on_progress=checkpoint,
        )

        try:
            result = await executor.execute(plan, baseline, cancel_token)
        except GraphError as e:
            fail(release, str(e))
            self.store.save_release(release)
            return OperationResult(release=release, plan=plan, error=str(e))
        except (asyncio.CancelledError, Exception) as e:
            partial = executor.interrupted_result
            if partial is not None and not release.is_terminal:
                release.actions = partial.records
                reason = str(e) or e.__class__.__name__
                fail(release, f"operation interrupted: {reason}", partial.state)
                try:
                    self.store.save_release(release)
                except StoreError as store_error:
                    logger.error(f"Could not record interrupted {release.describe()}: {store_error}")
            raise

        release.actions = result.records
        if result.succeeded:
            succeed(release, result.state)
            error = None
        else:
            error = result.error_summary()
            fail(release, error, result.state)
        self.store.save_release(release)

        logger.info(f"Release {release.describe()} finished: {release.phase.value}")
        return OperationResult(release=release, plan=plan, error=error)

    async def _read_drift(self, baseline: State) -> List[DriftReport]:
        """Read every recorded resource from its runtime and compare."""
        live = {}
        for resource in baseline.resources:
            try:
                adapter = self.runtimes.adapter_for(resource)
                live[resource.id] = await asyncio.wait_for(adapter.read(resource), self.action_timeout)
            except asyncio.TimeoutError:
                raise BackendActionError(resource.id, "read", f"timed out after {self.action_timeout}s")
            except Exception as e:
                raise BackendActionError(resource.id, "read", str(e)) from e
        return detect_drift(baseline.resources, live)
