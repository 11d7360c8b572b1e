"""
Plan executor.

Runs the backend actions of a Plan through the runtime adapters as a
ready-queue scheduler: actions whose prerequisites are complete enter the
queue, up to ``max_concurrency`` run at once, and each completion releases the
actions waiting on it.

Prerequisites of an action:
- create/update of R: the create/update actions of R's desired dependsOn
- create of a replaced R: the delete of R's old version
- delete of D: the deletes of recorded resources that depended on D, and the
  updates of recorded resources that stop depending on D

A failed action marks every action that transitively waits on it ``skipped``.
Independent actions keep running. Cancelling the token stops new actions from
starting; actions already running finish and are recorded. The same holds
when the executing task itself is cancelled or a progress callback raises.
"""

import asyncio
import heapq
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from ..assembly.differ import Plan, ResourceChange
from ..errors import BackendActionError, CyclicDependencyError
from ..models import ActionRecord, ActionStatus, ActionType, Resource, State
from .runtime import RuntimeRegistry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[["ExecutionResult"], Awaitable[None]]


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class ExecutionResult:
    """
    Outcome of executing a Plan.

    Attributes:
        records: One record per planned action, in plan order
        state: Baseline State with every confirmed action applied
        cancelled: True if cancellation prevented some actions from starting
    """

    records: List[ActionRecord] = field(default_factory=list)
    state: State = field(default_factory=State)
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return all(record.status == ActionStatus.SUCCEEDED for record in self.records)

    @property
    def failures(self) -> List[ActionRecord]:
        return [record for record in self.records if record.status == ActionStatus.FAILED]

    def error_summary(self) -> Optional[str]:
        """One line per failed action, or a cancellation note."""
        lines = [record.error for record in self.failures if record.error]
        if self.cancelled:
            lines.append("operation cancelled before all actions started")
        return "; ".join(lines) if lines else None


class PlanExecutor:
    """Executes Plans against registered runtime adapters."""

    def __init__(
        self,
        runtimes: RuntimeRegistry,
        timeout: float,
        max_concurrency: int = 4,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """
        Initialize PlanExecutor.

        Args:
            runtimes: Adapters by resource type
            timeout: Seconds a single backend action may take before it fails
            max_concurrency: Maximum actions running at once
            on_progress: Awaited after every completed action with the
                intermediate result
        """
        if timeout <= 0:
            raise ValueError("timeout must be > 0")
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self.runtimes = runtimes
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self.on_progress = on_progress
        # Partial outcome of an execution that was interrupted by an exception
        self.interrupted_result: Optional[ExecutionResult] = None

    async def execute(
        self,
        plan: Plan,
        baseline: State,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ExecutionResult:
        """
        Execute every backend action of a plan.

        Args:
            plan: Plan from the differ
            baseline: State the plan was computed against
            cancel_token: Stops scheduling new actions once cancelled

        Returns:
            ExecutionResult with per-action records and the resulting State

        Raises:
            CyclicDependencyError: If the actions cannot be ordered; raised
                before any action runs
            asyncio.CancelledError: If the calling task is cancelled. Actions
                already running are awaited first and the partial outcome is
                left in ``interrupted_result``.
        """
        actions = plan.actions
        prerequisites = _action_prerequisites(actions, baseline)
        waiting_on_me: List[List[int]] = [[] for _ in actions]
        for index, before in enumerate(prerequisites):
            for prerequisite in before:
                waiting_on_me[prerequisite].append(index)
        _check_acyclic(actions, prerequisites, waiting_on_me)

        records = [ActionRecord(resource_id=c.resource_id, action=c.action) for c in actions]
        applied: Dict[int, Resource] = {}
        indegree = [len(before) for before in prerequisites]
        ready = [index for index, degree in enumerate(indegree) if degree == 0]
        heapq.heapify(ready)
        running: Dict[asyncio.Task, int] = {}
        token = cancel_token or CancellationToken()
        self.interrupted_result = None

        def settle(done) -> None:
            for task in done:
                index = running.pop(task)
                record = records[index]
                record.finished_at = datetime.now()
                if task.cancelled():
                    outcome = BackendActionError(
                        record.resource_id, record.action.value, "interrupted before completion"
                    )
                else:
                    outcome = task.result()

                if isinstance(outcome, BackendActionError):
                    record.status = ActionStatus.FAILED
                    record.error = str(outcome)
                    logger.error(f"Action failed: {outcome}")
                    self._skip_waiting(index, actions, records, waiting_on_me)
                    continue

                record.status = ActionStatus.SUCCEEDED
                if outcome is not None:
                    applied[index] = outcome
                logger.debug(f"Action succeeded: {record.action.value} {record.resource_id}")
                for waiting in waiting_on_me[index]:
                    indegree[waiting] -= 1
                    if indegree[waiting] == 0 and records[waiting].status == ActionStatus.PENDING:
                        heapq.heappush(ready, waiting)

        logger.info(f"Executing {len(actions)} actions (max concurrency {self.max_concurrency})")

        try:
            while ready or running:
                while ready and len(running) < self.max_concurrency and not token.is_cancelled:
                    index = heapq.heappop(ready)
                    records[index].status = ActionStatus.RUNNING
                    records[index].started_at = datetime.now()
                    task = asyncio.create_task(self._run_action(actions[index]))
                    running[task] = index

                if not running:
                    break

                done, _ = await asyncio.wait(running.keys(), return_when=asyncio.FIRST_COMPLETED)
                settle(done)

                if self.on_progress is not None:
                    await self.on_progress(self._result(plan, baseline, records, applied, cancelled=False))
        except (asyncio.CancelledError, Exception) as e:
            logger.warning(f"Execution interrupted ({e.__class__.__name__}); waiting for started actions")
            if running:
                # asyncio.wait leaves the action tasks running if we are cancelled again
                done, _ = await asyncio.wait(list(running))
                settle(done)
            _cancel_pending(records)
            self.interrupted_result = self._result(plan, baseline, records, applied, cancelled=True)
            raise

        cancelled = _cancel_pending(records)
        if cancelled:
            logger.warning("Execution cancelled; remaining actions were not started")

        result = self._result(plan, baseline, records, applied, cancelled=cancelled)
        logger.info(
            f"Execution finished: {sum(r.status == ActionStatus.SUCCEEDED for r in records)} succeeded, "
            f"{len(result.failures)} failed, "
            f"{sum(r.status == ActionStatus.SKIPPED for r in records)} skipped"
        )
        return result

    async def _run_action(self, change: ResourceChange):
        """Run one backend action, returning the applied resource or the error."""
        action = change.action.value
        try:
            adapter = self.runtimes.adapter_for(change.resource)
            if change.action == ActionType.DELETE:
                await asyncio.wait_for(adapter.delete(change.current), self.timeout)
                return None
            applied = await asyncio.wait_for(adapter.apply(change.desired), self.timeout)
            return applied if applied is not None else change.desired
        except asyncio.TimeoutError:
            return BackendActionError(change.resource_id, action, f"timed out after {self.timeout}s")
        except Exception as e:
            return BackendActionError(change.resource_id, action, str(e) or e.__class__.__name__)

    def _skip_waiting(self, failed: int, actions: List[ResourceChange],
                      records: List[ActionRecord], waiting_on_me: List[List[int]]) -> None:
        """Mark every action that transitively waits on a failed one as skipped."""
        reason = f"skipped because {actions[failed].action.value} {actions[failed].resource_id} failed"
        stack = list(waiting_on_me[failed])
        while stack:
            index = stack.pop()
            if records[index].status != ActionStatus.PENDING:
                continue
            records[index].status = ActionStatus.SKIPPED
            records[index].error = reason
            logger.debug(f"Skipping {actions[index].action.value} {actions[index].resource_id}")
            stack.extend(waiting_on_me[index])

    @staticmethod
    def _result(plan: Plan, baseline: State, records: List[ActionRecord],
                applied: Dict[int, Resource], cancelled: bool) -> ExecutionResult:
        return ExecutionResult(
            records=[record.model_copy() for record in records],
            state=resulting_state(plan, baseline, records, applied),
            cancelled=cancelled,
        )


def resulting_state(plan: Plan, baseline: State, records: List[ActionRecord],
                    applied: Dict[int, Resource]) -> State:
    """
    Apply the confirmed actions of a plan to its baseline State.

    Confirmed deletes remove the recorded resource; confirmed creates and
    updates record the applied resource; unchanged resources record their
    desired version. Anything not confirmed keeps its baseline version, or
    stays absent if it never existed. Resources are ordered by the desired
    apply order, followed by recorded resources that are still around.

    Args:
        plan: The executed plan
        baseline: State the plan was computed against
        records: Records aligned with ``plan.actions``
        applied: Applied resource per action index
    """
    status = {}
    results = {}
    for index, change in enumerate(plan.actions):
        status[(change.action, change.resource_id)] = records[index].status
        if index in applied:
            results[change.resource_id] = applied[index]

    remaining = {resource.id: resource for resource in baseline.resources}
    for change in plan.deletes:
        if status.get((ActionType.DELETE, change.resource_id)) == ActionStatus.SUCCEEDED:
            remaining.pop(change.resource_id, None)

    resources = []
    for change in plan.changes:
        if change.action == ActionType.DELETE:
            continue
        if change.action == ActionType.NO_CHANGE:
            resources.append(change.desired)
        elif status.get((change.action, change.resource_id)) == ActionStatus.SUCCEEDED:
            resources.append(results[change.resource_id])
        elif change.resource_id in remaining:
            resources.append(remaining[change.resource_id])
        remaining.pop(change.resource_id, None)

    resources.extend(remaining.values())
    return State(resources=[resource.model_copy(deep=True) for resource in resources])


def _action_prerequisites(actions: List[ResourceChange], baseline: State) -> List[List[int]]:
    """For every action, the indices of the actions it must wait for."""
    apply_index = {}
    delete_index = {}
    for index, change in enumerate(actions):
        if change.action == ActionType.DELETE:
            delete_index[change.resource_id] = index
        else:
            apply_index[change.resource_id] = index

    recorded_dependents: Dict[str, List[str]] = {}
    for resource in baseline.resources:
        for dependency in resource.depends_on:
            recorded_dependents.setdefault(dependency, []).append(resource.id)

    prerequisites: List[List[int]] = []
    for change in actions:
        before = []
        if change.action == ActionType.DELETE:
            for dependent in recorded_dependents.get(change.resource_id, []):
                if dependent in delete_index:
                    before.append(delete_index[dependent])
                    continue
                update = apply_index.get(dependent)
                if update is not None and actions[update].action == ActionType.UPDATE \
                        and change.resource_id not in actions[update].desired.depends_on:
                    before.append(update)
        else:
            for dependency in change.desired.depends_on:
                if dependency in apply_index:
                    before.append(apply_index[dependency])
            if change.replacement and change.resource_id in delete_index:
                before.append(delete_index[change.resource_id])
        prerequisites.append(sorted(set(before)))
    return prerequisites


def _check_acyclic(actions: List[ResourceChange], prerequisites: List[List[int]],
                   waiting_on_me: List[List[int]]) -> None:
    indegree = [len(before) for before in prerequisites]
    ready = [index for index, degree in enumerate(indegree) if degree == 0]
    seen = 0
    while ready:
        index = ready.pop()
        seen += 1
        for waiting in waiting_on_me[index]:
            indegree[waiting] -= 1
            if indegree[waiting] == 0:
                ready.append(waiting)
    if seen != len(actions):
        stuck = [
            f"{actions[i].action.value}:{actions[i].resource_id}"
            for i, degree in enumerate(indegree) if degree > 0
        ]
        logger.error(f"Planned actions cannot be ordered: {stuck}")
        raise CyclicDependencyError(stuck)


def _cancel_pending(records: List[ActionRecord]) -> bool:
    """Mark actions that never started as cancelled; True if there were any."""
    cancelled = False
    for record in records:
        if record.status == ActionStatus.PENDING:
            record.status = ActionStatus.CANCELLED
            record.error = "operation cancelled"
            cancelled = True
    return cancelled
