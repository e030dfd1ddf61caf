"""
Plan Executor for Agent Planner.

WHAT THIS FILE DOES:
-------------------
Implements the plan -> approve -> execute workflow for agent operations.
Every action an agent proposes goes through here, so nothing mutates the
vault without an explicit approval, and every command a plan dispatches is
tagged with that plan's transaction id.

HOW IT WORKS:
------------
1. PlanStore: In-memory registry of every plan created in this process
2. PlanExecutor.create_plan: Validates step requests against the catalogue
3. Approval workflow: approve_step / reject_step / approve_all / reject_plan
4. Step runner: execute_step runs ONE approved step via the dispatcher
5. Plan runner: execute_plan runs approved steps in order, fail-fast
6. get_diff: Previews what a write step would change, before approval

EXECUTION FLOW:
--------------
    create_plan(description, step requests)
           │
           ▼
    Plan (pending) ──► reviewer approves / rejects steps
           │
           ▼
    execute_plan(plan_id)
    For each step, in order:
    ├── not approved?  skip it
    ├── dispatch the command (source "agent", plan's transaction id)
    ├── success        step completed, continue
    └── failure        step failed, plan failed, STOP (nothing rolled back)
           │
           ▼
    Plan completed (or failed) + list of StepOutcomes
"""

import itertools
import logging
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from audit import AuditLog
from commands import CommandDispatcher, CommandRegistry
from config import Config, get_default_config
from diff import DiffGenerator
from errors import (
    InvalidParameterError,
    InvalidTransitionError,
    MissingParameterError,
    PlanExecutingError,
    PlanFinishedError,
    PlanNotFoundError,
    PlanRejectedError,
    StepNotApprovedError,
    StepNotFoundError,
    ToolNotFoundError,
)
from events import EventBus, Subscription
from schemas import (
    AgentPlan,
    EventType,
    PlanEvent,
    PlanStats,
    PlanStatus,
    ProposedStep,
    StepOutcome,
    StepRequest,
    StepStatus,
)
from tools import ToolCatalogue, create_default_catalogue
from workspace import WorkspaceCommands

logger = logging.getLogger(__name__)

DEFAULT_STEP_REJECTION = "Step rejected"
DEFAULT_PLAN_REJECTION = "Plan rejected"
INTERRUPTED = "Execution interrupted"


def _elapsed_ms(start: float) -> int:
    return max(0, int((time.perf_counter() - start) * 1000))


# =============================================================================
# SECTION 1: PLAN STORE
# =============================================================================

class PlanStore:
    """
    In-memory registry of plans, keyed by plan id.

    Plans stay here until explicitly deleted. Nothing is persisted.
    """

    def __init__(self):
        self._plans: dict[str, AgentPlan] = {}

    def add(self, plan: AgentPlan) -> None:
        self._plans[plan.id] = plan

    def get(self, plan_id: str) -> Optional[AgentPlan]:
        return self._plans.get(plan_id)

    def remove(self, plan_id: str) -> Optional[AgentPlan]:
        return self._plans.pop(plan_id, None)

    def all(self) -> list[AgentPlan]:
        """Plans in insertion order."""
        return list(self._plans.values())

    def __contains__(self, plan_id: str) -> bool:
        return plan_id in self._plans

    def __len__(self) -> int:
        return len(self._plans)


# =============================================================================
# SECTION 2: PLAN EXECUTOR
# =============================================================================

class PlanExecutor:
    """
    Creates, approves and executes agent plans.

    The catalogue and dispatcher are injected, so tests can pass fakes.

    Example usage:
        executor = PlanExecutor(catalogue, registry)
        plan = executor.create_plan("Tidy notes", [
            {"tool_id": "note_read", "params": {"path": "a.md"}},
        ])
        executor.approve_all(plan.id)
        outcomes = await executor.execute_plan(plan.id)
    """

    def __init__(
        self,
        catalogue: ToolCatalogue,
        dispatcher: CommandDispatcher,
        store: Optional[PlanStore] = None,
        diff_generator: Optional[DiffGenerator] = None,
        source: str = "agent"
    ):
        """
        Args:
            catalogue: Tool catalogue used to validate and resolve steps
            dispatcher: Executes the resolved commands
            store: Plan store (a fresh one if not provided)
            diff_generator: Diff previews (built on the dispatcher if not provided)
            source: Source tag sent with every dispatched command
        """
        self.catalogue = catalogue
        self.dispatcher = dispatcher
        self.store = store or PlanStore()
        self.diff_generator = diff_generator or DiffGenerator(dispatcher, catalogue, source=source)
        self.source = source
        self.events: EventBus[PlanEvent] = EventBus("plans")

        self._plan_ids = itertools.count()
        self._step_ids = itertools.count()

    # =========================================================================
    # CREATION
    # =========================================================================

    def create_plan(
        self,
        description: str,
        steps: Iterable["StepRequest | dict"],
        context: Optional[dict[str, Any]] = None
    ) -> AgentPlan:
        """
        Validate step requests and store a new pending plan.

        Args:
            description: Summary of the plan
            steps: Step requests (StepRequest or dicts), in execution order
            context: Opaque caller data attached to the plan

        Returns:
            The stored AgentPlan

        Raises:
            MissingToolError: A step names no tool
            ToolNotFoundError: A step names an unknown tool
            MissingParameterError: A step lacks a required parameter
            InvalidParameterError: A parameter has the wrong type
        """
        requests = [StepRequest.coerce(step) for step in steps]

        # Validate everything first: a failed creation stores nothing
        tools = [self._validate(request) for request in requests]

        plan_id = f"plan-{next(self._plan_ids)}"
        now = datetime.now()

        plan = AgentPlan(
            id=plan_id,
            description=description,
            transaction_id=self._new_transaction_id(),
            context=dict(context or {}),
            created_at=now,
            steps=[
                ProposedStep(
                    id=f"{plan_id}-step-{next(self._step_ids)}",
                    tool_id=request.tool_id,
                    description=request.description,
                    params=dict(request.params),
                    readonly=tool.readonly,
                    order=index,
                    created_at=now,
                )
                for index, (request, tool) in enumerate(zip(requests, tools))
            ],
        )

        self.store.add(plan)
        logger.info(f"Created {plan.id} ({len(plan.steps)} steps, {plan.transaction_id}): {description[:50]}")
        self._emit(EventType.PLAN_CREATED, plan)
        return plan

    def _validate(self, request: StepRequest):
        tool = self.catalogue.get_tool(request.tool_id)
        if not tool:
            raise ToolNotFoundError(request.tool_id)

        for param in tool.parameters:
            if param.name not in request.params:
                if param.required:
                    raise MissingParameterError(tool.id, param.name)
                continue
            if not param.accepts(request.params[param.name]):
                raise InvalidParameterError(tool.id, param.name, param.type)

        return tool

    def _new_transaction_id(self) -> str:
        return f"txn-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_plan(self, plan_id: str) -> Optional[AgentPlan]:
        """Get a plan by ID. The live object is returned, not a copy."""
        return self.store.get(plan_id)

    def get_all_plans(self) -> list[AgentPlan]:
        """All plans, most recently created first."""
        return sorted(self.store.all(), key=lambda p: p.created_at, reverse=True)

    def get_step(self, plan_id: str, step_id: str) -> Optional[ProposedStep]:
        plan = self.store.get(plan_id)
        return plan.get_step(step_id) if plan else None

    def _require_plan(self, plan_id: str) -> AgentPlan:
        plan = self.store.get(plan_id)
        if not plan:
            raise PlanNotFoundError(plan_id)
        return plan

    def _lookup(self, plan_id: str, step_id: str) -> tuple[AgentPlan, ProposedStep]:
        plan = self._require_plan(plan_id)
        step = plan.get_step(step_id)
        if not step:
            raise StepNotFoundError(plan_id, step_id)
        return plan, step

    # =========================================================================
    # APPROVAL WORKFLOW
    # =========================================================================
    # None of these execute anything. Single-step decisions never change the
    # plan's own status.

    def approve_step(self, plan_id: str, step_id: str) -> ProposedStep:
        """Approve one pending step. Approving an approved step is a no-op."""
        plan, step = self._lookup(plan_id, step_id)

        if step.status == StepStatus.APPROVED:
            return step
        if step.status != StepStatus.PENDING:
            raise InvalidTransitionError(step.id, step.status.value, StepStatus.APPROVED.value)

        step.status = StepStatus.APPROVED
        logger.info(f"Approved {step.id} ({step.tool_id})")
        self._emit(EventType.STEP_APPROVED, plan, step)
        return step

    def reject_step(self, plan_id: str, step_id: str, reason: Optional[str] = None) -> ProposedStep:
        """Reject a pending or approved step. The reason is kept in step.error."""
        plan, step = self._lookup(plan_id, step_id)

        if step.status not in (StepStatus.PENDING, StepStatus.APPROVED):
            raise InvalidTransitionError(step.id, step.status.value, StepStatus.REJECTED.value)

        step.status = StepStatus.REJECTED
        step.error = reason or DEFAULT_STEP_REJECTION
        logger.info(f"Rejected {step.id}: {step.error}")
        self._emit(EventType.STEP_REJECTED, plan, step, message=step.error)
        return step

    def _require_open_plan(self, plan_id: str, action: str) -> AgentPlan:
        plan = self._require_plan(plan_id)
        if plan.status == PlanStatus.EXECUTING:
            raise PlanExecutingError(plan_id, action)
        if plan.status in (PlanStatus.COMPLETED, PlanStatus.FAILED):
            raise PlanFinishedError(plan_id, plan.status.value, action)
        return plan

    def approve_all(self, plan_id: str) -> AgentPlan:
        """Approve every pending step and mark the plan approved."""
        plan = self._require_open_plan(plan_id, "approve")

        for step in plan.steps_with_status(StepStatus.PENDING):
            step.status = StepStatus.APPROVED

        plan.status = PlanStatus.APPROVED
        logger.info(f"Approved all steps of {plan.id}")
        self._emit(EventType.PLAN_APPROVED, plan)
        return plan

    def reject_plan(self, plan_id: str, reason: Optional[str] = None) -> AgentPlan:
        """Reject every pending or approved step and the plan itself."""
        plan = self._require_open_plan(plan_id, "reject")

        message = reason or DEFAULT_PLAN_REJECTION
        for step in plan.steps:
            # Steps that already ran keep their outcome
            if step.status not in (StepStatus.PENDING, StepStatus.APPROVED):
                continue
            step.status = StepStatus.REJECTED
            step.error = message

        plan.status = PlanStatus.REJECTED
        plan.completed_at = datetime.now()
        logger.info(f"Rejected {plan.id}: {message}")
        self._emit(EventType.PLAN_REJECTED, plan, message=message)
        return plan

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute_step(self, plan_id: str, step_id: str) -> StepOutcome:
        """
        Execute a single approved step.

        Dispatcher failures are captured on the step and returned as a
        failed StepOutcome; they are not raised.

        Raises:
            PlanNotFoundError, StepNotFoundError: Unknown ids
            StepNotApprovedError: The step is not approved (nothing dispatched)
            ToolNotFoundError: The step's tool is no longer in the catalogue
        """
        plan, step = self._lookup(plan_id, step_id)

        if step.status != StepStatus.APPROVED:
            raise StepNotApprovedError(step.id, step.status.value)

        command_id, args = self.catalogue.resolve(step.tool_id, step.params)
        return await self._run_step(plan, step, command_id, args)

    async def _run_step(
        self,
        plan: AgentPlan,
        step: ProposedStep,
        command_id: str,
        args: list
    ) -> StepOutcome:
        step.status = StepStatus.EXECUTING
        self._emit(EventType.STEP_STARTED, plan, step)
        logger.info(f"[{plan.transaction_id}] Executing {step.id}: {command_id}")

        start = time.perf_counter()
        try:
            data = await self.dispatcher.execute(
                command_id, self.source, *args, transaction_id=plan.transaction_id
            )
        except Exception as e:
            duration_ms = _elapsed_ms(start)
            message = str(e) or type(e).__name__

            step.status = StepStatus.FAILED
            step.error = message
            step.completed_at = datetime.now()
            step.duration_ms = duration_ms

            outcome = StepOutcome(success=False, error=message, duration_ms=duration_ms)
            logger.warning(f"[{plan.transaction_id}] {step.id} failed after {duration_ms}ms: {message}")
            self._emit(EventType.STEP_FAILED, plan, step, outcome=outcome, message=message)
            return outcome
        except BaseException:
            # Cancelled or interrupted mid-dispatch: never leave the step executing
            step.status = StepStatus.FAILED
            step.error = INTERRUPTED
            step.completed_at = datetime.now()
            step.duration_ms = _elapsed_ms(start)
            logger.warning(f"[{plan.transaction_id}] {step.id} interrupted")
            self._emit(EventType.STEP_FAILED, plan, step, message=INTERRUPTED)
            raise

        duration_ms = _elapsed_ms(start)
        step.status = StepStatus.COMPLETED
        step.result = data
        step.completed_at = datetime.now()
        step.duration_ms = duration_ms

        outcome = StepOutcome(success=True, data=data, duration_ms=duration_ms)
        logger.info(f"[{plan.transaction_id}] {step.id} completed in {duration_ms}ms")
        self._emit(EventType.STEP_COMPLETED, plan, step, outcome=outcome)
        return outcome

    async def execute_plan(self, plan_id: str) -> list[StepOutcome]:
        """
        Execute every approved step, in order, stopping at the first failure.

        Steps that are not approved when reached are skipped. Steps after a
        failure are left exactly as they were. Completed steps are not
        rolled back.

        Returns:
            Outcomes of the steps that ran, in order

        Raises:
            PlanNotFoundError: Unknown plan
            PlanExecutingError: The plan is already running
            PlanRejectedError: The plan was rejected
            ToolNotFoundError: An approved step's tool left the catalogue
        """
        plan = self._require_plan(plan_id)

        if plan.status == PlanStatus.EXECUTING:
            raise PlanExecutingError(plan_id, "re-run")
        if plan.status == PlanStatus.REJECTED:
            raise PlanRejectedError(plan_id)

        # Resolve up front so a bad catalogue entry fails before anything runs
        resolved = {
            step.id: self.catalogue.resolve(step.tool_id, step.params)
            for step in plan.steps_with_status(StepStatus.APPROVED)
        }

        # Set before the first await: a concurrent run sees EXECUTING
        plan.status = PlanStatus.EXECUTING
        plan.started_at = datetime.now()
        plan.completed_at = None
        start = time.perf_counter()
        logger.info(f"[{plan.transaction_id}] Starting {plan.id} ({len(resolved)} approved steps)")
        self._emit(EventType.PLAN_STARTED, plan)

        outcomes: list[StepOutcome] = []
        try:
            for step in plan.steps:
                # Re-checked when reached: a step may be rejected mid-run
                if step.status != StepStatus.APPROVED:
                    continue

                command_id, args = resolved.get(step.id) or self.catalogue.resolve(step.tool_id, step.params)
                outcome = await self._run_step(plan, step, command_id, args)
                outcomes.append(outcome)

                if not outcome.success:
                    self._finish_plan(plan, PlanStatus.FAILED, start, outcome.error)
                    return outcomes
        except BaseException:
            self._finish_plan(plan, PlanStatus.FAILED, start, INTERRUPTED)
            raise

        self._finish_plan(plan, PlanStatus.COMPLETED, start)
        return outcomes

    def _finish_plan(
        self,
        plan: AgentPlan,
        status: PlanStatus,
        start: float,
        message: Optional[str] = None
    ) -> None:
        plan.status = status
        plan.completed_at = datetime.now()
        plan.duration_ms = _elapsed_ms(start)

        if status == PlanStatus.COMPLETED:
            logger.info(f"[{plan.transaction_id}] {plan.id} completed in {plan.duration_ms}ms")
            self._emit(EventType.PLAN_COMPLETED, plan)
        else:
            logger.warning(f"[{plan.transaction_id}] {plan.id} failed: {message}")
            self._emit(EventType.PLAN_FAILED, plan, message=message)

    # =========================================================================
    # DIFF PREVIEW
    # =========================================================================

    async def get_diff(self, step: ProposedStep) -> Optional[str]:
        """
        Preview what a step would change. Never changes any status.

        Returns:
            Unified diff text, or None for read-only steps
        """
        return await self.diff_generator.generate(step)

    async def get_step_diff(self, plan_id: str, step_id: str) -> Optional[str]:
        _, step = self._lookup(plan_id, step_id)
        return await self.get_diff(step)

    # =========================================================================
    # DELETION
    # =========================================================================

    def delete_plan(self, plan_id: str) -> bool:
        """
        Remove a plan from the store.

        Returns:
            False if no such plan, True once removed

        Raises:
            PlanExecutingError: The plan is running
        """
        plan = self.store.get(plan_id)
        if not plan:
            return False
        if plan.status == PlanStatus.EXECUTING:
            raise PlanExecutingError(plan_id, "delete")

        self.store.remove(plan_id)
        logger.info(f"Deleted {plan_id}")
        self._emit(EventType.PLAN_DELETED, plan)
        return True

    def clear_plans(self) -> int:
        """Delete every plan that is not executing. Returns how many went."""
        removed = 0
        for plan in self.store.all():
            if plan.status != PlanStatus.EXECUTING and self.delete_plan(plan.id):
                removed += 1
        return removed

    # =========================================================================
    # EVENTS AND STATS
    # =========================================================================

    def on_event(self, handler: Callable[[PlanEvent], None]) -> Subscription:
        """
        Subscribe to plan lifecycle events.

        Returns:
            Subscription; call it (or .unsubscribe()) to stop receiving events
        """
        return self.events.subscribe(handler)

    def _emit(
        self,
        event_type: EventType,
        plan: AgentPlan,
        step: Optional[ProposedStep] = None,
        outcome: Optional[StepOutcome] = None,
        message: Optional[str] = None
    ) -> None:
        self.events.emit(PlanEvent(
            type=event_type,
            plan_id=plan.id,
            step_id=step.id if step else None,
            plan=plan,
            step=step,
            outcome=outcome,
            message=message,
        ))

    def get_stats(self) -> PlanStats:
        """Counts by plan status, computed from the store on every call."""
        plans = self.store.all()

        def count(status: PlanStatus) -> int:
            return sum(1 for p in plans if p.status == status)

        return PlanStats(
            total_plans=len(plans),
            pending_plans=count(PlanStatus.PENDING),
            approved_plans=count(PlanStatus.APPROVED),
            rejected_plans=count(PlanStatus.REJECTED),
            executing_plans=count(PlanStatus.EXECUTING),
            completed_plans=count(PlanStatus.COMPLETED),
            failed_plans=count(PlanStatus.FAILED),
        )


# =============================================================================
# SECTION 3: CONVENIENCE FUNCTIONS
# =============================================================================

def create_executor(
    config: Optional[Config] = None,
    workspace_root: Optional[Path] = None
) -> tuple[PlanExecutor, WorkspaceCommands]:
    """
    Build an executor backed by the default tools and a real vault.

    Args:
        config: Configuration (defaults if not provided)
        workspace_root: Vault directory, overriding config.workspace.base

    Returns:
        (executor, workspace) - the registry is executor.dispatcher and its
        audit log (if enabled) is executor.dispatcher.audit_log
    """
    config = config or get_default_config()
    root = Path(workspace_root) if workspace_root else config.workspace.base_path

    audit_log = AuditLog(max_events=config.audit.max_events) if config.audit.enabled else None
    registry = CommandRegistry(audit_log=audit_log)
    workspace = WorkspaceCommands(root)
    workspace.register_commands(registry)

    catalogue = create_default_catalogue()
    diff_generator = DiffGenerator(
        registry,
        catalogue,
        source=config.executor.source,
        context_lines=config.diff.context_lines,
    )

    executor = PlanExecutor(
        catalogue,
        registry,
        diff_generator=diff_generator,
        source=config.executor.source,
    )
    return executor, workspace
