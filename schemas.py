"""
Pydantic schemas for Agent Planner.

WHY THIS FILE EXISTS:
--------------------
An agent proposes a list of tool invocations. Before anything touches the
vault, those invocations become an AgentPlan made of ProposedSteps that a
human can inspect, approve or reject, one by one or in bulk.

Everything the executor hands back to a caller (plans, step outcomes,
events, stats) is defined here so the CLI, the MCP server and the tests all
share one validated shape.

STATUS MACHINE:
--------------
    pending ──approve──► approved ──execute──► executing ──► completed
       │                    │                        └──────► failed
       └──reject──► rejected ◄──reject──┘

Plans use the same six statuses. A plan's status is only recomputed by
approve_all, reject_plan and execute_plan.
"""

from typing import Any, Literal, Optional
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field

from errors import MissingToolError


# =============================================================================
# STATUS ENUMS
# =============================================================================

class StepStatus(str, Enum):
    """Status of a single proposed step."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class PlanStatus(str, Enum):
    """Overall status of a plan."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# PLAN SCHEMAS
# =============================================================================

class StepRequest(BaseModel):
    """
    A requested tool invocation, as proposed by an agent.

    This is the input to PlanExecutor.create_plan(). It is validated against
    the tool catalogue before it becomes a ProposedStep.

    Example:
        StepRequest(
            tool_id="note_write",
            description="Add a summary section",
            params={"path": "notes/meeting.md", "content": "# Summary\\n..."}
        )
    """
    tool_id: str = Field(description="ID of the catalogue tool to invoke")
    description: str = Field(default="", description="What this step does, for the reviewer")
    params: dict[str, Any] = Field(
        default_factory=dict,
        description="Tool parameters, keyed by parameter name"
    )

    @classmethod
    def coerce(cls, value: "StepRequest | dict") -> "StepRequest":
        """
        Accept either a StepRequest or a plain dict (tool, toolId or tool_id).

        Raises:
            MissingToolError: The dict names no tool
        """
        if isinstance(value, cls):
            return value
        data = dict(value)
        if "tool_id" not in data:
            data["tool_id"] = data.pop("toolId", None) or data.pop("tool", None)
        if not data["tool_id"]:
            raise MissingToolError()
        return cls.model_validate(data)


class ProposedStep(BaseModel):
    """
    One validated, individually approvable unit of work.

    Only status, result, error, completed_at and duration_ms change after
    creation. readonly is frozen: it is copied from the catalogue once.
    """
    id: str = Field(frozen=True, description="Unique within the plan")
    tool_id: str = Field(frozen=True, description="Catalogue tool this step invokes")
    description: str = Field(default="", description="Human-readable description")
    params: dict[str, Any] = Field(default_factory=dict, description="Tool parameters")
    readonly: bool = Field(frozen=True, description="True if the tool never mutates state")
    order: int = Field(frozen=True, description="Position in the plan")
    status: StepStatus = Field(default=StepStatus.PENDING)
    result: Optional[Any] = Field(default=None, description="Dispatcher return value once completed")
    error: Optional[str] = Field(default=None, description="Failure message or rejection reason")
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = Field(default=None)
    duration_ms: Optional[int] = Field(default=None, description="Execution time in milliseconds")


class AgentPlan(BaseModel):
    """
    An ordered batch of steps sharing one transaction id.

    Steps are fixed at creation: never added, removed or reordered.
    """
    id: str = Field(frozen=True, description="Plan identifier, e.g. 'plan-0'")
    description: str = Field(description="Summary of what the plan does")
    steps: list[ProposedStep] = Field(default_factory=list)
    status: PlanStatus = Field(default=PlanStatus.PENDING)
    transaction_id: str = Field(
        frozen=True,
        description="Correlates every command this plan dispatches"
    )
    context: dict[str, Any] = Field(
        default_factory=dict,
        description="Opaque caller data (vault path, metadata), never interpreted"
    )
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    duration_ms: Optional[int] = Field(default=None, description="Duration of the last run")

    def get_step(self, step_id: str) -> Optional[ProposedStep]:
        """Find a step by ID."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def steps_with_status(self, status: StepStatus) -> list[ProposedStep]:
        """All steps currently in the given status, in plan order."""
        return [step for step in self.steps if step.status == status]


# =============================================================================
# EXECUTION SCHEMAS
# =============================================================================

class StepOutcome(BaseModel):
    """
    Result of executing one step.

    Dispatcher failures are reported here (success=False), never raised.
    """
    success: bool = Field(description="Whether the command succeeded")
    data: Optional[Any] = Field(default=None, description="Command return value")
    error: Optional[str] = Field(default=None, description="Error message if failed")
    duration_ms: int = Field(default=0, ge=0, description="Execution time in milliseconds")


# =============================================================================
# EVENT SCHEMAS
# =============================================================================

class EventType(str, Enum):
    """Lifecycle events published by the executor."""
    PLAN_CREATED = "plan_created"
    STEP_APPROVED = "step_approved"
    STEP_REJECTED = "step_rejected"
    PLAN_APPROVED = "plan_approved"
    PLAN_REJECTED = "plan_rejected"
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"
    PLAN_STARTED = "plan_started"
    PLAN_COMPLETED = "plan_completed"
    PLAN_FAILED = "plan_failed"
    PLAN_DELETED = "plan_deleted"


class PlanEvent(BaseModel):
    """
    A single lifecycle event.

    plan and step are live references to the stored objects, not copies.
    """
    type: EventType = Field(description="Event discriminator")
    plan_id: str = Field(description="Plan the event belongs to")
    step_id: Optional[str] = Field(default=None)
    plan: Optional[AgentPlan] = Field(default=None)
    step: Optional[ProposedStep] = Field(default=None)
    outcome: Optional[StepOutcome] = Field(default=None)
    message: Optional[str] = Field(default=None)
    timestamp: datetime = Field(default_factory=datetime.now)


class PlanStats(BaseModel):
    """Counts over the plan store, by plan status."""
    total_plans: int = 0
    pending_plans: int = 0
    approved_plans: int = 0
    rejected_plans: int = 0
    executing_plans: int = 0
    completed_plans: int = 0
    failed_plans: int = 0


# =============================================================================
# AUDIT SCHEMAS
# =============================================================================

CommandSource = Literal["ui", "plugin", "agent"]


class AuditEvent(BaseModel):
    """
    One dispatched command, as recorded by the audit log.

    transaction_id ties the commands of one plan run together.
    """
    timestamp: datetime = Field(default_factory=datetime.now)
    command_id: str
    source: CommandSource
    success: bool
    error: Optional[str] = None
    transaction_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class CommandCount(BaseModel):
    command_id: str
    count: int


class AuditStats(BaseModel):
    """Aggregates over the audit log."""
    total: int = 0
    by_source: dict[str, int] = Field(
        default_factory=lambda: {"ui": 0, "plugin": 0, "agent": 0}
    )
    success_rate: float = 0.0
    top_commands: list[CommandCount] = Field(default_factory=list)


class CommandExecutedEvent(BaseModel):
    """Published by the command registry after every execute() call."""
    command_id: str
    source: CommandSource
    timestamp: datetime = Field(default_factory=datetime.now)
    success: bool
    transaction_id: Optional[str] = None
    args: list[Any] = Field(default_factory=list)
