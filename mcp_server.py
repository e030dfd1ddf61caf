#!/usr/bin/env python3
"""
MCP Server for Agent Planner.

IMPORTANT: Never print to stdout - it breaks JSON-RPC communication.
All logging must go to stderr.

This server lets a connected agent propose plans and run them once they are
approved:
- plan_create: Propose a plan (validated against the tool catalogue)
- plan_get / plan_list / plan_stats: Inspect plans
- plan_diff: Preview what a step would change
- plan_reject / plan_reject_step: Withdraw a plan or a step
- plan_execute / plan_execute_step: Run approved steps
- plan_delete: Forget a finished plan
- plan_audit: Commands a plan dispatched, from the audit log
- tools_list: The tools a plan may use

plan_approve_step and plan_approve_all only work when the config sets
mcp.allow_agent_approval; otherwise approval stays with a human (the CLI).

To run:
    planner-mcp
    planner-mcp --config ~/.agent-planner/config.yaml
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

# CRITICAL: Configure logging to stderr BEFORE any other imports
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr
)
logger = logging.getLogger("planner-mcp")

from mcp.server.fastmcp import FastMCP

from config import Config, load_config
from errors import PlannerError
from executor import PlanExecutor, create_executor
from schemas import PlanStatus

mcp = FastMCP("agent-planner")

# Built on first use, or installed with configure()
_executor: Optional[PlanExecutor] = None
_config: Optional[Config] = None


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def configure(executor: PlanExecutor, config: Optional[Config] = None) -> None:
    """Install the executor (and config) the tools operate on."""
    global _executor, _config
    _executor = executor
    _config = config or Config()


def _get_executor() -> PlanExecutor:
    global _executor, _config
    if _executor is None:
        try:
            _config = load_config()
        except Exception as e:
            logger.warning(f"Failed to load config, using defaults: {e}")
            _config = Config()
        _executor, workspace = create_executor(_config)
        logger.info(f"Vault: {workspace.root}")
    return _executor


def _agent_approval_allowed() -> bool:
    _get_executor()
    return bool(_config and _config.mcp.allow_agent_approval)


def _error(message: str, **extra: Any) -> str:
    return json.dumps({"error": message, **extra})


def _plan_summary(plan) -> dict:
    return {
        "id": plan.id,
        "description": plan.description,
        "status": plan.status.value,
        "transaction_id": plan.transaction_id,
        "steps": len(plan.steps),
        "created_at": plan.created_at.isoformat(),
    }


# =============================================================================
# MCP TOOLS: PLANNING
# =============================================================================

@mcp.tool()
async def plan_create(
    description: str,
    steps: list[dict],
    context: Optional[dict] = None
) -> str:
    """
    Propose a plan of tool invocations.

    Nothing runs until a human approves the steps. Each step is a dict with
    "tool" (or "tool_id"), an optional "description", and "params".

    Args:
        description: What the plan achieves (e.g., "Summarise this week's meetings")
        steps: Ordered step requests, e.g. [{"tool": "note_read", "params": {"path": "a.md"}}]
        context: Optional data to attach to the plan (never interpreted)

    Returns:
        JSON of the created plan, including its id and step ids.
    """
    logger.info(f"plan_create: {description[:50]} ({len(steps)} steps)")

    try:
        plan = _get_executor().create_plan(description, steps, context=context)
        return plan.model_dump_json(indent=2)
    except PlannerError as e:
        return _error(str(e))
    except Exception as e:
        logger.error(f"plan_create failed: {e}")
        return _error(str(e))


@mcp.tool()
async def plan_get(plan_id: str) -> str:
    """
    Get a plan with every step's status, result and error.

    Args:
        plan_id: The plan id from plan_create

    Returns:
        JSON of the plan.
    """
    plan = _get_executor().get_plan(plan_id)
    if not plan:
        return _error(f'Plan "{plan_id}" not found')
    return plan.model_dump_json(indent=2)


@mcp.tool()
async def plan_list(status: str = "") -> str:
    """
    List plans, most recent first.

    Args:
        status: Only list plans in this status (pending, approved, rejected,
                executing, completed, failed). Empty lists all.

    Returns:
        JSON array of plan summaries.
    """
    plans = _get_executor().get_all_plans()

    if status:
        try:
            wanted = PlanStatus(status)
        except ValueError:
            return _error(f"Unknown status: {status}")
        plans = [p for p in plans if p.status == wanted]

    return json.dumps([_plan_summary(p) for p in plans], indent=2)


@mcp.tool()
async def plan_diff(plan_id: str, step_id: str) -> str:
    """
    Preview the change a step would make, as a unified diff.

    Args:
        plan_id: The plan id
        step_id: The step id

    Returns:
        JSON with "diff" (null for read-only steps).
    """
    try:
        diff = await _get_executor().get_step_diff(plan_id, step_id)
        return json.dumps({"plan_id": plan_id, "step_id": step_id, "diff": diff}, indent=2)
    except PlannerError as e:
        return _error(str(e))


@mcp.tool()
async def plan_stats() -> str:
    """Counts of plans by status, as JSON."""
    return _get_executor().get_stats().model_dump_json(indent=2)


@mcp.tool()
async def tools_list(category: str = "") -> str:
    """
    List the tools a plan may use, with their parameters.

    Args:
        category: Only list tools in this category (file, search, vault,
                  template, daily). Empty lists all.

    Returns:
        JSON array of tool definitions.
    """
    catalogue = _get_executor().catalogue
    tools = catalogue.get_tools_by_category(category) if category else catalogue.list_tools()
    return json.dumps([t.model_dump() for t in tools], indent=2, default=str)


# =============================================================================
# MCP TOOLS: APPROVAL
# =============================================================================

APPROVAL_DISABLED = (
    "Agent approval is disabled: a human must approve plan steps. "
    "Set mcp.allow_agent_approval in the config to allow it."
)


@mcp.tool()
async def plan_approve_step(plan_id: str, step_id: str) -> str:
    """
    Approve one step (only if the server allows agent approval).

    Returns:
        JSON of the step, or an error.
    """
    if not _agent_approval_allowed():
        return _error(APPROVAL_DISABLED)

    try:
        step = _get_executor().approve_step(plan_id, step_id)
        return step.model_dump_json(indent=2)
    except PlannerError as e:
        return _error(str(e))


@mcp.tool()
async def plan_approve_all(plan_id: str) -> str:
    """
    Approve every pending step (only if the server allows agent approval).

    Returns:
        JSON of the plan, or an error.
    """
    if not _agent_approval_allowed():
        return _error(APPROVAL_DISABLED)

    try:
        plan = _get_executor().approve_all(plan_id)
        return plan.model_dump_json(indent=2)
    except PlannerError as e:
        return _error(str(e))


@mcp.tool()
async def plan_reject(plan_id: str, reason: str = "") -> str:
    """
    Reject a whole plan.

    Args:
        plan_id: The plan id
        reason: Why (stored on every step)
    """
    try:
        plan = _get_executor().reject_plan(plan_id, reason or None)
        return plan.model_dump_json(indent=2)
    except PlannerError as e:
        return _error(str(e))


@mcp.tool()
async def plan_reject_step(plan_id: str, step_id: str, reason: str = "") -> str:
    """
    Reject one step; it will be skipped when the plan runs.

    Args:
        plan_id: The plan id
        step_id: The step id
        reason: Why (stored as the step's error)
    """
    try:
        step = _get_executor().reject_step(plan_id, step_id, reason or None)
        return step.model_dump_json(indent=2)
    except PlannerError as e:
        return _error(str(e))


# =============================================================================
# MCP TOOLS: EXECUTION
# =============================================================================

@mcp.tool()
async def plan_execute(plan_id: str) -> str:
    """
    Run every approved step of a plan, in order, stopping at the first failure.

    Steps that are not approved are skipped. Completed steps are not rolled
    back if a later one fails.

    Args:
        plan_id: The plan id

    Returns:
        JSON with the plan's final status and the outcome of each step that ran.
    """
    logger.info(f"plan_execute: {plan_id}")

    executor = _get_executor()
    try:
        outcomes = await executor.execute_plan(plan_id)
    except PlannerError as e:
        return _error(str(e))
    except Exception as e:
        logger.error(f"plan_execute failed: {e}")
        return _error(str(e))

    plan = executor.get_plan(plan_id)
    response = {
        "plan_id": plan_id,
        "status": plan.status.value,
        "duration_ms": plan.duration_ms,
        "outcomes": [o.model_dump(mode="json") for o in outcomes],
    }
    return json.dumps(response, indent=2, default=str)


@mcp.tool()
async def plan_execute_step(plan_id: str, step_id: str) -> str:
    """
    Run a single approved step.

    Returns:
        JSON StepOutcome with success, data, error and duration_ms.
    """
    logger.info(f"plan_execute_step: {plan_id}/{step_id}")

    try:
        outcome = await _get_executor().execute_step(plan_id, step_id)
        return outcome.model_dump_json(indent=2)
    except PlannerError as e:
        return _error(str(e))


@mcp.tool()
async def plan_delete(plan_id: str) -> str:
    """
    Delete a plan that is not executing.

    Returns:
        JSON with "deleted" true or false.
    """
    try:
        deleted = _get_executor().delete_plan(plan_id)
        return json.dumps({"plan_id": plan_id, "deleted": deleted})
    except PlannerError as e:
        return _error(str(e))


@mcp.tool()
async def plan_audit(plan_id: str) -> str:
    """
    Commands a plan dispatched, oldest first, from the audit log.

    Returns:
        JSON array of audit events for the plan's transaction id.
    """
    executor = _get_executor()
    plan = executor.get_plan(plan_id)
    if not plan:
        return _error(f'Plan "{plan_id}" not found')

    audit_log = getattr(executor.dispatcher, "audit_log", None)
    if audit_log is None:
        return _error("Audit log is disabled")

    events = audit_log.get_events_by_transaction(plan.transaction_id)
    return json.dumps([e.model_dump(mode="json") for e in events], indent=2, default=str)


# =============================================================================
# ENTRY POINT
# =============================================================================

def main() -> None:
    """Run the MCP server over stdio."""
    parser = argparse.ArgumentParser(prog="planner-mcp", description="Agent Planner MCP server")
    parser.add_argument("-c", "--config", type=Path, help="Config file")
    parser.add_argument("-w", "--workspace", type=Path, help="Vault directory")
    args = parser.parse_args()

    config = load_config(args.config)
    logging.getLogger().setLevel(getattr(logging, config.logging.level, logging.INFO))

    executor, workspace = create_executor(config, workspace_root=args.workspace)
    configure(executor, config)

    logger.info(f"Starting Agent Planner MCP Server (vault: {workspace.root})")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
