#!/usr/bin/env python3
"""
Agent Planner CLI - Review, approve and execute agent plans.

This is the main entry point for the command-line interface. It loads a
plan an agent proposed (a YAML or JSON file), shows every step and the
diff of every change, asks the reviewer to approve or reject, then runs
the approved steps against the vault.

USAGE:
------
  planner plan.yaml                  - Review and execute a plan
  planner plan.yaml --yes            - Approve everything without asking
  planner plan.yaml --dry-run        - Show the plan and its diffs only
  planner --tools                    - List the available tools

PLAN FILE FORMAT:
----------------
  description: Tidy up meeting notes
  context:
    requested_by: assistant
  steps:
    - tool: note_read
      description: Read the current notes
      params:
        path: meetings/2024-06-01.md
    - tool: note_write
      params:
        path: meetings/2024-06-01.md
        content: "# Meeting\\n..."

EXIT STATUS:
-----------
  0   plan completed
  1   plan failed, was rejected, or could not be loaded
  130 interrupted
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import yaml

from alerts import AlertManager
from config import load_config, setup_logging
from errors import PlannerError
from executor import PlanExecutor, create_executor
from schemas import AgentPlan, EventType, PlanEvent, PlanStatus, StepStatus
import ui

__version__ = "1.0.0"


# =============================================================================
# CLI ARGUMENT PARSING
# =============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="planner",
        description="Review, approve and execute agent plans",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  planner plan.yaml
  planner plan.yaml --workspace ~/notes
  planner plan.json --yes
  planner plan.yaml --dry-run
  planner --tools
        """
    )

    parser.add_argument(
        "plan_file",
        nargs="?",
        type=Path,
        help="Plan file (YAML or JSON) to review and execute"
    )

    parser.add_argument(
        "-w", "--workspace",
        type=Path,
        help="Vault directory (overrides workspace.base from the config)"
    )

    parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Config file (default: ~/.agent-planner/config.yaml)"
    )

    parser.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Approve every step without prompting"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the plan and the changes it would make, then stop"
    )

    parser.add_argument(
        "--tools",
        action="store_true",
        help="List available tools and exit"
    )

    parser.add_argument(
        "--audit",
        action="store_true",
        help="Show the audit trail of the plan's commands after it runs"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Agent Planner v{__version__}"
    )

    return parser


# =============================================================================
# PLAN FILES
# =============================================================================

def load_plan_file(path: Path) -> dict:
    """
    Load a plan definition from YAML or JSON.

    Returns:
        Dict with "description", "steps" and optionally "context"

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file isn't a valid plan definition
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Plan file not found: {path}")

    text = path.read_text()
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Plan file must contain a mapping, got {type(data).__name__}")

    steps = data.get("steps")
    if not isinstance(steps, list) or not steps:
        raise ValueError("Plan file must define a non-empty 'steps' list")

    for i, step in enumerate(steps, 1):
        if not isinstance(step, dict):
            raise ValueError(f"Step {i} must be a mapping")
        if not any(key in step for key in ("tool", "tool_id", "toolId")):
            raise ValueError(f"Step {i} has no 'tool'")

    context = data.get("context") or {}
    if not isinstance(context, dict):
        raise ValueError("'context' must be a mapping")

    return {
        "description": str(data.get("description") or path.stem),
        "context": context,
        "steps": steps,
    }


# =============================================================================
# REVIEW AND EXECUTION
# =============================================================================

async def preview_changes(executor: PlanExecutor, plan: AgentPlan) -> None:
    """Show the diff of every mutating step."""
    for step in plan.steps:
        if step.readonly:
            continue
        ui.show_step(step)
        ui.show_diff(await executor.get_diff(step), step.params.get("path", ""))


async def review_plan(executor: PlanExecutor, plan: AgentPlan, auto_approve: bool = False) -> bool:
    """
    Walk the reviewer through every pending step.

    Returns:
        False if the reviewer aborted (the plan is then rejected)
    """
    if auto_approve:
        executor.approve_all(plan.id)
        ui.show_info(f"Approved all {len(plan.steps)} steps (--yes)")
        return True

    for step in plan.steps:
        if step.status != StepStatus.PENDING:
            continue

        ui.show_step(step)
        if not step.readonly:
            ui.show_diff(await executor.get_diff(step), step.params.get("path", ""))

        choice = ui.prompt_step_decision(step)

        if choice == "approve":
            executor.approve_step(plan.id, step.id)
        elif choice == "reject":
            reason = ui.prompt_reason()
            executor.reject_step(plan.id, step.id, reason or None)
        elif choice == "all":
            executor.approve_all(plan.id)
            break
        elif choice == "abort":
            executor.reject_plan(plan.id, "Aborted by reviewer")
            return False

    return True


async def run_plan(
    executor: PlanExecutor,
    plan_data: dict,
    auto_approve: bool = False,
    dry_run: bool = False
) -> AgentPlan:
    """
    Create, review and execute a plan.

    Args:
        executor: Executor with its catalogue and dispatcher wired
        plan_data: Output of load_plan_file()
        auto_approve: Approve everything without prompting
        dry_run: Stop after showing the changes

    Returns:
        The plan in its final state
    """
    plan = executor.create_plan(
        plan_data["description"],
        plan_data["steps"],
        context=plan_data.get("context"),
    )
    ui.show_plan(plan)

    if dry_run:
        await preview_changes(executor, plan)
        ui.show_info("Dry run: nothing was executed")
        return plan

    if not await review_plan(executor, plan, auto_approve):
        ui.show_warning(f"Plan {plan.id} rejected")
        return plan

    approved = plan.steps_with_status(StepStatus.APPROVED)
    if not approved:
        ui.show_warning("No steps approved; nothing to execute")

    def on_step(event: PlanEvent) -> None:
        if event.type in (EventType.STEP_COMPLETED, EventType.STEP_FAILED) and event.step and event.outcome:
            ui.show_step_outcome(event.step, event.outcome)

    subscription = executor.on_event(on_step)
    try:
        with ui.show_thinking(f"Executing {len(approved)} steps..."):
            outcomes = await executor.execute_plan(plan.id)
    finally:
        subscription.unsubscribe()

    ui.show_plan_result(plan, outcomes)
    return plan


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

async def async_main(args: argparse.Namespace) -> int:
    """
    Async main function that handles all commands.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        ui.show_error(f"Could not load config: {e}")
        return 1

    setup_logging(config, verbose=args.verbose)

    executor, workspace = create_executor(config, workspace_root=args.workspace)

    if args.tools:
        ui.show_tools(executor.catalogue.list_tools())
        return 0

    if not args.plan_file:
        ui.show_welcome()
        ui.console.print("\n[bold]Usage:[/bold] planner PLAN_FILE [--yes] [--dry-run]")
        ui.console.print("       planner --tools")
        return 0

    try:
        plan_data = load_plan_file(args.plan_file)
    except (FileNotFoundError, ValueError) as e:
        ui.show_error(str(e))
        return 1

    ui.show_info(f"Vault: {workspace.root}")

    alerts = AlertManager(
        terminal=config.alerts.terminal,
        macos=config.alerts.macos_notification,
        console=ui.console,
    )
    alerts.attach(executor)

    try:
        plan = await run_plan(
            executor,
            plan_data,
            auto_approve=args.yes,
            dry_run=args.dry_run,
        )
    except PlannerError as e:
        ui.show_error(str(e))
        return 1
    except KeyboardInterrupt:
        ui.console.print("\n")
        ui.show_warning("Interrupted")
        return 130
    finally:
        alerts.detach()

    if args.audit and executor.dispatcher.audit_log is not None:
        audit_log = executor.dispatcher.audit_log
        ui.show_header("Audit Trail", plan.transaction_id)
        ui.show_audit(
            list(reversed(audit_log.get_events_by_transaction(plan.transaction_id))),
            audit_log.get_stats(),
        )

    if args.dry_run:
        return 0
    return 0 if plan.status == PlanStatus.COMPLETED else 1


def main() -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    try:
        exit_code = asyncio.run(async_main(args))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        ui.console.print("\n")
        sys.exit(130)


if __name__ == "__main__":
    main()
