"""
Rich terminal UI components for Agent Planner.

WHY THIS FILE EXISTS:
--------------------
The reviewer approving a plan has to see exactly what each step will do
before saying yes. Rich gives us tables for the plan overview, panels per
step, syntax-highlighted diffs and prompts for the approval decision.

DESIGN PRINCIPLES:
-----------------
1. Consistent styling across all displays
2. Color-coded status indicators (same colors for steps and plans)
3. Mutating steps are marked; read-only steps are dimmed
4. Clean formatting of the pydantic models from schemas.py

COMPONENTS:
----------
- show_plan() - Plan overview table
- show_step() / show_diff() - One step and its change preview
- show_step_outcome() / show_plan_result() - Execution results
- show_tools() / show_audit() - Listings
- prompt_step_decision() - Interactive approval prompt
"""

import json
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.syntax import Syntax
from rich.prompt import Prompt
from rich import box

from schemas import (
    AgentPlan,
    AuditEvent,
    AuditStats,
    ProposedStep,
    StepOutcome,
)
from tools import ToolDefinition

# Global console instance for consistent output
console = Console()


# =============================================================================
# COLOR SCHEMES
# =============================================================================

STATUS_COLORS = {
    "pending": "dim",
    "approved": "cyan",
    "rejected": "yellow",
    "executing": "blue",
    "completed": "green",
    "failed": "red",
}

SOURCE_COLORS = {
    "ui": "blue",
    "plugin": "magenta",
    "agent": "cyan",
}


def _status(value: str) -> str:
    color = STATUS_COLORS.get(value, "white")
    return f"[{color}]{value}[/{color}]"


def _format_params(params: dict, limit: int = 60) -> str:
    text = ", ".join(f"{k}={v!r}" for k, v in params.items())
    return text[:limit] + "..." if len(text) > limit else text


# =============================================================================
# HEADER/SECTION UTILITIES
# =============================================================================

def show_header(title: str, subtitle: str = "") -> None:
    """Display a styled header."""
    console.print()
    console.rule(f"[bold blue]{title}[/bold blue]")
    if subtitle:
        console.print(f"[dim]{subtitle}[/dim]", justify="center")
    console.print()



def show_error(message: str) -> None:
    console.print(f"[red]✗[/red] {message}")


def show_warning(message: str) -> None:
    console.print(f"[yellow]⚠[/yellow] {message}")


def show_info(message: str) -> None:
    console.print(f"[blue]ℹ[/blue] {message}")


# =============================================================================
# PLAN DISPLAY
# =============================================================================

def show_plan(plan: AgentPlan) -> None:
    """
    Display a plan overview: one row per step.

    Args:
        plan: The AgentPlan to display
    """
    show_header(f"Plan {plan.id}", plan.description[:80] + "..." if len(plan.description) > 80 else plan.description)

    console.print(f"[bold]Status:[/bold] {_status(plan.status.value)}")
    console.print(f"[bold]Transaction:[/bold] [dim]{plan.transaction_id}[/dim]")
    if plan.context:
        console.print(f"[bold]Context:[/bold] [dim]{_format_params(plan.context)}[/dim]")

    table = Table(
        box=box.ROUNDED,
        show_header=True,
        header_style="bold",
        title="[bold]Steps[/bold]"
    )
    table.add_column("#", justify="right", style="cyan", width=3)
    table.add_column("Tool", style="white")
    table.add_column("Description")
    table.add_column("Params", style="dim")
    table.add_column("Status", justify="center")

    for step in plan.steps:
        tool = f"[dim]{step.tool_id}[/dim]" if step.readonly else f"[bold]*{step.tool_id}[/bold]"
        table.add_row(
            str(step.order + 1),
            tool,
            step.description or "-",
            _format_params(step.params),
            _status(step.status.value),
        )

    console.print(table)

    if any(not step.readonly for step in plan.steps):
        console.print("[bold]*[/bold] = Modifies the vault")


def show_step(step: ProposedStep) -> None:
    """
    Display a single step with its parameters.

    Args:
        step: The ProposedStep to display
    """
    status_color = STATUS_COLORS.get(step.status.value, "white")

    content = Text()
    if step.description:
        content.append(f"{step.description}\n\n")

    content.append("Parameters:\n", style="bold")
    if not step.params:
        content.append("  (none)\n", style="dim")
    for name, value in step.params.items():
        shown = value if isinstance(value, str) else json.dumps(value, default=str)
        if isinstance(shown, str) and len(shown) > 200:
            shown = shown[:200] + "..."
        content.append(f"  {name}: ", style="cyan")
        content.append(f"{shown}\n")

    if step.error:
        content.append(f"\nError: {step.error}", style="red")

    kind = "read-only" if step.readonly else "mutating"
    panel = Panel(
        content,
        title=f"[{status_color}]Step {step.order + 1}: {step.tool_id}[/{status_color}]",
        subtitle=f"[dim]{step.id} · {kind}[/dim]",
        border_style=status_color,
        box=box.ROUNDED
    )
    console.print(panel)


def show_diff(diff: Optional[str], path: str = "") -> None:
    """Display a unified diff with syntax highlighting."""
    if not diff:
        console.print("[dim]No changes to preview.[/dim]")
        return

    console.print(Panel(
        Syntax(diff, "diff", theme="monokai", word_wrap=True),
        title=f"[bold]Changes{': ' + path if path else ''}[/bold]",
        border_style="yellow",
        box=box.ROUNDED
    ))


# =============================================================================
# EXECUTION DISPLAY
# =============================================================================

def show_step_outcome(step: ProposedStep, outcome: StepOutcome) -> None:
    """Display the result of executing one step."""
    if outcome.success:
        data = outcome.data
        summary = ""
        if isinstance(data, str):
            summary = data if len(data) <= 80 else data[:80] + "..."
        elif isinstance(data, list):
            summary = f"{len(data)} results"
        elif data is not None:
            summary = json.dumps(data, default=str)[:80]
        console.print(
            f"[green]✓[/green] {step.tool_id} [dim]({outcome.duration_ms}ms)[/dim]"
            + (f" {summary}" if summary else "")
        )
    else:
        console.print(f"[red]✗[/red] {step.tool_id} [dim]({outcome.duration_ms}ms)[/dim] [red]{outcome.error}[/red]")


def show_plan_result(plan: AgentPlan, outcomes: list[StepOutcome]) -> None:
    """
    Display the final state of an executed plan.

    Args:
        plan: The plan after execute_plan()
        outcomes: What execute_plan() returned
    """
    succeeded = sum(1 for o in outcomes if o.success)
    status_color = STATUS_COLORS.get(plan.status.value, "white")

    show_header(f"Plan {plan.status.value.upper()}", plan.description)

    console.print(f"[bold]Status:[/bold] [{status_color}]{plan.status.value}[/{status_color}]")
    console.print(f"[bold]Steps Run:[/bold] {len(outcomes)} ({succeeded} succeeded)")

    skipped = [s for s in plan.steps if s.status.value in ("pending", "approved", "rejected")]
    if skipped:
        console.print(f"[bold]Not Run:[/bold] {len(skipped)}")

    if plan.duration_ms is not None:
        console.print(f"[bold]Duration:[/bold] {plan.duration_ms}ms")

    failed = [s for s in plan.steps if s.status.value == "failed"]
    for step in failed:
        console.print(f"\n[red bold]Failed at {step.id}:[/red bold] {step.error}")


# =============================================================================
# LISTINGS
# =============================================================================

def show_tools(tools: list[ToolDefinition]) -> None:
    """Display the tool catalogue."""
    table = Table(box=box.ROUNDED, show_header=True, header_style="bold", title="[bold]Tools[/bold]")
    table.add_column("Tool", style="cyan")
    table.add_column("Command", style="dim")
    table.add_column("Parameters")
    table.add_column("Mode", justify="center")

    for tool in tools:
        params = ", ".join(p.name if p.required else f"[{p.name}]" for p in tool.parameters)
        mode = "[dim]read[/dim]" if tool.readonly else "[yellow]write[/yellow]"
        table.add_row(tool.id, tool.command_id, params or "-", mode)

    console.print(table)


def show_audit(events: list[AuditEvent], stats: Optional[AuditStats] = None) -> None:
    """Display audit log entries, most recent first."""
    if not events:
        console.print("[dim]No commands recorded.[/dim]")
        return

    table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    table.add_column("Time", style="dim")
    table.add_column("Command", style="cyan")
    table.add_column("Source")
    table.add_column("Result", justify="center")
    table.add_column("Transaction", style="dim")

    for event in events:
        color = SOURCE_COLORS.get(event.source, "white")
        result = "[green]✓[/green]" if event.success else f"[red]✗ {event.error or ''}[/red]"
        table.add_row(
            event.timestamp.strftime("%H:%M:%S"),
            event.command_id,
            f"[{color}]{event.source}[/{color}]",
            result,
            event.transaction_id or "-",
        )

    console.print(table)

    if stats:
        console.print(f"[bold]Success rate:[/bold] {stats.success_rate:.0%} of {stats.total}")


# =============================================================================
# INTERACTIVE PROMPTS
# =============================================================================

def prompt_step_decision(step: ProposedStep) -> str:
    """
    Ask the reviewer what to do with a pending step.

    Returns:
        One of: "approve", "reject", "all", "abort"
    """
    console.print("\n[bold]Options:[/bold]")
    console.print("  [green]a[/green]pprove  - Approve this step")
    console.print("  [yellow]r[/yellow]eject   - Reject this step")
    console.print("  [cyan]y[/cyan]        - Approve this and every remaining step")
    console.print("  [red]x[/red]        - Abort (reject the whole plan)")

    choice = Prompt.ask(
        f"\n[bold]{step.tool_id}[/bold]",
        choices=["a", "r", "y", "x", "approve", "reject", "all", "abort"],
        default="a"
    )

    mapping = {
        "a": "approve", "approve": "approve",
        "r": "reject", "reject": "reject",
        "y": "all", "all": "all",
        "x": "abort", "abort": "abort",
    }
    return mapping.get(choice, "approve")


def prompt_reason(default: str = "") -> str:
    """Ask for an optional rejection reason."""
    return Prompt.ask("[bold]Reason[/bold]", default=default)


# =============================================================================
# PROGRESS INDICATORS
# =============================================================================

def show_thinking(message: str = "Working..."):
    """
    Context manager that shows a spinner while processing.

    Usage:
        with show_thinking("Executing plan..."):
            outcomes = await executor.execute_plan(plan.id)
    """
    return console.status(f"[bold blue]{message}[/bold blue]", spinner="dots")


# =============================================================================
# WELCOME
# =============================================================================

def show_welcome() -> None:
    console.print(Panel.fit(
        "[bold blue]Agent Planner[/bold blue]\n"
        "[dim]Review, approve and execute agent plans[/dim]",
        border_style="blue"
    ))
