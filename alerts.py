"""
Alert system for Agent Planner.

Turns plan outcomes into something a human notices: a coloured terminal
panel and, optionally, a macOS notification. Attach it to an executor and
it reacts to plan events on its own:

    plan_failed     -> critical (bell + macOS notification)
    plan_completed  -> success
    plan_rejected   -> warning
"""

import logging
import subprocess
from typing import Optional

from rich.console import Console
from rich.panel import Panel

from events import Subscription
from schemas import EventType, PlanEvent

logger = logging.getLogger(__name__)


class AlertManager:
    """Manages alerts and notifications."""

    STYLE_MAP = {
        "critical": "bold red",
        "warning": "bold yellow",
        "success": "bold green",
    }

    def __init__(
        self,
        terminal: bool = True,
        macos: bool = False,
        console: Optional[Console] = None
    ):
        self.terminal_enabled = terminal
        self.macos_enabled = macos
        self.console = console or Console()
        self._subscription: Optional[Subscription] = None

    def _terminal_bell(self):
        self.console.bell()

    def _terminal_alert(self, title: str, message: str, style: str = "warning"):
        """Display a prominent terminal alert."""
        border_style = self.STYLE_MAP.get(style, "bold yellow")

        self.console.print()
        self.console.print(Panel(
            f"[{border_style}]{message}[/{border_style}]",
            title=f"⚠️  {title}" if style in ("critical", "warning") else title,
            border_style=border_style
        ))
        self.console.print()

        if style == "critical":
            self._terminal_bell()

    def _macos_notification(self, title: str, message: str, sound: bool = True):
        """Send macOS notification using osascript."""
        title = title.replace('"', '\\"')
        message = message.replace('"', '\\"')

        script = f'display notification "{message}" with title "Agent Planner" subtitle "{title}"'
        if sound:
            script += '\nbeep'

        try:
            subprocess.run(
                ["osascript", "-e", script],
                capture_output=True,
                timeout=5
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Could not send macOS notification: {e}")

    def warning(self, title: str, message: str = ""):
        if self.terminal_enabled:
            self._terminal_alert(title, message or title, "warning")

    def critical(self, title: str, message: str = ""):
        """Send a critical alert (terminal + macOS)."""
        full_message = message or title

        if self.terminal_enabled:
            self._terminal_alert(title, full_message, "critical")

        if self.macos_enabled:
            self._macos_notification(title, full_message, sound=True)

    def success(self, title: str, message: str = ""):
        if self.terminal_enabled:
            self._terminal_alert(title, message or title, "success")

    # =========================================================================
    # PLAN EVENTS
    # =========================================================================

    def handle_event(self, event: PlanEvent) -> None:
        """Raise the alert that matches a plan event, if any."""
        label = event.plan.description if event.plan else event.plan_id

        if event.type == EventType.PLAN_FAILED:
            self.critical(f"Plan {event.plan_id} failed", f"{label}\n{event.message or ''}".strip())
        elif event.type == EventType.PLAN_COMPLETED:
            duration = event.plan.duration_ms if event.plan else None
            suffix = f" ({duration}ms)" if duration is not None else ""
            self.success(f"Plan {event.plan_id} completed", f"{label}{suffix}")
        elif event.type == EventType.PLAN_REJECTED:
            self.warning(f"Plan {event.plan_id} rejected", f"{label}\n{event.message or ''}".strip())

    def attach(self, executor) -> Subscription:
        """
        Subscribe to an executor's plan events.

        Returns:
            The subscription (also kept, so detach() can undo it)
        """
        self.detach()
        self._subscription = executor.on_event(self.handle_event)
        return self._subscription

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
