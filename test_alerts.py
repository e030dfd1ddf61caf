"""
Tests for plan alerts.
"""

import io
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from rich.console import Console

sys.path.insert(0, str(Path(__file__).parent))

from alerts import AlertManager
from executor import PlanExecutor
from tools import create_default_catalogue


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=100, record=True)


@pytest.fixture
def executor():
    dispatcher = MagicMock()
    dispatcher.execute = AsyncMock(side_effect=RuntimeError("disk full"))
    return PlanExecutor(create_default_catalogue(), dispatcher)


def make_plan(executor):
    return executor.create_plan("Tidy notes", [
        {"tool_id": "note_write", "params": {"path": "a.md", "content": "x"}},
    ])


@pytest.mark.asyncio
async def test_plan_failure_is_critical(executor, console):
    alerts = AlertManager(terminal=True, macos=False, console=console)
    alerts.attach(executor)
    plan = make_plan(executor)
    executor.approve_all(plan.id)

    with patch.object(alerts, "_terminal_bell") as bell:
        await executor.execute_plan(plan.id)

    output = console.export_text()
    assert f"Plan {plan.id} failed" in output
    assert "disk full" in output
    bell.assert_called_once()


def test_plan_rejection_is_a_warning(executor, console):
    alerts = AlertManager(console=console)
    alerts.attach(executor)
    plan = make_plan(executor)

    executor.reject_plan(plan.id, "Not now")

    output = console.export_text()
    assert f"Plan {plan.id} rejected" in output
    assert "Not now" in output


def test_detach_stops_alerts(executor, console):
    alerts = AlertManager(console=console)
    alerts.attach(executor)
    alerts.detach()

    executor.reject_plan(make_plan(executor).id)

    assert console.export_text() == ""


def test_terminal_disabled(executor, console):
    alerts = AlertManager(terminal=False, console=console)
    alerts.attach(executor)

    executor.reject_plan(make_plan(executor).id)

    assert console.export_text() == ""


def test_macos_notification_failure_is_logged(console, caplog):
    alerts = AlertManager(terminal=False, macos=True, console=console)

    with patch("alerts.subprocess.run", side_effect=FileNotFoundError("osascript")) as run:
        alerts.critical("Plan plan-0 failed", "boom")

    run.assert_called_once()
    assert "Could not send macOS notification" in caplog.text
