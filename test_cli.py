"""
Tests for the CLI: plan files, the review loop and exit codes.

Prompts are patched on the ui module, so no test waits for input.
"""

import argparse
import json
import shutil
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent))

import cli
from cli import async_main, create_parser, load_plan_file, run_plan
from errors import MissingParameterError
from executor import create_executor
from schemas import PlanStatus, StepStatus


@pytest.fixture
def temp_dir():
    directory = tempfile.mkdtemp(prefix="planner_cli_")
    yield Path(directory)
    shutil.rmtree(directory, ignore_errors=True)


@pytest.fixture
def vault(temp_dir):
    path = temp_dir / "vault"
    path.mkdir()
    (path / "a.md").write_text("# A\nold\n")
    return path


@pytest.fixture
def plan_file(temp_dir):
    path = temp_dir / "plan.yaml"
    path.write_text(
        "description: Update A\n"
        "context:\n"
        "  requested_by: test\n"
        "steps:\n"
        "  - tool: note_read\n"
        "    params:\n"
        "      path: a.md\n"
        "  - tool: note_write\n"
        "    description: Rewrite A\n"
        "    params:\n"
        "      path: a.md\n"
        "      content: \"# A\\nnew\\n\"\n"
    )
    return path


def make_args(**overrides) -> argparse.Namespace:
    args = create_parser().parse_args([])
    for key, value in overrides.items():
        setattr(args, key, value)
    return args


# =============================================================================
# PLAN FILES
# =============================================================================

def test_load_yaml_plan(plan_file):
    data = load_plan_file(plan_file)

    assert data["description"] == "Update A"
    assert data["context"] == {"requested_by": "test"}
    assert [s["tool"] for s in data["steps"]] == ["note_read", "note_write"]


def test_load_json_plan(temp_dir):
    path = temp_dir / "tidy.json"
    path.write_text(json.dumps({"steps": [{"tool_id": "daily_note_open"}]}))

    data = load_plan_file(path)

    assert data["description"] == "tidy"
    assert data["context"] == {}


@pytest.mark.parametrize("content, message", [
    ("- just\n- a list\n", "mapping"),
    ("description: nothing\n", "steps"),
    ("steps:\n  - params: {}\n", "no 'tool'"),
    ("steps: [\n", "Invalid YAML"),
])
def test_invalid_plan_files(temp_dir, content, message):
    path = temp_dir / "bad.yaml"
    path.write_text(content)

    with pytest.raises(ValueError) as exc_info:
        load_plan_file(path)
    assert message in str(exc_info.value)


def test_missing_plan_file(temp_dir):
    with pytest.raises(FileNotFoundError):
        load_plan_file(temp_dir / "nope.yaml")


# =============================================================================
# REVIEW LOOP
# =============================================================================

@pytest.mark.asyncio
async def test_run_plan_auto_approve(vault, plan_file):
    executor, _ = create_executor(workspace_root=vault)

    plan = await run_plan(executor, load_plan_file(plan_file), auto_approve=True)

    assert plan.status == PlanStatus.COMPLETED
    assert (vault / "a.md").read_text() == "# A\nnew\n"


@pytest.mark.asyncio
async def test_run_plan_dry_run(vault, plan_file):
    executor, _ = create_executor(workspace_root=vault)

    plan = await run_plan(executor, load_plan_file(plan_file), dry_run=True)

    assert plan.status == PlanStatus.PENDING
    assert (vault / "a.md").read_text() == "# A\nold\n"


@pytest.mark.asyncio
async def test_run_plan_interactive_reject_step(vault, plan_file):
    executor, _ = create_executor(workspace_root=vault)

    with patch.object(cli.ui, "prompt_step_decision", side_effect=["approve", "reject"]), \
         patch.object(cli.ui, "prompt_reason", return_value="Keep it"):
        plan = await run_plan(executor, load_plan_file(plan_file))

    assert plan.steps[0].status == StepStatus.COMPLETED
    assert plan.steps[1].status == StepStatus.REJECTED
    assert plan.steps[1].error == "Keep it"
    assert plan.status == PlanStatus.COMPLETED
    assert (vault / "a.md").read_text() == "# A\nold\n"


@pytest.mark.asyncio
async def test_run_plan_interactive_abort(vault, plan_file):
    executor, _ = create_executor(workspace_root=vault)

    with patch.object(cli.ui, "prompt_step_decision", return_value="abort"):
        plan = await run_plan(executor, load_plan_file(plan_file))

    assert plan.status == PlanStatus.REJECTED
    assert executor.dispatcher.audit_log.get_events_by_transaction(plan.transaction_id) == []


@pytest.mark.asyncio
async def test_run_plan_invalid_step(vault):
    executor, _ = create_executor(workspace_root=vault)

    with pytest.raises(MissingParameterError):
        await run_plan(executor, {"description": "x", "steps": [{"tool": "note_write", "params": {}}]})


# =============================================================================
# EXIT CODES
# =============================================================================

@pytest.mark.asyncio
async def test_exit_code_success(vault, plan_file, temp_dir):
    config_path = temp_dir / "planner.yaml"
    config_path.write_text("alerts:\n  terminal: false\n")

    args = make_args(plan_file=plan_file, workspace=vault, config=config_path, yes=True, audit=True)
    assert await async_main(args) == 0


@pytest.mark.asyncio
async def test_exit_code_failure(vault, temp_dir):
    plan_path = temp_dir / "fail.yaml"
    plan_path.write_text("steps:\n  - tool: note_delete\n    params:\n      path: missing.md\n")
    config_path = temp_dir / "planner.yaml"
    config_path.write_text("alerts:\n  terminal: false\n")

    args = make_args(plan_file=plan_path, workspace=vault, config=config_path, yes=True)
    assert await async_main(args) == 1


@pytest.mark.asyncio
async def test_exit_code_bad_inputs(vault, temp_dir):
    assert await async_main(make_args(config=temp_dir / "missing.yaml")) == 1

    config_path = temp_dir / "planner.yaml"
    config_path.write_text("alerts:\n  terminal: false\n")
    args = make_args(plan_file=temp_dir / "missing.yaml", workspace=vault, config=config_path)
    assert await async_main(args) == 1

    invalid = temp_dir / "invalid.yaml"
    invalid.write_text("steps:\n  - tool: shell\n")
    args = make_args(plan_file=invalid, workspace=vault, config=config_path, yes=True)
    assert await async_main(args) == 1


@pytest.mark.asyncio
async def test_tools_listing(vault, temp_dir):
    config_path = temp_dir / "planner.yaml"
    config_path.write_text("{}\n")

    assert await async_main(make_args(tools=True, workspace=vault, config=config_path)) == 0
