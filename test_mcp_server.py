"""
Tests for the MCP server tools.

The tool functions are called directly; FastMCP's decorator returns them
unchanged. Each test installs its own executor over a temp vault.
"""

import json
import shutil
import sys
import tempfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

import mcp_server
from config import Config
from executor import create_executor


@pytest.fixture
def vault():
    directory = tempfile.mkdtemp(prefix="planner_mcp_")
    yield Path(directory)
    shutil.rmtree(directory, ignore_errors=True)


def install(vault: Path, allow_agent_approval: bool = False):
    config = Config()
    config.mcp.allow_agent_approval = allow_agent_approval
    executor, _ = create_executor(config, workspace_root=vault)
    mcp_server.configure(executor, config)
    return executor


@pytest.fixture(autouse=True)
def reset_server():
    yield
    mcp_server._executor = None
    mcp_server._config = None


STEPS = [
    {"tool": "note_write", "description": "Create A", "params": {"path": "a.md", "content": "# A\n"}},
    {"tool": "note_read", "params": {"path": "a.md"}},
]


@pytest.mark.asyncio
async def test_create_and_inspect(vault):
    install(vault)

    created = json.loads(await mcp_server.plan_create("Make A", STEPS, {"origin": "test"}))
    plan_id = created["id"]
    assert created["status"] == "pending"
    assert created["context"] == {"origin": "test"}
    assert [s["tool_id"] for s in created["steps"]] == ["note_write", "note_read"]

    fetched = json.loads(await mcp_server.plan_get(plan_id))
    assert fetched["transaction_id"] == created["transaction_id"]

    listed = json.loads(await mcp_server.plan_list())
    assert [p["id"] for p in listed] == [plan_id]
    assert json.loads(await mcp_server.plan_list("completed")) == []
    assert "error" in json.loads(await mcp_server.plan_list("bogus"))

    diff = json.loads(await mcp_server.plan_diff(plan_id, created["steps"][0]["id"]))
    assert diff["diff"].endswith("new file a.md")

    stats = json.loads(await mcp_server.plan_stats())
    assert stats["pending_plans"] == 1

    tools = json.loads(await mcp_server.tools_list("search"))
    assert [t["id"] for t in tools] == ["search_query"]


@pytest.mark.asyncio
async def test_errors_are_json(vault):
    install(vault)

    bad = json.loads(await mcp_server.plan_create("Bad", [{"tool": "shell", "params": {}}]))
    assert bad["error"] == 'Tool "shell" not found'

    no_tool = json.loads(await mcp_server.plan_create("Bad", [{"params": {"path": "a.md"}}]))
    assert no_tool["error"] == "Step request does not name a tool"

    assert "not found" in json.loads(await mcp_server.plan_get("plan-9"))["error"]
    assert "not found" in json.loads(await mcp_server.plan_execute("plan-9"))["error"]


@pytest.mark.asyncio
async def test_agent_cannot_approve_by_default(vault):
    executor = install(vault)
    plan_id = json.loads(await mcp_server.plan_create("Make A", STEPS))["id"]
    step_id = executor.get_plan(plan_id).steps[0].id

    assert "disabled" in json.loads(await mcp_server.plan_approve_all(plan_id))["error"]
    assert "disabled" in json.loads(await mcp_server.plan_approve_step(plan_id, step_id))["error"]

    not_approved = json.loads(await mcp_server.plan_execute_step(plan_id, step_id))
    assert "is not approved" in not_approved["error"]

    # Nothing approved: the run completes without touching the vault
    result = json.loads(await mcp_server.plan_execute(plan_id))
    assert result["status"] == "completed"
    assert result["outcomes"] == []
    assert not (vault / "a.md").exists()


@pytest.mark.asyncio
async def test_approved_plan_executes(vault):
    install(vault, allow_agent_approval=True)
    plan_id = json.loads(await mcp_server.plan_create("Make A", STEPS))["id"]

    approved = json.loads(await mcp_server.plan_approve_all(plan_id))
    assert approved["status"] == "approved"

    result = json.loads(await mcp_server.plan_execute(plan_id))
    assert result["status"] == "completed"
    assert [o["success"] for o in result["outcomes"]] == [True, True]
    assert result["outcomes"][1]["data"] == "# A\n"
    assert (vault / "a.md").read_text() == "# A\n"

    trail = json.loads(await mcp_server.plan_audit(plan_id))
    assert [e["command_id"] for e in trail] == ["file.write", "file.read"]

    deleted = json.loads(await mcp_server.plan_delete(plan_id))
    assert deleted == {"plan_id": plan_id, "deleted": True}


@pytest.mark.asyncio
async def test_human_approval_then_agent_execution(vault):
    executor = install(vault)
    plan_id = json.loads(await mcp_server.plan_create("Make A", STEPS))["id"]
    write_step, read_step = executor.get_plan(plan_id).steps

    # Approved out of band (e.g. by the CLI)
    executor.approve_step(plan_id, write_step.id)
    rejected = json.loads(await mcp_server.plan_reject_step(plan_id, read_step.id, "Not needed"))
    assert rejected["status"] == "rejected"
    assert rejected["error"] == "Not needed"

    outcome = json.loads(await mcp_server.plan_execute_step(plan_id, write_step.id))
    assert outcome["success"] is True
    assert (vault / "a.md").exists()


@pytest.mark.asyncio
async def test_reject_plan(vault):
    install(vault)
    plan_id = json.loads(await mcp_server.plan_create("Make A", STEPS))["id"]

    rejected = json.loads(await mcp_server.plan_reject(plan_id))
    assert rejected["status"] == "rejected"
    assert all(s["error"] == "Plan rejected" for s in rejected["steps"])

    assert "rejected" in json.loads(await mcp_server.plan_execute(plan_id))["error"]
