"""
Tests for the workspace commands behind the default tools.

Test list:
1. test_file_commands - write/read/create/rename/delete inside the vault
2. test_path_traversal_blocked - Paths cannot escape the vault
3. test_search - Case-insensitive name and content search
4. test_vaults - vault.create / vault.open
5. test_templates_and_daily_notes - Template substitution, daily notes
6. test_registered_commands - Every default tool has a command
"""

import shutil
import sys
import tempfile
from datetime import datetime
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from commands import CommandRegistry
from tools import create_default_catalogue
from workspace import WorkspaceCommands


@pytest.fixture
def temp_workspace():
    """Create a temporary vault directory."""
    workspace = tempfile.mkdtemp(prefix="planner_test_")
    yield Path(workspace)
    shutil.rmtree(workspace, ignore_errors=True)


@pytest.fixture
def workspace(temp_workspace):
    return WorkspaceCommands(temp_workspace)


@pytest.mark.asyncio
async def test_file_commands(workspace, temp_workspace):
    """
    Test 1: write/read/create/rename/delete inside the vault.
    """
    result = await workspace.write_file("notes/a.md", "# A")
    assert result == "Successfully wrote 3 characters to notes/a.md"
    assert await workspace.read_file("notes/a.md") == "# A"

    assert await workspace.create_file("b.md") == "b.md"
    assert (temp_workspace / "b.md").read_text() == ""
    with pytest.raises(FileExistsError):
        await workspace.create_file("b.md", "again")

    assert await workspace.rename_file("notes/a.md", "archive/a.md") == "archive/a.md"
    assert not (temp_workspace / "notes" / "a.md").exists()
    with pytest.raises(FileNotFoundError):
        await workspace.rename_file("notes/a.md", "c.md")

    await workspace.delete_file("archive/a.md")
    assert not (temp_workspace / "archive" / "a.md").exists()
    with pytest.raises(FileNotFoundError):
        await workspace.read_file("archive/a.md")
    with pytest.raises(FileNotFoundError):
        await workspace.delete_file("archive/a.md")

    assert workspace.list_files() == ["b.md"]

    print("✓ Test 1 passed: File commands work")


@pytest.mark.asyncio
async def test_path_traversal_blocked(workspace):
    """
    Test 2: Paths cannot escape the vault.
    """
    with pytest.raises(ValueError) as exc_info:
        await workspace.write_file("../../../etc/passwd", "malicious")
    assert "escape workspace" in str(exc_info.value)

    with pytest.raises(ValueError):
        await workspace.read_file("notes/../../outside.md")

    # Leading slashes are treated as vault-relative
    await workspace.write_file("/rooted.md", "ok")
    assert await workspace.read_file("rooted.md") == "ok"

    print("✓ Test 2 passed: Path traversal is blocked")


@pytest.mark.asyncio
async def test_search(workspace):
    """
    Test 3: Case-insensitive name and content search.
    """
    await workspace.write_file("Projects.md", "nothing here")
    await workspace.write_file("notes/todo.md", "# Todo\n- buy milk\n- Call PROJECTS team")

    results = await workspace.search("projects")

    assert "Projects.md" in results
    assert "notes/todo.md:3: - Call PROJECTS team" in results
    assert await workspace.search("absent") == []

    for i in range(60):
        await workspace.write_file(f"bulk/{i}.md", "needle")
    assert len(await workspace.search("needle")) == WorkspaceCommands.MAX_SEARCH_RESULTS

    print("✓ Test 3 passed: Search works")


@pytest.mark.asyncio
async def test_vaults(workspace, temp_workspace):
    """
    Test 4: vault.create / vault.open.
    """
    metadata = await workspace.create_vault("work", "Work Notes")
    assert metadata["name"] == "Work Notes"
    assert metadata["path"] == "work"
    assert (temp_workspace / "work" / "vault.json").exists()

    assert (await workspace.open_vault("work"))["name"] == "Work Notes"

    with pytest.raises(FileExistsError):
        await workspace.create_vault("work", "Again")
    with pytest.raises(FileNotFoundError):
        await workspace.open_vault("personal")

    # Metadata files are not listed as notes
    assert workspace.list_files() == []

    print("✓ Test 4 passed: Vaults work")


@pytest.mark.asyncio
async def test_templates_and_daily_notes(workspace, temp_workspace):
    """
    Test 5: Template substitution, daily notes.
    """
    today = datetime.now().strftime("%Y-%m-%d")
    await workspace.write_file("templates/meeting.md", "# {{title}}\nDate: {{date}}\n")

    created = await workspace.insert_template("templates/meeting.md", "standup")
    assert created == "standup.md"
    assert (temp_workspace / "standup.md").read_text() == f"# standup\nDate: {today}\n"

    # Default name is the template's
    assert await workspace.insert_template("templates/meeting.md") == "meeting.md"

    path = await workspace.open_daily_note()
    assert path == f"Daily/{today}.md"
    assert (temp_workspace / path).read_text() == f"# {today}\n"

    (temp_workspace / path).write_text("edited")
    assert await workspace.open_daily_note() == path
    assert (temp_workspace / path).read_text() == "edited"

    print("✓ Test 5 passed: Templates and daily notes work")


def test_registered_commands(workspace):
    """
    Test 6: Every default tool has a command.
    """
    registry = CommandRegistry()
    workspace.register_commands(registry)

    for tool in create_default_catalogue().list_tools():
        assert registry.has(tool.command_id), tool.command_id

    print("✓ Test 6 passed: All tool commands are registered")
