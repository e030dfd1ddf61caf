"""
Tests for the command registry, the audit log and the event bus.

Test list:
1. test_register_and_execute - Sync and async callbacks run with positional args
2. test_failures_are_audited_and_reraised - Errors reach the caller and the log
3. test_unknown_command - CommandNotFoundError, still audited
4. test_listeners - Command-executed events and unsubscribe
5. test_audit_queries - Ordering, filters, transactions, bounds
6. test_audit_export_import - JSON round trip and invalid input
7. test_event_bus - Token-based subscriptions and isolated handlers
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from audit import AuditLog
from commands import Command, CommandRegistry
from errors import CommandAlreadyRegisteredError, CommandNotFoundError
from events import EventBus
from schemas import AuditEvent


@pytest.fixture
def audit_log():
    return AuditLog()


@pytest.fixture
def registry(audit_log):
    registry = CommandRegistry(audit_log=audit_log)

    async def read(path):
        return f"content of {path}"

    def fail(path):
        raise PermissionError(f"read-only: {path}")

    registry.register(Command("file.read", "Read File", read, category="file"))
    registry.register(Command("file.lock", "Lock File", fail, category="file", hotkeys=["mod+l"]))
    registry.register(Command("ui.refresh", "Refresh", lambda: "refreshed", audit=False))
    return registry


# =============================================================================
# REGISTRY
# =============================================================================

@pytest.mark.asyncio
async def test_register_and_execute(registry, audit_log):
    """
    Test 1: Sync and async callbacks run with positional args.
    """
    result = await registry.execute("file.read", "agent", "a.md", transaction_id="txn-1-abc")
    assert result == "content of a.md"

    assert await registry.execute("ui.refresh") == "refreshed"

    events = audit_log.get_events()
    assert len(events) == 1
    assert events[0].command_id == "file.read"
    assert events[0].source == "agent"
    assert events[0].success is True
    assert events[0].transaction_id == "txn-1-abc"
    assert events[0].metadata == {"args": ["a.md"]}

    print("✓ Test 1 passed: Commands execute")


def test_registry_bookkeeping(registry):
    with pytest.raises(CommandAlreadyRegisteredError):
        registry.register(Command("file.read", "Again", lambda: None))

    assert registry.has("file.read")
    assert registry.get("file.read").name == "Read File"
    assert len(registry.get_by_category("file")) == 2
    assert len(registry.list_commands()) == len(registry) == 3

    stats = registry.get_stats()
    assert stats["total_commands"] == 3
    assert stats["commands_by_category"] == {"file": 2}
    assert stats["commands_with_hotkeys"] == 1

    assert registry.unregister("ui.refresh") is True
    assert registry.unregister("ui.refresh") is False
    assert not registry.has("ui.refresh")


@pytest.mark.asyncio
async def test_failures_are_audited_and_reraised(registry, audit_log):
    """
    Test 2: Errors reach the caller and the log.
    """
    with pytest.raises(PermissionError):
        await registry.execute("file.lock", "plugin", "a.md")

    failed = audit_log.get_failed_events()
    assert len(failed) == 1
    assert failed[0].source == "plugin"
    assert failed[0].error == "read-only: a.md"

    print("✓ Test 2 passed: Failures are audited")


@pytest.mark.asyncio
async def test_unknown_command(registry, audit_log):
    """
    Test 3: CommandNotFoundError, still audited.
    """
    with pytest.raises(CommandNotFoundError) as exc_info:
        await registry.execute("shell.run", "agent", "rm -rf /")

    assert str(exc_info.value) == 'Command "shell.run" not found'
    assert audit_log.get_events()[0].command_id == "shell.run"
    assert audit_log.get_events()[0].success is False

    print("✓ Test 3 passed: Unknown commands are refused")


@pytest.mark.asyncio
async def test_listeners(registry):
    """
    Test 4: Command-executed events and unsubscribe.
    """
    seen = []
    subscription = registry.on_command_executed(seen.append)

    await registry.execute("ui.refresh")
    with pytest.raises(PermissionError):
        await registry.execute("file.lock", "ui", "a.md")

    # Unaudited commands still notify listeners
    assert [(e.command_id, e.success) for e in seen] == [("ui.refresh", True), ("file.lock", False)]
    assert seen[1].args == ["a.md"]

    subscription()
    await registry.execute("ui.refresh")
    assert len(seen) == 2

    print("✓ Test 4 passed: Listeners are notified")


# =============================================================================
# AUDIT LOG
# =============================================================================

def make_event(command_id, source="agent", success=True, transaction_id=None):
    return AuditEvent(
        command_id=command_id,
        source=source,
        success=success,
        error=None if success else "failed",
        transaction_id=transaction_id,
    )


def test_audit_queries():
    """
    Test 5: Ordering, filters, transactions, bounds.
    """
    log = AuditLog(max_events=4)
    log.log(make_event("file.read", transaction_id="txn-a"))
    log.log(make_event("file.write", source="ui"))
    log.log(make_event("file.write", transaction_id="txn-a", success=False))
    log.log(make_event("search.query", source="plugin"))

    assert [e.command_id for e in log.get_events()] == [
        "search.query", "file.write", "file.write", "file.read"
    ]
    assert len(log.get_events(limit=2)) == 2
    assert len(log.get_events(command_id="file.write")) == 2
    assert [e.source for e in log.get_events_by_source("ui")] == ["ui"]
    assert len(log.get_failed_events()) == 1
    assert [e.command_id for e in log.get_events_by_transaction("txn-a")] == ["file.read", "file.write"]

    stats = log.get_stats()
    assert stats.total == 4
    assert stats.by_source == {"ui": 1, "plugin": 1, "agent": 2}
    assert stats.success_rate == 0.75
    assert stats.top_commands[0].command_id == "file.write"
    assert stats.top_commands[0].count == 2

    # Oldest event is dropped
    log.log(make_event("vault.open"))
    assert log.count() == 4
    assert log.get_events_by_transaction("txn-a")[0].command_id == "file.write"

    log.clear()
    assert len(log) == 0
    assert log.get_stats().success_rate == 0.0

    print("✓ Test 5 passed: Audit queries work")


def test_audit_export_import():
    """
    Test 6: JSON round trip and invalid input.
    """
    log = AuditLog()
    log.log(make_event("file.read", transaction_id="txn-1"))
    log.log(make_event("file.write", success=False))

    restored = AuditLog()
    restored.import_json(log.export_json())
    assert [e.command_id for e in restored.get_events()] == ["file.write", "file.read"]
    assert restored.get_events()[1].transaction_id == "txn-1"

    with pytest.raises(ValueError):
        restored.import_json('{"not": "a list"}')
    with pytest.raises(ValueError):
        restored.import_json("not json at all")

    print("✓ Test 6 passed: Audit export/import works")


# =============================================================================
# EVENT BUS
# =============================================================================

def test_event_bus():
    """
    Test 7: Token-based subscriptions and isolated handlers.

    Verifies:
    - Handlers run in registration order
    - The same callable subscribed twice is two subscriptions
    - A raising handler does not stop later ones
    - Unsubscribing twice is harmless
    """
    bus = EventBus("test")
    calls = []

    def record(event):
        calls.append(("record", event))

    def broken(event):
        raise ValueError("bug")

    first = bus.subscribe(record)
    bus.subscribe(broken)
    second = bus.subscribe(record)
    assert len(bus) == 3

    bus.emit(1)
    assert calls == [("record", 1), ("record", 1)]

    first.unsubscribe()
    first.unsubscribe()
    assert not first.active
    assert second.active

    bus.emit(2)
    assert calls[-1] == ("record", 2)
    assert len(calls) == 3

    bus.clear()
    bus.emit(3)
    assert len(calls) == 3

    print("✓ Test 7 passed: Event bus works")
