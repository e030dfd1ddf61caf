"""
Command Registry for Agent Planner.

WHAT THIS FILE DOES:
-------------------
This is the COMMAND DISPATCHER the executor runs steps against. UI actions,
plugins and agents all go through the same registry, so every mutation of
the vault passes one choke point that:

1. Looks the command up by ID (e.g. "file.write")
2. Runs its callback (sync or async) with positional arguments
3. Records the call in the AuditLog, tagged with source and transaction id
4. Notifies command-executed listeners

Callback exceptions are re-raised to the caller after being recorded; it is
the plan executor's job to turn them into failed step outcomes.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from audit import AuditLog
from errors import CommandAlreadyRegisteredError, CommandNotFoundError
from events import EventBus, Subscription
from schemas import AuditEvent, CommandExecutedEvent, CommandSource

logger = logging.getLogger(__name__)


# =============================================================================
# SECTION 1: DISPATCHER CONTRACT
# =============================================================================

class CommandDispatcher(Protocol):
    """What the plan executor needs from a dispatcher."""

    async def execute(
        self,
        command_id: str,
        source: CommandSource = "ui",
        *args: Any,
        transaction_id: Optional[str] = None
    ) -> Any:
        ...


@dataclass
class Command:
    """A named, invocable action."""
    id: str
    name: str
    callback: Callable[..., Any]
    category: Optional[str] = None
    description: Optional[str] = None
    audit: bool = True
    hotkeys: list[str] = field(default_factory=list)


# =============================================================================
# SECTION 2: COMMAND REGISTRY
# =============================================================================

class CommandRegistry:
    """
    Registry and dispatcher for commands.

    Example usage:
        registry = CommandRegistry(audit_log=AuditLog())
        registry.register(Command(id="file.read", name="Read File", callback=read))

        content = await registry.execute("file.read", "agent", "notes/a.md")
    """

    def __init__(self, audit_log: Optional[AuditLog] = None):
        self._commands: dict[str, Command] = {}
        self._listeners: EventBus[CommandExecutedEvent] = EventBus("commands")
        self.audit_log = audit_log

    def register(self, command: Command) -> None:
        """
        Register a command.

        Raises:
            CommandAlreadyRegisteredError: If the ID is taken
        """
        if command.id in self._commands:
            raise CommandAlreadyRegisteredError(command.id)
        self._commands[command.id] = command

    def unregister(self, command_id: str) -> bool:
        """Remove a command. Returns True if it existed."""
        return self._commands.pop(command_id, None) is not None

    def get(self, command_id: str) -> Optional[Command]:
        return self._commands.get(command_id)

    def has(self, command_id: str) -> bool:
        return command_id in self._commands

    def list_commands(self) -> list[Command]:
        return list(self._commands.values())

    def get_by_category(self, category: str) -> list[Command]:
        return [c for c in self._commands.values() if c.category == category]

    def on_command_executed(self, listener: Callable[[CommandExecutedEvent], None]) -> Subscription:
        """Register a listener for command executions."""
        return self._listeners.subscribe(listener)

    async def execute(
        self,
        command_id: str,
        source: CommandSource = "ui",
        *args: Any,
        transaction_id: Optional[str] = None
    ) -> Any:
        """
        Execute a command by ID.

        Args:
            command_id: Command to run
            source: Who is asking ("ui", "plugin" or "agent")
            *args: Positional arguments for the command callback
            transaction_id: Plan transaction this call belongs to, for auditing

        Returns:
            Whatever the callback returns

        Raises:
            CommandNotFoundError: If no such command is registered
            Exception: Anything the callback raises
        """
        command = self._commands.get(command_id)

        if not command:
            error = CommandNotFoundError(command_id)
            self._record(command_id, source, False, str(error), transaction_id, args, audit=True)
            raise error

        success = True
        error_message = None
        try:
            result = command.callback(*args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            success = False
            error_message = str(e) or type(e).__name__
            logger.debug(f"Command {command_id} failed: {error_message}")
            raise
        finally:
            self._record(command_id, source, success, error_message, transaction_id, args, command.audit)

        return result

    def _record(
        self,
        command_id: str,
        source: CommandSource,
        success: bool,
        error: Optional[str],
        transaction_id: Optional[str],
        args: tuple,
        audit: bool
    ) -> None:
        self._listeners.emit(CommandExecutedEvent(
            command_id=command_id,
            source=source,
            success=success,
            transaction_id=transaction_id,
            args=list(args),
        ))

        if audit and self.audit_log is not None:
            self.audit_log.log(AuditEvent(
                command_id=command_id,
                source=source,
                success=success,
                error=error,
                transaction_id=transaction_id,
                metadata={"args": list(args)} if args else None,
            ))

    def get_stats(self) -> dict:
        """Counts of registered commands, overall and per category."""
        by_category: dict[str, int] = {}
        for command in self._commands.values():
            if command.category:
                by_category[command.category] = by_category.get(command.category, 0) + 1

        return {
            "total_commands": len(self._commands),
            "commands_by_category": by_category,
            "commands_with_hotkeys": sum(1 for c in self._commands.values() if c.hotkeys),
        }

    def __len__(self) -> int:
        return len(self._commands)
