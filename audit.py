"""
Audit log of dispatched commands.

The command registry records every execute() call here: who asked (ui,
plugin or agent), whether it worked, and the transaction id of the plan that
issued it. get_events_by_transaction() replays one plan run in order.

The log is bounded; the oldest events are dropped first.
"""

from collections import Counter, deque
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from schemas import AuditEvent, AuditStats, CommandCount, CommandSource

_EVENT_LIST = TypeAdapter(list[AuditEvent])


class AuditLog:
    """Bounded, in-memory audit trail."""

    def __init__(self, max_events: int = 1000):
        self.max_events = max_events
        self._events: deque[AuditEvent] = deque(maxlen=max_events)

    def log(self, event: AuditEvent) -> None:
        self._events.append(event)

    def get_events(
        self,
        limit: Optional[int] = None,
        command_id: Optional[str] = None
    ) -> list[AuditEvent]:
        """
        Get events, most recent first.

        Args:
            limit: Maximum number of events to return
            command_id: Only return events for this command
        """
        events = [e for e in reversed(self._events) if command_id is None or e.command_id == command_id]
        return events[:limit] if limit else events

    def get_events_by_source(self, source: CommandSource, limit: Optional[int] = None) -> list[AuditEvent]:
        events = [e for e in reversed(self._events) if e.source == source]
        return events[:limit] if limit else events

    def get_failed_events(self, limit: Optional[int] = None) -> list[AuditEvent]:
        events = [e for e in reversed(self._events) if not e.success]
        return events[:limit] if limit else events

    def get_events_by_transaction(self, transaction_id: str) -> list[AuditEvent]:
        """All commands issued under one transaction, oldest first."""
        return [e for e in self._events if e.transaction_id == transaction_id]

    def clear(self) -> None:
        self._events.clear()

    def count(self) -> int:
        return len(self._events)

    def export_json(self) -> str:
        return _EVENT_LIST.dump_json(list(self._events), indent=2).decode()

    def import_json(self, data: str) -> None:
        """
        Replace the log with events from a JSON export.

        Raises:
            ValueError: If data is not a JSON list of audit events
        """
        try:
            events = _EVENT_LIST.validate_json(data)
        except ValidationError as e:
            raise ValueError(f"Invalid audit log JSON: {e}") from e
        self._events = deque(events, maxlen=self.max_events)

    def get_stats(self) -> AuditStats:
        stats = AuditStats(total=len(self._events))
        if not self._events:
            return stats

        counts = Counter(e.command_id for e in self._events)
        successes = 0
        for event in self._events:
            stats.by_source[event.source] = stats.by_source.get(event.source, 0) + 1
            if event.success:
                successes += 1

        stats.success_rate = successes / len(self._events)
        stats.top_commands = [
            CommandCount(command_id=command_id, count=count)
            for command_id, count in counts.most_common(10)
        ]
        return stats

    def __len__(self) -> int:
        return len(self._events)
