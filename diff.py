"""
Diff previews for proposed steps.

Before approving a write, the reviewer wants to see what it would change.
DiffGenerator reads the target's current content through the dispatcher's
read command (a side-read that does not touch the step or plan) and renders
a unified diff against the content the step would write.

    --- notes/a.md (current)
    +++ notes/a.md (new)
    @@ -1,2 +1,2 @@
     # A
    -old line
    +new line

Read-only steps have nothing to preview and get None.
"""

import difflib
import logging
from typing import Optional

from commands import CommandDispatcher
from schemas import CommandSource, ProposedStep
from tools import ToolCatalogue

logger = logging.getLogger(__name__)


class DiffGenerator:
    """Builds unified-diff previews for mutating steps."""

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        catalogue: Optional[ToolCatalogue] = None,
        read_command: str = "file.read",
        delete_command: str = "file.delete",
        source: CommandSource = "agent",
        context_lines: int = 3
    ):
        """
        Args:
            dispatcher: Used only for the side-read of current content
            catalogue: Tells which tools write content or delete; without
                       it the step's params and tool id are used instead
            read_command: Dispatcher command that reads a path
            delete_command: Command id that marks a tool as a delete
            source: Source tag for the side-read
            context_lines: Unchanged lines shown around each change
        """
        self.dispatcher = dispatcher
        self.catalogue = catalogue
        self.read_command = read_command
        self.delete_command = delete_command
        self.source = source
        self.context_lines = context_lines

    async def read_current(self, path: str) -> Optional[str]:
        """
        Current content of path, or None if it can't be read.

        A failed read means the step would create the target.
        """
        try:
            content = await self.dispatcher.execute(self.read_command, self.source, path)
        except Exception as e:
            logger.debug(f"No current content for {path}: {e}")
            return None
        return content if isinstance(content, str) else str(content)

    def render(self, path: str, current: str, new: str, new_label: Optional[str] = None) -> str:
        """Unified diff between current and new, labelled with the path."""
        header = [f"--- {path} (current)\n", f"+++ {new_label or path} (new)\n"]
        body = difflib.unified_diff(
            current.splitlines(keepends=True),
            new.splitlines(keepends=True),
            n=self.context_lines,
        )
        # Skip difflib's own ---/+++ lines
        lines = list(body)[2:]
        for i, line in enumerate(lines):
            if not line.endswith("\n"):
                lines[i] = line + "\n"
        return "".join(header + lines).rstrip("\n")

    async def generate(self, step: ProposedStep) -> Optional[str]:
        """
        Preview what a step would change.

        Returns:
            Diff text, or None for read-only steps and steps with no
            previewable target
        """
        if step.readonly:
            return None

        params = step.params

        if "oldPath" in params and "newPath" in params:
            old_path, new_path = params["oldPath"], params["newPath"]
            current = await self.read_current(old_path)
            diff = self.render(old_path, current or "", current or "", new_label=new_path)
            return f"{diff}\nrename {old_path} -> {new_path}"

        path = params.get("path")
        if not isinstance(path, str):
            return None

        tool = self.catalogue.get_tool(step.tool_id) if self.catalogue else None

        if tool:
            writes_content = any(p.name == "content" for p in tool.parameters)
            deletes = tool.command_id == self.delete_command
        else:
            writes_content = "content" in params
            deletes = step.tool_id.endswith("_delete")

        if writes_content:
            current = await self.read_current(path)
            new = params.get("content") or ""
            diff = self.render(path, current or "", str(new))
            if current is None:
                diff += f"\nnew file {path}"
            return diff

        if deletes:
            current = await self.read_current(path)
            diff = self.render(path, current or "", "")
            return f"{diff}\ndeleted {path}"

        return None
