"""
Workspace commands for Agent Planner.

WHAT THIS FILE DOES:
-------------------
Performs the real file operations behind the default tool catalogue, inside
one sandboxed directory (the vault). Each public coroutine here becomes a
command in the CommandRegistry:

    file.read            read a note
    file.write           write (create or replace) a note
    file.new             create a note that must not exist yet
    file.rename          move a note
    file.delete          delete a note
    search.query         search note names and contents
    vault.create         create a sub-vault with vault.json metadata
    vault.open           read a sub-vault's metadata
    workspace.template   create a note from a template
    workspace.dailyNote  open or create today's daily note

WHY SANDBOXING MATTERS:
----------------------
Steps come from an agent. Without sandboxing an approved step could still
write anywhere on the system, so every path is resolved against the vault
root and rejected if it escapes it.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from commands import Command, CommandRegistry

logger = logging.getLogger(__name__)


class WorkspaceCommands:
    """
    File operations restricted to a vault directory.

    Usage:
        workspace = WorkspaceCommands(Path("./vault"))
        workspace.register_commands(registry)
        await registry.execute("file.write", "agent", "notes/a.md", "# A")
    """

    VAULT_METADATA = "vault.json"
    DAILY_DIR = "Daily"
    MAX_SEARCH_RESULTS = 50
    SKIP_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".pdf", ".zip"}

    def __init__(self, root: Path):
        """
        Args:
            root: All file operations are restricted to this directory
        """
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve_path(self, path: str) -> Path:
        """
        Resolve a path within the vault, preventing directory traversal.

        Raises:
            ValueError: If path attempts to escape the vault
        """
        # Remove leading slashes to treat as relative
        path = path.lstrip("/")

        full_path = (self.root / path).resolve()

        try:
            full_path.relative_to(self.root)
        except ValueError:
            raise ValueError(f"Path '{path}' attempts to escape workspace")

        return full_path

    def _relative(self, full_path: Path) -> str:
        return full_path.relative_to(self.root).as_posix()

    # =========================================================================
    # FILE COMMANDS
    # =========================================================================

    async def read_file(self, path: str) -> str:
        """
        Read a note.

        Raises:
            FileNotFoundError: If the note doesn't exist
        """
        full_path = self._resolve_path(path)
        if not full_path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return full_path.read_text()

    async def write_file(self, path: str, content: str) -> str:
        """Write a note, creating parent directories. Returns a confirmation."""
        full_path = self._resolve_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content)
        return f"Successfully wrote {len(content)} characters to {self._relative(full_path)}"

    async def create_file(self, path: str, content: str = "") -> str:
        """
        Create a new note.

        Raises:
            FileExistsError: If something already exists at path
        """
        full_path = self._resolve_path(path)
        if full_path.exists():
            raise FileExistsError(f"File already exists: {path}")
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content)
        return self._relative(full_path)

    async def rename_file(self, old_path: str, new_path: str) -> str:
        source = self._resolve_path(old_path)
        target = self._resolve_path(new_path)
        if not source.is_file():
            raise FileNotFoundError(f"File not found: {old_path}")
        if target.exists():
            raise FileExistsError(f"File already exists: {new_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        source.rename(target)
        return self._relative(target)

    async def delete_file(self, path: str) -> str:
        full_path = self._resolve_path(path)
        if not full_path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        full_path.unlink()
        return f"Deleted {self._relative(full_path)}"

    # =========================================================================
    # SEARCH
    # =========================================================================

    def list_files(self, pattern: str = "*") -> list[str]:
        """List files in the vault matching a glob pattern, sorted."""
        return sorted(
            self._relative(p) for p in self.root.rglob(pattern)
            if p.is_file() and p.name != self.VAULT_METADATA
        )

    async def search(self, query: str) -> list[str]:
        """
        Search note names and contents, case-insensitively.

        Returns:
            Up to MAX_SEARCH_RESULTS hits: "path" for name matches,
            "path:line: text" for content matches
        """
        needle = query.lower()
        results = []

        for rel_path in self.list_files():
            if Path(rel_path).suffix.lower() in self.SKIP_EXTENSIONS:
                continue

            if needle in Path(rel_path).name.lower():
                results.append(rel_path)

            try:
                content = (self.root / rel_path).read_text()
            except (UnicodeDecodeError, PermissionError):
                continue

            for i, line in enumerate(content.split("\n"), 1):
                if needle in line.lower():
                    results.append(f"{rel_path}:{i}: {line.strip()}")

        return results[:self.MAX_SEARCH_RESULTS]

    # =========================================================================
    # VAULTS
    # =========================================================================

    async def create_vault(self, path: str, name: str) -> dict:
        """
        Create a vault directory with a vault.json metadata file.

        Raises:
            FileExistsError: If the directory already holds a vault
        """
        vault_path = self._resolve_path(path)
        metadata_path = vault_path / self.VAULT_METADATA
        if metadata_path.exists():
            raise FileExistsError(f"Vault already exists: {path}")

        vault_path.mkdir(parents=True, exist_ok=True)
        metadata = {
            "name": name,
            "path": self._relative(vault_path),
            "created_at": datetime.now().isoformat(),
        }
        with open(metadata_path, "w") as f:
            json.dump(metadata, f, indent=2)
        return metadata

    async def open_vault(self, path: str) -> dict:
        """
        Read a vault's metadata.

        Raises:
            FileNotFoundError: If path is not a vault
        """
        metadata_path = self._resolve_path(path) / self.VAULT_METADATA
        if not metadata_path.is_file():
            raise FileNotFoundError(f"Not a vault: {path}")
        with open(metadata_path, "r") as f:
            return json.load(f)

    # =========================================================================
    # TEMPLATES AND DAILY NOTES
    # =========================================================================

    async def insert_template(self, template_path: str, file_name: Optional[str] = None) -> str:
        """
        Create a new note from a template.

        {{date}} and {{title}} in the template are substituted.

        Returns:
            Relative path of the created note
        """
        template = await self.read_file(template_path)
        target = file_name or Path(template_path).name
        if not Path(target).suffix:
            target += ".md"

        content = (
            template
            .replace("{{date}}", datetime.now().strftime("%Y-%m-%d"))
            .replace("{{title}}", Path(target).stem)
        )
        return await self.create_file(target, content)

    async def open_daily_note(self) -> str:
        """Open today's daily note, creating it if needed. Returns its path."""
        today = datetime.now().strftime("%Y-%m-%d")
        path = f"{self.DAILY_DIR}/{today}.md"
        full_path = self._resolve_path(path)
        if not full_path.exists():
            logger.info(f"Creating daily note {path}")
            await self.create_file(path, f"# {today}\n")
        return path

    # =========================================================================
    # REGISTRATION AND DISPLAY
    # =========================================================================

    def register_commands(self, registry: CommandRegistry) -> None:
        """Install every workspace command into a registry."""
        commands = [
            Command("file.read", "Read File", self.read_file, category="file"),
            Command("file.write", "Write File", self.write_file, category="file"),
            Command("file.new", "New File", self.create_file, category="file"),
            Command("file.rename", "Rename File", self.rename_file, category="file"),
            Command("file.delete", "Delete File", self.delete_file, category="file"),
            Command("search.query", "Search", self.search, category="search"),
            Command("vault.create", "Create Vault", self.create_vault, category="vault"),
            Command("vault.open", "Open Vault", self.open_vault, category="vault"),
            Command("workspace.template", "Insert Template", self.insert_template, category="workspace"),
            Command("workspace.dailyNote", "Daily Note", self.open_daily_note, category="workspace"),
        ]
        for command in commands:
            registry.register(command)
