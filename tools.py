"""
Tool Catalogue for Agent Planner.

WHAT THIS FILE DOES:
-------------------
Agents do not call commands directly. They name a TOOL (e.g. "note_write")
and pass parameters. The catalogue knows, for every tool:

1. Which parameters it requires (validated when a plan is created)
2. Whether it is read-only (copied onto each step; drives the diff preview)
3. Which dispatcher command it maps to (e.g. "file.write")
4. How its parameters become the command's positional arguments

HOW IT WORKS:
------------
    StepRequest(tool_id="note_write", params={"path": ..., "content": ...})
           │
           ▼
    ToolCatalogue.validate_input()   -> missing / mistyped parameters
           │
           ▼
    ToolCatalogue.resolve()          -> ("file.write", [path, content])
           │
           ▼
    CommandDispatcher.execute("file.write", "agent", path, content)
"""

from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, Field

from errors import ToolNotFoundError

ArgumentMapper = Callable[[dict], list]


# =============================================================================
# SECTION 1: TOOL SCHEMAS
# =============================================================================

class ToolParameter(BaseModel):
    """Schema for a single tool parameter."""
    name: str = Field(description="Parameter name")
    type: Literal["string", "integer", "number", "boolean", "object", "array"] = Field(
        description="Parameter type"
    )
    description: str = Field(description="What this parameter does")
    required: bool = Field(default=True, description="Whether this parameter is required")
    default: Optional[Any] = Field(default=None, description="Default value if not required")

    def accepts(self, value: Any) -> bool:
        """Whether value matches this parameter's JSON type."""
        return _TYPE_CHECKS[self.type](value)


class ToolDefinition(BaseModel):
    """
    Definition of an available tool.

    Example:
        ToolDefinition(
            id="note_read",
            name="Read Note",
            description="Read the content of a note file",
            parameters=[ToolParameter(name="path", type="string", description="...")],
            command_id="file.read",
            readonly=True,
            category="file"
        )
    """
    id: str = Field(description="Tool identifier, e.g. 'note_write'")
    name: str = Field(description="Human-readable name")
    description: str = Field(description="Description shown to agents")
    parameters: list[ToolParameter] = Field(default_factory=list)
    command_id: str = Field(description="Dispatcher command this tool maps to")
    readonly: bool = Field(default=False, description="True if the tool never mutates state")
    category: str = Field(default="general", description="Grouping for listings")

    def required_params(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]

    def map_arguments(self, params: dict) -> list:
        """
        Turn a params mapping into positional arguments.

        Arguments follow the declared parameter order. Missing optional
        parameters take their default; trailing ones with no default are
        dropped so the command sees its own defaults.
        """
        args = []
        supplied = []
        for param in self.parameters:
            if param.name in params:
                args.append(params[param.name])
                supplied.append(True)
            else:
                args.append(param.default)
                supplied.append(param.default is not None)

        while args and not supplied[-1]:
            args.pop()
            supplied.pop()
        return args


# JSON type checks used by validate_input
_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, list),
}


# =============================================================================
# SECTION 2: TOOL CATALOGUE
# =============================================================================

class ToolCatalogue:
    """
    Registry of the tools an agent may put in a plan.

    Example usage:
        catalogue = ToolCatalogue()
        catalogue.register(note_read_def)

        valid, errors = catalogue.validate_input("note_read", {"path": "a.md"})
        command_id, args = catalogue.resolve("note_read", {"path": "a.md"})
    """

    def __init__(self):
        self._tools: dict[str, ToolDefinition] = {}
        self._mappers: dict[str, ArgumentMapper] = {}

    def register(
        self,
        definition: ToolDefinition,
        argument_mapper: Optional[ArgumentMapper] = None
    ) -> None:
        """
        Register a tool.

        Args:
            definition: ToolDefinition describing the tool
            argument_mapper: Optional params -> args function, overriding
                             ToolDefinition.map_arguments
        """
        if definition.id in self._tools:
            raise ValueError(f'Tool "{definition.id}" already registered')
        self._tools[definition.id] = definition
        if argument_mapper:
            self._mappers[definition.id] = argument_mapper

    def get_tool(self, tool_id: str) -> Optional[ToolDefinition]:
        """Get a tool definition by ID."""
        return self._tools.get(tool_id)

    def has_tool(self, tool_id: str) -> bool:
        return tool_id in self._tools

    def list_tools(self) -> list[ToolDefinition]:
        """Get all registered tools."""
        return list(self._tools.values())

    def get_tools_by_category(self, category: str) -> list[ToolDefinition]:
        return [tool for tool in self._tools.values() if tool.category == category]

    def validate_input(self, tool_id: str, params: dict) -> tuple[bool, list[str]]:
        """
        Validate parameters against a tool's schema.

        Returns:
            (is_valid, errors) - errors is empty if valid
        """
        tool = self._tools.get(tool_id)
        if not tool:
            return False, [f'Tool "{tool_id}" not found']

        errors = []
        for param in tool.parameters:
            if param.name not in params:
                if param.required:
                    errors.append(f"Missing required parameter: {param.name}")
                continue

            if not param.accepts(params[param.name]):
                errors.append(f'Parameter "{param.name}" must be of type {param.type}')

        return len(errors) == 0, errors

    def resolve(self, tool_id: str, params: dict) -> tuple[str, list]:
        """
        Map a tool invocation to a dispatcher command and its arguments.

        Raises:
            ToolNotFoundError: If the tool is not registered
        """
        tool = self._tools.get(tool_id)
        if not tool:
            raise ToolNotFoundError(tool_id)

        mapper = self._mappers.get(tool_id, tool.map_arguments)
        return tool.command_id, list(mapper(params))

    def get_tools_prompt(self) -> str:
        """
        Generate a prompt describing all available tools for agents.

        Included in an agent's system prompt so it proposes valid steps.
        """
        lines = ["Available tools:\n"]

        for tool in self._tools.values():
            lines.append(f"## {tool.id}")
            lines.append(f"Description: {tool.description}")
            if not tool.readonly:
                lines.append("MUTATING: Requires user approval before it runs")
            lines.append("Parameters:")
            for param in tool.parameters:
                required = "(required)" if param.required else "(optional)"
                default = f" [default: {param.default!r}]" if param.default is not None else ""
                lines.append(f"  - {param.name} ({param.type}) {required}: {param.description}{default}")
            lines.append("")

        return "\n".join(lines)

    def to_openai_function(self, tool: ToolDefinition) -> dict:
        """Convert a tool to the OpenAI function-calling format."""
        properties = {}
        for param in tool.parameters:
            prop = {"type": param.type, "description": param.description}
            if param.default is not None:
                prop["default"] = param.default
            properties[param.name] = prop

        return {
            "type": "function",
            "function": {
                "name": tool.id,
                "description": tool.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": tool.required_params(),
                },
            },
        }

    def get_all_openai_functions(self) -> list[dict]:
        return [self.to_openai_function(tool) for tool in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)


# =============================================================================
# SECTION 3: DEFAULT TOOLS
# =============================================================================

def _path(description: str) -> ToolParameter:
    return ToolParameter(name="path", type="string", description=description)


DEFAULT_TOOLS = [
    # File operations
    ToolDefinition(
        id="note_read",
        name="Read Note",
        description="Read the content of a note file",
        parameters=[_path("Path to the note file")],
        command_id="file.read",
        readonly=True,
        category="file",
    ),
    ToolDefinition(
        id="note_write",
        name="Write Note",
        description="Write content to a note file, replacing what is there",
        parameters=[
            _path("Path to the note file"),
            ToolParameter(name="content", type="string", description="Content to write to the file"),
        ],
        command_id="file.write",
        category="file",
    ),
    ToolDefinition(
        id="note_create",
        name="Create Note",
        description="Create a new note file with content",
        parameters=[
            _path("Path where the note should be created"),
            ToolParameter(
                name="content", type="string", description="Initial content for the note",
                required=False, default=""
            ),
        ],
        command_id="file.new",
        category="file",
    ),
    ToolDefinition(
        id="note_rename",
        name="Rename Note",
        description="Rename or move a note file",
        parameters=[
            ToolParameter(name="oldPath", type="string", description="Current path of the note"),
            ToolParameter(name="newPath", type="string", description="New path for the note"),
        ],
        command_id="file.rename",
        category="file",
    ),
    ToolDefinition(
        id="note_delete",
        name="Delete Note",
        description="Delete a note file",
        parameters=[_path("Path to the note to delete")],
        command_id="file.delete",
        category="file",
    ),
    # Search
    ToolDefinition(
        id="search_query",
        name="Search Notes",
        description="Search for notes by content or title",
        parameters=[ToolParameter(name="query", type="string", description="Search query string")],
        command_id="search.query",
        readonly=True,
        category="search",
    ),
    # Vault operations
    ToolDefinition(
        id="vault_open",
        name="Open Vault",
        description="Open a vault by path and return its metadata",
        parameters=[_path("Path to the vault directory")],
        command_id="vault.open",
        readonly=True,
        category="vault",
    ),
    ToolDefinition(
        id="vault_create",
        name="Create Vault",
        description="Create a new vault",
        parameters=[
            _path("Path where the vault should be created"),
            ToolParameter(name="name", type="string", description="Name for the vault"),
        ],
        command_id="vault.create",
        category="vault",
    ),
    # Templates and daily notes
    ToolDefinition(
        id="template_insert",
        name="Insert Template",
        description="Create a new note from a template",
        parameters=[
            ToolParameter(name="templatePath", type="string", description="Path to the template file"),
            ToolParameter(
                name="fileName", type="string", required=False,
                description="File name for the new note (defaults to the template name)"
            ),
        ],
        command_id="workspace.template",
        category="template",
    ),
    ToolDefinition(
        id="daily_note_open",
        name="Open Daily Note",
        description="Open or create today's daily note",
        parameters=[],
        command_id="workspace.dailyNote",
        category="daily",
    ),
]


def create_default_catalogue() -> ToolCatalogue:
    """
    Create a catalogue with the standard note/vault tools.

    Every tool here is backed by a command in workspace.WorkspaceCommands.
    """
    catalogue = ToolCatalogue()
    for definition in DEFAULT_TOOLS:
        catalogue.register(definition.model_copy(deep=True))
    return catalogue
