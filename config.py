"""
Configuration Management for Agent Planner.

WHAT THIS FILE DOES:
-------------------
Loads and validates configuration from YAML files with sensible defaults.
executor.create_executor() builds a ready-to-use executor from a Config.

CONFIG FILE LOCATION:
--------------------
Default: ~/.agent-planner/config.yaml

CONFIG FORMAT:
-------------
```yaml
workspace:
  base: "./vault"

executor:
  source: "agent"

diff:
  context_lines: 3

audit:
  enabled: true
  max_events: 1000

alerts:
  terminal: true
  macos_notification: false

logging:
  level: "INFO"

mcp:
  allow_agent_approval: false
```
"""

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


# =============================================================================
# CONFIGURATION DATA CLASSES
# =============================================================================

@dataclass
class WorkspaceConfig:
    """The vault directory that workspace commands are sandboxed to."""
    base: str = "./vault"

    @property
    def base_path(self) -> Path:
        """Get base path, expanding ~ if present."""
        return Path(self.base).expanduser()


@dataclass
class ExecutorConfig:
    """Plan executor settings."""
    source: str = "agent"  # "agent", "plugin" or "ui"


@dataclass
class DiffConfig:
    context_lines: int = 3


@dataclass
class AuditConfig:
    enabled: bool = True
    max_events: int = 1000


@dataclass
class AlertConfig:
    """Configuration for alerts and notifications."""
    terminal: bool = True
    macos_notification: bool = False


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class McpConfig:
    """
    MCP server settings.

    allow_agent_approval lets the connected agent approve its own steps.
    Leave it off to keep approval with a human.
    """
    allow_agent_approval: bool = False


@dataclass
class Config:
    """
    Complete configuration for Agent Planner.

    It can be loaded from a YAML file or created with defaults.
    """
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    diff: DiffConfig = field(default_factory=DiffConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    mcp: McpConfig = field(default_factory=McpConfig)

    def to_dict(self) -> dict:
        return {
            "workspace": {"base": self.workspace.base},
            "executor": {"source": self.executor.source},
            "diff": {"context_lines": self.diff.context_lines},
            "audit": {
                "enabled": self.audit.enabled,
                "max_events": self.audit.max_events,
            },
            "alerts": {
                "terminal": self.alerts.terminal,
                "macos_notification": self.alerts.macos_notification,
            },
            "logging": {"level": self.logging.level},
            "mcp": {"allow_agent_approval": self.mcp.allow_agent_approval},
        }


# =============================================================================
# DEFAULT CONFIGURATION
# =============================================================================

DEFAULT_PATHS = [
    Path.home() / ".agent-planner" / "config.yaml",
    Path("./planner.yaml"),
    Path("./planner.yml"),
]

VALID_SOURCES = ("ui", "plugin", "agent")


def get_default_config() -> Config:
    """Get the default configuration."""
    return Config()


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================

def _parse_config(data: dict) -> Config:
    """Parse a complete configuration from dict."""
    config = get_default_config()

    # Parse workspace (handle both "workspace" and "vault" keys)
    workspace_data = data.get("workspace") or data.get("vault", {})
    if workspace_data:
        config.workspace = WorkspaceConfig(base=workspace_data.get("base", "./vault"))

    if "executor" in data:
        source = data["executor"].get("source", "agent")
        if source not in VALID_SOURCES:
            raise ValueError(f"executor.source must be one of {VALID_SOURCES}, got {source!r}")
        config.executor = ExecutorConfig(source=source)

    if "diff" in data:
        config.diff = DiffConfig(context_lines=int(data["diff"].get("context_lines", 3)))

    if "audit" in data:
        audit_data = data["audit"]
        config.audit = AuditConfig(
            enabled=audit_data.get("enabled", True),
            max_events=int(audit_data.get("max_events", 1000)),
        )

    if "alerts" in data:
        alerts_data = data["alerts"]
        config.alerts = AlertConfig(
            terminal=alerts_data.get("terminal", True),
            macos_notification=alerts_data.get("macos_notification", False),
        )

    if "logging" in data:
        config.logging = LoggingConfig(level=str(data["logging"].get("level", "INFO")).upper())

    if "mcp" in data:
        config.mcp = McpConfig(
            allow_agent_approval=data["mcp"].get("allow_agent_approval", False)
        )

    return config


def load_config(path: Optional[Path] = None) -> Config:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to config file. If None, tries default locations:
              1. ~/.agent-planner/config.yaml
              2. ./planner.yaml
              3. ./planner.yml
              4. Falls back to defaults

    Returns:
        Loaded configuration (or defaults if file not found)
    """
    if path:
        path = Path(path).expanduser()
        if path.exists():
            return load_config_from_file(path)
        raise FileNotFoundError(f"Config file not found: {path}")

    default_path = get_config_path()
    if default_path:
        return load_config_from_file(default_path)

    return get_default_config()


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a specific file.

    Raises:
        FileNotFoundError: If file doesn't exist
        yaml.YAMLError: If YAML is invalid
    """
    path = Path(path).expanduser()

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    return _parse_config(data)


def save_config(config: Config, path: Path) -> None:
    """Save configuration to a YAML file."""
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)


def get_config_path() -> Optional[Path]:
    """
    Get the path to the active config file, if any exists.

    Returns:
        Path to config file or None if using defaults
    """
    for path in DEFAULT_PATHS:
        if path.exists():
            return path

    return None


# =============================================================================
# LOGGING
# =============================================================================

def setup_logging(config: Config, verbose: bool = False) -> None:
    """
    Configure logging to stderr.

    stdout stays clean: the MCP server speaks JSON-RPC over it and the
    CLI renders the plan there.
    """
    level = logging.DEBUG if verbose else getattr(logging, config.logging.level, logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr
    )
