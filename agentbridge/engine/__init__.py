"""agentbridge engine: session orchestration for an external agent CLI."""
from .models import (
    PLAN_MODE_TOOLS,
    PermissionMode,
    SessionFlags,
    SessionPhase,
    SessionRequest,
    ToolsSettings,
)
from .config import BridgeConfig
from .errors import BridgeError, SessionExitError, SessionSpawnError
from .events import (
    ClaudeComplete,
    ClaudeError,
    ClaudeOutput,
    ClaudeResponse,
    SessionAborted,
    SessionCreated,
    StreamEvent,
    event_to_dict,
)
from .registry import SessionRegistry

__all__ = [
    # Core orchestrator (lazy import)
    "SessionOrchestrator",
    # Models
    "PLAN_MODE_TOOLS",
    "PermissionMode",
    "SessionFlags",
    "SessionPhase",
    "SessionRequest",
    "ToolsSettings",
    # Config
    "BridgeConfig",
    "load_yaml_config",
    # Events
    "StreamEvent",
    "SessionCreated",
    "ClaudeResponse",
    "ClaudeOutput",
    "ClaudeError",
    "ClaudeComplete",
    "SessionAborted",
    "event_to_dict",
    # Registry
    "SessionRegistry",
    # Errors
    "BridgeError",
    "SessionExitError",
    "SessionSpawnError",
]


def __getattr__(name: str):
    if name == "SessionOrchestrator":
        from .orchestrator import SessionOrchestrator
        return SessionOrchestrator
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
