"""
LLM Cassette.

Record LLM and tool calls once, replay them deterministically.
"""

from .config.loader import CassetteConfig, config_from_env, load_cassette_config
from .core.canonical import UNSET, derive_call_key, derive_tool_key
from .core.engine import CassetteLLM, Dispatch, ReplayMissContext
from .core.errors import (
    CassetteError,
    MissingToolHandler,
    ReplayMiss,
    StoreIOError,
    ToolReplayMiss,
    UnknownMode,
)
from .core.ledger import UsageLedger
from .core.mock import MockLLM
from .core.modes import CassetteMode, MissPolicy
from .core.normalize import extract_assistant_text, extract_usage, normalize_reply
from .core.tool_cache import ToolCache, ToolMissContext, ToolResult

__version__ = "0.1.0"

__all__ = [
    "CassetteConfig",
    "CassetteError",
    "CassetteLLM",
    "CassetteMode",
    "Dispatch",
    "MissPolicy",
    "MissingToolHandler",
    "MockLLM",
    "ReplayMiss",
    "ReplayMissContext",
    "StoreIOError",
    "ToolCache",
    "ToolMissContext",
    "ToolReplayMiss",
    "ToolResult",
    "UNSET",
    "UnknownMode",
    "UsageLedger",
    "config_from_env",
    "derive_call_key",
    "derive_tool_key",
    "extract_assistant_text",
    "extract_usage",
    "load_cassette_config",
    "normalize_reply",
]
