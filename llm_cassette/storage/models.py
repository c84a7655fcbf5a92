"""
Data models for the storage layer.

Defines the persisted record shapes and the in-process usage event.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from llm_cassette.core.token_counter import TokenUsage


RECORD_VERSION = 1


def utc_now_iso() -> str:
    """ISO 8601 UTC timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class CallRecord:
    """Immutable snapshot of one LLM call's inputs and output.

    Written once on a miss satisfied by a real call; never mutated.
    """
    key: str
    provider: str
    model: str
    parameters: Dict[str, Any]
    inputs: Dict[str, Any]
    request_messages: List[Any]
    request_tools: List[Any]
    reply: Any
    usage: Optional[TokenUsage] = None
    version: int = RECORD_VERSION
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the on-disk record schema."""
        data: Dict[str, Any] = {
            "version": self.version,
            "created_at": self.created_at,
            "llm": {
                "provider": self.provider,
                "model": self.model,
                "parameters": dict(self.parameters),
            },
            "key": {
                "hash": self.key,
                "inputs": self.inputs,
            },
            "request": {
                "messages": self.request_messages,
                "tools": self.request_tools,
            },
            "response": {"aiMessage": self.reply},
        }
        if self.usage is not None:
            data["usage"] = self.usage.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CallRecord":
        """Parse a stored record, tolerating missing optional sections."""
        llm = data.get("llm") or {}
        key = data.get("key") or {}
        request = data.get("request") or {}
        response = data.get("response") or {}
        return cls(
            key=key.get("hash", ""),
            provider=llm.get("provider", ""),
            model=llm.get("model", ""),
            parameters=dict(llm.get("parameters") or {}),
            inputs=dict(key.get("inputs") or {}),
            request_messages=list(request.get("messages") or []),
            request_tools=list(request.get("tools") or []),
            reply=response.get("aiMessage"),
            usage=TokenUsage.from_mapping(data.get("usage")),
            version=int(data.get("version", RECORD_VERSION)),
            created_at=data.get("created_at", "")
        )


@dataclass(frozen=True)
class ToolRecord:
    """Immutable snapshot of one tool invocation, keyed by name + canonical args."""
    name: str
    args: Any
    result: Any
    version: int = RECORD_VERSION
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "created_at": self.created_at,
            "name": self.name,
            "args": self.args,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ToolRecord":
        return cls(
            name=data.get("name", ""),
            args=data.get("args"),
            result=data.get("result"),
            version=int(data.get("version", RECORD_VERSION)),
            created_at=data.get("created_at", "")
        )


@dataclass(frozen=True)
class IndexEntry:
    """Advisory listing entry; never consulted for correctness."""
    hash: str
    file: str
    model: str
    created_at: str
    total_tokens: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "file": self.file,
            "model": self.model,
            "created_at": self.created_at,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IndexEntry":
        return cls(
            hash=str(data.get("hash") or ""),
            file=str(data.get("file") or ""),
            model=str(data.get("model") or ""),
            created_at=str(data.get("created_at") or ""),
            total_tokens=int(data.get("total_tokens") or 0)
        )


@dataclass(frozen=True)
class UsageEvent:
    """Usage of one dispatched call, held only in the in-process ledger.

    cost_usd is None when the model has no pricing.
    """
    mode: str
    key: str
    model: str
    usage: Optional[TokenUsage]
    cost_usd: Optional[float]
    saved_usd: float
    saved_tokens: int
    at: datetime
