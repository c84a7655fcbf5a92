"""
Content-addressed cache for tool invocations.

Same dispatch rules as LLM calls, keyed by tool name and canonical
arguments. Hits return the stored result verbatim; tool results are opaque
payloads, not conversational replies.
"""

import inspect
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

from .canonical import canonical_tool_args, derive_tool_key
from .errors import ToolReplayMiss
from .modes import CassetteMode, MissPolicy
from llm_cassette.storage.models import ToolRecord
from llm_cassette.storage.store import ContentStore

logger = logging.getLogger(__name__)

ToolExecutor = Callable[[], Union[Any, Awaitable[Any]]]
ToolResolver = Callable[["ToolMissContext"], Union[Any, Awaitable[Any]]]


@dataclass
class ToolResult:
    """Outcome of one requested tool call.

    Exactly one of result or error is meaningful; source is "replay",
    "record", "live", "mock", "resolver" or "error".
    """
    tool: str
    args: Any = None
    result: Any = None
    error: Optional[str] = None
    source: str = "error"
    key: Optional[str] = None
    path: Optional[Path] = None
    exception: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self):
        if self.error is not None:
            return {"tool": self.tool, "args": self.args, "error": self.error}
        return {"tool": self.tool, "args": self.args, "result": self.result}


@dataclass(frozen=True)
class ToolMissContext:
    """What a tool resolver callback gets on a strict replay miss."""
    tool: str
    args: Any
    key: str
    cassette_path: Path
    cassette_dir: Path
    mode: str


async def maybe_await(value: Any) -> Any:
    """Await value if it is awaitable; sync callbacks pass straight through."""
    if inspect.isawaitable(value):
        return await value
    return value


class ToolCache:
    """Record/replay store and dispatcher for tool side effects."""

    def __init__(
        self,
        directory: Union[str, Path],
        mode: Union[CassetteMode, str] = CassetteMode.AUTO,
        on_miss: Union[MissPolicy, str] = MissPolicy.LIVE,
        resolver: Optional[ToolResolver] = None
    ):
        self.store = ContentStore(directory)
        self._mode = mode
        self.on_miss = MissPolicy.parse(on_miss)
        self.resolver = resolver

    @property
    def directory(self) -> Path:
        return self.store.directory

    @property
    def mode(self) -> CassetteMode:
        """Dispatch mode; an unknown value raises UnknownMode here."""
        return CassetteMode.parse(self._mode)

    def key_for(self, name: str, args: Any) -> str:
        return derive_tool_key(name, args)

    async def get_result(self, name: str, args: Any, execute: ToolExecutor) -> ToolResult:
        """Resolve one tool call according to the mode and miss policy.

        Args:
            name: Tool name
            args: Decoded tool arguments
            execute: Zero-argument callable running the real tool (sync or async)

        Returns:
            ToolResult with the result and where it came from

        Raises:
            ToolReplayMiss: Strict replay miss with the error policy
            UnknownMode: If the configured mode is not recognized
        """
        mode = self.mode
        key = self.key_for(name, args)
        path = self.store.path_for(key)

        if mode.reads_store:
            stored = self.store.get(key)
            if stored is not None:
                logger.debug("Tool replay HIT %s -> %s", name, path)
                record = ToolRecord.from_dict(stored)
                return ToolResult(tool=name, args=args, result=record.result,
                                  source="replay", key=key, path=path)
            if mode is CassetteMode.REPLAY:
                return await self._handle_miss(name, args, execute, key, path)

        if mode is CassetteMode.LIVE:
            result = await maybe_await(execute())
            return ToolResult(tool=name, args=args, result=result, source="live", key=key, path=path)

        result = await maybe_await(execute())
        record = ToolRecord(name=name, args=canonical_tool_args(args), result=result)
        self.store.put(key, record.to_dict())
        logger.debug("Tool record %s -> %s", name, path)
        return ToolResult(tool=name, args=args, result=result, source="record", key=key, path=path)

    async def _handle_miss(self, name: str, args: Any, execute: ToolExecutor, key: str, path: Path) -> ToolResult:
        if self.resolver is not None:
            context = ToolMissContext(tool=name, args=args, key=key, cassette_path=path,
                                      cassette_dir=self.directory, mode=self.mode.value)
            resolved = await maybe_await(self.resolver(context))
            if resolved is not None:
                return ToolResult(tool=name, args=args, result=resolved, source="resolver", key=key, path=path)

        if self.on_miss is MissPolicy.LIVE:
            logger.warning("Tool replay MISS %s -> LIVE fallback", name)
            result = await maybe_await(execute())
            return ToolResult(tool=name, args=args, result=result, source="live", key=key, path=path)

        if self.on_miss is MissPolicy.MOCK:
            logger.warning("Tool replay MISS %s -> MOCK fallback", name)
            result = {"mock": True, "name": name, "args": args}
            return ToolResult(tool=name, args=args, result=result, source="mock", key=key, path=path)

        raise ToolReplayMiss(name, key, path)
