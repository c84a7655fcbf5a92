"""
Record/replay dispatch engine for LLM calls.

Every call derives a content key from its canonical inputs, then the
engine's mode decides what happens:

1. replay/auto - read the store; a hit is returned without touching the provider
2. record, or auto after a miss - call the provider and persist the record
3. live - call the provider, persist nothing

Strict replay misses go through the miss policy in fixed precedence:
resolver callback, then `live`, then `mock`, then a ReplayMiss error.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .canonical import canonical_messages, canonical_options, canonical_tools, derive_call_key
from .errors import MissingToolHandler, ReplayMiss, UnknownMode
from .ledger import UsageLedger
from .mock import MockLLM
from .modes import CassetteMode, MissPolicy
from .normalize import extract_usage, get_field, get_tool_args, get_tool_name, normalize_reply, to_jsonable
from .pricing import DEFAULT_PRICING_TABLE
from .token_counter import TokenUsage
from .tool_cache import ToolCache, ToolResult, maybe_await
from llm_cassette.config.loader import CassetteConfig, config_from_env
from llm_cassette.storage.models import CallRecord, IndexEntry, utc_now_iso
from llm_cassette.storage.store import ContentStore

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "llm_cassette"

Redactor = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]
ToolHandler = Callable[[Dict[str, Any], Any], Any]


@dataclass(frozen=True)
class ReplayMissContext:
    """What a replay resolver callback gets on a strict replay miss."""
    key: str
    cassette_path: Path
    cassette_dir: Path
    mode: str
    messages: List[Any]
    model: str
    call_options: Dict[str, Any]


@dataclass(frozen=True)
class Dispatch:
    """Reply of one dispatched call and where it came from.

    source is "replay", "record", "live", "live_fallback", "mock" or
    "resolver"; only "replay" is a store hit and only "record" persisted.
    """
    reply: Any
    source: str
    key: str
    path: Path

    @property
    def hit(self) -> bool:
        return self.source == "replay"


def default_provider_factory(model_options: Mapping[str, Any]):
    """Build the OpenAI provider from model options."""
    # Imported here so replay and mock runs never construct an OpenAI client
    from llm_cassette.sdk.openai_client import OpenAIChatProvider

    options = dict(model_options)
    model = options.pop("model", None)
    return OpenAIChatProvider(model, **options)


class CassetteLLM:
    """Chat model wrapper that records calls once and replays them forever.

    The mode is fixed per instance; every call computes its own key.
    """

    def __init__(
        self,
        config: Optional[CassetteConfig] = None,
        provider: Any = None,
        ledger: Optional[UsageLedger] = None,
        redact: Optional[Redactor] = None,
        replay_resolver: Optional[Callable[[ReplayMissContext], Any]] = None,
        tool_resolver: Optional[Callable[..., Any]] = None,
        mock_factory: Optional[Callable[[], Any]] = None,
        provider_factory: Optional[Callable[[Mapping[str, Any]], Any]] = None
    ):
        """Initialize the engine.

        Args:
            config: Settings (defaults to CASSETTE_* environment variables)
            provider: Object with `async invoke(messages, call_options)`
            ledger: Usage ledger receiving one event per call
            redact: Hook run on each record right before it is written
            replay_resolver: Callback consulted first on a strict replay miss
            tool_resolver: Callback consulted first on a strict tool replay miss
            mock_factory: Builds the stand-in model for the `mock` miss policy
            provider_factory: Builds the provider lazily from model options

        `config.verbose` sets the shared `llm_cassette` logger to DEBUG for the
        whole process. The level is not restored, and a non-verbose engine
        never touches it; applications own logger levels otherwise.
        """
        self.config = config or config_from_env()
        self.cassette_dir = self.config.resolved_cassette_dir
        self.store = ContentStore(self.cassette_dir)
        self.model_options = dict(self.config.model_options)
        self.ledger = ledger or UsageLedger(pricing=self.config.pricing or DEFAULT_PRICING_TABLE)
        self.redact = redact
        self.replay_resolver = replay_resolver
        self.tool_cache = ToolCache(
            self.config.resolved_tool_dir,
            mode=self.config.resolved_tool_mode,
            on_miss=self.config.on_tool_replay_miss,
            resolver=tool_resolver
        )

        self._provider = provider
        self._provider_factory = provider_factory or default_provider_factory
        self._mock_factory = mock_factory or MockLLM
        self._tools: List[Any] = []
        self._tool_handlers: Dict[str, ToolHandler] = {}

        if self.config.verbose:
            logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG)
        logger.debug(
            "Cassette engine ready: dir=%s tool_dir=%s mode=%s tool_mode=%s",
            self.cassette_dir, self.tool_cache.directory,
            self.config.mode, self.config.resolved_tool_mode
        )

    @property
    def mode(self) -> CassetteMode:
        """Dispatch mode; an unknown value raises UnknownMode here."""
        return CassetteMode.parse(self.config.mode)

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def tools(self) -> List[Any]:
        return list(self._tools)

    @property
    def tool_handlers(self) -> Dict[str, ToolHandler]:
        return self._tool_handlers

    def bind_tools(
        self,
        schemas: Optional[Iterable[Any]] = None,
        handlers: Optional[Mapping[str, ToolHandler]] = None
    ) -> "CassetteLLM":
        """Expose tool schemas to the model and register their executors.

        The handler mapping is owned by this engine instance.
        """
        self._tools = list(schemas or [])
        self._tool_handlers = dict(handlers or {})
        if self._provider is not None and hasattr(self._provider, "bind_tools"):
            self._provider.bind_tools(self._tools)
        return self

    def call_key(self, messages: Iterable[Any], call_options: Optional[Mapping[str, Any]] = None) -> str:
        return derive_call_key(self.model, messages, self._tools, call_options)

    def cassette_path(self, messages: Iterable[Any], call_options: Optional[Mapping[str, Any]] = None) -> Path:
        """Where the record for this call lives (or would live)."""
        return self.store.path_for(self.call_key(messages, call_options))

    async def invoke(self, messages: Iterable[Any], call_options: Optional[Mapping[str, Any]] = None) -> Any:
        """Dispatch one call and return the assistant reply.

        Replayed replies come back normalized to `{role, content, tool_calls}`;
        live and recorded replies are returned as the provider produced them.

        Raises:
            UnknownMode: If the configured mode is not recognized
            ReplayMiss: Strict replay miss with the error policy
        """
        dispatch = await self.dispatch(messages, call_options)
        return dispatch.reply

    async def dispatch(self, messages: Iterable[Any], call_options: Optional[Mapping[str, Any]] = None) -> Dispatch:
        """Like invoke, but also reports the key, path and reply source."""
        mode = self.mode
        messages = list(messages or [])
        options = dict(call_options or {})
        key = self.call_key(messages, options)
        path = self.store.path_for(key)
        logger.debug("Dispatch mode=%s key=%s", mode.value, key)

        if mode.reads_store:
            stored = self.store.get(key)
            if stored is not None:
                return self._replay_hit(stored, key, path)
            if mode is CassetteMode.REPLAY:
                return await self._handle_replay_miss(mode, messages, options, key, path)
            logger.debug("Auto MISS key=%s, recording", key[:12])

        if mode in (CassetteMode.RECORD, CassetteMode.AUTO):
            return await self._run_record(messages, options, key, path)
        if mode is CassetteMode.LIVE:
            return await self._run_live(messages, options, key, path)
        raise UnknownMode(mode)

    def _replay_hit(self, stored: Dict[str, Any], key: str, path: Path) -> Dispatch:
        logger.debug("Replay HIT key=%s", key[:12])
        reply = normalize_reply(stored.get("response"))
        model = (stored.get("llm") or {}).get("model") or self.model
        self.ledger.on_call("replay", key, model, TokenUsage.from_mapping(stored.get("usage")))
        return Dispatch(reply=reply, source="replay", key=key, path=path)

    async def _run_live(self, messages: List[Any], options: Dict[str, Any], key: str, path: Path) -> Dispatch:
        logger.debug("Live -> provider (no record)")
        reply = await self._get_provider().invoke(messages, options)
        self.ledger.on_call("live", key, self.model, extract_usage(reply))
        return Dispatch(reply=reply, source="live", key=key, path=path)

    async def _run_record(self, messages: List[Any], options: Dict[str, Any], key: str, path: Path) -> Dispatch:
        logger.debug("Record -> provider, then save cassette")
        reply = await self._get_provider().invoke(messages, options)
        usage = extract_usage(reply)

        record = CallRecord(
            key=key,
            provider=self.config.provider,
            model=self.model,
            parameters=to_jsonable(self.model_options),
            inputs={
                "messages": canonical_messages(messages),
                "tools": canonical_tools(self._tools),
                "extras": {"callOptions": canonical_options(options)},
            },
            request_messages=to_jsonable(messages),
            request_tools=to_jsonable(self._tools),
            reply=to_jsonable(reply),
            usage=usage
        ).to_dict()
        record = self._apply_redaction(record)

        written = self.store.put(key, record)
        self._append_index(key, written, record)
        self.ledger.on_call("record", key, self.model, usage)
        logger.debug("Recorded -> %s", written)
        return Dispatch(reply=reply, source="record", key=key, path=written)

    def _apply_redaction(self, record: Dict[str, Any]) -> Dict[str, Any]:
        if self.redact is None:
            return record
        try:
            redacted = self.redact(record)
        except Exception:
            logger.warning("Redaction hook failed; writing the unredacted record", exc_info=True)
            return record
        if redacted is None:
            return record
        if not isinstance(redacted, Mapping):
            logger.warning(
                "Redaction hook returned %s, not a mapping; writing the unredacted record",
                type(redacted).__name__
            )
            return record
        return dict(redacted)

    def _append_index(self, key: str, written: Path, record: Mapping[str, Any]) -> None:
        usage = record.get("usage") or {}
        entry = IndexEntry(
            hash=key,
            file=str(written),
            model=self.model,
            created_at=str(record.get("created_at") or utc_now_iso()),
            total_tokens=int(usage.get("total_tokens") or 0)
        )
        try:
            self.store.append_index(entry)
        except Exception:
            logger.warning("Could not update cassette index in %s", self.cassette_dir, exc_info=True)

    async def _handle_replay_miss(
        self,
        mode: CassetteMode,
        messages: List[Any],
        options: Dict[str, Any],
        key: str,
        path: Path
    ) -> Dispatch:
        logger.debug("Replay MISS key=%s (expected %s)", key[:12], path)

        if self.replay_resolver is not None:
            context = ReplayMissContext(
                key=key,
                cassette_path=path,
                cassette_dir=self.cassette_dir,
                mode=mode.value,
                messages=messages,
                model=self.model,
                call_options=options
            )
            resolved = await maybe_await(self.replay_resolver(context))
            if resolved:
                self.ledger.on_call("mock", key, self.model, extract_usage(resolved))
                return Dispatch(reply=resolved, source="resolver", key=key, path=path)

        policy = self.config.on_replay_miss
        if policy is MissPolicy.LIVE:
            logger.warning("Replay MISS -> falling back to LIVE (network) due to on_replay_miss=live")
            reply = await self._get_provider().invoke(messages, options)
            self.ledger.on_call("live", key, self.model, extract_usage(reply))
            return Dispatch(reply=reply, source="live_fallback", key=key, path=path)

        if policy is MissPolicy.MOCK:
            logger.warning("Replay MISS -> returning MOCK due to on_replay_miss=mock")
            mock = self._mock_factory()
            if hasattr(mock, "bind_tools"):
                mock.bind_tools(self._tools)
            reply = await mock.invoke(messages, options)
            self.ledger.on_call("mock", key, "mock")
            return Dispatch(reply=reply, source="mock", key=key, path=path)

        hint = (
            "Record first, then replay:\n"
            f"  llm-cassette run record --dir {self.cassette_dir} -- python your_script.py\n"
            "Then:\n"
            f"  llm-cassette run replay --dir {self.cassette_dir} -- python your_script.py"
        )
        raise ReplayMiss(key=key, cassette_path=path, cassette_dir=self.cassette_dir,
                         mode=mode.value, hint=hint)

    def _get_provider(self):
        if self._provider is None:
            self._provider = self._provider_factory(self.model_options)
            if self._tools and hasattr(self._provider, "bind_tools"):
                self._provider.bind_tools(self._tools)
        return self._provider

    async def execute_tools(self, tool_calls: Optional[Iterable[Any]], ctx: Any = None) -> List[ToolResult]:
        """Run requested tool calls through the tool cache.

        Calls run concurrently; results come back in request order, one per
        call. A missing handler or a failing call becomes an error entry
        instead of aborting the batch.

        Raises:
            UnknownMode: If the tool mode is not recognized
        """
        calls = list(tool_calls or [])
        results = await asyncio.gather(*(self._execute_tool(call, ctx) for call in calls))
        return list(results)

    async def _execute_tool(self, tool_call: Any, ctx: Any) -> ToolResult:
        name = get_tool_name(tool_call)
        args = get_tool_args(tool_call)
        handler = self._tool_handlers.get(name) if name else None
        if handler is None:
            error = MissingToolHandler(name or "unknown")
            return ToolResult(tool=name or "unknown", args=args, error=str(error), exception=error)

        try:
            return await self.tool_cache.get_result(name, args, lambda: handler(args, ctx))
        except UnknownMode:
            raise
        except Exception as e:
            logger.warning("Tool call %s failed: %s", name, e)
            return ToolResult(tool=name, args=args, error=str(e), exception=e,
                              key=self.tool_cache.key_for(name, args))

    async def invoke_with_tools(
        self,
        messages: Iterable[Any],
        max_hops: int = 1,
        ctx: Any = None,
        call_options: Optional[Mapping[str, Any]] = None
    ) -> Tuple[Any, List[ToolResult]]:
        """Invoke, run requested tools, and feed results back, up to max_hops rounds.

        Returns:
            (final assistant reply, every tool result in execution order)
        """
        conversation = list(messages or [])
        reply = await self.invoke(conversation, call_options)
        all_results: List[ToolResult] = []

        for _ in range(max_hops):
            calls = normalize_reply(reply)["tool_calls"]
            if not calls:
                break

            results = await self.execute_tools(calls, ctx)
            all_results.extend(results)

            tool_messages = []
            for call, result in zip(calls, results):
                payload = result.result if result.ok else {"error": result.error}
                message = {"role": "tool", "content": json.dumps(payload, default=to_jsonable)}
                call_id = get_field(call, "id")
                if call_id:
                    message["tool_call_id"] = call_id
                tool_messages.append(message)

            conversation = conversation + [{"role": "assistant", "content": "", "tool_calls": calls}] + tool_messages
            reply = await self.invoke(conversation, call_options)

        return reply, all_results
