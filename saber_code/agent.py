"""Single-turn agent loop: context assembly, model call, history commit, tool dispatch."""

from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union

from .context_window import ContextStore
from .errors import FileAccessError
from .llm import ModelBackend, StreamChunk
from .logger import get_logger
from .tokenizer import TokenBudget
from .tools import ToolEnvironment, ToolRegistry, create_registry
from .tools.search import iter_files

_log = get_logger(__name__)

__all__ = ["Agent", "StreamingReply", "SYSTEM_PROMPT"]

SYSTEM_PROMPT = """\
You are saber-code, a coding assistant running inside the user's project directory.
You help users understand, modify and manage their codebase.

## Rules:
- All paths are relative to the project root.
- Never access files outside the project directory.
- When proposing an edit, quote the exact text to replace.
- Keep answers short and concrete; show code when it helps.
"""


class StreamingReply:
    """Lazy sequence of reply chunks.

    The complete reply is handed to ``on_complete`` only once the underlying
    stream is exhausted. Closing early (or a backend failure mid-stream)
    abandons the reply and nothing is recorded.
    """

    STREAMING = "streaming"
    COMMITTED = "committed"
    ABANDONED = "abandoned"

    def __init__(self, chunks: Iterable[StreamChunk], on_complete: Callable[[str], None]):
        self._chunks = iter(chunks)
        self._on_complete = on_complete
        self._parts: List[str] = []
        self._exhausted = False
        self.state = self.STREAMING

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        while self.state == self.STREAMING:
            if self._exhausted:
                self._commit()
                break
            try:
                record = next(self._chunks)
            except StopIteration:
                self._exhausted = True
                continue
            except Exception:
                self._abandon()
                raise
            if record.done:
                self._exhausted = True
            if record.chunk:
                self._parts.append(record.chunk)
                return record.chunk
        raise StopIteration

    def _commit(self) -> None:
        self.state = self.COMMITTED
        self._on_complete(self.text)

    def _abandon(self) -> None:
        self.state = self.ABANDONED
        close = getattr(self._chunks, "close", None)
        if close is not None:
            close()
        _log.info("Stream abandoned after %d chunk(s); reply not recorded", len(self._parts))

    def close(self) -> None:
        if self.state == self.STREAMING:
            self._abandon()

    def read(self) -> str:
        """Consume the rest of the stream and return the full text."""
        for _ in self:
            pass
        return self.text

    def __enter__(self) -> "StreamingReply":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class Agent:
    """Owns one ContextStore; not safe for concurrent callers."""

    def __init__(self, config, backend: Optional[ModelBackend] = None,
                 tools: Optional[ToolRegistry] = None,
                 context: Optional[ContextStore] = None,
                 budget: Optional[TokenBudget] = None):
        self.config = config
        self.budget = budget or TokenBudget(config.chars_per_token)
        self.backend = backend or ModelBackend(config)
        self.tools = tools or create_registry()
        self.context = context or ContextStore.from_config(config, budget=self.budget)
        self._environment = ToolEnvironment.for_root(config.root_path, configuration=config)

    @property
    def tool_environment(self) -> ToolEnvironment:
        return self._environment

    # ── Conversation ──

    def get_context_for_prompt(self, max_units: Optional[int] = None) -> str:
        if max_units is None:
            max_units = self.config.max_context_tokens // 2
        return self.context.build_prompt(max_units).text

    def _system_prompt(self) -> str:
        context = self.get_context_for_prompt()
        if not context:
            return SYSTEM_PROMPT
        return f"{SYSTEM_PROMPT}\n# Project context\n\n{context}"

    def chat(self, user_input: str, stream: bool = False,
             model: Optional[str] = None) -> Union[str, StreamingReply]:
        """Run one turn.

        Non-streaming returns the reply text, already recorded in history.
        Streaming returns a StreamingReply that records the reply on exhaustion.
        """
        history = [m.to_dict() for m in self.context.get_messages() if m.role != "system"]
        self.context.add_message("user", user_input)
        messages: List[Dict[str, Any]] = [{"role": "system", "content": self._system_prompt()}]
        messages.extend(history)
        messages.append({"role": "user", "content": user_input})

        if not stream:
            response = self.backend.generate(messages, model=model)
            self.context.add_message("assistant", response.content)
            return response.content

        return StreamingReply(
            self.backend.stream(messages, model=model),
            on_complete=lambda text: self.context.add_message("assistant", text),
        )

    # ── Context ──

    def add_file(self, path: str, content: Optional[str] = None) -> str:
        """Put a file in context, reading it from disk when ``content`` is omitted."""
        if content is None:
            content = self._environment.file_access.read(path)
        self.context.add_file(path, content)
        return path

    def load_files(self, patterns: Iterable[str]) -> List[str]:
        """Load files matching the glob patterns, up to the context file ceiling."""
        if isinstance(patterns, str):
            patterns = [patterns]
        access = self._environment.file_access
        loaded: List[str] = []
        for pattern in patterns:
            for fp in iter_files(self._environment.root_path, pattern):
                if len(loaded) >= self.config.max_files_in_context:
                    _log.info("File limit (%d) reached while loading", self.config.max_files_in_context)
                    return loaded
                rel = access.relative(fp)
                if rel in loaded:
                    continue
                try:
                    self.context.add_file(rel, access.read(rel))
                except FileAccessError as e:
                    _log.info("Skipping %s: %s", rel, e)
                    continue
                loaded.append(rel)
        return loaded

    def clear_context(self) -> None:
        self.context.clear()

    # ── Tools ──

    def run_tool(self, name: str, args: Optional[Dict[str, Any]] = None) -> Any:
        """Dispatch a tool call. Writes and edits are logged as recent changes."""
        result = self.tools.run(name, self._environment, args or {})
        if self.tools.writes(name) and isinstance(result, dict) and result.get("path"):
            self.context.add_change(result["path"], result.get("operation", "write"))
        return result
