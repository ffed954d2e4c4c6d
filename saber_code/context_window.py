"""Conversation context: loaded files, message history and recent changes.

Every collection is capped at insertion time. Overflow silently evicts the
oldest entry so new context can always be added.
"""

from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Tuple

from .tokenizer import TokenBudget

__all__ = ["ContextFile", "Message", "RecentChange", "ContextStore", "PromptFragment"]

ROLES = ("user", "assistant", "system")
HISTORY_WINDOW = 10
HISTORY_MESSAGE_CHARS = 500
MIN_TRUNCATED_SECTION = 100  # units left before a section is cut rather than dropped


@dataclass(frozen=True)
class ContextFile:
    path: str
    content: str


@dataclass(frozen=True)
class Message:
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class RecentChange:
    path: str
    operation: str = "modified"


@dataclass(frozen=True)
class PromptFragment:
    text: str
    used_units: int


class ContextStore:
    def __init__(self, budget: Optional[TokenBudget] = None, max_files: int = 20,
                 max_messages: int = 50, max_changes: int = 20,
                 max_context_units: int = 8000):
        self.budget = budget or TokenBudget()
        self.max_files = max_files
        self.max_messages = max_messages
        self.max_changes = max_changes
        self.max_context_units = max_context_units
        self._files: "OrderedDict[str, ContextFile]" = OrderedDict()
        self._messages: Deque[Message] = deque(maxlen=max_messages)
        self._changes: Deque[RecentChange] = deque(maxlen=max_changes)

    @classmethod
    def from_config(cls, config, budget: Optional[TokenBudget] = None) -> "ContextStore":
        return cls(
            budget=budget or TokenBudget(config.chars_per_token),
            max_files=config.max_files_in_context,
            max_messages=config.max_conversation_messages,
            max_changes=config.max_recent_changes,
            max_context_units=config.max_context_tokens,
        )

    # ── Mutation ──

    def add_file(self, path: str, content) -> "ContextStore":
        # Re-adding a path keeps its original insertion slot for eviction.
        text = content if isinstance(content, str) else str(content)
        self._files[path] = ContextFile(path=path, content=text)
        while len(self._files) > self.max_files:
            self._files.popitem(last=False)
        return self

    def add_message(self, role: str, content) -> "ContextStore":
        if role not in ROLES:
            raise ValueError(f"Unknown message role: {role!r}")
        text = content if isinstance(content, str) else str(content)
        self._messages.append(Message(role=role, content=text))
        return self

    def add_change(self, path: str, operation: str = "modified") -> "ContextStore":
        self._changes.append(RecentChange(path=path, operation=operation or "modified"))
        return self

    def clear(self) -> "ContextStore":
        self._files.clear()
        self._messages.clear()
        self._changes.clear()
        return self

    def clear_files(self) -> "ContextStore":
        self._files.clear()
        return self

    # ── Snapshots ──

    def get_files(self) -> List[ContextFile]:
        return list(self._files.values())

    def get_messages(self) -> List[Message]:
        return list(self._messages)

    def get_changes(self) -> List[RecentChange]:
        return list(self._changes)

    # ── Prompt assembly ──

    def _sections(self) -> List[Tuple[str, str]]:
        sections = []
        if self._files:
            block = "\n\n".join(
                f"### File: {f.path}\n```\n{f.content}\n```" for f in self._files.values()
            )
            sections.append(("files", f"## Loaded files\n\n{block}"))
        if self._changes:
            block = "\n".join(f"- {c.path}: {c.operation}" for c in self._changes)
            sections.append(("changes", f"## Recent changes\n\n{block}"))
        if self._messages:
            recent = list(self._messages)[-HISTORY_WINDOW:]
            block = "\n\n".join(
                f"**{m.role}**: {m.content[:HISTORY_MESSAGE_CHARS]}"
                f"{'...' if len(m.content) > HISTORY_MESSAGE_CHARS else ''}"
                for m in recent
            )
            sections.append(("history", f"## Recent conversation\n\n{block}"))
        return sections

    def build_prompt(self, max_units: Optional[int] = None) -> PromptFragment:
        """Pack sections (files, changes, history) greedily within ``max_units``.

        A section that does not fit is truncated when more than
        MIN_TRUNCATED_SECTION units remain, otherwise dropped. Packing stops at
        the first section that does not fit whole.
        """
        limit = self.max_context_units if max_units is None else max(0, int(max_units))
        separator = "\n\n"
        sep_units = self.budget.estimate(separator)
        used: List[str] = []
        total = 0

        for _key, text in self._sections():
            overhead = sep_units if used else 0
            units = self.budget.estimate(text)
            if total + overhead + units <= limit:
                used.append(text)
                total += overhead + units
                continue
            remaining = limit - total - overhead
            if remaining > MIN_TRUNCATED_SECTION:
                cut = self.budget.truncate(text, remaining, keep_prefix=True)
                used.append(cut)
                total += overhead + self.budget.estimate(cut)
            break

        text = separator.join(used)
        # Per-section rounding makes ``total`` an upper bound of the joined estimate.
        return PromptFragment(text=text, used_units=self.budget.estimate(text))

    def token_count(self) -> int:
        fragment = self.build_prompt(max_units=10**12)
        return fragment.used_units
