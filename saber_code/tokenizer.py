"""Token budgeting with a fixed characters-per-token heuristic.

This is an approximation for sizing prompt fragments, not a tokenizer: local
model tokenizers vary, and ~4 characters per token is close enough for English
text and source code to keep assembled context inside the model's window.
"""

import math
from typing import Any, Iterable

__all__ = ["TokenBudget", "DEFAULT_CHARS_PER_TOKEN", "ELLIPSIS"]

DEFAULT_CHARS_PER_TOKEN = 4
ELLIPSIS = "..."


class TokenBudget:
    def __init__(self, chars_per_token: int = DEFAULT_CHARS_PER_TOKEN):
        if chars_per_token < 1:
            raise ValueError("chars_per_token must be >= 1")
        self.chars_per_token = chars_per_token

    def estimate(self, text: Any) -> int:
        """Estimated units for ``text``, rounded up. Non-text input counts as 0."""
        if not isinstance(text, str):
            return 0
        return math.ceil(len(text) / self.chars_per_token)

    def fits(self, text: Any, budget: int) -> bool:
        return self.estimate(text) <= budget

    def truncate(self, text: Any, max_units: int, keep_prefix: bool = True) -> str:
        """Cut ``text`` so it estimates to at most ``max_units``.

        An ellipsis marker is appended when the prefix is kept, prepended when
        the suffix is kept. Text that already fits is returned unchanged.
        """
        if not isinstance(text, str):
            return ""
        if max_units <= 0:
            return ""
        if self.fits(text, max_units):
            return text
        max_chars = max_units * self.chars_per_token - len(ELLIPSIS)
        if max_chars <= 0:
            return ELLIPSIS[: max_units * self.chars_per_token]
        if keep_prefix:
            return text[:max_chars] + ELLIPSIS
        return ELLIPSIS + text[-max_chars:]

    def total(self, items: Iterable[Any]) -> int:
        """Sum estimates over strings or objects/dicts carrying ``content``."""
        if items is None or isinstance(items, str):
            return 0
        count = 0
        for item in items:
            if isinstance(item, str):
                count += self.estimate(item)
            elif isinstance(item, dict):
                count += self.estimate(item.get("content"))
            else:
                count += self.estimate(getattr(item, "content", None))
        return count
