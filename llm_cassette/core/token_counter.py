"""
Token usage value type.

Carries the three token counts a provider reports for a call.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class TokenUsage:
    """Token counts for one call.

    total_tokens defaults to prompt + completion when the provider
    does not report it.
    """
    prompt_tokens: int
    completion_tokens: int
    total_tokens: Optional[int] = None

    def __post_init__(self):
        """Fill in the derived total and reject negative counts."""
        if self.prompt_tokens < 0 or self.completion_tokens < 0:
            raise ValueError("token counts cannot be negative")
        if self.total_tokens is None:
            object.__setattr__(self, "total_tokens", self.prompt_tokens + self.completion_tokens)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> Optional["TokenUsage"]:
        """Build usage from a stored `{prompt_tokens, completion_tokens, total_tokens}` mapping."""
        if not data:
            return None
        prompt = int(data.get("prompt_tokens") or 0)
        completion = int(data.get("completion_tokens") or 0)
        total = data.get("total_tokens")
        return cls(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=int(total) if total is not None else None
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }
