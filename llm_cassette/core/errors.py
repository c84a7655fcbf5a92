"""
Error types raised by the cassette engine.

Replay misses carry enough context to tell "never recorded" apart from
other failures and to print remediation steps.
"""

from pathlib import Path
from typing import Optional, Union


class CassetteError(Exception):
    """Base exception for all cassette errors."""


class ReplayMiss(CassetteError):
    """Raised when replay mode finds no record and the miss policy is error."""

    def __init__(
        self,
        key: str,
        cassette_path: Union[str, Path],
        cassette_dir: Union[str, Path],
        mode: str,
        hint: Optional[str] = None
    ):
        self.key = key
        self.cassette_path = str(cassette_path)
        self.cassette_dir = str(cassette_dir)
        self.mode = mode
        self.hint = hint or "Tip: record it first with CASSETTE_MODE=record, then replay."
        message = (
            "Cassette replay file not found.\n"
            "\n"
            f"  mode          : {self.mode}\n"
            f"  key           : {self.key}\n"
            f"  expected file : {self.cassette_path}\n"
            f"  cassette dir  : {self.cassette_dir}\n"
            "\n"
            f"{self.hint}\n"
        )
        super().__init__(message)


class ToolReplayMiss(CassetteError):
    """Raised when a tool call has no record and the tool miss policy is error."""

    def __init__(self, tool: str, key: str, cassette_path: Union[str, Path]):
        self.tool = tool
        self.key = key
        self.cassette_path = str(cassette_path)
        super().__init__(f"Tool replay miss for {tool}. Expected {self.cassette_path}")


class StoreIOError(CassetteError):
    """Unexpected filesystem failure while reading or writing a record."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Cassette store I/O failure at {self.path}: {reason}")


class UnknownMode(CassetteError, ValueError):
    """Raised at dispatch when the configured mode is not recognized."""

    def __init__(self, mode: object):
        self.mode = mode
        super().__init__(f"Unknown CASSETTE_MODE={mode}")


class UnknownMissPolicy(CassetteError, ValueError):
    """Raised when a miss policy value is not recognized."""

    def __init__(self, policy: object):
        self.policy = policy
        super().__init__(f"Unknown replay miss policy: {policy}")


class MissingToolHandler(CassetteError):
    """A requested tool has no registered executor.

    Never raised by batch tool execution; carried in the result entry instead.
    """

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__("No handler registered")
