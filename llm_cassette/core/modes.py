"""
Dispatch modes and replay miss policies.
"""

from enum import Enum
from typing import Union

from .errors import UnknownMissPolicy, UnknownMode


class CassetteMode(Enum):
    """How an engine treats every call it dispatches."""
    LIVE = "live"      # Call the provider, never persist
    RECORD = "record"  # Always call the provider and persist
    REPLAY = "replay"  # Serve from the store, apply miss policy otherwise
    AUTO = "auto"      # Serve from the store, record on miss

    @classmethod
    def parse(cls, value: Union["CassetteMode", str, None]) -> "CassetteMode":
        """Resolve a mode from an enum member or a case-insensitive string.

        Raises:
            UnknownMode: If the value names no mode
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise UnknownMode(value)

    @property
    def reads_store(self) -> bool:
        return self in (CassetteMode.REPLAY, CassetteMode.AUTO)


class MissPolicy(Enum):
    """What strict replay does when no record exists."""
    ERROR = "error"
    LIVE = "live"
    MOCK = "mock"

    @classmethod
    def parse(cls, value: Union["MissPolicy", str, None]) -> "MissPolicy":
        """Resolve a policy from an enum member or a case-insensitive string.

        Raises:
            UnknownMissPolicy: If the value names no policy
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        valid = [policy.value for policy in cls]
        raise UnknownMissPolicy(f"{value!r} (must be one of: {valid})")
