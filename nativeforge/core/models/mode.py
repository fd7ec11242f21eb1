"""
Build mode — online (live registry) or offline (frozen snapshot).

The mode is resolved exactly once, at process start, and passed to the
dispatcher as a value. Steps receive it through the BuildContext and
never consult the environment themselves.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import Enum

# Environment signal selecting online mode
ONLINE_ENV_VAR = "ONLINE"

_TRUTHY = frozenset({"1", "true", "yes", "on"})


class BuildMode(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"

    @property
    def frozen(self) -> bool:
        """Offline builds forbid any change to the resolution lock."""
        return self is BuildMode.OFFLINE

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BuildMode:
        """Offline unless ONLINE is set to a truthy value."""
        env = os.environ if environ is None else environ
        value = env.get(ONLINE_ENV_VAR, "").strip().lower()
        return cls.ONLINE if value in _TRUTHY else cls.OFFLINE

    @classmethod
    def resolve(cls, explicit: str | None, environ: Mapping[str, str] | None = None) -> BuildMode:
        """An explicit choice (CLI flag) wins over the environment."""
        if explicit:
            return cls(explicit.lower())
        return cls.from_env(environ)
