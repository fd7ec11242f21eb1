"""
Build error taxonomy.

Every failure in the pipeline is fatal. Steps raise one of these
exceptions; the task graph stops scheduling new work on the first one
and the CLI surfaces its diagnostic verbatim.

    BuildError
    ├── ToolchainFailure     compiler / archiver / downstream tool exited non-zero
    ├── MissingSource        a declared source (or object) does not exist
    ├── SnapshotCorrupt      portable archive missing, truncated or tampered
    ├── NetworkUnavailable   registry unreachable during online resolution
    ├── ResolutionDrift      frozen build would need a different resolution lock
    ├── ModeError            command requires the other build mode
    ├── GraphError           task graph is not a valid DAG
    └── InternalFailure      a step crashed with an unexpected exception (e.g. disk full)
"""

from __future__ import annotations

from typing import Any


class BuildError(Exception):
    """Base class for all pipeline failures."""

    kind = "build_error"

    def __init__(self, message: str, *, step: str = "", diagnostic: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.step = step
        self.diagnostic = diagnostic

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "step": self.step,
            "diagnostic": self.diagnostic,
        }


class ToolchainFailure(BuildError):
    kind = "toolchain_failure"


class MissingSource(BuildError):
    kind = "missing_source"


class SnapshotCorrupt(BuildError):
    kind = "snapshot_corrupt"


class NetworkUnavailable(BuildError):
    kind = "network_unavailable"


class ResolutionDrift(BuildError):
    kind = "resolution_drift"


class ModeError(BuildError):
    kind = "mode_error"


class GraphError(BuildError):
    kind = "graph_error"


class InternalFailure(BuildError):
    kind = "internal_failure"
