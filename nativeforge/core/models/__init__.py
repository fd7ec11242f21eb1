"""
Domain models — Pydantic types for the build orchestrator.

All models are re-exported here for convenient access:

    from nativeforge.core.models import Project, BuildMode, Receipt, BuildState
"""

from nativeforge.core.models.action import Action, Receipt
from nativeforge.core.models.mode import ONLINE_ENV_VAR, BuildMode
from nativeforge.core.models.project import (
    Downstream,
    NativeModule,
    Project,
    SnapshotSettings,
    Toolchain,
)
from nativeforge.core.models.snapshot import SnapshotFile, SnapshotManifest
from nativeforge.core.models.state import BuildRecord, BuildState

__all__ = [
    # action.py
    "Action",
    "Receipt",
    # mode.py
    "BuildMode",
    "ONLINE_ENV_VAR",
    # project.py
    "Downstream",
    "NativeModule",
    "Project",
    "SnapshotSettings",
    "Toolchain",
    # snapshot.py
    "SnapshotFile",
    "SnapshotManifest",
    # state.py
    "BuildRecord",
    "BuildState",
]
