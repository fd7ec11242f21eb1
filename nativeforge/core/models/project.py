"""
Project model — what to build and with which tools.

Loaded from nativeforge.yml. Every field has a default matching the
conventional layout (a ``libraw/`` C module consumed by a Cargo crate),
so a project without a config file still builds.
"""

from __future__ import annotations

import shlex
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_CFLAGS = ["-g", "-Wall", "-Wextra", "-O2", "-fPIC", "-fno-strict-aliasing"]


def _split_command(value: Any) -> Any:
    """Accept a command as a shell-style string or an argv list."""
    if isinstance(value, str):
        return shlex.split(value)
    return value


class NativeModule(BaseModel):
    """A C source tree compiled into one static library.

    Layout beneath ``path``::

        src/*.c        sources
        include/       headers (passed as -I)
        build/         objects and the library
    """

    name: str
    path: str
    library: str = ""
    src_dir: str = "src"
    include_dir: str = "include"
    build_dir: str = "build"
    source_glob: str = "*.c"

    @property
    def library_name(self) -> str:
        if self.library:
            return self.library
        stem = self.name if self.name.startswith("lib") else f"lib{self.name}"
        return f"{stem}.a"


class Toolchain(BaseModel):
    """Compiler and archiver, invoked as black boxes."""

    cc: list[str] = Field(default_factory=lambda: ["gcc"])
    ar: list[str] = Field(default_factory=lambda: ["ar"])
    cflags: list[str] = Field(default_factory=lambda: list(DEFAULT_CFLAGS))
    arflags: str = "rcs"
    timeout: int = 600

    @field_validator("cc", "ar", "cflags", mode="before")
    @classmethod
    def split_commands(cls, value: Any) -> Any:
        return _split_command(value)


class Downstream(BaseModel):
    """The managed-language build tool that links the placed library."""

    output_dir: str = "target"
    search_dir: str = "target/debug/deps"
    binary: str | None = None          # None → [package].name from manifest_file
    binary_dir: str = "target/debug"
    manifest_file: str = "Cargo.toml"
    lock_file: str = "Cargo.lock"

    build_online: list[str] = Field(default_factory=lambda: ["cargo", "build"])
    build_offline: list[str] = Field(
        default_factory=lambda: ["cargo", "build", "--offline", "--frozen"]
    )
    offline_env: dict[str, str] = Field(
        default_factory=lambda: {"CARGO_NET_OFFLINE": "true"}
    )
    vendor: list[str] = Field(default_factory=lambda: ["cargo", "vendor", "{vendor_dir}"])
    timeout: int = 3600

    @field_validator("build_online", "build_offline", "vendor", mode="before")
    @classmethod
    def split_commands(cls, value: Any) -> Any:
        return _split_command(value)


class SnapshotSettings(BaseModel):
    """Where the dependency snapshot lives."""

    vendor_dir: str = "cargo_deps"
    archive: str = "common/cargo_deps.tar.gz"
    config_override: str = ".cargo/config.toml"
    registry_url: str | None = "https://index.crates.io/"
    probe_timeout: int = 5


class Project(BaseModel):
    """Root build configuration — loaded from nativeforge.yml."""

    version: int = 1
    name: str = ""

    staleness: Literal["mtime", "hash"] = "mtime"
    jobs: int = Field(default=0, ge=0)   # 0 → one worker per CPU

    native_modules: list[NativeModule] = Field(
        default_factory=lambda: [NativeModule(name="libraw", path="libraw")]
    )
    toolchain: Toolchain = Field(default_factory=Toolchain)
    downstream: Downstream = Field(default_factory=Downstream)
    snapshot: SnapshotSettings = Field(default_factory=SnapshotSettings)

    @model_validator(mode="after")
    def check_unique_modules(self) -> Project:
        names = [m.name for m in self.native_modules]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Duplicate native module names: {', '.join(dupes)}")
        libs = [m.library_name for m in self.native_modules]
        if len(set(libs)) != len(libs):
            raise ValueError("Native modules must produce distinct library names")
        return self

    def get_module(self, name: str) -> NativeModule | None:
        for mod in self.native_modules:
            if mod.name == name:
                return mod
        return None
