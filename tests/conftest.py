"""
Shared test fixtures and configuration.

The C compiler, the archiver and the downstream build tool are replaced
by small Python scripts (run with the current interpreter) so the suite
needs neither gcc, ar nor cargo. Every fake appends one line per
invocation to ``tools/calls.log``.
"""

import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest
import yaml

FAKE_CC = textwrap.dedent('''\
    import sys
    from pathlib import Path

    args = sys.argv[1:]
    src = Path(args[args.index("-c") + 1])
    out = Path(args[args.index("-o") + 1])
    with Path(__file__).with_name("calls.log").open("a") as log:
        log.write(f"cc {src.as_posix()}\\n")

    text = src.read_text()
    if "#error" in text:
        out.write_bytes(b"partial")
        sys.stderr.write(f"{src.as_posix()}:1:2: error: #error directive\\n")
        sys.exit(1)

    flags = " ".join(a for a in args if a.startswith("-") and a not in ("-c", "-o"))
    out.write_text(f"OBJ {src.name}\\n{flags}\\n{text}")
''')

FAKE_AR = textwrap.dedent('''\
    import os
    import sys
    from pathlib import Path

    args = sys.argv[1:]
    out, members = Path(args[1]), [Path(m) for m in args[2:]]
    with Path(__file__).with_name("calls.log").open("a") as log:
        log.write("ar " + " ".join(m.name for m in members) + "\\n")

    if os.environ.get("FAKE_AR_CRASH"):
        out.write_bytes(b"!<arch>\\ntrunc")
        sys.stderr.write("ar: simulated crash while writing archive\\n")
        sys.exit(137)

    data = b"!<arch>\\n"
    for m in members:
        data += m.name.encode() + b"\\n" + m.read_bytes()
    out.write_bytes(data)
''')

FAKE_CARGO = textwrap.dedent('''\
    import os
    import shutil
    import sys
    import tomllib
    from pathlib import Path

    args = sys.argv[1:]
    root = Path.cwd()
    with Path(__file__).with_name("calls.log").open("a") as log:
        log.write("cargo " + " ".join(args) + "\\n")


    def fail(msg):
        sys.stderr.write(msg + "\\n")
        sys.exit(101)


    manifest = tomllib.loads((root / "Cargo.toml").read_text())
    name = manifest["package"]["name"]
    deps = sorted(manifest.get("dependencies", {}))
    lock_text = "# generated lock\\n" + "".join(f"{d}\\n" for d in deps)
    lock = root / "Cargo.lock"
    override = root / ".cargo" / "config.toml"


    def resolve_online():
        if override.exists():
            fail("error: failed to get dependencies\\n  source crates-io is replaced by vendored-sources")
        if os.environ.get("FAKE_REGISTRY") == "down":
            fail(
                "error: failed to download from `https://index.crates.io/`\\n\\n"
                "Caused by:\\n  [6] Could not resolve host: index.crates.io"
            )
        if not lock.exists() or lock.read_text() != lock_text:
            lock.write_text(lock_text)


    if args[0] == "vendor":
        vendor = root / args[1]
        resolve_online()
        source = os.environ.get("FAKE_VENDOR_SOURCE")
        if source:
            shutil.copytree(source, vendor)
        else:
            for d in deps:
                (vendor / d / "src").mkdir(parents=True, exist_ok=True)
                (vendor / d / "src" / "lib.rs").write_text(f"// crate {d}\\n")
                (vendor / d / ".cargo-checksum.json").write_text("{}")
        print("[source.crates-io]")
        print('replace-with = "vendored-sources"')
        print()
        print("[source.vendored-sources]")
        print(f'directory = "{args[1]}"')
        sys.exit(0)

    if args[0] != "build":
        fail(f"error: no such command: `{args[0]}`")

    if "--offline" in args:
        if os.environ.get("CARGO_NET_OFFLINE") != "true":
            fail("error: offline build without CARGO_NET_OFFLINE")
        if not override.exists():
            fail("error: no matching package found (offline, no vendored sources)")
        if "--frozen" in args and (not lock.exists() or lock.read_text() != lock_text):
            fail(
                f"error: the lock file {lock} needs to be updated "
                "but --frozen was passed to prevent this"
            )
        for d in deps:
            if not (root / "cargo_deps" / d).is_dir():
                fail(f"error: failed to load source for dependency `{d}`")
    else:
        resolve_online()

    lib = root / "target" / "debug" / "deps" / "libraw.a"
    if not lib.is_file():
        fail("error: could not find native static library `raw`, perhaps an -L flag is missing?")
    binary = root / "target" / "debug" / name
    binary.parent.mkdir(parents=True, exist_ok=True)
    binary.write_bytes(b"ELF\\n" + lib.read_bytes())
    sys.stderr.write(f"   Compiling {name} v0.1.0\\n    Finished dev target(s)\\n")
''')

CARGO_TOML = textwrap.dedent("""\
    [package]
    name = "grnvs"
    version = "0.1.0"
    edition = "2021"

    [dependencies]
    libc = "0.2"
    bitflags = "2"
""")


def merge(base: dict, updates: dict) -> dict:
    """Recursive dict merge (updates win)."""
    out = dict(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = merge(out[key], value)
        else:
            out[key] = value
    return out


@dataclass
class Workspace:
    """A throwaway project wired to the fake toolchain."""

    root: Path
    tools: Path

    @property
    def config(self) -> Path:
        return self.root / "nativeforge.yml"

    @property
    def build_dir(self) -> Path:
        return self.root / "libraw" / "build"

    @property
    def library(self) -> Path:
        return self.build_dir / "libraw.a"

    @property
    def placed(self) -> Path:
        return self.root / "target" / "debug" / "deps" / "libraw.a"

    @property
    def archive(self) -> Path:
        return self.root / "common" / "cargo_deps.tar.gz"

    @property
    def vendor(self) -> Path:
        return self.root / "cargo_deps"

    @property
    def override(self) -> Path:
        return self.root / ".cargo" / "config.toml"

    @property
    def lock(self) -> Path:
        return self.root / "Cargo.lock"

    @property
    def binary(self) -> Path:
        return self.root / "grnvs"

    def source(self, name: str) -> Path:
        return self.root / "libraw" / "src" / name

    def obj(self, name: str) -> Path:
        return self.build_dir / f"{Path(name).stem}.o"

    def base_config(self) -> dict:
        py = sys.executable
        cargo = str(self.tools / "fake_cargo.py")
        return {
            "name": "grnvs",
            "jobs": 2,
            "toolchain": {
                "cc": [py, str(self.tools / "fake_cc.py")],
                "ar": [py, str(self.tools / "fake_ar.py")],
            },
            "downstream": {
                "build_online": [py, cargo, "build"],
                "build_offline": [py, cargo, "build", "--offline", "--frozen"],
                "vendor": [py, cargo, "vendor", "{vendor_dir}"],
            },
            "snapshot": {"registry_url": None},
        }

    def write_config(self, **updates) -> Path:
        self.config.write_text(yaml.safe_dump(merge(self.base_config(), updates)))
        return self.config

    def calls(self, prefix: str = "") -> list[str]:
        log = self.tools / "calls.log"
        if not log.is_file():
            return []
        return [line for line in log.read_text().splitlines() if line.startswith(prefix)]

    def clear_calls(self) -> None:
        (self.tools / "calls.log").unlink(missing_ok=True)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Tests never inherit a mode or log settings from the caller's shell."""
    for var in ("ONLINE", "NF_LOG_LEVEL", "NF_LOG_FILE", "NF_LOG_FILE_LEVEL",
                "FAKE_REGISTRY", "FAKE_AR_CRASH", "FAKE_VENDOR_SOURCE"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """A project with two C sources, a Cargo manifest and fake tools."""
    tools = tmp_path / "tools"
    tools.mkdir()
    (tools / "fake_cc.py").write_text(FAKE_CC)
    (tools / "fake_ar.py").write_text(FAKE_AR)
    (tools / "fake_cargo.py").write_text(FAKE_CARGO)

    root = tmp_path / "grnvs"
    (root / "libraw" / "src").mkdir(parents=True)
    (root / "libraw" / "include").mkdir()
    (root / "src").mkdir()

    (root / "libraw" / "include" / "raw.h").write_text("int raw_open(void);\n")
    (root / "libraw" / "src" / "raw.c").write_text('#include "raw.h"\nint raw_open(void) { return 3; }\n')
    (root / "libraw" / "src" / "udp.c").write_text("int udp_send(int fd) { return fd; }\n")
    (root / "Cargo.toml").write_text(CARGO_TOML)
    (root / "src" / "main.rs").write_text("fn main() {}\n")

    ws = Workspace(root=root, tools=tools)
    ws.write_config()
    return ws


@pytest.fixture
def no_network(monkeypatch):
    """Fail loudly if anything in-process tries to open a connection."""
    import socket

    def _refuse(*args, **kwargs):
        raise AssertionError("network access attempted")

    monkeypatch.setattr(socket.socket, "connect", _refuse)
    monkeypatch.setattr(socket, "create_connection", _refuse)
    monkeypatch.setattr(
        "nativeforge.core.services.snapshot.check_registry_reachable", _refuse
    )
