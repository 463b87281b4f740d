import hashlib
import io
import os
import tarfile
from pathlib import Path

import pytest

from starkpack.config import ConfigurationResolver, get_config_loader, reset_config_loader
from starkpack.runtime.environment import BuildContext
from starkpack.runtime.schemas import DependencyDescriptor

# Stand-in for the starkli binary. Every invocation is appended to
# $STARKLI_STUB_LOG; $STARKLI_STUB_FAIL makes the named subcommand exit 1.
STUB_STARKLI = """#!/bin/sh
if [ -n "$STARKLI_STUB_LOG" ]; then
  echo "$@" >> "$STARKLI_STUB_LOG"
fi
if [ -n "$STARKLI_STUB_FAIL" ] && [ "$1" = "$STARKLI_STUB_FAIL" ]; then
  echo "stub failure for $1"
  exit 1
fi
case "$1" in
  --version)
    echo "0.3.8 (stub)"
    ;;
  class-hash)
    echo "  0xabc123  "
    ;;
  account)
    echo "{\\"address\\": \\"$3\\"}" > "$5"
    echo "Downloaded new account config file: $5"
    ;;
  *)
    echo "unknown subcommand: $1" >&2
    exit 2
    ;;
esac
"""

SYSTEM_PATH = os.pathsep.join(["/usr/local/bin", "/usr/bin", "/bin"])


def write_stub_starkli(directory: Path) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    binary = directory / "starkli"
    binary.write_text(STUB_STARKLI)
    binary.chmod(0o755)
    return binary


def build_starkli_tarball(path: Path) -> str:
    """Write a tar.gz holding a non-executable stub starkli; return its sha256."""
    data = STUB_STARKLI.encode()
    with tarfile.open(path, "w:gz") as tf:
        info = tarfile.TarInfo("starkli")
        info.size = len(data)
        info.mode = 0o644
        tf.addfile(info, io.BytesIO(data))
    return hashlib.sha256(path.read_bytes()).hexdigest()


@pytest.fixture(autouse=True)
def _fresh_config_loader():
    reset_config_loader()
    yield
    reset_config_loader()


@pytest.fixture
def starkli_artifact(tmp_path):
    artifact = tmp_path / "downloads" / "starkli-x86_64-unknown-linux-gnu.tar.gz"
    artifact.parent.mkdir(parents=True)
    sha256 = build_starkli_tarball(artifact)
    return artifact, sha256


@pytest.fixture
def descriptor(starkli_artifact):
    artifact, sha256 = starkli_artifact
    return DependencyDescriptor(
        id="starkli-gnu",
        name="Starkli (GNU libc)",
        version="0.3.8",
        sha256=sha256,
        uri=artifact.as_uri(),
        stacks=["*"],
    )


@pytest.fixture
def app_dir(tmp_path):
    app = tmp_path / "workspace"
    (app / "src").mkdir(parents=True)
    (app / "Scarb.toml").write_text('[package]\nname = "hello"\nversion = "0.1.0"\n')
    (app / "src" / "lib.cairo").write_text("#[starknet::contract]\nmod HelloStarknet {}\n")
    compile_dir = app / "target" / "dev"
    compile_dir.mkdir(parents=True)
    (compile_dir / "hello_HelloStarknet.contract_class.json").write_text("{}")
    return app


@pytest.fixture
def stub_log(tmp_path):
    return tmp_path / "starkli.log"


@pytest.fixture
def make_context(app_dir, tmp_path, stub_log):
    def _make(extra_env=None, path=SYSTEM_PATH):
        environment = {"PATH": path, "STARKLI_STUB_LOG": str(stub_log)}
        environment.update(extra_env or {})
        return BuildContext(
            application_path=app_dir,
            layers_path=tmp_path / "layers",
            environment=environment,
        )
    return _make


@pytest.fixture
def make_resolver():
    def _make(environ=None):
        return ConfigurationResolver(get_config_loader(), environ or {})
    return _make
