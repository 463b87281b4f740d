import os

from starkpack.runtime.environment import BuildContext, EnvironmentBindings


def test_default_only_sets_unset_names():
    bindings = EnvironmentBindings()
    bindings.default("STARKNET_RPC", "https://rpc.example")
    bindings.default("STARKNET_ACCOUNT", "/workspace/account.json")

    env = bindings.apply({"STARKNET_RPC": "https://already.set"})

    assert env["STARKNET_RPC"] == "https://already.set"
    assert env["STARKNET_ACCOUNT"] == "/workspace/account.json"


def test_append_joins_with_delimiter():
    bindings = EnvironmentBindings()
    bindings.append("PATH", ":", "/layers/starkli/bin")

    assert bindings.apply({"PATH": "/usr/bin"})["PATH"] == "/usr/bin:/layers/starkli/bin"
    assert bindings.apply({})["PATH"] == "/layers/starkli/bin"


def test_repeated_append_accumulates():
    bindings = EnvironmentBindings()
    bindings.append("PATH", ":", "/a")
    bindings.append("PATH", ":", "/b")

    assert bindings.get("PATH").value == "/a:/b"
    assert bindings.apply({"PATH": "/usr/bin"})["PATH"] == "/usr/bin:/a:/b"


def test_apply_does_not_mutate_input():
    bindings = EnvironmentBindings()
    bindings.override("STARKNET_CLASS_HASH", "0x1")
    source = {"STARKNET_CLASS_HASH": "0x0"}

    env = bindings.apply(source)

    assert env["STARKNET_CLASS_HASH"] == "0x1"
    assert source["STARKNET_CLASS_HASH"] == "0x0"


def test_env_files_on_disk(tmp_path):
    """Test: bindings persist as CNB env files and read back identically."""
    bindings = EnvironmentBindings()
    bindings.append("PATH", ":", "/layers/starkli/bin")
    bindings.default("STARKNET_CLASS_HASH", "0xabc123")

    env_dir = tmp_path / "env.launch"
    bindings.write(env_dir)

    assert (env_dir / "PATH.append").read_text() == "/layers/starkli/bin"
    assert (env_dir / "PATH.delim").read_text() == ":"
    assert (env_dir / "STARKNET_CLASS_HASH.default").read_text() == "0xabc123"

    restored = EnvironmentBindings.read(env_dir)
    assert restored.to_dict() == {
        "PATH": {"mode": "append", "value": "/layers/starkli/bin", "delim": ":"},
        "STARKNET_CLASS_HASH": {"mode": "default", "value": "0xabc123", "delim": None},
    }


def test_build_context_is_isolated_from_os_environ(tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", "/usr/bin")
    context = BuildContext.from_environ(tmp_path, tmp_path / "layers")

    context.append_to_path(tmp_path / "bin")
    context.setenv("STARKNET_RPC", "https://rpc.example")

    assert context.environment["PATH"] == f"/usr/bin:{tmp_path / 'bin'}"
    assert os.environ["PATH"] == "/usr/bin"
    assert "STARKNET_RPC" not in os.environ
