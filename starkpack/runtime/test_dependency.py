"""
Dependency resolution and the sha256-addressed download cache.

Run with: python3 -m pytest starkpack/runtime/test_dependency.py
"""

import hashlib

import pytest
import requests

from starkpack.runtime.dependency import DependencyCache, DependencyResolver, version_matches
from starkpack.runtime.errors import ChecksumMismatchError, InstallationError, ResolutionError
from starkpack.runtime.schemas import DependencyDescriptor

DEPENDENCIES = [
    {"id": "starkli-gnu", "version": "0.3.6", "uri": "https://example/0.3.6.tgz", "sha256": "a" * 64, "stacks": ["*"]},
    {"id": "starkli-gnu", "version": "0.3.8", "uri": "https://example/0.3.8.tgz", "sha256": "b" * 64, "stacks": ["*"]},
    {"id": "starkli-gnu", "version": "0.4.0", "uri": "https://example/0.4.0.tgz", "sha256": "c" * 64, "stacks": ["*"]},
    {"id": "starkli-musl", "version": "0.3.8", "uri": "https://example/musl.tgz", "sha256": "d" * 64,
     "stacks": ["io.buildpacks.stacks.alpine"]},
]


@pytest.mark.parametrize("version,constraint,expected", [
    ("0.3.8", "", True),
    ("0.3.8", "*", True),
    ("0.3.8", "0.3.8", True),
    ("0.3.8", "0.3.*", True),
    ("0.3.10", "0.3.*", True),
    ("0.4.0", "0.3.*", False),
    ("0.3.8", "0.3", False),
    ("0.3.8", "v0.3.8", True),
    ("0.3.8", "0.3.x", True),
    ("0.3.8", ">=0.3.0", True),
    ("0.3.8", ">=0.3.0,<0.4", True),
    ("0.4.0", ">=0.3.0,<0.4", False),
    ("0.3.8", "~=0.3", True),
    ("0.3.8", "~=0.3.0", True),
    ("0.4.0", "~=0.3.0", False),
    ("0.3.8", "<0.3", False),
    ("not-a-version", "*", False),
])
def test_version_matches(version, constraint, expected):
    assert version_matches(version, constraint) is expected


def test_highest_matching_version_wins():
    resolver = DependencyResolver(DEPENDENCIES)

    assert resolver.resolve("starkli-gnu", "0.3.*").version == "0.3.8"
    assert resolver.resolve("starkli-gnu", "*").version == "0.4.0"
    assert resolver.resolve("starkli-gnu", "0.3.6").sha256 == "a" * 64


def test_stack_filter_and_missing_dependency():
    resolver = DependencyResolver(DEPENDENCIES, stack_id="io.buildpacks.stacks.jammy")

    with pytest.raises(ResolutionError, match="no valid dependencies for starkli-musl"):
        resolver.resolve("starkli-musl", "0.3.*")
    with pytest.raises(ResolutionError):
        resolver.resolve("starkli-gnu", "9.*")


def test_file_uri_download_is_reused_after_source_removed(tmp_path, descriptor, starkli_artifact):
    """Test: second lookup is served from the cache without touching the uri."""
    artifact, sha256 = starkli_artifact
    cache = DependencyCache(tmp_path / "cache")

    first = cache.artifact(descriptor)
    assert first == tmp_path / "cache" / sha256 / artifact.name
    assert (tmp_path / "cache" / f"{sha256}.json").is_file()

    artifact.unlink()
    assert cache.artifact(descriptor) == first


def test_lookup_paths_are_searched_first(tmp_path, descriptor, starkli_artifact):
    artifact, sha256 = starkli_artifact
    bundled = tmp_path / "bundled" / sha256
    bundled.mkdir(parents=True)
    (bundled / artifact.name).write_bytes(artifact.read_bytes())

    cache = DependencyCache(tmp_path / "cache", lookup_paths=[tmp_path / "bundled"])

    assert cache.artifact(descriptor) == bundled / artifact.name
    assert not (tmp_path / "cache" / sha256).exists()


def test_checksum_mismatch_leaves_nothing_behind(tmp_path, starkli_artifact):
    artifact, _sha256 = starkli_artifact
    wrong = DependencyDescriptor(
        id="starkli-gnu", name="starkli", version="0.3.8", sha256="0" * 64, uri=artifact.as_uri(),
    )
    cache = DependencyCache(tmp_path / "cache")

    with pytest.raises(ChecksumMismatchError) as excinfo:
        cache.artifact(wrong)

    assert excinfo.value.expected == "0" * 64
    assert list((tmp_path / "cache" / ("0" * 64)).iterdir()) == []


def test_missing_file_uri_is_an_installation_error(tmp_path):
    missing = DependencyDescriptor(
        id="starkli-gnu", name="starkli", version="0.3.8", sha256="0" * 64,
        uri=(tmp_path / "nope.tar.gz").as_uri(),
    )
    with pytest.raises(InstallationError, match="unable to download"):
        DependencyCache(tmp_path / "cache").artifact(missing)


class _FakeResponse:
    def __init__(self, body, status=200):
        self.body = body
        self.status = status

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i:i + chunk_size]


class _FakeSession:
    def __init__(self, body, status=200):
        self.body = body
        self.status = status
        self.calls = []

    def get(self, uri, stream=False, timeout=None):
        self.calls.append((uri, stream, timeout))
        return _FakeResponse(self.body, self.status)


def test_http_download_streams_through_session(tmp_path):
    body = b"starkli release archive"
    descriptor = DependencyDescriptor(
        id="starkli-gnu", name="starkli", version="0.3.8",
        sha256=hashlib.sha256(body).hexdigest(),
        uri="https://github.com/xJonathanLEI/starkli/releases/download/v0.3.8/starkli.tar.gz",
    )
    session = _FakeSession(body)
    cache = DependencyCache(tmp_path / "cache", session=session)

    path = cache.artifact(descriptor)
    cache.artifact(descriptor)

    assert path.read_bytes() == body
    assert path.name == "starkli.tar.gz"
    assert len(session.calls) == 1
    assert session.calls[0][1] is True


def test_http_error_is_wrapped(tmp_path):
    descriptor = DependencyDescriptor(
        id="starkli-gnu", name="starkli", version="0.3.8", sha256="0" * 64,
        uri="https://example.invalid/starkli.tar.gz",
    )
    cache = DependencyCache(tmp_path / "cache", session=_FakeSession(b"", status=404))

    with pytest.raises(InstallationError, match="unable to download") as excinfo:
        cache.artifact(descriptor)
    assert isinstance(excinfo.value.__cause__, requests.HTTPError)


def test_range_constraints_pick_highest_match():
    resolver = DependencyResolver(DEPENDENCIES)

    assert resolver.resolve("starkli-gnu", ">=0.3.0").version == "0.4.0"
    assert resolver.resolve("starkli-gnu", ">=0.3.0,<0.4").version == "0.3.8"
    assert resolver.resolve("starkli-gnu", "~=0.3.0").version == "0.3.8"
    assert resolver.resolve("starkli-gnu", "<0.3.8").version == "0.3.6"


def test_ordering_is_numeric_not_lexical():
    resolver = DependencyResolver([
        {"id": "starkli-gnu", "version": "0.3.9", "uri": "https://example/9", "sha256": "a" * 64},
        {"id": "starkli-gnu", "version": "0.3.10", "uri": "https://example/10", "sha256": "b" * 64},
    ])

    assert resolver.resolve("starkli-gnu", "0.3.*").version == "0.3.10"


def test_malformed_constraint_is_a_resolution_error():
    with pytest.raises(ResolutionError, match="invalid version constraint"):
        DependencyResolver(DEPENDENCIES).resolve("starkli-gnu", ">>0.3")


def test_unpinned_checksum_fails_before_download():
    resolver = DependencyResolver([
        {"id": "starkli-gnu", "version": "0.3.8", "uri": "https://example/0.3.8.tgz", "sha256": "0" * 64},
        {"id": "starkli-musl", "version": "0.3.8", "uri": "https://example/musl.tgz", "sha256": "TODO"},
    ])

    with pytest.raises(ResolutionError, match="no pinned sha256"):
        resolver.resolve("starkli-gnu", "0.3.*")
    with pytest.raises(ResolutionError, match="no pinned sha256"):
        resolver.resolve("starkli-musl", "0.3.*")
