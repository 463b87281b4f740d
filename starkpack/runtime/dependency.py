"""
Dependency resolution and the download cache.

DependencyResolver maps a dependency id plus a version constraint to one entry
of the buildpack descriptor. DependencyCache turns that descriptor into a local
file whose sha256 is verified, downloading at most once per checksum.
"""

import hashlib
import json
import os
import re
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import unquote, urlparse

import requests
from filelock import FileLock
from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from .errors import ChecksumMismatchError, InstallationError, ResolutionError
from .schemas import DependencyDescriptor

DOWNLOAD_TIMEOUT_SEC = 300
CHUNK_SIZE = 64 * 1024

SHA256_PATTERN = re.compile(r"^[0-9a-f]{64}$")
UNPINNED_SHA256 = "0" * 64


def file_digest(file_path: Path) -> str:
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for byte_block in iter(lambda: f.read(CHUNK_SIZE), b""):
            sha256_hash.update(byte_block)
    return sha256_hash.hexdigest()


def parse_constraint(constraint: str) -> SpecifierSet:
    """
    Read a BP_STARKNET_VERSION value as a SpecifierSet.

    '' and '*' match any version. A bare version or wildcard ('0.3.8', 'v0.3.8',
    '0.3.*', '0.3.x') is an '==' match. Anything else is taken as PEP 440
    specifiers, e.g. '>=0.3.0,<0.4' or '~=0.3'.
    """
    raw = (constraint or "").strip()
    if raw in ("", "*"):
        return SpecifierSet("")

    normalized = re.sub(r"\.[xX](?=$|,)", ".*", raw)
    if normalized[0].isdigit() or normalized[0] in "vV":
        normalized = "==" + normalized.lstrip("vV")

    try:
        return SpecifierSet(normalized)
    except InvalidSpecifier as e:
        raise ResolutionError(f"invalid version constraint '{raw}'") from e


def _parse_version(version: str) -> Optional[Version]:
    try:
        return Version(version)
    except InvalidVersion:
        return None


def version_matches(version: str, constraint: str) -> bool:
    parsed = _parse_version(version)
    return parsed is not None and parse_constraint(constraint).contains(parsed)


class DependencyResolver:
    """Resolves dependencies declared in metadata.dependencies of buildpack.yaml."""

    def __init__(self, dependencies: Sequence[Dict[str, Any]], stack_id: str = "*"):
        self.dependencies = list(dependencies)
        self.stack_id = stack_id

    def _stack_matches(self, dependency: Dict[str, Any]) -> bool:
        stacks = dependency.get("stacks") or ["*"]
        return self.stack_id == "*" or "*" in stacks or self.stack_id in stacks

    def resolve(self, dependency_id: str, constraint: str) -> DependencyDescriptor:
        specifier = parse_constraint(constraint)

        candidates = []
        for d in self.dependencies:
            if d.get("id") != dependency_id or not self._stack_matches(d):
                continue
            version = _parse_version(str(d.get("version", "")))
            if version is not None and specifier.contains(version):
                candidates.append((version, d))

        if not candidates:
            available = [f"{d.get('id')}@{d.get('version')}" for d in self.dependencies]
            raise ResolutionError(
                f"no valid dependencies for {dependency_id}, {constraint or '*'}, and {self.stack_id} in {available}"
            )

        _, best = max(candidates, key=lambda c: c[0])

        sha256 = str(best["sha256"]).strip().lower()
        if not SHA256_PATTERN.match(sha256) or sha256 == UNPINNED_SHA256:
            raise ResolutionError(
                f"dependency {best['id']} {best['version']} has no pinned sha256 in the buildpack descriptor"
            )

        return DependencyDescriptor(
            id=best["id"],
            name=best.get("name", best["id"]),
            version=str(best["version"]),
            sha256=sha256,
            uri=best["uri"],
            stacks=best.get("stacks") or [],
            licenses=best.get("licenses") or [],
        )



class DependencyCache:
    """
    Content-addressed download cache.

    Layout: <cache_root>/<sha256>/<artifact file> plus <sha256>.json with the
    descriptor. A FileLock per sha256 serializes concurrent downloads of the
    same artifact. Read-only lookup_paths (e.g. dependencies bundled with an
    offline buildpack) are searched first using the same layout.
    """

    def __init__(self, cache_root, lookup_paths: Optional[Sequence] = None, logger=None,
                 session: Optional[requests.Session] = None):
        self.cache_root = Path(cache_root)
        self.lookup_paths: List[Path] = [Path(p) for p in (lookup_paths or [])]
        self.logger = logger
        self.session = session or requests.Session()

    def _artifact_name(self, descriptor: DependencyDescriptor) -> str:
        name = os.path.basename(unquote(urlparse(descriptor.uri).path))
        return name or descriptor.id

    def _lookup(self, root: Path, descriptor: DependencyDescriptor) -> Optional[Path]:
        candidate = root / descriptor.sha256 / self._artifact_name(descriptor)
        if candidate.is_file() and file_digest(candidate) == descriptor.sha256:
            return candidate
        return None

    def artifact(self, descriptor: DependencyDescriptor) -> Path:
        """Return a local path to the verified artifact, downloading it if needed."""
        for root in self.lookup_paths:
            found = self._lookup(root, descriptor)
            if found is not None:
                if self.logger:
                    self.logger.body("Reusing cached download from buildpack")
                return found

        try:
            return self._fetch(descriptor)
        except OSError as e:
            raise InstallationError(f"unable to cache {descriptor.uri} under {self.cache_root}") from e

    def _fetch(self, descriptor: DependencyDescriptor) -> Path:
        self.cache_root.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(self.cache_root / f"{descriptor.sha256}.lock"))

        with lock:
            found = self._lookup(self.cache_root, descriptor)
            if found is not None:
                if self.logger:
                    self.logger.body("Reusing cached download from previous build")
                return found

            target_dir = self.cache_root / descriptor.sha256
            target_dir.mkdir(parents=True, exist_ok=True)
            target = target_dir / self._artifact_name(descriptor)
            partial = target_dir / f".{target.name}.partial"

            if self.logger:
                self.logger.body(f"Downloading from {descriptor.uri}")

            try:
                self._download(descriptor.uri, partial)
            except (OSError, requests.RequestException) as e:
                partial.unlink(missing_ok=True)
                raise InstallationError(f"unable to download {descriptor.uri}") from e

            actual = file_digest(partial)
            if actual != descriptor.sha256:
                partial.unlink(missing_ok=True)
                raise ChecksumMismatchError(descriptor.uri, descriptor.sha256, actual)

            if self.logger:
                self.logger.body("Verifying checksum")
            os.replace(partial, target)

            with open(self.cache_root / f"{descriptor.sha256}.json", "w") as f:
                json.dump(descriptor.model_dump(), f, indent=2, sort_keys=True)

            return target

    def _download(self, uri: str, destination: Path):
        parsed = urlparse(uri)

        if parsed.scheme in ("", "file"):
            shutil.copyfile(unquote(parsed.path), destination)
            return

        with self.session.get(uri, stream=True, timeout=DOWNLOAD_TIMEOUT_SEC) as response:
            response.raise_for_status()
            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
