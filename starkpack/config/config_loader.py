"""
Starkpack Descriptor Loader

Responsibilities:
- Load and validate buildpack.yaml
- Compute a digest of the normalized descriptor for build logs
- Expose buildpack info, configuration declarations and dependency entries
- Fail fast on invalid/missing descriptor
"""

import yaml
import hashlib
import json
from pathlib import Path
from typing import Dict, Any, List, Optional


class ConfigValidationError(Exception):
    """Raised when the buildpack descriptor is invalid or missing required keys."""
    pass


class ConfigLoader:
    """Loads, validates, and provides access to the buildpack descriptor."""

    REQUIRED_KEYS = ["api", "buildpack", "metadata"]
    REQUIRED_BUILDPACK_KEYS = ["id", "name", "version"]
    REQUIRED_CONFIGURATION_KEYS = ["name"]
    REQUIRED_DEPENDENCY_KEYS = ["id", "version", "uri", "sha256"]

    def __init__(self, descriptor_path: Optional[Path] = None):
        if descriptor_path is None:
            descriptor_path = Path(__file__).parent / "buildpack.yaml"

        self.descriptor_path = Path(descriptor_path)
        self._descriptor: Optional[Dict[str, Any]] = None
        self._digest: Optional[str] = None

    def load(self) -> Dict[str, Any]:
        """Load and validate the descriptor. Raises ConfigValidationError on failure."""
        if not self.descriptor_path.exists():
            raise ConfigValidationError(f"Buildpack descriptor not found: {self.descriptor_path}")

        try:
            self._descriptor = yaml.safe_load(self.descriptor_path.read_text())
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Invalid YAML in buildpack descriptor: {e}")

        if self._descriptor is None:
            raise ConfigValidationError("Buildpack descriptor is empty")

        self._validate()
        self._compute_digest()

        return self._descriptor

    def _validate(self):
        """Validate required keys and structure."""
        for key in self.REQUIRED_KEYS:
            if key not in self._descriptor:
                raise ConfigValidationError(f"Missing required key: {key}")

        buildpack = self._descriptor.get("buildpack") or {}
        for key in self.REQUIRED_BUILDPACK_KEYS:
            if key not in buildpack:
                raise ConfigValidationError(f"Missing required key: buildpack.{key}")

        metadata = self._descriptor.get("metadata") or {}

        names = set()
        for i, configuration in enumerate(metadata.get("configurations", [])):
            for key in self.REQUIRED_CONFIGURATION_KEYS:
                if key not in configuration:
                    raise ConfigValidationError(
                        f"Missing required key in metadata.configurations[{i}]: {key}"
                    )
            if configuration["name"] in names:
                raise ConfigValidationError(f"Duplicate configuration: {configuration['name']}")
            names.add(configuration["name"])

        for i, dependency in enumerate(metadata.get("dependencies", [])):
            for key in self.REQUIRED_DEPENDENCY_KEYS:
                if key not in dependency:
                    raise ConfigValidationError(
                        f"Missing required key in metadata.dependencies[{i}]: {key}"
                    )

    def _compute_digest(self):
        """Compute SHA256 digest of the normalized descriptor."""
        normalized = json.dumps(self._descriptor, sort_keys=True, separators=(',', ':'))
        self._digest = hashlib.sha256(normalized.encode()).hexdigest()

    @property
    def descriptor(self) -> Dict[str, Any]:
        """Get the loaded descriptor. Raises if not loaded."""
        if self._descriptor is None:
            raise RuntimeError("Descriptor not loaded. Call load() first.")
        return self._descriptor

    @property
    def digest(self) -> str:
        """Get the descriptor digest. Raises if not loaded."""
        if self._digest is None:
            raise RuntimeError("Descriptor not loaded. Call load() first.")
        return self._digest

    @property
    def info(self) -> Dict[str, Any]:
        return self.descriptor["buildpack"]

    @property
    def version(self) -> str:
        return str(self.info.get("version", "unknown"))

    def get_configurations(self) -> List[Dict[str, Any]]:
        return self.descriptor["metadata"].get("configurations", [])

    def get_configuration(self, name: str) -> Optional[Dict[str, Any]]:
        for configuration in self.get_configurations():
            if configuration["name"] == name:
                return configuration
        return None

    def get_dependencies(self) -> List[Dict[str, Any]]:
        return self.descriptor["metadata"].get("dependencies", [])


# Singleton instance for convenience
_default_loader: Optional[ConfigLoader] = None


def get_config_loader(descriptor_path: Optional[Path] = None) -> ConfigLoader:
    """Get the descriptor loader singleton, creating and loading if needed."""
    global _default_loader

    if _default_loader is None or descriptor_path is not None:
        loader = ConfigLoader(descriptor_path)
        loader.load()
        if descriptor_path is None:
            _default_loader = loader
        return loader

    return _default_loader


def reset_config_loader():
    """Reset the singleton (for testing)."""
    global _default_loader
    _default_loader = None
