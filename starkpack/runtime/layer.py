import json
import os
import shutil
from pathlib import Path
from typing import Any, Dict, Optional

from .environment import EnvironmentBindings
from .errors import InstallationError


class Layer:
    """A cacheable directory under the layers root plus its persisted record."""

    def __init__(self, name: str, path: Path):
        self.name = name
        self.path = Path(path)
        self.build = False
        self.cache = False
        self.launch = False
        self.metadata: Dict[str, Any] = {}
        self.launch_environment = EnvironmentBindings()

    @property
    def checksum(self) -> Optional[str]:
        return self.metadata.get("sha256")

    def to_record(self) -> Dict[str, Any]:
        return {
            "types": {"build": self.build, "cache": self.cache, "launch": self.launch},
            "metadata": self.metadata,
        }

    def __repr__(self):
        return f"Layer(name={self.name!r}, path={str(self.path)!r}, checksum={self.checksum!r})"


class Layers:
    """
    Layer records live next to their directories:

        <layers>/<name>/           layer contents and env.launch/
        <layers>/<name>.json       {"types": {...}, "metadata": {...}}

    Filesystem failures surface as InstallationError naming the layer.
    """

    def __init__(self, layers_path):
        self.layers_path = Path(layers_path)
        try:
            self.layers_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallationError(f"unable to create layers directory {self.layers_path}") from e

    def record_path(self, name: str) -> Path:
        return self.layers_path / f"{name}.json"

    def load_record(self, name: str) -> Optional[Dict[str, Any]]:
        record_path = self.record_path(name)
        if not record_path.exists():
            return None
        try:
            with open(record_path, "r") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise InstallationError(f"unable to read layer record {record_path}") from e

    def get(self, name: str) -> Layer:
        """Return the layer, rehydrated from its persisted record when there is one."""
        layer = Layer(name, self.layers_path / name)

        record = self.load_record(name)
        if record is None:
            return layer

        types = record.get("types", {})
        layer.build = bool(types.get("build", False))
        layer.cache = bool(types.get("cache", False))
        layer.launch = bool(types.get("launch", False))
        layer.metadata = record.get("metadata", {}) or {}
        try:
            layer.launch_environment = EnvironmentBindings.read(layer.path / "env.launch")
        except OSError as e:
            raise InstallationError(f"unable to read launch environment of layer {name}") from e
        return layer

    def discard_record(self, name: str):
        try:
            self.record_path(name).unlink(missing_ok=True)
        except OSError as e:
            raise InstallationError(f"unable to remove layer record {self.record_path(name)}") from e

    def reset(self, layer: Layer) -> Layer:
        """Drop the record and contents of a layer and hand back an empty one."""
        self.discard_record(layer.name)
        try:
            if layer.path.exists():
                shutil.rmtree(layer.path)
            layer.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallationError(f"unable to reset layer {layer.name}") from e
        return Layer(layer.name, layer.path)

    def persist(self, layer: Layer) -> Path:
        """Write env files and the record. The record goes last so it only exists for complete layers."""
        record_path = self.record_path(layer.name)
        partial = record_path.with_suffix(".json.partial")
        try:
            layer.path.mkdir(parents=True, exist_ok=True)
            layer.launch_environment.write(layer.path / "env.launch")
            with open(partial, "w") as f:
                json.dump(layer.to_record(), f, indent=2, sort_keys=True)
            os.replace(partial, record_path)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise InstallationError(f"unable to persist layer {layer.name}") from e
        return record_path

    def write_launch(self, processes) -> Path:
        """Write launch metadata for the contributed processes."""
        launch_path = self.layers_path / "launch.json"
        try:
            with open(launch_path, "w") as f:
                json.dump({"processes": [p.model_dump() for p in processes]}, f, indent=2, sort_keys=True)
        except OSError as e:
            raise InstallationError(f"unable to write launch metadata {launch_path}") from e
        return launch_path
