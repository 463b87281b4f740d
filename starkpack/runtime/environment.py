"""
Environment bindings for layers and the working environment of one build.

EnvironmentBindings model the CNB env-file contract (NAME.append + NAME.delim,
NAME.default, NAME.override). BuildContext carries the working
environment that every external process of a build receives, so installer steps
pass discovered values forward without touching os.environ.
"""

import os
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

MODES = ("append", "default", "override")


@dataclass
class Binding:
    mode: str
    value: str
    delim: Optional[str] = None


class EnvironmentBindings:
    def __init__(self):
        self._bindings: "OrderedDict[str, Binding]" = OrderedDict()

    def append(self, name: str, delim: str, value: str):
        """Concatenate value after any existing value, joined by delim."""
        current = self._bindings.get(name)
        if current is not None and current.mode == "append" and current.delim == delim:
            value = f"{current.value}{delim}{value}"
        self._bindings[name] = Binding("append", value, delim)

    def default(self, name: str, value: str):
        """Set name only where it is not already set."""
        self._bindings[name] = Binding("default", value)

    def override(self, name: str, value: str):
        self._bindings[name] = Binding("override", value)

    def get(self, name: str) -> Optional[Binding]:
        return self._bindings.get(name)

    def apply(self, environ: Mapping[str, str]) -> Dict[str, str]:
        """Project the bindings onto a copy of environ, in insertion order."""
        result = dict(environ)
        for name, binding in self._bindings.items():
            existing = result.get(name)
            if binding.mode == "override":
                result[name] = binding.value
            elif binding.mode == "default":
                if name not in result:
                    result[name] = binding.value
            elif binding.mode == "append":
                result[name] = f"{existing}{binding.delim}{binding.value}" if existing else binding.value
        return result

    def write(self, directory: Path):
        """Persist the bindings as CNB env files under directory."""
        directory = Path(directory)
        if not self._bindings:
            return
        directory.mkdir(parents=True, exist_ok=True)
        for name, binding in self._bindings.items():
            (directory / f"{name}.{binding.mode}").write_text(binding.value)
            if binding.delim is not None:
                (directory / f"{name}.delim").write_text(binding.delim)

    @classmethod
    def read(cls, directory: Path) -> "EnvironmentBindings":
        bindings = cls()
        directory = Path(directory)
        if not directory.is_dir():
            return bindings

        for path in sorted(directory.iterdir()):
            name, _, mode = path.name.rpartition(".")
            if not name or mode not in MODES:
                continue
            delim_path = directory / f"{name}.delim"
            delim = delim_path.read_text() if delim_path.exists() else None
            bindings._bindings[name] = Binding(mode, path.read_text(), delim)
        return bindings

    def to_dict(self) -> Dict[str, Dict[str, Optional[str]]]:
        return {
            name: {"mode": b.mode, "value": b.value, "delim": b.delim}
            for name, b in self._bindings.items()
        }


@dataclass
class BuildContext:
    """State threaded through one detect/build invocation."""
    application_path: Path
    layers_path: Optional[Path] = None
    environment: Dict[str, str] = field(default_factory=dict)
    plan: List = field(default_factory=list)

    @classmethod
    def from_environ(cls, application_path, layers_path=None, plan=None,
                     environ: Optional[Mapping[str, str]] = None) -> "BuildContext":
        return cls(
            application_path=Path(application_path),
            layers_path=Path(layers_path) if layers_path is not None else None,
            environment=dict(os.environ if environ is None else environ),
            plan=list(plan or []),
        )

    def getenv(self, name: str, default: str = "") -> str:
        return self.environment.get(name, default)

    def setenv(self, name: str, value: str):
        self.environment[name] = value

    def append_to_path(self, directory, name: str = "PATH", delim: str = os.pathsep) -> str:
        """Append directory to a search-path variable of the working environment."""
        current = self.environment.get(name, "")
        value = f"{current}{delim}{directory}" if current else str(directory)
        self.environment[name] = value
        return value
