import os
from typing import Mapping, Optional, Tuple

from .config_loader import ConfigLoader

TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}


class ConfigurationResolver:
    """Resolves BP_* configuration: environment first, then descriptor defaults."""

    def __init__(self, loader: ConfigLoader, environ: Optional[Mapping[str, str]] = None, logger=None):
        self.loader = loader
        self.environ = dict(os.environ if environ is None else environ)
        self.logger = logger

    def resolve(self, name: str) -> Tuple[str, bool]:
        """Return (value, explicitly_set). Unknown names without a default resolve to ("", False)."""
        if name in self.environ:
            return self.environ[name], True

        configuration = self.loader.get_configuration(name)
        if configuration is not None and configuration.get("default") is not None:
            return str(configuration["default"]), False

        return "", False

    def resolve_bool(self, name: str) -> bool:
        value, _ = self.resolve(name)
        if value == "":
            return False
        if value in TRUE_VALUES:
            return True
        if value not in FALSE_VALUES and self.logger:
            self.logger.warning(f"invalid value '{value}' for key '{name}': expected one of [1, t, T, TRUE, true, True, 0, f, F, FALSE, false, False]")
        return False

    def log_configuration(self):
        """Print the build configuration table, masking secret values."""
        if self.logger is None:
            return

        configurations = [c for c in self.loader.get_configurations() if c.get("build")]
        if not configurations:
            return

        name_width = max(len(c["name"]) for c in configurations) + 1
        rows = []
        for c in configurations:
            value, explicit = self.resolve(c["name"])
            if explicit and "PRIVATE_KEY" in c["name"]:
                value = "<redacted>"
            rows.append((c["name"], value, c.get("description", ""), explicit))

        value_width = max(len(r[1]) for r in rows) + 1

        self.logger.header("Build Configuration:")
        for name, value, description, explicit in rows:
            marker = "*" if explicit else " "
            self.logger.body(f"{marker}${name:<{name_width}} {value:<{value_width}} {description}")
