"""Starkpack Config Module - Buildpack descriptor loading and BP_* resolution."""

from .config_loader import (
    ConfigLoader,
    ConfigValidationError,
    get_config_loader,
    reset_config_loader,
)
from .resolver import ConfigurationResolver

__all__ = [
    "ConfigLoader",
    "ConfigValidationError",
    "ConfigurationResolver",
    "get_config_loader",
    "reset_config_loader",
]
