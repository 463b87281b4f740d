"""Starkpack Runtime - detect/build phases and the starkli layer."""

from .build import Build, PlanEntryResolver
from .contributor import DependencyLayerContributor, Materializer
from .detect import Detector
from .environment import BuildContext, EnvironmentBindings
from .layer import Layer, Layers
from .starknet import Starknet

__all__ = [
    "Build",
    "BuildContext",
    "DependencyLayerContributor",
    "Detector",
    "EnvironmentBindings",
    "Layer",
    "Layers",
    "Materializer",
    "PlanEntryResolver",
    "Starknet",
]
