import shutil
from pathlib import Path
from typing import Optional, Protocol

from .dependency import DependencyCache
from .layer import Layer, Layers
from .schemas import DependencyDescriptor


class Materializer(Protocol):
    """Fills a freshly reset layer from a verified artifact."""

    def materialize(self, artifact: Path, layer: Layer) -> Layer:
        ...


class DependencyLayerContributor:
    """
    Contributes one dependency to one layer.

    The layer is reused as-is when its persisted sha256 equals the dependency's
    sha256. Otherwise the layer is reset, the artifact fetched through the
    DependencyCache and the materializer invoked exactly once; the record is
    persisted only if that succeeds.
    """

    def __init__(self, dependency: DependencyDescriptor, cache: DependencyCache, layers: Layers,
                 launch: bool = True, cache_layer: bool = True, build: bool = False,
                 name: Optional[str] = None, logger=None):
        self.dependency = dependency
        self.cache = cache
        self.layers = layers
        self.launch = launch
        self.cache_layer = cache_layer
        self.build = build
        self.name = name
        self.logger = logger

    def layer_name(self) -> str:
        return self.name or self.dependency.id

    def _header(self, message: str):
        if self.logger:
            self.logger.header(f"{self.dependency.name} {self.dependency.version}: {message}")

    def is_cached(self, layer: Layer) -> bool:
        return layer.checksum == self.dependency.sha256 and layer.path.is_dir()

    def contribute(self, layer: Layer, materializer: Materializer) -> Layer:
        if self.is_cached(layer):
            self._header("Reusing cached layer")
            return layer

        self._header("Contributing to layer")
        layer = self.layers.reset(layer)

        try:
            artifact = self.cache.artifact(self.dependency)
            layer = materializer.materialize(artifact, layer)
        except BaseException:
            shutil.rmtree(layer.path, ignore_errors=True)
            raise

        layer.metadata["sha256"] = self.dependency.sha256
        layer.metadata["dependency"] = self.dependency.as_metadata()
        layer.launch = self.launch
        layer.cache = self.cache_layer
        layer.build = self.build

        self.layers.persist(layer)
        return layer
