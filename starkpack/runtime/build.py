import tempfile
from pathlib import Path
from typing import Iterable, Optional

import requests

from ..config import ConfigLoader, ConfigurationResolver, get_config_loader
from .contributor import DependencyLayerContributor
from .dependency import DependencyCache, DependencyResolver
from .detect import PLAN_ENTRY_STARKLI
from .environment import BuildContext
from .errors import ConfigurationError, InstallationError, ResolutionError
from .executor import Executor
from .layer import Layers
from .logger import Logger
from .schemas import BuildResult, PlanEntry
from .starknet import Starknet


class PlanEntryResolver:
    """Finds the buildpack plan entry for a name, merging metadata of duplicates."""

    def __init__(self, plan: Iterable[PlanEntry]):
        self.plan = list(plan)

    def resolve(self, name: str) -> Optional[PlanEntry]:
        matches = [entry for entry in self.plan if entry.name == name]
        if not matches:
            return None

        metadata = {}
        for entry in matches:
            metadata.update(entry.metadata)
        return PlanEntry(name=name, metadata=metadata)


class Build:
    """The build phase: resolves starkli, contributes its layer, emits processes."""

    def __init__(self, logger: Optional[Logger] = None, config_loader: Optional[ConfigLoader] = None,
                 executor: Optional[Executor] = None, cache_root: Optional[Path] = None,
                 session: Optional[requests.Session] = None):
        self.logger = logger or Logger()
        self.config_loader = config_loader
        self.executor = executor
        self.cache_root = cache_root
        self.session = session

    def _cache_root(self, context: BuildContext) -> Path:
        if self.cache_root is not None:
            return Path(self.cache_root)
        configured = context.getenv("STARKPACK_CACHE_DIR")
        if configured:
            return Path(configured)
        return Path(tempfile.gettempdir()) / "starkpack-dependencies"

    def build(self, context: BuildContext) -> BuildResult:
        loader = self.config_loader or get_config_loader()
        info = loader.info
        self.logger.title(info["name"], loader.version, info.get("homepage"))
        self.logger.debug(f"Descriptor {loader.descriptor_path} digest {loader.digest}")

        if context.layers_path is None:
            raise ResolutionError("layers path is required for the build phase")

        entry = PlanEntryResolver(context.plan).resolve(PLAN_ENTRY_STARKLI)
        if entry is None:
            self.logger.body(f"No {PLAN_ENTRY_STARKLI} plan entry, skipping")
            return BuildResult()

        config_resolver = ConfigurationResolver(loader, context.environment, logger=self.logger)
        config_resolver.log_configuration()

        cache = DependencyCache(
            self._cache_root(context),
            lookup_paths=[loader.descriptor_path.parent / "dependencies"],
            logger=self.logger,
            session=self.session,
        )
        dependency_resolver = DependencyResolver(
            loader.get_dependencies(),
            stack_id=context.getenv("CNB_STACK_ID", "*"),
        )

        version, _ = config_resolver.resolve("BP_STARKNET_VERSION")
        libc, _ = config_resolver.resolve("BP_STARKNET_LIBC")
        try:
            dependency = dependency_resolver.resolve(f"{PLAN_ENTRY_STARKLI}-{libc}", version)
        except ResolutionError as e:
            raise ResolutionError("unable to find dependency") from e

        layers = Layers(context.layers_path)
        contributor = DependencyLayerContributor(
            dependency, cache, layers,
            launch=True, cache_layer=True,
            name=PLAN_ENTRY_STARKLI,
            logger=self.logger,
        )
        starknet = Starknet(contributor, config_resolver, context, executor=self.executor, logger=self.logger)

        try:
            processes = starknet.build_process_types()
        except ConfigurationError as e:
            raise ConfigurationError("unable to build list of process types") from e

        layer = starknet.contribute(layers.get(starknet.name()))
        try:
            layers.write_launch(processes)
        except InstallationError:
            layers.discard_record(layer.name)
            raise

        return BuildResult(layers=[layer.name], processes=processes)
