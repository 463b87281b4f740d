"""
Starknet layer: installs starkli and drives the post-install sequence.

Install sequence (each step must succeed before the next):
1. expand the artifact into <layer>/bin
2. chmod bin/starkli 0755
3. append bin to PATH of the build context and of the launch environment
4. starkli --version
5. starkli account fetch, when BP_ENABLE_STARKNET_DEPLOY is set
6. bind STARKNET_PRIVATE_KEY / STARKNET_ACCOUNT / STARKNET_RPC
7. starkli class-hash on the compiled contract, bound as STARKNET_CLASS_HASH

Any failure aborts the contribution and no layer record is written.
"""

import os
import shlex
import tarfile
import zipfile
from pathlib import Path
from typing import List, Optional

from .archive import extract
from .contributor import DependencyLayerContributor
from .detect import PLAN_ENTRY_STARKLI
from .environment import BuildContext
from .errors import (
    CommandError,
    ConfigurationError,
    DeclarationError,
    DiscoveryError,
    InstallationError,
    WalletError,
)
from .executor import Executor
from .layer import Layer
from .schemas import ProcessDefinition

COMPILE_DIR = Path("target") / "dev"
CONTRACT_CLASS_SUFFIX = ".contract_class.json"
CLASS_HASH_FILE = "class_hash.txt"

DEPLOY_ARGS_PREFIX = ["deploy", "--strk", "$STARKNET_CLASS_HASH"]

# launch variable -> configuration it is read from
DEPLOY_BINDINGS = [
    ("STARKNET_PRIVATE_KEY", "BP_STARKNET_DEPLOY_PRIVATE_KEY"),
    ("STARKNET_ACCOUNT", "BP_STARKNET_DEPLOY_ACCOUNT"),
    ("STARKNET_RPC", "BP_STARKNET_DEPLOY_RPC"),
]


class Starknet:
    def __init__(self, contributor: DependencyLayerContributor, config_resolver, context: BuildContext,
                 executor: Optional[Executor] = None, logger=None):
        self.contributor = contributor
        self.config_resolver = config_resolver
        self.context = context
        self.executor = executor or Executor(logger=logger)
        self.logger = logger

    def name(self) -> str:
        return self.contributor.layer_name()

    def _body(self, message: str):
        if self.logger:
            self.logger.body(message)

    def contribute(self, layer: Layer) -> Layer:
        return self.contributor.contribute(layer, self)

    def execute(self, command: str, args: List[str]) -> str:
        return self.executor.execute(
            command, args,
            env=self.context.environment,
            cwd=self.context.application_path,
        )

    # ------------------------------------------------------------------
    # Materializer
    # ------------------------------------------------------------------

    def materialize(self, artifact: Path, layer: Layer) -> Layer:
        bin_dir = layer.path / "bin"

        self._body(f"Expanding {artifact.name} to {bin_dir}")
        try:
            extract(artifact, bin_dir, strip_components=0, raw_name=PLAN_ENTRY_STARKLI)
        except (OSError, ValueError, tarfile.TarError, zipfile.BadZipFile) as e:
            raise InstallationError(f"unable to expand {artifact.name}") from e

        binary = bin_dir / PLAN_ENTRY_STARKLI
        self._body(f"Setting {binary} as executable")
        try:
            os.chmod(binary, 0o755)
        except OSError as e:
            raise InstallationError(f"unable to chmod {binary}") from e

        self._body(f"Setting {bin_dir} in PATH")
        self.context.append_to_path(bin_dir)
        layer.launch_environment.append("PATH", os.pathsep, str(bin_dir))

        try:
            version = self.execute(PLAN_ENTRY_STARKLI, ["--version"]).strip()
        except CommandError as e:
            raise InstallationError(f"unable to get {PLAN_ENTRY_STARKLI} version") from e
        self._body(f"Checking {PLAN_ENTRY_STARKLI} version: {version}")
        layer.metadata["starkli_version"] = version

        self.initialize_deploy_wallet()

        for variable, configuration in DEPLOY_BINDINGS:
            value, _ = self.config_resolver.resolve(configuration)
            layer.launch_environment.default(variable, value)
            self.context.setenv(variable, value)

        class_hash = self.declare_contract()
        layer.launch_environment.default("STARKNET_CLASS_HASH", class_hash)
        layer.metadata["class_hash"] = class_hash

        return layer

    # ------------------------------------------------------------------
    # Deploy wallet
    # ------------------------------------------------------------------

    def deploy_enabled(self) -> bool:
        return self.config_resolver.resolve_bool("BP_ENABLE_STARKNET_DEPLOY")

    def initialize_deploy_wallet(self):
        if self.deploy_enabled():
            self.initialize_wallet()

    def initialize_wallet(self):
        """starkli account fetch <address> --output <account> --rpc <rpc>"""
        address, _ = self.config_resolver.resolve("BP_STARKNET_DEPLOY_WALLET_ADDRESS")
        account, _ = self.config_resolver.resolve("BP_STARKNET_DEPLOY_ACCOUNT")
        rpc, _ = self.config_resolver.resolve("BP_STARKNET_DEPLOY_RPC")

        missing = [
            name for name, value in (
                ("BP_STARKNET_DEPLOY_WALLET_ADDRESS", address),
                ("BP_STARKNET_DEPLOY_ACCOUNT", account),
                ("BP_STARKNET_DEPLOY_RPC", rpc),
            ) if not value
        ]
        if missing:
            raise WalletError("unable to initialize deploy wallet") from ConfigurationError(
                f"{', '.join(missing)} must be specified"
            )

        account_dir = Path(account).parent
        self._body(f"Initializing deploy wallet and save to dir: {account_dir}")
        try:
            account_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WalletError("unable to initialize deploy wallet") from e

        args = ["account", "fetch", address, "--output", account, "--rpc", rpc]
        try:
            self.execute(PLAN_ENTRY_STARKLI, args)
        except CommandError as e:
            raise WalletError("unable to initialize deploy wallet") from e

    # ------------------------------------------------------------------
    # Contract declaration
    # ------------------------------------------------------------------

    def find_contract_class(self) -> Path:
        """
        Pick the compiled contract class in target/dev.

        Candidates are ordered by name. More than one candidate is an error
        unless BP_STARKNET_CONTRACT names the one to use.
        """
        compile_dir = self.context.application_path / COMPILE_DIR
        try:
            candidates = sorted(
                p for p in compile_dir.iterdir()
                if p.is_file() and p.name.endswith(CONTRACT_CLASS_SUFFIX)
            )
        except FileNotFoundError:
            candidates = []
        except OSError as e:
            raise DiscoveryError(f"unable to read {compile_dir}") from e

        if not candidates:
            raise DiscoveryError(f"unable to find contract class in {compile_dir}")

        selected, _ = self.config_resolver.resolve("BP_STARKNET_CONTRACT")
        if selected:
            wanted = selected if selected.endswith(CONTRACT_CLASS_SUFFIX) else f"{selected}{CONTRACT_CLASS_SUFFIX}"
            for candidate in candidates:
                if candidate.name == wanted:
                    return candidate
            raise DiscoveryError(
                f"contract class {wanted} not found in {compile_dir}, found {[c.name for c in candidates]}"
            )

        if len(candidates) > 1:
            raise DiscoveryError(
                f"found {len(candidates)} contract classes in {compile_dir}: {[c.name for c in candidates]}; "
                f"set BP_STARKNET_CONTRACT to choose one"
            )

        return candidates[0]

    def declare_contract(self) -> str:
        try:
            contract_class = self.find_contract_class()
        except DiscoveryError as e:
            raise DiscoveryError("unable to read contract class") from e

        try:
            output = self.execute(PLAN_ENTRY_STARKLI, ["class-hash", str(contract_class)])
        except CommandError as e:
            raise DeclarationError("unable to declare contract") from e

        class_hash = output.strip()
        if not class_hash:
            raise DeclarationError(f"{PLAN_ENTRY_STARKLI} class-hash returned no output for {contract_class.name}")

        class_hash_file = self.context.application_path / CLASS_HASH_FILE
        self._body(f"Writing class hash: {class_hash} to file: {class_hash_file}")
        try:
            class_hash_file.write_text(class_hash)
        except OSError as e:
            raise DeclarationError(f"unable to write {class_hash_file}") from e

        return class_hash

    # ------------------------------------------------------------------
    # Process types
    # ------------------------------------------------------------------

    def build_process_types(self) -> List[ProcessDefinition]:
        if not self.deploy_enabled():
            return []

        private_key, _ = self.config_resolver.resolve("BP_STARKNET_DEPLOY_PRIVATE_KEY")
        if not private_key:
            raise ConfigurationError("BP_STARKNET_DEPLOY_PRIVATE_KEY must be specified")

        raw_args, _ = self.config_resolver.resolve("BP_STARKNET_DEPLOY_ARGS")
        try:
            deploy_args = shlex.split(raw_args)
        except ValueError as e:
            raise ConfigurationError(f"unable to parse BP_STARKNET_DEPLOY_ARGS={raw_args!r}") from e

        args = DEPLOY_ARGS_PREFIX + deploy_args
        self._body(f"Deploying contract with args: {args}")

        return [
            ProcessDefinition(
                type=PLAN_ENTRY_STARKLI,
                command=PLAN_ENTRY_STARKLI,
                arguments=args,
                default=True,
            )
        ]
