"""
Starkpack error taxonomy.

Every failure in detect/build is raised as a BuildpackError subclass and wrapped
with the operation that failed (`raise X("context") from cause`). Nothing here is
retried; the phase aborts and the CLI prints the whole chain.
"""

from typing import List, Optional, Sequence


class BuildpackError(Exception):
    """Base class for all detect/build failures."""
    pass


class DetectionError(BuildpackError):
    """Raised when the project tree cannot be inspected."""
    pass


class MissingSourcesError(DetectionError):
    """Raised when Scarb.toml exists but no Cairo sources were found."""
    pass


class ResolutionError(BuildpackError):
    """Raised when a plan entry, dependency or required value cannot be resolved."""
    pass


class ConfigurationError(ResolutionError):
    """Raised when a BP_* configuration value is missing or malformed."""
    pass


class InstallationError(BuildpackError):
    """Raised when unpacking, chmod or PATH wiring of the toolchain fails."""
    pass


class ChecksumMismatchError(InstallationError):
    """Raised when a downloaded artifact does not match its descriptor sha256."""

    def __init__(self, uri: str, expected: str, actual: str):
        self.uri = uri
        self.expected = expected
        self.actual = actual
        super().__init__(f"sha256 for {uri} {actual} does not match expected {expected}")


class DiscoveryError(BuildpackError):
    """Raised when an expected build output (compiled contract class) is absent."""
    pass


class WalletError(BuildpackError):
    """Raised when the deploy wallet keystore cannot be fetched."""
    pass


class DeclarationError(BuildpackError):
    """Raised when the class hash of the compiled contract cannot be computed or recorded."""
    pass


class CommandError(BuildpackError):
    """Raised when an external command cannot be launched or exits non-zero.

    The captured combined stdout/stderr is kept verbatim in `output` and is part
    of the message so it reaches the user unchanged.
    """

    def __init__(self, command: str, args: Sequence[str], output: str,
                 returncode: Optional[int] = None, reason: Optional[str] = None):
        self.command = command
        self.args_list: List[str] = list(args)
        self.output = output
        self.returncode = returncode

        invocation = " ".join([command] + self.args_list)
        if reason is None:
            reason = f"exit status {returncode}"
        message = f"{invocation}: {reason}"
        if output:
            message = f"{output.rstrip()}\n{message}"
        super().__init__(message)


def describe_error(exc: BaseException) -> str:
    """Render an exception and its causes, outermost first, one per line."""
    lines = []
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        lines.append(str(current) or type(current).__name__)
        current = current.__cause__
    return "\n".join(lines)
