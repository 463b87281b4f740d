import os
from pathlib import Path

from .errors import DetectionError, MissingSourcesError
from .schemas import BuildPlan, BuildPlanProvide, BuildPlanRequire, DetectResult

PLAN_ENTRY_STARKLI = "starkli"
PLAN_ENTRY_SCARB = "scarb"

MANIFEST_FILE = "Scarb.toml"
SOURCE_EXTENSION = ".cairo"


class Detector:
    """Decides whether a project is a Scarb/Cairo project that needs starkli."""

    def __init__(self, logger=None):
        self.logger = logger

    def detect(self, application_path) -> DetectResult:
        """
        Returns passed=False when Scarb.toml is absent.

        Raises MissingSourcesError when Scarb.toml is present but no .cairo file
        exists anywhere under the root, and DetectionError when the tree cannot
        be read.
        """
        root = Path(application_path)

        manifest = root / MANIFEST_FILE
        try:
            if not manifest.is_file():
                return DetectResult(passed=False, reason=f"{MANIFEST_FILE} not found")
        except OSError as e:
            raise DetectionError(f"unable to determine if {MANIFEST_FILE} exists") from e

        try:
            found = self._contains_extension(root, SOURCE_EXTENSION)
        except OSError as e:
            raise DetectionError("unable to detect Starknet requirements") from e

        if not found:
            raise MissingSourcesError(f"no files with extension '{SOURCE_EXTENSION}' found under {root}")

        if self.logger:
            self.logger.debug(f"Detected Starknet project at {root}")

        return DetectResult(
            passed=True,
            plans=[
                BuildPlan(
                    provides=[BuildPlanProvide(name=PLAN_ENTRY_STARKLI)],
                    requires=[
                        BuildPlanRequire(name=PLAN_ENTRY_SCARB),
                        BuildPlanRequire(name=PLAN_ENTRY_STARKLI),
                    ],
                )
            ],
        )

    def _contains_extension(self, root: Path, extension: str) -> bool:
        def _raise(err: OSError):
            raise err

        for _dirpath, _dirnames, filenames in os.walk(root, onerror=_raise):
            for filename in filenames:
                if filename.endswith(extension):
                    return True
        return False
