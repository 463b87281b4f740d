import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .errors import CommandError


class Executor:
    """Runs external commands synchronously with stdout and stderr combined.

    The command is looked up on the PATH of the environment it is given, not on
    the PATH of this process, so a bin directory added to a BuildContext is
    visible to the very next call. There is no timeout.
    """

    def __init__(self, logger=None):
        self.logger = logger

    def execute(self, command: str, args: Sequence[str], env: Optional[Dict[str, str]] = None,
                cwd: Optional[Path] = None) -> str:
        args = [str(a) for a in args]
        search_path = env.get("PATH") if env is not None else None

        executable = shutil.which(command, path=search_path)
        if executable is None:
            raise CommandError(command, args, "", reason="executable file not found in $PATH")

        cmd: List[str] = [executable] + args
        if self.logger:
            self.logger.debug(f"Executing: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=env,
                cwd=str(cwd) if cwd else None,
            )
        except OSError as e:
            raise CommandError(command, args, "", reason=str(e)) from e

        output = result.stdout.decode("utf-8", errors="replace")
        if result.returncode != 0:
            raise CommandError(command, args, output, returncode=result.returncode)

        return output
