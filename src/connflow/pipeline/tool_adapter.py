"""Invocation of external neuroimaging tools (ANTs, FSL, MRtrix3).

The adapter is deliberately thin: it runs one command, captures its output
and reports the raw exit status. Interpreting the status is the runner's job.
"""

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

__all__ = ['ToolResult', 'ExternalToolAdapter']

logger = logging.getLogger(__name__)

# Exit status reported when the executable cannot be started at all
# (same convention as POSIX shells for "command not found").
LAUNCH_FAILURE_STATUS = 127


@dataclass
class ToolResult:
    """Outcome of one external tool invocation."""
    command: str
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return " ".join([self.command] + [str(a) for a in self.args])


class ExternalToolAdapter:
    """Runs external executables with ``subprocess``.

    Parameters
    ----------
    overrides : dict, optional
        Tool name -> executable to run instead (e.g. a site-specific wrapper
        or an absolute path).
    env : dict, optional
        Extra environment variables (``OMP_NUM_THREADS``, ``FSLOUTPUTTYPE``...).
    timeout : float, optional
        Seconds before a tool is killed. ``None`` waits indefinitely.

    Notes
    -----
    Children are started in their own session, so a Ctrl+C at the terminal
    reaches only the pipeline. The runner then stops between stages instead
    of leaving half-written outputs behind.
    """

    def __init__(self, overrides: Optional[Mapping[str, str]] = None,
                 env: Optional[Mapping[str, str]] = None,
                 timeout: Optional[float] = None):
        self.overrides: Dict[str, str] = dict(overrides or {})
        self.env = dict(env or {})
        self.timeout = timeout

    def resolve(self, command: str) -> str:
        return self.overrides.get(command, command)

    def invoke(self, command: str, args: Sequence[str]) -> ToolResult:
        """Run ``command`` with ``args`` and return its raw result. No retries."""
        executable = self.resolve(command)
        args = [str(a) for a in args]
        env = None
        if self.env:
            env = os.environ.copy()
            env.update({k: str(v) for k, v in self.env.items()})

        logger.debug("Invoking: %s %s", executable, " ".join(args))
        start = time.monotonic()
        try:
            completed = subprocess.run(
                [executable] + args,
                capture_output=True,
                text=True,
                env=env,
                timeout=self.timeout,
                start_new_session=True,
            )
        except subprocess.TimeoutExpired as e:
            stderr = e.stderr.decode(errors='replace') if isinstance(e.stderr, bytes) else (e.stderr or "")
            return ToolResult(
                command=executable,
                args=args,
                returncode=-9,
                stderr=f"{stderr}\nTimed out after {self.timeout} s".lstrip(),
                duration=time.monotonic() - start,
            )
        except OSError as e:
            logger.debug("Could not launch %s: %s", executable, e)
            return ToolResult(
                command=executable,
                args=args,
                returncode=LAUNCH_FAILURE_STATUS,
                stderr=str(e),
                duration=time.monotonic() - start,
            )

        return ToolResult(
            command=executable,
            args=args,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration=time.monotonic() - start,
        )
