"""
Command runner — the single boundary between the core and external tools.

Every version probe, build, run, image listing and inspect goes through
a CommandRunner.  Tests swap in a MockRunner; production uses the
SubprocessRunner below.  Runners NEVER raise for process failures:
a missing executable, a non-zero exit or a timeout are captured in the
CommandResult.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Conventional shell exit codes for the two failure modes we synthesize
EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124


class CommandResult(BaseModel):
    """Outcome of one external command invocation."""

    args: list[str] = Field(default_factory=list)
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    error: str | None = None  # set when the process could not run at all

    @property
    def ok(self) -> bool:
        """Whether the command ran and exited 0."""
        return self.returncode == 0 and self.error is None

    def describe_failure(self) -> str:
        """Human-readable failure summary (empty when ok)."""
        if self.ok:
            return ""
        if self.error:
            return self.error
        detail = self.stderr.strip()
        if detail:
            return f"exit status {self.returncode}: {detail.splitlines()[-1]}"
        return f"exit status {self.returncode}"


class CommandRunner(ABC):
    """Abstract command execution interface.

    To substitute behaviour in tests:
        1. Subclass CommandRunner (or use MockRunner)
        2. Pass the instance to the component under test
    """

    @abstractmethod
    def run(
        self,
        args: Sequence[str],
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a command and capture its output. MUST never raise."""

    @abstractmethod
    def which(self, name: str) -> str | None:
        """Resolve an executable on the search path, or None."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class SubprocessRunner(CommandRunner):
    """Run commands with ``subprocess.run``.

    No timeout is applied unless the caller passes one; the engine's own
    behaviour bounds every call.
    """

    def run(
        self,
        args: Sequence[str],
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        argv = list(args)
        logger.debug("Executing: %s (cwd=%s)", " ".join(argv), cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                args=argv,
                returncode=EXIT_TIMEOUT,
                duration_ms=int((time.monotonic() - start) * 1000),
                error=f"Command timed out after {timeout}s",
            )
        except OSError as e:
            # FileNotFoundError, PermissionError, ...
            return CommandResult(
                args=argv,
                returncode=EXIT_NOT_FOUND,
                duration_ms=int((time.monotonic() - start) * 1000),
                error=f"Command execution error: {e}",
            )

        return CommandResult(
            args=argv,
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    def which(self, name: str) -> str | None:
        return shutil.which(name)
