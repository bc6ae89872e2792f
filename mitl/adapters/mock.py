"""
Mock runner — universal test double for command execution.

Used wherever a real container engine must not be touched. Responses
are scripted per argument prefix; everything else gets the default
response (success with empty output).
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from mitl.adapters.shell.command import CommandResult, CommandRunner

Responder = Callable[[list[str]], CommandResult]


class MockRunner(CommandRunner):
    """Scriptable command runner for testing.

    By default every command succeeds with empty output. Prefix rules
    are matched longest-first, so ``("docker", "run")`` wins over
    ``("docker",)``.
    """

    def __init__(
        self,
        executables: dict[str, str] | None = None,
        default: CommandResult | None = None,
    ):
        self._executables = dict(executables or {})
        self._default = default or CommandResult()
        self._responses: dict[tuple[str, ...], CommandResult | Responder] = {}
        self._call_log: list[list[str]] = []

    @property
    def call_log(self) -> list[list[str]]:
        """Every argv this runner has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        """Number of times run has been called."""
        return len(self._call_log)

    def calls_matching(self, *prefix: str) -> list[list[str]]:
        """Recorded calls that start with the given arguments."""
        return [c for c in self._call_log if tuple(c[: len(prefix)]) == prefix]

    def add_executable(self, name: str, path: str | None = None) -> None:
        """Make ``which(name)`` resolve."""
        self._executables[name] = path or f"/usr/bin/{name}"

    def set_response(
        self,
        prefix: Sequence[str],
        result: CommandResult | Responder | None = None,
        *,
        stdout: str = "",
        returncode: int = 0,
        stderr: str = "",
    ) -> None:
        """Script the response for commands starting with ``prefix``."""
        if result is None:
            result = CommandResult(stdout=stdout, returncode=returncode, stderr=stderr)
        self._responses[tuple(prefix)] = result

    def set_failure(self, prefix: Sequence[str], stderr: str = "mock failure") -> None:
        """Configure commands starting with ``prefix`` to exit 1."""
        self.set_response(prefix, returncode=1, stderr=stderr)

    def run(
        self,
        args: Sequence[str],
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        argv = list(args)
        self._call_log.append(argv)

        for prefix in sorted(self._responses, key=len, reverse=True):
            if tuple(argv[: len(prefix)]) == prefix:
                response = self._responses[prefix]
                if callable(response):
                    response = response(argv)
                return response.model_copy(update={"args": argv})

        return self._default.model_copy(update={"args": argv})

    def which(self, name: str) -> str | None:
        return self._executables.get(name)

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._responses.clear()
