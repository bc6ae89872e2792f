"""Adapters — command execution bindings for external container engines.

Public re-exports for convenient access.
"""

from mitl.adapters.mock import MockRunner
from mitl.adapters.shell.command import CommandResult, CommandRunner, SubprocessRunner

__all__ = [
    "CommandResult",
    "CommandRunner",
    "MockRunner",
    "SubprocessRunner",
]
