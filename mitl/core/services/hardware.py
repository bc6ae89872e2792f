"""
Hardware detection — OS, architecture, Apple Silicon and Rosetta.

Read-only system probes: platform, os.cpu_count, /proc/meminfo,
sysctl, system_profiler.  Detection never raises; every probe failure
degrades to a best-effort value.
"""

from __future__ import annotations

import logging
import os
import platform
from pathlib import Path

from mitl.adapters.shell.command import CommandRunner, SubprocessRunner
from mitl.core.models.runtime import HardwareProfile

logger = logging.getLogger(__name__)

OS_DARWIN = "darwin"
ARCH_ARM64 = "arm64"

# platform.machine() spellings → normalized arch names
_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "i386": "386",
    "i686": "386",
}

_MEMINFO = Path("/proc/meminfo")


def normalize_arch(machine: str) -> str:
    """Map ``platform.machine()`` output onto amd64/arm64/... names."""
    m = machine.strip().lower()
    return _ARCH_ALIASES.get(m, m or "unknown")


def normalize_os(system: str) -> str:
    """Map ``platform.system()`` output onto darwin/linux/windows."""
    return system.strip().lower() or "unknown"


class HardwareProfiler:
    """Builds the process-wide HardwareProfile.

    ``system`` and ``machine`` default to the running interpreter's
    values; tests pass them explicitly to simulate other hosts.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        system: str | None = None,
        machine: str | None = None,
    ):
        self._runner = runner or SubprocessRunner()
        self._os = normalize_os(system if system is not None else platform.system())
        self._arch = normalize_arch(machine if machine is not None else platform.machine())

    def detect(self) -> HardwareProfile:
        """Return a best-effort HardwareProfile for this host."""
        apple_silicon = self._os == OS_DARWIN and self._arch == ARCH_ARM64
        if apple_silicon and self._is_translated():
            logger.info("Running under Rosetta translation — not using native fast path")
            apple_silicon = False

        profile = HardwareProfile(
            os=self._os,
            arch=self._arch,
            apple_silicon=apple_silicon,
            cpu_cores=os.cpu_count() or 0,
            memory_gb=self._memory_gb(),
        )
        logger.debug("Hardware profile: %s", profile.model_dump())
        return profile

    def _is_translated(self) -> bool:
        """True when ``sysctl.proc_translated`` reports 1.

        A failed probe counts as native.
        """
        r = self._runner.run(["sysctl", "-n", "sysctl.proc_translated"])
        if not r.ok:
            return False
        return r.stdout.strip() == "1"

    def _memory_gb(self) -> int:
        if self._os == OS_DARWIN:
            r = self._runner.run(["sysctl", "-n", "hw.memsize"])
            if r.ok and r.stdout.strip().isdigit():
                return int(r.stdout.strip()) // (1024 ** 3)
            return 0
        if self._os == "linux":
            return _meminfo_gb(_MEMINFO)
        return 0


def _meminfo_gb(path: Path) -> int:
    """Parse MemTotal (kB) from a meminfo file."""
    try:
        with open(path) as f:
            for line in f:
                if line.startswith("MemTotal:"):
                    kb = int(line.split()[1])
                    return kb // (1024 * 1024)
    except (OSError, ValueError, IndexError):
        pass
    return 0


def apple_silicon_generation(
    profile: HardwareProfile,
    runner: CommandRunner | None = None,
) -> str:
    """Return "M1", "M2", "M3" or "unknown"; "" off Apple Silicon."""
    if profile.os != OS_DARWIN or profile.arch != ARCH_ARM64:
        return ""
    runner = runner or SubprocessRunner()
    r = runner.run(["system_profiler", "SPHardwareDataType"])
    if not r.ok:
        return "unknown"
    for gen in ("M3", "M2", "M1"):
        if f"Apple {gen}" in r.stdout:
            return gen
    return "unknown"


def optimization_hints(
    profile: HardwareProfile,
    runner: CommandRunner | None = None,
) -> list[str]:
    """Platform-specific performance tips for the current host."""
    hints: list[str] = []
    if profile.os != OS_DARWIN or profile.arch != ARCH_ARM64:
        return hints

    runner = runner or SubprocessRunner()
    if runner.which("container") is None:
        hints.append("Install Apple Container for 5-10x speed boost:")
        hints.append("Download from developer.apple.com/virtualization")

    r = runner.run(["docker", "info"])
    if r.ok and "Docker Desktop" in r.stdout:
        hints.append(
            "Docker Desktop detected. Consider Finch or Podman for better "
            "performance on Apple Silicon"
        )
    return hints
