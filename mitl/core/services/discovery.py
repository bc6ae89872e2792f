"""
Runtime discovery — find container engines on PATH and probe them.

Two static priority tables decide the initial ordering: one for native
Apple Silicon hosts and one for everything else.  Each found executable
gets a version probe and capability probes.  Probe failures degrade to
"unknown" / missing capability — discovery never raises.
"""

from __future__ import annotations

import logging

from mitl.adapters.shell.command import CommandRunner
from mitl.core.models.runtime import HardwareProfile, Runtime

logger = logging.getLogger(__name__)

RT_CONTAINER = "container"
RT_DOCKER = "docker"
RT_PODMAN = "podman"
RT_FINCH = "finch"
RT_NERDCTL = "nerdctl"

UNKNOWN_VERSION = "unknown"

CAP_BUILDKIT = "buildkit"
CAP_MULTI_PLATFORM = "multi-platform"
CAP_COMPOSE = "compose"

# ── Priority tables (higher = preferred) ────────────────────────

APPLE_SILICON_PRIORITIES: tuple[tuple[str, int], ...] = (
    (RT_CONTAINER, 100),  # Apple native virtualization
    (RT_FINCH, 80),
    (RT_PODMAN, 60),
    (RT_NERDCTL, 50),
    (RT_DOCKER, 30),      # Docker Desktop is slowest here
)

DEFAULT_PRIORITIES: tuple[tuple[str, int], ...] = (
    (RT_PODMAN, 90),
    (RT_DOCKER, 80),
    (RT_NERDCTL, 70),
)

# Only these expose a buildx plugin worth probing
_BUILDKIT_RUNTIMES = frozenset({RT_DOCKER, RT_CONTAINER})
# Finch does not handle multi-platform builds well
_NO_MULTI_PLATFORM = frozenset({RT_FINCH})

_DESCRIPTIONS = {
    RT_CONTAINER: "Native Apple runtime (fastest)",
    RT_FINCH: "AWS container runtime",
    RT_DOCKER: "Docker Desktop",
    RT_PODMAN: "Podman container engine",
    RT_NERDCTL: "containerd CLI",
}


def candidate_runtimes(profile: HardwareProfile) -> tuple[tuple[str, int], ...]:
    """The priority table that applies to this hardware class."""
    if profile.apple_silicon:
        return APPLE_SILICON_PRIORITIES
    return DEFAULT_PRIORITIES


class RuntimeDiscoverer:
    """Scans PATH for known engines and builds Runtime entries."""

    def __init__(self, runner: CommandRunner):
        self._runner = runner

    def discover(self, profile: HardwareProfile) -> list[Runtime]:
        """Return found runtimes, sorted by descending priority."""
        found: list[Runtime] = []
        for name, priority in candidate_runtimes(profile):
            path = self._runner.which(name)
            if not path:
                continue
            rt = Runtime(
                name=name,
                path=path,
                priority=priority,
                version=self.probe_version(path),
                capabilities=self.probe_capabilities(name, path),
            )
            logger.debug("Discovered %s %s at %s", rt.name, rt.version, rt.path)
            found.append(rt)

        # sorted() is stable: equal priorities keep discovery order
        return sorted(found, key=lambda r: r.priority, reverse=True)

    def probe_version(self, executable: str) -> str:
        """Extract a version token from ``<executable> --version``.

        Picks the first token after the program name that contains a dot,
        e.g. "Docker version 24.0.5, build ced0996" → "24.0.5".
        """
        r = self._runner.run([executable, "--version"])
        if not r.ok:
            return UNKNOWN_VERSION
        lines = r.stdout.splitlines()
        if not lines:
            return UNKNOWN_VERSION
        for i, token in enumerate(lines[0].split()):
            if i > 0 and "." in token:
                return token.rstrip(",")
        return UNKNOWN_VERSION

    def probe_capabilities(self, name: str, executable: str) -> list[str]:
        """Detect buildkit, multi-platform and compose support."""
        caps: list[str] = []

        if name in _BUILDKIT_RUNTIMES:
            if self._runner.run([executable, "buildx", "version"]).ok:
                caps.append(CAP_BUILDKIT)

        if name not in _NO_MULTI_PLATFORM:
            caps.append(CAP_MULTI_PLATFORM)

        if self._runner.run([executable, "compose", "version"]).ok:
            caps.append(CAP_COMPOSE)

        return caps


# ── Display helpers ─────────────────────────────────────────────


def runtime_description(name: str) -> str:
    """One-line description of a known runtime ('' for unknown ones)."""
    return _DESCRIPTIONS.get(name, "")


def format_runtime(rt: Runtime) -> str:
    """e.g. "podman 4.9.0 (1.0x, multi-platform, compose)"."""
    features: list[str] = []
    if rt.performance > 0:
        features.append(f"{rt.performance:.1f}x")
    if rt.capabilities:
        features.append(", ".join(rt.capabilities))
    if features:
        return f"{rt.name} {rt.version} ({', '.join(features)})"
    return f"{rt.name} {rt.version}"


def is_optimal_runtime(profile: HardwareProfile, name: str) -> bool:
    """Whether ``name`` is the engine we'd expect to win on this hardware."""
    if profile.apple_silicon:
        return name == RT_CONTAINER
    return name in (RT_PODMAN, RT_DOCKER)
