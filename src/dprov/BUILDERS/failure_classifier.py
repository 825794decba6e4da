"""
Mapping of raw engine failures onto the provisioning error taxonomy.
"""
import re
from typing import List

from ..errors import (
    EngineCommandError,
    EngineTimeoutError,
    ImagePullError,
    NetworkError,
    PackageResolutionError,
    ProvisionError,
    StepFailedError,
)

NETWORK_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"could not resolve host",
        r"temporary failure (in name resolution|resolving)",
        r"name or service not known",
        r"failed to download metadata",
        r"cannot download repomd\.xml",
        r"curl error",
        r"connection (timed out|refused|reset)",
        r"network is unreachable",
        r"no route to host",
        r"tls handshake timeout",
        r"i/o timeout",
        r"failed to fetch",
        r"temporary error \(try again later\)",
        r"dial tcp",
    )
]

# Each pattern captures the missing package name
MISSING_PACKAGE_PATTERNS = [
    re.compile(r"No match for argument:\s*(\S+)"),
    re.compile(r"No package (\S+) available"),
    re.compile(r"Unable to locate package (\S+)"),
    re.compile(r"Package '?([^'\s]+)'? has no installation candidate"),
    re.compile(r"(\S+) \(no such package\)"),
    re.compile(r"No provider of '([^']+)' found"),
    re.compile(r"'([^']+)' not found in package names"),
]

MISSING_PACKAGE_MARKERS = [
    re.compile(r"Unable to find a match", re.IGNORECASE),
    re.compile(r"unable to select packages", re.IGNORECASE),
]


def missing_packages(output: str) -> List[str]:
    """
    Extracts the package names an install step reported as unavailable.
    """
    names: List[str] = []
    for pattern in MISSING_PACKAGE_PATTERNS:
        for match in pattern.finditer(output):
            name = match.group(1).strip("'\":,")
            if name and name not in names:
                names.append(name)
    return names


def is_network_failure(output: str) -> bool:
    return any(p.search(output) for p in NETWORK_PATTERNS)


def classify(step: str, error: EngineCommandError) -> ProvisionError:
    """
    Converts an engine failure in ``step`` into a typed provisioning error.

    A timed out command is a step failure whatever the step. Package
    resolution failures are checked before connectivity ones because
    package managers often report both when a name cannot be resolved.
    """
    output = error.output
    detail = _last_line(output) or str(error)

    if isinstance(error, EngineTimeoutError):
        return StepFailedError(f"{step} timed out after {error.timeout}s", step=step)

    if step == "install":
        names = missing_packages(output)
        if names or any(m.search(output) for m in MISSING_PACKAGE_MARKERS):
            listed = ", ".join(names) if names else "unknown"
            return PackageResolutionError(
                f"packages not available: {listed}", step=step, packages=names
            )

    if is_network_failure(output):
        return NetworkError(f"network failure during {step}: {detail}", step=step)

    if step == "pull":
        return ImagePullError(f"cannot pull base image: {detail}", step=step)

    return StepFailedError(f"{step} failed with status {error.returncode}: {detail}", step=step)


def _last_line(output: str) -> str:
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    return lines[-1] if lines else ""
