"""
L2 Resolver — manifest → minimal install and purge sets.

Pure: takes a frozen Manifest, the DEV flag and the set of packages the
base system already has, and decides exactly what to install, what to
install only for the duration of the build, and what to purge again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from provisioner.core.errors import ResolutionError
from provisioner.core.models.manifest import Manifest, PackageSpec

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    """Resolved package sets for one build.

    Attributes:
        system_install:  Runtime OS packages to install (not yet present).
        toolchain:       Build-only OS packages installed for the build.
        purge:           OS packages removed after the build. Always
                         equal to ``toolchain``.
        python_install:  Requirement specs installed into the venv.
        python_dev:      The part of python_install that only dev added.
        dev:             Whether dev requirements were merged.
    """

    system_install: list[str] = field(default_factory=list)
    toolchain: list[str] = field(default_factory=list)
    purge: list[str] = field(default_factory=list)
    python_install: list[PackageSpec] = field(default_factory=list)
    python_dev: list[PackageSpec] = field(default_factory=list)
    already_installed: list[str] = field(default_factory=list)
    dev: bool = False

    @property
    def python_requirements(self) -> list[str]:
        return [p.requirement for p in self.python_install]

    @property
    def python_names(self) -> list[str]:
        return [p.key for p in self.python_install]

    def to_dict(self) -> dict:
        return {
            "dev": self.dev,
            "system_install": self.system_install,
            "toolchain": self.toolchain,
            "purge": self.purge,
            "python_install": self.python_requirements,
            "python_dev": [p.requirement for p in self.python_dev],
            "already_installed": self.already_installed,
        }


def _system(specs: tuple[PackageSpec, ...]) -> list[str]:
    return [p.name for p in specs if p.ecosystem == "system"]


def _python(specs: tuple[PackageSpec, ...]) -> list[PackageSpec]:
    return [p for p in specs if p.ecosystem == "python"]


def same_specifier(a: str, b: str) -> bool:
    """Whether two specifiers name the same clauses, in any order."""
    return _clauses(a) == _clauses(b)


def _clauses(specifier: str) -> frozenset[str]:
    return frozenset(
        "".join(c.split()) for c in specifier.split(",") if c.strip()
    )


def merge_python(
    runtime: list[PackageSpec],
    dev: list[PackageSpec],
) -> list[PackageSpec]:
    """Union of runtime and dev requirements, runtime first.

    Raises:
        ResolutionError: If both groups name a package with different
            specifiers.
    """
    merged: dict[str, PackageSpec] = {p.key: p for p in runtime}
    for spec in dev:
        existing = merged.get(spec.key)
        if existing is None:
            merged[spec.key] = spec
        elif not same_specifier(existing.specifier, spec.specifier):
            raise ResolutionError(
                f"Conflicting requirements for '{spec.name}': "
                f"runtime '{existing.requirement}' vs dev '{spec.requirement}'"
            )
    return list(merged.values())


def resolve_packages(
    manifest: Manifest,
    dev: bool = False,
    installed: set[str] | frozenset[str] | None = None,
) -> Resolution:
    """Compute the install, toolchain and purge sets.

    Args:
        manifest: Parsed manifest.
        dev: Merge the dev group into the python install set.
        installed: OS packages present before the build starts.
            These are never reinstalled and never purged.

    Returns:
        Resolution.

    Raises:
        ResolutionError: On conflicting python requirements
            (see ``merge_python``).
    """
    installed = set(installed or ())

    runtime_system = _system(manifest.runtime)
    system_install = [p for p in runtime_system if p not in installed]

    keep = set(runtime_system) | installed
    toolchain = [p for p in _system(manifest.build_only) if p not in keep]
    skipped_build = [p for p in _system(manifest.build_only) if p in keep]
    if skipped_build:
        logger.info(
            "Build-only packages already wanted or present, not purged: %s",
            ", ".join(skipped_build),
        )

    python_runtime = _python(manifest.runtime)
    python_install = (
        merge_python(python_runtime, _python(manifest.dev)) if dev else python_runtime
    )
    python_dev = python_install[len(python_runtime):]

    resolution = Resolution(
        system_install=system_install,
        toolchain=toolchain,
        purge=list(toolchain),
        python_install=python_install,
        python_dev=python_dev,
        already_installed=sorted(p for p in runtime_system if p in installed),
        dev=dev,
    )
    logger.info(
        "Resolved: %d system, %d toolchain, %d python%s",
        len(system_install), len(toolchain), len(python_install),
        " (dev)" if dev else "",
    )
    return resolution
