"""
L1 Domain — artifact checks against the manifest (pure).

Run before an artifact is published, and again by ``provision verify``
on an artifact that already was. No I/O.
"""

from __future__ import annotations

from provisioner.core.models.artifact import BuildArtifact
from provisioner.core.models.manifest import Manifest


def verify_artifact(artifact: BuildArtifact, manifest: Manifest) -> list[str]:
    """Check what an artifact contains against what was asked for.

    - without DEV, no dev-only python package is present
    - with DEV, every runtime and dev python package is present
    - no build-only toolchain package survives
    - the identity is not root, has no login password, no home

    Returns:
        List of violations (empty = artifact is sound).
    """
    problems: list[str] = []
    python = set(artifact.python_packages)
    system = set(artifact.system_packages)

    wanted = manifest.names("runtime", "python")
    if artifact.dev:
        wanted |= manifest.names("dev", "python")
    else:
        leaked = sorted(python & manifest.dev_only_names)
        if leaked:
            problems.append(f"Dev-only packages in a non-dev build: {', '.join(leaked)}")

    missing = sorted(wanted - python)
    if missing:
        problems.append(f"Python packages missing: {', '.join(missing)}")

    missing_system = sorted(manifest.names("runtime", "system") - system)
    if missing_system:
        problems.append(f"System packages missing: {', '.join(missing_system)}")

    toolchain = manifest.names("build_only", "system") - manifest.names("runtime", "system")
    residue = sorted(system & toolchain)
    if residue:
        problems.append(f"Build toolchain left behind: {', '.join(residue)}")

    if not artifact.identity or artifact.identity == "root":
        problems.append(f"Runtime identity is privileged: '{artifact.identity}'")
    if artifact.identity_uid == 0:
        problems.append("Runtime identity has uid 0")
    if not artifact.login_disabled:
        problems.append("Runtime identity has a usable login")
    if artifact.home_created:
        problems.append("Runtime identity has a home directory")

    return problems
