"""
Verify use case — re-check a published artifact against its recipe.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from provisioner.core.config.loader import find_recipe_file, load_recipe, recipe_root
from provisioner.core.config.requirements import load_manifest
from provisioner.core.errors import ConfigError
from provisioner.core.models.artifact import BuildArtifact
from provisioner.core.persistence.artifact_store import default_lock_path, load_artifact
from provisioner.core.services.provision.domain.verification import verify_artifact

logger = logging.getLogger(__name__)


@dataclass
class VerifyResult:
    artifact: BuildArtifact | None = None
    lock_path: Path | None = None
    violations: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.violations

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "lock_path": str(self.lock_path) if self.lock_path else None,
            "digest": self.artifact.digest if self.artifact else None,
            "violations": self.violations,
            "error": self.error,
        }


def verify_published(
    config_path: Path | None = None,
    lock_path: Path | None = None,
) -> VerifyResult:
    """Load the recipe and its published artifact and check one against the other."""
    result = VerifyResult()
    try:
        if config_path is None:
            config_path = find_recipe_file()
        recipe = load_recipe(config_path)
        assert config_path is not None
        root = recipe_root(config_path)
        manifest = load_manifest(recipe, root)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.lock_path = lock_path or default_lock_path(root)
    result.artifact = load_artifact(result.lock_path)
    if result.artifact is None:
        result.error = f"No published artifact at {result.lock_path}"
        return result

    result.violations = verify_artifact(result.artifact, manifest)
    if result.violations:
        logger.warning("Artifact %s: %d violation(s)", result.lock_path, len(result.violations))
    return result
