"""
Config check use case — validate provision.yml and its requirement files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from provisioner.core.config.loader import (
    RECIPE_FILE,
    ConfigError,
    find_recipe_file,
    load_recipe,
    recipe_root,
)
from provisioner.core.config.requirements import load_manifest
from provisioner.core.models.manifest import Manifest
from provisioner.core.models.recipe import Recipe


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    recipe: Recipe | None = None
    manifest: Manifest | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "recipe": self.recipe.name if self.recipe else None,
            "runtime_packages": len(self.manifest.runtime) if self.manifest else 0,
            "build_only_packages": len(self.manifest.build_only) if self.manifest else 0,
            "dev_packages": len(self.manifest.dev) if self.manifest else 0,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate a recipe and report issues.

    Args:
        config_path: Optional explicit path to provision.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_recipe_file()
    if config_path is None:
        result.errors.append(f"No {RECIPE_FILE} found.")
        return result
    result.config_path = config_path

    try:
        recipe = load_recipe(config_path)
        result.recipe = recipe
        root = recipe_root(config_path)
        result.manifest = load_manifest(recipe, root)
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    manifest = result.manifest
    if not manifest.runtime and not manifest.dev:
        result.warnings.append("No packages declared. The build only creates the venv and user.")

    overlap = set(recipe.system.runtime) & set(recipe.system.build_only)
    if overlap:
        result.warnings.append(
            f"Listed as both runtime and build-only, kept after purge: {', '.join(sorted(overlap))}"
        )

    if recipe.system.build_only and not recipe.system.toolchain_label:
        result.warnings.append("Build-only packages without a toolchain label are purged by name.")

    if recipe.app is not None and not (root / recipe.app.source).exists():
        result.warnings.append(f"App source does not exist: {recipe.app.source}")

    if not (root / recipe.requirements.dev).is_file():
        result.warnings.append(
            f"No {recipe.requirements.dev}; DEV builds install nothing extra."
        )

    result.valid = len(result.errors) == 0
    return result
