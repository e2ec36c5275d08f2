"""
Plan use case — recipe to validated stage plan, without executing.

Loads the recipe and its requirement files, resolves build flags and
package sets, lays out the stages and checks the ordering rules. The
build use case starts from here; ``provision plan`` stops here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from provisioner.core.config.loader import (
    find_recipe_file,
    load_recipe,
    recipe_root,
    resolve_build_flags,
)
from provisioner.core.config.requirements import load_manifest
from provisioner.core.errors import ConfigError, PlanValidationError, ResolutionError
from provisioner.core.models.manifest import BuildFlags, Manifest
from provisioner.core.models.recipe import Recipe
from provisioner.core.models.stage import Plan
from provisioner.core.services.provision.domain.ordering import ensure_valid
from provisioner.core.services.provision.resolver.package_resolution import (
    Resolution,
    resolve_packages,
)
from provisioner.core.services.provision.resolver.plan_resolution import plan_stages

logger = logging.getLogger(__name__)


@dataclass
class PlanResult:
    """Everything known about a build before it runs."""

    recipe: Recipe | None = None
    config_path: Path | None = None
    project_root: Path | None = None
    manifest: Manifest | None = None
    flags: BuildFlags | None = None
    resolution: Resolution | None = None
    plan: Plan | None = None
    installed: frozenset[str] | None = None
    validation_errors: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        if self.error:
            result: dict = {"error": self.error}
            if self.validation_errors:
                result["validation_errors"] = self.validation_errors
            return result
        assert self.recipe is not None and self.plan is not None
        assert self.resolution is not None
        return {
            "recipe": self.recipe.name,
            "project_root": str(self.project_root),
            "dev": self.plan.dev,
            "resolution": self.resolution.to_dict(),
            "plan": self.plan.to_dict(),
        }


def prepare_plan(
    config_path: Path | None = None,
    build_args: dict[str, str] | None = None,
    *,
    installed: set[str] | frozenset[str] | None = None,
    inventory: Callable[[str], frozenset[str]] | None = None,
    timeout: int | None = None,
    environ: dict[str, str] | None = None,
) -> PlanResult:
    """Load, resolve, plan and validate.

    Args:
        config_path: Explicit provision.yml (default: search upward).
        build_args: Parsed ``--build-arg`` values.
        installed: Known pre-installed OS packages.
        inventory: Query for ``installed`` when it is not given, called
            with the recipe's package manager.
        timeout: Per-stage budget override.
        environ: Environment for PROVISION_DEV (default: os.environ).

    Returns:
        PlanResult; ``error`` is set instead of raising.
    """
    result = PlanResult()

    try:
        if config_path is None:
            config_path = find_recipe_file()
        recipe = load_recipe(config_path)
        assert config_path is not None
        result.recipe = recipe
        result.config_path = config_path
        result.project_root = recipe_root(config_path)

        result.flags = resolve_build_flags(recipe, build_args, environ=environ)
        result.manifest = load_manifest(recipe, result.project_root)
    except ConfigError as e:
        result.error = str(e)
        return result

    if installed is None and inventory is not None:
        installed = inventory(recipe.system.manager)
    if installed is not None:
        result.installed = frozenset(installed)

    try:
        result.resolution = resolve_packages(
            result.manifest, dev=result.flags.dev, installed=installed,
        )
    except ResolutionError as e:
        result.error = str(e)
        return result

    result.plan = plan_stages(recipe, result.resolution, result.flags, timeout=timeout)

    try:
        ensure_valid(result.plan)
    except PlanValidationError as e:
        result.validation_errors = e.errors
        result.error = f"Invalid plan: {len(e.errors)} ordering error(s)"
        logger.error("Plan rejected: %s", e)

    return result
