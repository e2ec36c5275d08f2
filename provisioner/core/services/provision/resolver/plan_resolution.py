"""
L2 Resolver — recipe + resolution → ordered stage plan.

The order is fixed and mirrors how an image is layered:

    copy app → venv → pip upgrade → runtime OS packages
    → [toolchain install → pip runtime → pip dev → toolchain purge]
    → scratch cleanup → runtime env → create user → downgrade

Stages whose input is empty are left out, except the identity pair,
which every plan ends with.
"""

from __future__ import annotations

import logging
import shlex

from provisioner.core.models.manifest import BuildFlags
from provisioner.core.models.recipe import Recipe
from provisioner.core.models.stage import Plan, Stage, StageKind
from provisioner.core.services.provision.domain.layers import compute_layer_keys
from provisioner.core.services.provision.resolver.package_resolution import Resolution

logger = logging.getLogger(__name__)


def render_env_file(env: dict[str, str]) -> str:
    """Sourceable ``export KEY="value"`` lines.

    Values are double-quoted so ``$PATH`` still expands when sourced.
    """
    lines = []
    for key, value in env.items():
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        lines.append(f'export {key}="{escaped}"')
    return "\n".join(lines) + "\n"


def plan_stages(
    recipe: Recipe,
    resolution: Resolution,
    flags: BuildFlags,
    *,
    timeout: int | None = None,
) -> Plan:
    """Build the stage plan for one build.

    Args:
        recipe: Loaded recipe.
        resolution: Output of ``resolve_packages``.
        flags: Build flags (DEV).
        timeout: Per-stage budget override (default: recipe.stage_timeout).

    Returns:
        Plan with layer keys filled in. Not yet validated.
    """
    budget = timeout or recipe.stage_timeout
    manager = recipe.system.manager
    scope = recipe.system.toolchain_label
    stages: list[Stage] = []

    def add(stage_id: str, kind: StageKind, title: str, adapter: str = "",
            *, needs_root: bool = True, scope: str | None = None,
            **params) -> None:
        stages.append(Stage(
            id=stage_id, kind=kind, label=title, adapter=adapter,
            params=params, needs_root=needs_root, scope=scope, timeout=budget,
        ))

    if recipe.app is not None:
        add("copy-app", StageKind.COPY, f"Copy {recipe.app.source} → {recipe.app.path}",
            "filesystem", operation="copy", source=recipe.app.source,
            path=recipe.app.path)

    add("venv", StageKind.VENV, f"Create virtual environment {recipe.venv}",
        "shell", command=[recipe.python, "-m", "venv", recipe.venv])
    add("pip-upgrade", StageKind.UPGRADE, "Upgrade pip", "pip",
        operation="upgrade", venv=recipe.venv)

    if resolution.system_install:
        add("system-runtime", StageKind.INSTALL,
            f"Install runtime packages ({', '.join(resolution.system_install)})",
            manager, operation="add", packages=list(resolution.system_install))

    if resolution.toolchain:
        add("toolchain-install", StageKind.TOOLCHAIN_INSTALL,
            f"Install build toolchain {scope}", manager, scope=scope,
            operation="add", packages=list(resolution.toolchain), label=scope)

    runtime_reqs = [p.requirement for p in resolution.python_install
                    if p not in resolution.python_dev]
    if runtime_reqs:
        add("pip-runtime", StageKind.INSTALL, "Install python requirements", "pip",
            operation="install", venv=recipe.venv, requirements=runtime_reqs)

    if flags.dev and resolution.python_dev:
        add("pip-dev", StageKind.INSTALL, "Install dev requirements (--DEV BUILD--)",
            "pip", operation="install", venv=recipe.venv,
            requirements=[p.requirement for p in resolution.python_dev])

    if resolution.toolchain:
        add("toolchain-purge", StageKind.TOOLCHAIN_PURGE,
            f"Purge build toolchain {scope}", manager, scope=scope,
            operation="del", packages=list(resolution.purge), label=scope)

    if recipe.scratch_dir:
        add("cleanup", StageKind.CLEANUP, f"Clean {recipe.scratch_dir}",
            "filesystem", operation="clean", path=recipe.scratch_dir)

    add("runtime-env", StageKind.RUNTIME_ENV, f"Write {recipe.resolved_env_file}",
        "filesystem", operation="write", path=recipe.resolved_env_file,
        content=render_env_file(recipe.runtime_env()))

    identity = recipe.identity
    add("create-user", StageKind.CREATE_USER, f"Create user {identity.name}",
        "identity", name=identity.name, uid=identity.uid, flavor=manager)
    add("downgrade", StageKind.DOWNGRADE, f"Switch to {identity.name}",
        needs_root=False, user=identity.name)

    compute_layer_keys(stages, recipe.base_image)
    plan = Plan(recipe=recipe.name, dev=flags.dev, stages=stages)
    logger.debug(
        "Planned %d stages: %s",
        plan.total_stages, shlex.join(s.id for s in stages),
    )
    return plan
