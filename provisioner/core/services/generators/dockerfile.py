"""
Dockerfile generator — render a recipe as a single-stage Dockerfile.

The rendered file performs the same stages as ``provision build`` in one
``RUN`` layer, so the toolchain is installed and purged within the same
layer and never reaches the image. DEV stays a build ARG.
"""

from __future__ import annotations

import posixpath
import shlex

from provisioner.adapters.identity.user import build_adduser_command
from provisioner.adapters.packages.system import AptAdapter, ApkAdapter
from provisioner.core.models.manifest import parse_bool
from provisioner.core.models.recipe import Recipe
from provisioner.core.models.template import GeneratedFile

_MANAGERS = {"apk": ApkAdapter, "apt": AptAdapter}
_CONT = " && \\\n    "


def _quote_env(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def render_dockerfile(recipe: Recipe, *, dev_requirements: bool = True) -> GeneratedFile:
    """Render ``recipe`` as a Dockerfile.

    Args:
        recipe: Loaded recipe.
        dev_requirements: Whether the dev requirements file exists. Without
            it the file is not copied and DEV builds install nothing extra.
    """
    system = recipe.system
    manager = _MANAGERS[system.manager]()
    scratch = recipe.scratch_dir or "/tmp"
    pip = posixpath.join(recipe.venv_bin, "pip")
    runtime_req = posixpath.join(scratch, posixpath.basename(recipe.requirements.runtime))
    dev_req = posixpath.join(scratch, posixpath.basename(recipe.requirements.dev))

    lines = [f"FROM {recipe.base_image}", ""]
    if recipe.maintainer:
        lines.append(f'LABEL maintainer="{recipe.maintainer}"')
        lines.append("")

    env = recipe.runtime_env()
    path_value = env.pop("PATH")
    for key, value in env.items():
        lines.append(f"ENV {key}={_quote_env(value)}")
    lines.append("")

    lines.append(f"COPY ./{recipe.requirements.runtime} {runtime_req}")
    if dev_requirements:
        lines.append(f"COPY ./{recipe.requirements.dev} {dev_req}")
    if recipe.app is not None:
        source = recipe.app.source.removeprefix("./")
        lines.append(f"COPY ./{source} {recipe.app.path}")
    lines.append(f"WORKDIR {recipe.workdir}")
    for port in recipe.expose:
        lines.append(f"EXPOSE {port}")
    lines.append("")

    default_dev = "true" if parse_bool(recipe.args.get("DEV", False)) else "false"
    lines.append(f"ARG DEV={default_dev}")

    steps = [
        shlex.join([recipe.python, "-m", "venv", recipe.venv]),
        shlex.join([pip, "install", "--upgrade", "pip"]),
    ]
    if system.runtime:
        steps += [shlex.join(c) for c in manager.add_commands(list(system.runtime), None)]
    # build-only packages also wanted at runtime are never purged
    toolchain = [p for p in system.build_only if p not in system.runtime]
    if toolchain:
        steps += [
            shlex.join(c)
            for c in manager.add_commands(toolchain, system.toolchain_label)
        ]
    steps.append(shlex.join([pip, "install", "-r", runtime_req]))
    if dev_requirements:
        steps.append(
            f'if [ "$DEV" = "true" ] ; then echo "--DEV BUILD--" && '
            f"{shlex.join([pip, 'install', '-r', dev_req])} ; fi"
        )
    if toolchain:
        steps += [
            shlex.join(c)
            for c in manager.del_commands(toolchain, system.toolchain_label)
        ]
    if recipe.scratch_dir:
        steps.append(shlex.join(["rm", "-rf", recipe.scratch_dir]))
    identity = recipe.identity
    steps.append(shlex.join(build_adduser_command(identity.name, identity.uid, system.manager)))

    lines.append("RUN " + _CONT.join(steps))
    lines.append("")
    lines.append(f"ENV PATH={_quote_env(path_value)}")
    lines.append("")
    lines.append(f"USER {identity.name}")

    return GeneratedFile(
        path="Dockerfile",
        content="\n".join(lines) + "\n",
        reason=f"Rendered from recipe '{recipe.name}'",
    )
