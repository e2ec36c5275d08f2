"""
Requirement manifests — requirements.txt parsing and Manifest assembly.

Reads the pip requirement files named by the recipe (following ``-r``
includes) and merges them with the recipe's system package lists into
a single frozen Manifest.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from provisioner.core.errors import ConfigError
from provisioner.core.models.manifest import Manifest, PackageSpec
from provisioner.core.models.recipe import Recipe

logger = logging.getLogger(__name__)

# name, then whatever follows: extras, specifier, "@ url", markers
_REQ_LINE = re.compile(r"^([A-Za-z0-9][A-Za-z0-9._-]*)\s*(.*)$")
_INCLUDE_OPTS = ("-r", "--requirement")


def _logical_lines(text: str) -> list[tuple[int, str]]:
    """Join backslash continuations and strip comments.

    Returns (first line number, content) pairs, blank lines dropped.
    """
    lines: list[tuple[int, str]] = []
    buffer = ""
    start = 0
    for line_num, raw in enumerate(text.splitlines(), start=1):
        if not buffer:
            start = line_num
        raw = re.sub(r"(^|\s)#.*$", "", raw).rstrip()
        if raw.endswith("\\"):
            buffer += raw[:-1] + " "
            continue
        content = (buffer + raw).strip()
        buffer = ""
        if content:
            lines.append((start, content))
    if buffer.strip():
        lines.append((start, buffer.strip()))
    return lines


def parse_requirements(
    path: Path,
    *,
    _seen: set[Path] | None = None,
) -> list[PackageSpec]:
    """Parse a pip requirements file into python PackageSpecs.

    ``-r``/``--requirement`` includes are followed relative to the
    including file; a file already being read is not read twice.
    Other pip options (``-c``, ``-e``, ``--index-url`` ...) are ignored.

    Raises:
        ConfigError: If a file is missing or a line is not a requirement.
    """
    path = path.resolve()
    seen = _seen if _seen is not None else set()
    if path in seen:
        logger.debug("Skipping already included requirements file %s", path)
        return []
    seen.add(path)

    if not path.is_file():
        raise ConfigError(f"Requirements file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    specs: list[PackageSpec] = []
    for line_num, line in _logical_lines(text):
        if line.startswith("-"):
            opt, _, value = line.partition(" ")
            if "=" in opt and opt.startswith("--"):
                opt, _, value = opt.partition("=")
            if opt in _INCLUDE_OPTS:
                if not value.strip():
                    raise ConfigError(f"{path}:{line_num}: '{opt}' needs a file")
                specs.extend(
                    parse_requirements(path.parent / value.strip(), _seen=seen)
                )
            else:
                logger.debug("%s:%d: ignoring pip option %s", path, line_num, opt)
            continue

        match = _REQ_LINE.match(line)
        if not match:
            raise ConfigError(f"{path}:{line_num}: not a requirement: {line!r}")
        name, rest = match.group(1), match.group(2).strip()
        if not rest.startswith(("@", ";")):
            rest = rest.replace(" ", "")
        specs.append(PackageSpec(name=name, ecosystem="python", specifier=rest))

    return specs


def _dedupe(specs: list[PackageSpec], group: str) -> tuple[PackageSpec, ...]:
    """Keep the first occurrence of each package key, in order.

    Raises:
        ConfigError: If one group lists a package twice with different
            specifiers.
    """
    seen: dict[str, PackageSpec] = {}
    for spec in specs:
        first = seen.get(spec.key)
        if first is None:
            seen[spec.key] = spec
        elif first.specifier != spec.specifier:
            raise ConfigError(
                f"{group} lists '{spec.name}' twice: "
                f"'{first.requirement}' and '{spec.requirement}'"
            )
    return tuple(seen.values())


def load_manifest(recipe: Recipe, root: Path) -> Manifest:
    """Assemble the Manifest for a recipe rooted at ``root``.

    The dev requirements file is optional: a recipe without one simply
    has an empty dev group. The runtime file is required.
    """
    system = recipe.system
    runtime = [PackageSpec(name=n, ecosystem="system") for n in system.runtime]
    build_only = [PackageSpec(name=n, ecosystem="system") for n in system.build_only]

    runtime.extend(parse_requirements(root / recipe.requirements.runtime))

    dev: list[PackageSpec] = []
    dev_path = root / recipe.requirements.dev
    if dev_path.is_file():
        dev = parse_requirements(dev_path)
    else:
        logger.info("No dev requirements at %s", dev_path)

    manifest = Manifest(
        runtime=_dedupe(runtime, "runtime"),
        build_only=_dedupe(build_only, "build_only"),
        dev=_dedupe(dev, "dev"),
    )
    logger.info(
        "Manifest: %d runtime, %d build-only, %d dev",
        len(manifest.runtime), len(manifest.build_only), len(manifest.dev),
    )
    return manifest
