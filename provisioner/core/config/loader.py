"""
Configuration loader — reads provision.yml into a Recipe.

This is the primary entry point for loading build configuration.
It reads YAML, validates against Pydantic schemas, and returns typed
domain objects. Build arguments (``--build-arg KEY=VALUE``) are
resolved here too, since they override values from the recipe.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from provisioner.core.errors import ConfigError
from provisioner.core.models.manifest import BuildFlags, parse_bool
from provisioner.core.models.recipe import Recipe

logger = logging.getLogger(__name__)

# Default config filename
RECIPE_FILE = "provision.yml"

# Env var that overrides the DEV build arg when no --build-arg is given
DEV_ENV_VAR = "PROVISION_DEV"

__all__ = [
    "ConfigError",
    "RECIPE_FILE",
    "find_recipe_file",
    "load_recipe",
    "parse_build_args",
    "recipe_root",
    "resolve_build_flags",
]


def find_recipe_file(start_dir: Path | None = None) -> Path | None:
    """Search for provision.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to provision.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / RECIPE_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_recipe(path: Path | None = None) -> Recipe:
    """Load and validate a recipe.

    Args:
        path: Explicit path to provision.yml. If None, searches upward.

    Returns:
        Validated Recipe model.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_recipe_file()

    if path is None:
        raise ConfigError(
            f"No {RECIPE_FILE} found. Create one or specify --config."
        )

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading recipe from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "recipe" key or be flat
    recipe_data = data["recipe"] if isinstance(data.get("recipe"), dict) else data

    try:
        recipe = Recipe.model_validate(recipe_data)
    except Exception as e:
        raise ConfigError(f"Invalid recipe: {e}") from e

    logger.info("Loaded recipe '%s' (base %s)", recipe.name, recipe.base_image)
    return recipe


def recipe_root(config_path: Path) -> Path:
    """Directory that relative recipe paths are resolved against."""
    return config_path.parent.resolve()


def parse_build_args(pairs: list[str] | tuple[str, ...]) -> dict[str, str]:
    """Parse ``KEY=VALUE`` build arguments.

    Raises:
        ConfigError: On an entry without ``=`` or with an empty key.
    """
    args: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ConfigError(f"Build arg must be KEY=VALUE, got '{pair}'")
        args[key] = value
    return args


def resolve_build_flags(
    recipe: Recipe,
    build_args: dict[str, str] | None = None,
    *,
    environ: dict[str, str] | None = None,
) -> BuildFlags:
    """Combine recipe defaults, environment and CLI build args.

    Precedence: ``--build-arg``  >  PROVISION_DEV  >  recipe ``args``.

    Raises:
        ConfigError: If DEV is not a recognisable boolean.
    """
    environ = os.environ if environ is None else environ
    merged: dict[str, str | bool] = dict(recipe.args)
    if DEV_ENV_VAR in environ:
        merged["DEV"] = environ[DEV_ENV_VAR]
    merged.update(build_args or {})

    try:
        dev = parse_bool(merged.get("DEV", False))
    except ValueError as e:
        raise ConfigError(str(e)) from e

    extra = {k: str(v) for k, v in merged.items() if k != "DEV"}
    if dev:
        logger.info("--DEV BUILD--")
    return BuildFlags(dev=dev, extra=extra)
