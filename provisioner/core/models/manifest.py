"""
Manifest models — what has to be installed, grouped by purpose.

A Manifest is built once at pipeline start from the recipe and the two
requirement files, then handed to the resolver. It is frozen: nothing
downstream may add or drop a package after parsing.
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Ecosystem = Literal["system", "python"]

_NAME_SEPARATORS = re.compile(r"[-_.]+")

_TRUE_VALUES = frozenset({"true", "1", "yes"})
_FALSE_VALUES = frozenset({"false", "0", "no", ""})


def normalize_name(name: str, ecosystem: Ecosystem = "python") -> str:
    """Comparable package name.

    Python names follow PEP 503 (case-insensitive, ``-_.`` equivalent).
    System package names are compared verbatim.
    """
    if ecosystem == "python":
        return _NAME_SEPARATORS.sub("-", name).lower()
    return name


class PackageSpec(BaseModel):
    """One package requirement.

    Attributes:
        name:      Package name as written.
        ecosystem: ``system`` (apk/apt) or ``python`` (pip).
        specifier: Version specifier / extras for python packages,
                   e.g. ``">=4.2,<4.3"`` or ``"[binary]==3.1"``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    ecosystem: Ecosystem = "python"
    specifier: str = ""

    @property
    def key(self) -> str:
        return normalize_name(self.name, self.ecosystem)

    @property
    def requirement(self) -> str:
        """The string handed to the package manager."""
        if self.specifier.startswith(("@", ";")):
            return f"{self.name} {self.specifier}"
        return f"{self.name}{self.specifier}"


class Manifest(BaseModel):
    """Packages partitioned into runtime, build-only and dev groups.

    Each group is ordered and holds no duplicate keys.
    """

    model_config = ConfigDict(frozen=True)

    runtime: tuple[PackageSpec, ...] = ()
    build_only: tuple[PackageSpec, ...] = ()
    dev: tuple[PackageSpec, ...] = ()

    def names(self, group: str, ecosystem: Ecosystem | None = None) -> set[str]:
        """Normalized names in one group, optionally for one ecosystem."""
        return {
            p.key
            for p in getattr(self, group)
            if ecosystem is None or p.ecosystem == ecosystem
        }

    @property
    def dev_only_names(self) -> set[str]:
        """Dev packages that are not also runtime packages."""
        return self.names("dev") - self.names("runtime")


class BuildFlags(BaseModel):
    """Build-time switches (``--build-arg``)."""

    model_config = ConfigDict(frozen=True)

    dev: bool = False
    extra: dict[str, str] = Field(default_factory=dict)


def parse_bool(value: str | bool | None, *, name: str = "DEV") -> bool:
    """Parse a build-arg boolean.

    Raises:
        ValueError: For anything that is not a recognised spelling.
    """
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be true or false, got '{value}'")
