"""
Recipe model — the declarative input of a build.

Loaded from provision.yml. The recipe names the base image, the package
groups, the two requirement files, the runtime identity and the runtime
environment. Everything the planner emits is derived from it.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from provisioner.core.models.manifest import parse_bool

_RESERVED_USERS = frozenset({"root"})


class AppSource(BaseModel):
    """Where the application source comes from and where it lands."""

    source: str = "./app"
    path: str = "/app"


class SystemPackages(BaseModel):
    """OS packages, split by whether they survive the build."""

    manager: Literal["apk", "apt"] = "apk"
    runtime: list[str] = Field(default_factory=list)
    build_only: list[str] = Field(default_factory=list)
    toolchain_label: str = ".tmp-build-deps"   # apk virtual package name


class RequirementFiles(BaseModel):
    """Paths (relative to the recipe) of the pip requirement manifests."""

    runtime: str = "requirements.txt"
    dev: str = "requirements.dev.txt"


class Identity(BaseModel):
    """The non-root principal the environment ends up running as.

    Always created without a password and without a home directory.
    """

    name: str = "app-user"
    uid: int | None = None

    @field_validator("name")
    @classmethod
    def _not_root_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("identity name must not be empty")
        if v in _RESERVED_USERS:
            raise ValueError(f"identity '{v}' is privileged")
        return v

    @field_validator("uid")
    @classmethod
    def _not_root_uid(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("identity uid must be a positive, non-root uid")
        return v


class Recipe(BaseModel):
    """Root recipe — loaded from provision.yml."""

    version: int = 1

    name: str
    maintainer: str = ""
    base_image: str = "python:3.12-alpine"

    workdir: str = "/app"
    app: AppSource | None = Field(default_factory=AppSource)
    expose: list[int] = Field(default_factory=lambda: [8000])

    python: str = "python3"     # interpreter that creates the venv
    venv: str = "/py"
    env: dict[str, str] = Field(default_factory=lambda: {"PYTHONUNBUFFERED": "1"})
    env_file: str | None = None

    system: SystemPackages = Field(default_factory=SystemPackages)
    requirements: RequirementFiles = Field(default_factory=RequirementFiles)
    identity: Identity = Field(default_factory=Identity)

    args: dict[str, str | bool] = Field(default_factory=lambda: {"DEV": False})
    scratch_dir: str | None = None
    stage_timeout: int = 600

    @field_validator("stage_timeout")
    @classmethod
    def _positive_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("stage_timeout must be positive")
        return v

    @field_validator("args")
    @classmethod
    def _dev_is_boolean(cls, v: dict[str, str | bool]) -> dict[str, str | bool]:
        parse_bool(v.get("DEV", False))
        return v

    @property
    def venv_bin(self) -> str:
        return f"{self.venv.rstrip('/')}/bin"

    @property
    def resolved_env_file(self) -> str:
        return self.env_file or f"{self.venv.rstrip('/')}/runtime.env"

    def runtime_env(self) -> dict[str, str]:
        """Environment the provisioned runtime starts with.

        PYTHONUNBUFFERED is pinned to 1. PATH always comes last and always
        leads with the venv.
        """
        pinned = ("PYTHONUNBUFFERED", "PATH")
        env = {"PYTHONUNBUFFERED": "1"}
        env.update({k: str(v) for k, v in self.env.items() if k not in pinned})
        env["PATH"] = f"{self.venv_bin}:$PATH"
        return env
