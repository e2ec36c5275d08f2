"""
Stage and Plan models — the ordered provisioning steps.

A Plan is an authored, linear list of stages. The planner builds it,
the ordering rules validate it, the engine runs it front to back.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class StageKind(StrEnum):
    """What a stage does."""

    COPY = "copy"
    VENV = "venv"
    UPGRADE = "upgrade"
    INSTALL = "install"
    TOOLCHAIN_INSTALL = "toolchain-install"
    TOOLCHAIN_PURGE = "toolchain-purge"
    CLEANUP = "cleanup"
    RUNTIME_ENV = "runtime-env"
    CREATE_USER = "create-user"
    DOWNGRADE = "downgrade"


class Stage(BaseModel):
    """One atomic provisioning step.

    Attributes:
        id:         Unique within the plan.
        kind:       What the stage does.
        adapter:    Adapter that executes it (empty for engine-internal
                    stages such as the downgrade).
        params:     Adapter parameters.
        needs_root: Whether the stage requires administrative rights.
        scope:      Toolchain scope this stage opens or closes.
        timeout:    Wall-clock budget in seconds.
        layer_key:  Chained content hash, filled in by the planner.
    """

    id: str
    kind: StageKind
    label: str = ""
    adapter: str = ""
    params: dict[str, Any] = Field(default_factory=dict)
    needs_root: bool = True
    scope: str | None = None
    timeout: int = 600
    layer_key: str = ""

    def fingerprint(self) -> dict[str, Any]:
        """The inputs that define this stage's output."""
        return {
            "kind": str(self.kind),
            "adapter": self.adapter,
            "params": self.params,
            "run_as_root": self.needs_root,
        }


class Plan(BaseModel):
    """An ordered list of stages plus its digest."""

    recipe: str = ""
    dev: bool = False
    stages: list[Stage] = Field(default_factory=list)

    @property
    def digest(self) -> str:
        """Layer key of the topmost stage (empty for an empty plan)."""
        return self.stages[-1].layer_key if self.stages else ""

    @property
    def total_stages(self) -> int:
        return len(self.stages)

    def of_kind(self, kind: StageKind) -> list[Stage]:
        return [s for s in self.stages if s.kind == kind]

    def index_of(self, stage_id: str) -> int:
        for i, stage in enumerate(self.stages):
            if stage.id == stage_id:
                return i
        raise KeyError(stage_id)

    def to_dict(self) -> dict:
        return {
            "recipe": self.recipe,
            "dev": self.dev,
            "digest": self.digest,
            "stages": [s.model_dump(mode="json") for s in self.stages],
        }
