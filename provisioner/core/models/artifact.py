"""
Build artifact — what a successful build publishes.

The artifact is the lock record of the provisioned environment: final
package sets, identity and runtime environment. Its content digest
ignores timestamps, so two builds of an unchanged manifest produce the
same digest.
"""

from __future__ import annotations

import hashlib
import json
from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class BuildArtifact(BaseModel):
    """Published result of a build."""

    recipe: str
    base_image: str = ""
    dev: bool = False

    system_packages: list[str] = Field(default_factory=list)     # sorted names
    python_packages: list[str] = Field(default_factory=list)     # sorted, normalized
    python_requirements: list[str] = Field(default_factory=list)

    identity: str = ""
    identity_uid: int | None = None
    login_disabled: bool = True
    home_created: bool = False

    runtime_env: dict[str, str] = Field(default_factory=dict)
    workdir: str = ""
    expose: list[int] = Field(default_factory=list)

    plan_digest: str = ""
    operation_id: str = ""
    built_at: str = Field(default_factory=_now_iso)

    def content(self) -> dict:
        """Everything that defines the environment, timestamps excluded."""
        return self.model_dump(
            mode="json", exclude={"operation_id", "built_at"},
        )

    @property
    def digest(self) -> str:
        payload = json.dumps(self.content(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["digest"] = self.digest
        return data
