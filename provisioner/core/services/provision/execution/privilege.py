"""
L4 Execution — privilege downgrade guard.

One guard per build. Before the downgrade every stage runs with the
privileges the tool was started with. After it, every command runs as
the runtime identity and nothing may ask for root again. The
transition happens once and cannot be undone.
"""

from __future__ import annotations

import logging

from provisioner.core.errors import PrivilegeError
from provisioner.core.models.stage import Stage

logger = logging.getLogger(__name__)


class PrivilegeGuard:
    def __init__(self) -> None:
        self._identity: str | None = None

    @property
    def downgraded(self) -> bool:
        return self._identity is not None

    @property
    def run_as(self) -> str | None:
        """User every command must run as (None before the downgrade)."""
        return self._identity

    def check(self, stage: Stage) -> None:
        """Refuse a privileged stage once the downgrade has happened."""
        if self.downgraded and stage.needs_root:
            raise PrivilegeError(
                f"Stage '{stage.id}' needs root but the build already "
                f"switched to '{self._identity}'"
            )

    def downgrade(self, identity: str) -> None:
        """Switch to ``identity`` for good."""
        if self.downgraded:
            raise PrivilegeError(
                f"Already running as '{self._identity}'; cannot switch to '{identity}'"
            )
        if not identity or identity == "root":
            raise PrivilegeError(f"Cannot downgrade to privileged identity '{identity}'")
        self._identity = identity
        logger.info("Privileges dropped: now running as %s", identity)
