"""
Pip adapter — installs into the build's virtual environment.

Always calls the venv's own pip (``<venv>/bin/pip``), never whatever pip
happens to be on PATH.
"""

from __future__ import annotations

import logging
from pathlib import Path

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.adapters.shell.command import run_command
from provisioner.core.models.action import Receipt

logger = logging.getLogger(__name__)


class PipAdapter(Adapter):
    """Action params:
        operation (str): 'upgrade' (pip itself) or 'install'.
        venv (str): Virtual environment root.
        requirements (list[str]): Requirement strings for 'install'.
    """

    @property
    def name(self) -> str:
        return "pip"

    def is_available(self) -> bool:
        return True  # the venv stage provides pip

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if operation not in ("upgrade", "install"):
            return False, f"Unknown operation '{operation}'. Valid: install, upgrade"
        if not context.params.get("venv"):
            return False, "Missing required param: 'venv'"
        requirements = context.params.get("requirements", [])
        if operation == "install" and not isinstance(requirements, list):
            return False, "'requirements' must be a list"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        pip = str(Path(context.params["venv"]) / "bin" / "pip")
        operation = context.params["operation"]

        if operation == "upgrade":
            return run_command(
                self.name, context, [pip, "install", "--upgrade", "pip"],
            )

        requirements = list(context.params.get("requirements", []))
        if not requirements:
            return Receipt.skip(
                adapter=self.name,
                action_id=context.action.id,
                reason="No python requirements",
            )
        receipt = run_command(self.name, context, [pip, "install", *requirements])
        receipt.metadata["requirements"] = requirements
        return receipt
