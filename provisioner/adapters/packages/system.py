"""
System package adapters — apk and apt-get.

Both speak the same action params so the planner does not care which
distribution it targets. apk groups the build toolchain under a virtual
package so it can be removed by label; apt has no such grouping and
purges the exact package list instead.
"""

from __future__ import annotations

import logging
import shutil
import time

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.adapters.shell.command import run_command
from provisioner.core.models.action import Receipt

logger = logging.getLogger(__name__)


class SystemPackageAdapter(Adapter):
    """Install and remove OS packages.

    Action params:
        operation (str): 'add' or 'del'.
        packages (list[str]): Package names.
        label (str): Optional group label (apk ``--virtual``).
    """

    manager = ""
    binary = ""

    @property
    def name(self) -> str:
        return self.manager

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if operation not in ("add", "del"):
            return False, f"Unknown operation '{operation}'. Valid: add, del"
        packages = context.params.get("packages", [])
        if not isinstance(packages, list):
            return False, "'packages' must be a list"
        if operation == "del" and not packages and not context.params.get("label"):
            return False, "Nothing to remove: no packages and no label"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]
        packages = list(context.params.get("packages", []))
        label = context.params.get("label") or None

        if operation == "add" and not packages:
            return Receipt.skip(
                adapter=self.name,
                action_id=context.action.id,
                reason="No packages to install",
            )

        commands = (
            self.add_commands(packages, label)
            if operation == "add"
            else self.del_commands(packages, label)
        )

        # every command of the stage shares one deadline
        deadline = time.monotonic() + context.timeout
        receipt: Receipt | None = None
        for argv in commands:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return Receipt.failure(
                    adapter=self.name,
                    action_id=context.action.id,
                    error=f"Stage timed out after {context.timeout}s",
                    metadata={"command": argv, "timeout": context.timeout},
                )
            receipt = run_command(
                self.name, context, argv,
                env_overrides=self.env_overrides(), timeout=remaining,
            )
            if not receipt.ok:
                return receipt
        assert receipt is not None
        receipt.metadata["packages"] = packages
        return receipt

    def add_commands(self, packages: list[str], label: str | None) -> list[list[str]]:
        raise NotImplementedError

    def del_commands(self, packages: list[str], label: str | None) -> list[list[str]]:
        raise NotImplementedError

    def env_overrides(self) -> dict[str, str] | None:
        return None


class ApkAdapter(SystemPackageAdapter):
    """Alpine ``apk``."""

    manager = "apk"
    binary = "apk"

    def add_commands(self, packages: list[str], label: str | None) -> list[list[str]]:
        cmd = ["apk", "add", "--update", "--no-cache"]
        if label:
            cmd += ["--virtual", label]
        return [cmd + packages]

    def del_commands(self, packages: list[str], label: str | None) -> list[list[str]]:
        if label:
            return [["apk", "del", label]]
        return [["apk", "del"] + packages]


class AptAdapter(SystemPackageAdapter):
    """Debian/Ubuntu ``apt-get``; labels are ignored."""

    manager = "apt"
    binary = "apt-get"

    def add_commands(self, packages: list[str], label: str | None) -> list[list[str]]:
        return [
            ["apt-get", "update"],
            ["apt-get", "install", "-y", "--no-install-recommends"] + packages,
        ]

    def del_commands(self, packages: list[str], label: str | None) -> list[list[str]]:
        return [["apt-get", "purge", "-y", "--auto-remove"] + packages]

    def env_overrides(self) -> dict[str, str] | None:
        return {"DEBIAN_FRONTEND": "noninteractive"}
