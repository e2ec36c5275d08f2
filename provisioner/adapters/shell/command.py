"""
Shell command adapter — the single place commands are spawned.

``run_command`` is what every command-backed adapter (apk, apt, pip,
identity) calls, so the timeout, the post-downgrade user switch and the
receipt shape are the same for all of them.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt

logger = logging.getLogger(__name__)

# Tail kept from stdout/stderr in receipts
_OUTPUT_TAIL = 2000


def run_command(
    adapter: str,
    context: ExecutionContext,
    argv: list[str],
    *,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
    timeout: float | None = None,
) -> Receipt:
    """Run ``argv`` for ``context.action`` and capture a receipt.

    When the action carries ``run_as`` and this process is root, the
    child is started as that user. When this process is not root it is
    already unprivileged and runs the command as itself.

    ``timeout`` overrides the action budget when a stage runs several
    commands against one deadline.
    """
    action = context.action
    if timeout is None:
        timeout = context.timeout

    env = os.environ.copy()
    if env_overrides:
        env.update(env_overrides)

    user: str | None = None
    if context.run_as:
        if os.geteuid() == 0:
            user = context.run_as
        else:
            logger.debug("Not root; running %s as current user", action.id)

    logger.debug("Executing: %s (user=%s)", shlex.join(argv), user or "current")
    start = time.monotonic()

    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            cwd=cwd,
            user=user,
        )
    except subprocess.TimeoutExpired:
        return Receipt.failure(
            adapter=adapter,
            action_id=action.id,
            error=f"Command timed out after {timeout:.0f}s",
            metadata={"command": argv, "timeout": timeout},
        )
    except FileNotFoundError:
        return Receipt.failure(
            adapter=adapter,
            action_id=action.id,
            error=f"Command not found: {argv[0]}",
            metadata={"command": argv},
        )
    except Exception as e:
        logger.exception("Subprocess error: %s", argv)
        return Receipt.failure(
            adapter=adapter,
            action_id=action.id,
            error=f"Command execution error: {e}",
            metadata={"command": argv},
        )

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = (result.stdout or "")[-_OUTPUT_TAIL:].strip()
    stderr = (result.stderr or "")[-_OUTPUT_TAIL:].strip()

    if result.returncode == 0:
        return Receipt.success(
            adapter=adapter,
            action_id=action.id,
            output=stdout,
            duration_ms=elapsed_ms,
            metadata={"command": argv, "return_code": 0, "stderr": stderr},
        )
    return Receipt.failure(
        adapter=adapter,
        action_id=action.id,
        error=stderr or f"Command exited with code {result.returncode}",
        duration_ms=elapsed_ms,
        metadata={
            "command": argv,
            "return_code": result.returncode,
            "stdout": stdout,
        },
    )


class ShellCommandAdapter(Adapter):
    """Run an explicit argv.

    Action params:
        command (list[str]): The command to execute.
        cwd (str): Working directory (default: recipe root).
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        command = context.params.get("command")
        if not command or not isinstance(command, list):
            return False, "Missing required param: 'command' (argv list)"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        cwd = context.params.get("cwd") or context.project_root
        return run_command(
            self.name, context, list(context.params["command"]), cwd=cwd,
        )
