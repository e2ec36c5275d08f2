"""
Filesystem adapter — copy, write and clean up paths with receipts.

Covers the file-level stages of a build: copying the application into
place, writing the runtime env file and emptying the scratch directory.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt

logger = logging.getLogger(__name__)

# Paths a cleanup stage must never empty
_PROTECTED = frozenset({"/", "/bin", "/etc", "/usr", "/lib", "/var", "/home", "/root"})


class FilesystemAdapter(Adapter):
    """File and directory operations with receipts.

    Action params:
        operation (str): One of 'copy', 'write', 'clean'.
        path (str): Target path (recipe-relative or absolute).
        source (str): Source path for 'copy'.
        content (str): Content for 'write'.
    """

    _OPERATIONS = frozenset({"copy", "write", "clean"})

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if not operation:
            return False, "Missing required param: 'operation'"
        if operation not in self._OPERATIONS:
            return False, (
                f"Unknown operation '{operation}'. "
                f"Valid: {', '.join(sorted(self._OPERATIONS))}"
            )

        path = context.params.get("path", "")
        if not path:
            return False, "Missing required param: 'path'"

        if operation == "copy":
            source = context.params.get("source", "")
            if not source:
                return False, "Missing required param: 'source' for copy"
            if not Path(context.resolve_path(source)).exists():
                return False, f"Copy source does not exist: {source}"
        if operation == "write" and "content" not in context.params:
            return False, "Missing required param: 'content' for write operation"
        if operation == "clean" and str(Path(path)) in _PROTECTED:
            return False, f"Refusing to clean protected path: {path}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]
        target = Path(context.resolve_path(context.params["path"]))

        try:
            if operation == "copy":
                return self._copy(context, target)
            if operation == "write":
                return self._write(context, target)
            return self._clean(context, target)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Filesystem error: {e}",
                metadata={"operation": operation, "path": str(target)},
            )

    def _copy(self, ctx: ExecutionContext, target: Path) -> Receipt:
        source = Path(ctx.resolve_path(ctx.params["source"]))
        if source.is_dir():
            shutil.copytree(source, target, dirs_exist_ok=True)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Copied {source} → {target}",
            metadata={"source": str(source), "path": str(target)},
        )

    def _write(self, ctx: ExecutionContext, target: Path) -> Receipt:
        content = ctx.params["content"]
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Written {len(content)} bytes to {target}",
            metadata={"path": str(target), "size": len(content)},
        )

    def _clean(self, ctx: ExecutionContext, target: Path) -> Receipt:
        """Remove everything inside ``target``; the directory itself stays."""
        if not target.exists():
            return Receipt.skip(
                adapter=self.name,
                action_id=ctx.action.id,
                reason=f"Nothing to clean: {target}",
            )
        removed = 0
        for entry in target.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed += 1
        logger.debug("Cleaned %d entries from %s", removed, target)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Removed {removed} entries from {target}",
            metadata={"path": str(target), "removed": removed},
        )
