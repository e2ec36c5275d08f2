"""
Build history — append-only build log.

Every build, successful or not, appends one entry to an NDJSON
(newline-delimited JSON) file. Entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Default history location (relative to the recipe root)
DEFAULT_AUDIT_DIR = ".state"
DEFAULT_AUDIT_FILE = "builds.ndjson"


class AuditEntry(BaseModel):
    """One build in the history."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    recipe: str = ""
    dev: bool = False
    dry_run: bool = False

    # Results
    status: str = ""               # ok, failed, cached
    stages_total: int = 0
    stages_succeeded: int = 0
    stages_failed: int = 0
    failed_stage: str | None = None
    duration_ms: int = 0

    plan_digest: str = ""
    artifact_digest: str = ""

    errors: list[str] = Field(default_factory=list)
    build_args: dict[str, str] = Field(default_factory=dict)   # non-DEV --build-arg values


class AuditWriter:
    """Append-only history writer.

    Each call to write() appends a single JSON line to the history file.
    The file is created if it doesn't exist.
    """

    def __init__(self, path: Path | None = None, project_root: Path | None = None):
        if path is not None:
            self._path = path
        elif project_root is not None:
            self._path = project_root / DEFAULT_AUDIT_DIR / DEFAULT_AUDIT_FILE
        else:
            self._path = Path(DEFAULT_AUDIT_DIR) / DEFAULT_AUDIT_FILE

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append an entry. A history that cannot be written is logged, not fatal."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("History entry written: %s", entry.operation_id)
        except OSError as e:
            logger.error("Failed to write history entry: %s", e)

    def read_all(self) -> list[AuditEntry]:
        """Read all entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(AuditEntry.model_validate(json.loads(line)))
                    except ValueError as e:
                        logger.warning("Skipping corrupt history entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read build history: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        """The most recent ``n`` entries, newest first."""
        return list(reversed(self.read_all()[-n:]))
