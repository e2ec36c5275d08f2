"""
Artifact store — atomic publish and load of the build lock.

The lock lives at ``provision.lock.json`` next to the recipe. It is only
ever written after a fully successful build, via write-to-temp-then-
rename, so a reader sees either the previous artifact or the new one and
never a half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from provisioner.core.models.artifact import BuildArtifact

logger = logging.getLogger(__name__)

DEFAULT_LOCK_FILE = "provision.lock.json"


def default_lock_path(project_root: Path) -> Path:
    return project_root / DEFAULT_LOCK_FILE


def load_artifact(path: Path) -> BuildArtifact | None:
    """Load a published artifact, or None if there is none.

    A corrupt lock is treated as absent.
    """
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        data.pop("digest", None)
        return BuildArtifact.model_validate(data)
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable artifact %s: %s", path, e)
        return None


def publish_artifact(artifact: BuildArtifact, path: Path) -> Path:
    """Write the artifact atomically.

    Raises:
        OSError: If the file cannot be written; the previous artifact,
            if any, is left untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(artifact.to_dict(), indent=2, ensure_ascii=False) + "\n"

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".lock_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise

    logger.info("Artifact published: %s (%s)", path, artifact.digest[:12])
    return path
