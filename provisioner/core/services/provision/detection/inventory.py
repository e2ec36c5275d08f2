"""
L3 Detection — installed OS package inventory.

Feeds the resolver so that packages already present on the base system
are neither installed again nor purged with the build toolchain.
"""

from __future__ import annotations

import logging
import shutil
import subprocess

logger = logging.getLogger(__name__)

_QUERY = {
    "apk": ["apk", "info"],
    "apt": ["dpkg-query", "-W", "-f=${Package}\\n"],
}


def installed_packages(manager: str, *, timeout: int = 30) -> frozenset[str]:
    """Names of installed packages, or an empty set when unknown.

    An unknown inventory only means the resolver cannot skip anything;
    it never widens what gets purged.
    """
    argv = _QUERY.get(manager)
    if argv is None:
        logger.warning("No inventory query for package manager '%s'", manager)
        return frozenset()
    if shutil.which(argv[0]) is None:
        logger.info("%s not found; assuming an empty inventory", argv[0])
        return frozenset()

    try:
        result = subprocess.run(
            argv, capture_output=True, text=True, timeout=timeout,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.warning("Inventory query failed: %s", e)
        return frozenset()

    if result.returncode != 0:
        logger.warning(
            "Inventory query exited %d: %s", result.returncode, result.stderr.strip(),
        )
        return frozenset()

    names = frozenset(
        line.strip() for line in result.stdout.splitlines() if line.strip()
    )
    logger.debug("Inventory: %d %s packages installed", len(names), manager)
    return names
