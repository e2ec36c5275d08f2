"""
L4 Execution — build toolchain scope.

Build-only packages are a scoped resource: installed on entry, purged
exactly once, and purged on every way out of the scope, including a
failing stage inside it. The plan's purge stage releases the scope
early; leaving the scope afterwards is then a no-op.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from provisioner.core.errors import ProvisionError
from provisioner.core.models.action import Receipt

logger = logging.getLogger(__name__)

Purge = Callable[[bool], Receipt]


class Toolchain:
    """Handle on an installed toolchain scope."""

    def __init__(self, scope: str, purge: Purge):
        self.scope = scope
        self._purge = purge
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self, *, teardown: bool = False) -> Receipt | None:
        """Purge the toolchain. Only the first call does anything.

        Raises:
            StageFailedError: Propagated from the purge callable.
        """
        if self._released:
            return None
        self._released = True
        logger.info("Purging toolchain %s%s", self.scope, " (teardown)" if teardown else "")
        return self._purge(teardown)


@contextmanager
def build_toolchain(
    scope: str,
    install: Callable[[], Receipt],
    purge: Purge,
) -> Iterator[Toolchain]:
    """Install a toolchain for the duration of the ``with`` block.

    ``install`` is expected to raise when installation fails; nothing is
    purged in that case because nothing was installed. A purge that
    fails while unwinding from another failure is logged and the
    original failure wins.
    """
    install()
    toolchain = Toolchain(scope, purge)
    try:
        yield toolchain
    except BaseException:
        if not toolchain.released:
            logger.warning("Tearing down toolchain %s after failure", scope)
            try:
                toolchain.release(teardown=True)
            except ProvisionError as e:
                logger.error("Toolchain %s teardown failed: %s", scope, e)
        raise
    else:
        if not toolchain.released:
            logger.warning("Toolchain %s was never purged; purging at scope exit", scope)
        toolchain.release()
