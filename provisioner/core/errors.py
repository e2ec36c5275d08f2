"""
Error taxonomy for the provisioning pipeline.

Every error here is fatal: the pipeline never retries and never publishes
a partial artifact. Adapters do not raise these; they return failed
receipts and the engine decides.
"""

from __future__ import annotations


class ProvisionError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(ProvisionError):
    """Raised when the recipe or a requirement file is invalid or missing."""


class ResolutionError(ProvisionError):
    """Raised when the manifest cannot be resolved into an install set."""


class PlanValidationError(ProvisionError):
    """Raised when a stage plan violates an ordering rule.

    Carries every rule violation found, not just the first.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid plan")


class PrivilegeError(ProvisionError):
    """Raised when a stage would regain privileges after the downgrade."""


class StageFailedError(ProvisionError):
    """Raised inside the engine to unwind open scopes after a failed stage."""

    def __init__(self, stage_id: str, error: str):
        self.stage_id = stage_id
        self.error = error
        super().__init__(f"Stage '{stage_id}' failed: {error}")
