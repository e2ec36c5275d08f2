"""
Engine executor — runs a validated plan, one stage at a time.

Flow:
    plan → for each stage: privilege check → dispatch → receipt
         → first failure: unwind open toolchain scopes → skip the rest

Stages are never retried and never run concurrently. The engine is the
only place that turns a failed receipt into the end of a build.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import UTC, datetime

from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.errors import PrivilegeError, StageFailedError
from provisioner.core.models.action import Action, Receipt
from provisioner.core.models.stage import Plan, Stage, StageKind
from provisioner.core.persistence.audit import AuditEntry, AuditWriter
from provisioner.core.services.provision.execution.privilege import PrivilegeGuard
from provisioner.core.services.provision.execution.toolchain import (
    Toolchain,
    build_toolchain,
)

logger = logging.getLogger(__name__)

ENGINE_ADAPTER = "engine"


@dataclass
class BuildReport:
    """Result of executing a plan."""

    operation_id: str = ""
    recipe: str = ""
    dev: bool = False
    dry_run: bool = False
    plan_digest: str = ""
    receipts: list[Receipt] = field(default_factory=list)
    failed_stage: str | None = None
    error: str | None = None
    run_as: str | None = None
    duration_ms: int = 0

    @property
    def total(self) -> int:
        return len(self.receipts)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.receipts if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.receipts if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.receipts if r.status == "skipped")

    @property
    def all_ok(self) -> bool:
        return self.error is None and self.failed == 0

    @property
    def status(self) -> str:
        # All-or-nothing: any failure fails the whole build
        return "ok" if self.all_ok else "failed"

    def receipt(self, stage_id: str) -> Receipt | None:
        for r in self.receipts:
            if r.action_id == stage_id and not r.metadata.get("teardown"):
                return r
        return None

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "recipe": self.recipe,
            "dev": self.dev,
            "dry_run": self.dry_run,
            "plan_digest": self.plan_digest,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "failed_stage": self.failed_stage,
            "error": self.error,
            "run_as": self.run_as,
            "duration_ms": self.duration_ms,
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }


class _PlanRun:
    """State of one plan execution."""

    def __init__(
        self,
        plan: Plan,
        registry: AdapterRegistry,
        report: BuildReport,
        project_root: str,
        dry_run: bool,
    ):
        self.plan = plan
        self.registry = registry
        self.report = report
        self.project_root = project_root
        self.dry_run = dry_run
        self.guard = PrivilegeGuard()
        self.done: set[str] = set()
        self.toolchains: dict[str, Toolchain] = {}

    def dispatch(self, stage: Stage, *, teardown: bool = False) -> Receipt:
        """Run one stage through its adapter and record the receipt.

        Raises:
            PrivilegeError: If the stage needs root after the downgrade.
            StageFailedError: If the receipt is a failure.
        """
        self.guard.check(stage)
        action = Action(
            id=stage.id,
            name=stage.label,
            adapter=stage.adapter,
            params=stage.params,
            run_as=self.guard.run_as,
            timeout=stage.timeout,
        )
        receipt = self.registry.execute_action(
            action, project_root=self.project_root, dry_run=self.dry_run,
        )
        if teardown:
            receipt.metadata["teardown"] = True
        self._record(stage, receipt)
        if receipt.failed:
            raise StageFailedError(stage.id, receipt.error or "unknown error")
        return receipt

    def downgrade(self, stage: Stage) -> Receipt:
        user = stage.params.get("user", "")
        self.guard.downgrade(user)
        receipt = Receipt.success(
            adapter=ENGINE_ADAPTER,
            action_id=stage.id,
            output=f"Running as {user}",
            metadata={"user": user},
        )
        self._record(stage, receipt)
        return receipt

    def purge_stage_for(self, scope: str) -> Stage:
        for stage in self.plan.of_kind(StageKind.TOOLCHAIN_PURGE):
            if stage.scope == scope:
                return stage
        raise StageFailedError(scope, f"No purge stage for toolchain scope '{scope}'")

    def _record(self, stage: Stage, receipt: Receipt) -> None:
        self.report.receipts.append(receipt)
        self.done.add(stage.id)
        marker = "✓" if receipt.ok else "✗" if receipt.failed else "⊘"
        log = logger.warning if receipt.failed else logger.info
        log(
            "%s %s%s → %s%s",
            marker,
            stage.id,
            " (teardown)" if receipt.metadata.get("teardown") else "",
            receipt.status,
            f": {receipt.error}" if receipt.error else "",
        )


def execute_plan(
    plan: Plan,
    registry: AdapterRegistry,
    project_root: str = ".",
    dry_run: bool = False,
    operation_id: str = "",
) -> BuildReport:
    """Execute every stage of ``plan`` in order.

    Stops at the first failed stage. Toolchain scopes still open at that
    point are purged before returning; all stages that did not run are
    recorded as skipped.

    Args:
        plan: A validated plan.
        registry: Adapter registry for dispatch.
        project_root: Root that recipe-relative paths resolve against.
        dry_run: Validate every stage without executing any.
        operation_id: Identifier for this build.

    Returns:
        BuildReport with one receipt per stage (plus teardown receipts).
    """
    report = BuildReport(
        operation_id=operation_id or generate_operation_id(),
        recipe=plan.recipe,
        dev=plan.dev,
        dry_run=dry_run,
        plan_digest=plan.digest,
    )
    run = _PlanRun(plan, registry, report, project_root, dry_run)
    start = time.monotonic()

    try:
        with ExitStack() as scopes:
            for stage in plan.stages:
                if stage.kind == StageKind.DOWNGRADE:
                    run.downgrade(stage)
                elif stage.kind == StageKind.TOOLCHAIN_INSTALL:
                    purge_stage = run.purge_stage_for(stage.scope or "")
                    run.toolchains[stage.scope or ""] = scopes.enter_context(
                        build_toolchain(
                            stage.scope or "",
                            install=lambda s=stage: run.dispatch(s),
                            purge=lambda teardown, s=purge_stage: run.dispatch(
                                s, teardown=teardown,
                            ),
                        )
                    )
                elif stage.kind == StageKind.TOOLCHAIN_PURGE:
                    toolchain = run.toolchains.get(stage.scope or "")
                    if toolchain is None:
                        raise StageFailedError(
                            stage.id, f"Toolchain scope '{stage.scope}' is not open",
                        )
                    toolchain.release()
                else:
                    run.dispatch(stage)
    except (StageFailedError, PrivilegeError) as e:
        stage_id = getattr(e, "stage_id", None) or _first_pending(plan, run.done)
        report.failed_stage = stage_id
        report.error = str(e)
        if isinstance(e, PrivilegeError) and stage_id and stage_id not in run.done:
            run.done.add(stage_id)
            report.receipts.append(Receipt.failure(
                adapter=ENGINE_ADAPTER, action_id=stage_id, error=str(e),
            ))
        logger.error("Build aborted at '%s': %s", stage_id, e)

        for stage in plan.stages:
            if stage.id not in run.done:
                report.receipts.append(Receipt.skip(
                    adapter=stage.adapter or ENGINE_ADAPTER,
                    action_id=stage.id,
                    reason="Not run: build aborted",
                ))

    report.run_as = run.guard.run_as
    report.duration_ms = int((time.monotonic() - start) * 1000)
    return report


def _first_pending(plan: Plan, done: set[str]) -> str | None:
    for stage in plan.stages:
        if stage.id not in done:
            return stage.id
    return None


def write_audit_entry(
    report: BuildReport,
    audit_writer: AuditWriter,
    artifact_digest: str = "",
    error: str | None = None,
    build_args: dict[str, str] | None = None,
) -> None:
    """Append one build to the history ledger.

    ``error`` marks a build that ran cleanly but was rejected afterwards.
    """
    errors = [e for e in (report.error, error) if e]
    entry = AuditEntry(
        operation_id=report.operation_id,
        recipe=report.recipe,
        dev=report.dev,
        dry_run=report.dry_run,
        status="failed" if error else report.status,
        stages_total=report.total,
        stages_succeeded=report.succeeded,
        stages_failed=report.failed,
        failed_stage=report.failed_stage,
        duration_ms=report.duration_ms,
        plan_digest=report.plan_digest,
        artifact_digest=artifact_digest,
        errors=errors,
        build_args=dict(build_args or {}),
    )
    audit_writer.write(entry)


def generate_operation_id() -> str:
    """Generate a unique build ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"build-{now}-{short}"
