"""
Build use case — plan, execute, verify, publish.

The full vertical slice from recipe to published artifact. A build
either publishes a verified artifact or publishes nothing; every build
lands in the history ledger either way.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.engine.executor import (
    BuildReport,
    execute_plan,
    generate_operation_id,
    write_audit_entry,
)
from provisioner.core.models.artifact import BuildArtifact
from provisioner.core.persistence.artifact_store import (
    default_lock_path,
    load_artifact,
    publish_artifact,
)
from provisioner.core.persistence.audit import AuditEntry, AuditWriter
from provisioner.core.services.provision.detection.inventory import installed_packages
from provisioner.core.services.provision.domain.verification import verify_artifact
from provisioner.core.use_cases.plan import PlanResult, prepare_plan

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STAGE_FAILED = 1
EXIT_INVALID = 2


@dataclass
class BuildResult:
    """Result of one ``provision build``."""

    planned: PlanResult | None = None
    report: BuildReport | None = None
    artifact: BuildArtifact | None = None
    published_to: Path | None = None
    cached: bool = False
    violations: list[str] = field(default_factory=list)
    error: str | None = None
    exit_code: int = EXIT_OK

    def to_dict(self) -> dict:
        result: dict = {"status": "ok" if self.exit_code == EXIT_OK else "failed"}
        if self.error:
            result["error"] = self.error
        if self.planned and self.planned.validation_errors:
            result["validation_errors"] = self.planned.validation_errors
        if self.violations:
            result["violations"] = self.violations
        if self.cached:
            result["cached"] = True
        if self.report:
            result["report"] = self.report.to_dict()
        if self.artifact:
            result["artifact"] = self.artifact.to_dict()
        if self.published_to:
            result["published_to"] = str(self.published_to)
        return result


def default_registry(manager: str, mock_mode: bool = False) -> AdapterRegistry:
    """Registry with every adapter a plan for ``manager`` dispatches to."""
    from provisioner.adapters.identity.user import IdentityAdapter
    from provisioner.adapters.packages.pip import PipAdapter
    from provisioner.adapters.packages.system import ApkAdapter, AptAdapter
    from provisioner.adapters.shell.command import ShellCommandAdapter
    from provisioner.adapters.shell.filesystem import FilesystemAdapter

    registry = AdapterRegistry(mock_mode=mock_mode)
    registry.register(ShellCommandAdapter())
    registry.register(FilesystemAdapter())
    registry.register(PipAdapter())
    registry.register(IdentityAdapter())
    registry.register(ApkAdapter() if manager == "apk" else AptAdapter())
    return registry


def assemble_artifact(
    planned: PlanResult,
    report: BuildReport,
    installed_after: frozenset[str] | None = None,
) -> BuildArtifact:
    """Describe what the build left behind.

    With ``installed_after`` (the OS inventory taken once the build is
    done) the system set is what the build added on top of the base, plus
    the runtime packages the base already had. Without it the resolution
    stands in for the inventory.

    The identity fields come from the create-user receipt. Receipts that
    do not carry them (mock adapters) leave the identity as planned.
    """
    recipe, resolution = planned.recipe, planned.resolution
    assert recipe is not None and resolution is not None

    uid = recipe.identity.uid
    login_disabled, home_created = True, False
    created = report.receipt("create-user")
    if created is not None:
        uid = created.metadata.get("uid", uid)
        login_disabled = created.metadata.get("login_disabled", login_disabled) is True
        home_created = created.metadata.get("home_created", home_created) is True

    if installed_after:
        before = planned.installed or frozenset()
        runtime_system = set(resolution.system_install) | set(resolution.already_installed)
        system = (installed_after - before) | (runtime_system & installed_after)
    else:
        system = set(resolution.system_install) | set(resolution.already_installed)

    return BuildArtifact(
        recipe=recipe.name,
        base_image=recipe.base_image,
        dev=resolution.dev,
        system_packages=sorted(system),
        python_packages=sorted(resolution.python_names),
        python_requirements=sorted(resolution.python_requirements),
        identity=recipe.identity.name,
        identity_uid=uid,
        login_disabled=login_disabled,
        home_created=home_created,
        runtime_env=recipe.runtime_env(),
        workdir=recipe.workdir,
        expose=list(recipe.expose),
        plan_digest=report.plan_digest,
        operation_id=report.operation_id,
    )


def run_build(
    config_path: Path | None = None,
    build_args: dict[str, str] | None = None,
    *,
    dry_run: bool = False,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    cached: bool = False,
    timeout: int | None = None,
    lock_path: Path | None = None,
    environ: dict[str, str] | None = None,
    inventory: Callable[[str], frozenset[str]] | None = None,
) -> BuildResult:
    """Run a full build.

    Args:
        config_path: Explicit provision.yml (default: search upward).
        build_args: Parsed ``--build-arg`` values.
        dry_run: Validate every stage, execute none, publish nothing.
        mock_mode: Replace every adapter with a success mock.
        registry: Pre-configured adapter registry (tests).
        cached: Skip execution when the published artifact was built
            from an identical plan.
        timeout: Per-stage budget override in seconds.
        lock_path: Where to publish (default: next to the recipe).
        environ: Environment for PROVISION_DEV (default: os.environ).
        inventory: OS package inventory query, run before planning and
            again after the build. Defaults to the package manager query
            for real builds and to none for mock, dry-run and injected
            registries.

    Returns:
        BuildResult with ``exit_code`` set.
    """
    result = BuildResult()

    if inventory is None and registry is None and not mock_mode and not dry_run:
        inventory = installed_packages
    planned = prepare_plan(
        config_path, build_args,
        inventory=inventory, timeout=timeout, environ=environ,
    )
    result.planned = planned
    if not planned.ok:
        result.error = planned.error
        result.exit_code = EXIT_INVALID
        return result

    recipe, plan, root = planned.recipe, planned.plan, planned.project_root
    assert recipe is not None and plan is not None and root is not None
    lock_path = lock_path or default_lock_path(root)
    history = AuditWriter(project_root=root)
    recorded_args = planned.flags.extra if planned.flags else {}

    if cached and not dry_run:
        previous = load_artifact(lock_path)
        if previous is not None and previous.plan_digest == plan.digest:
            logger.info("Plan %s unchanged since %s; nothing to do",
                        plan.digest[:12], previous.operation_id)
            result.cached = True
            result.artifact = previous
            history.write(AuditEntry(
                operation_id=generate_operation_id(),
                recipe=recipe.name,
                dev=plan.dev,
                status="cached",
                plan_digest=plan.digest,
                artifact_digest=previous.digest,
                build_args=recorded_args,
            ))
            return result

    if registry is None:
        registry = default_registry(recipe.system.manager, mock_mode=mock_mode)

    report = execute_plan(plan, registry, project_root=str(root), dry_run=dry_run)
    result.report = report

    if not report.all_ok:
        result.error = report.error
        result.exit_code = EXIT_STAGE_FAILED
        write_audit_entry(report, history, build_args=recorded_args)
        return result

    if dry_run:
        write_audit_entry(report, history, build_args=recorded_args)
        return result

    assert planned.manifest is not None
    installed_after = inventory(recipe.system.manager) if inventory else None
    artifact = assemble_artifact(planned, report, installed_after)
    violations = verify_artifact(artifact, planned.manifest)
    if violations:
        result.violations = violations
        result.error = f"Artifact failed verification: {'; '.join(violations)}"
        result.exit_code = EXIT_STAGE_FAILED
        write_audit_entry(
            report, history, build_args=recorded_args, error=result.error,
        )
        return result

    try:
        result.published_to = publish_artifact(artifact, lock_path)
    except OSError as e:
        result.error = f"Cannot publish artifact: {e}"
        result.exit_code = EXIT_STAGE_FAILED
        write_audit_entry(
            report, history, build_args=recorded_args, error=result.error,
        )
        return result

    result.artifact = artifact
    write_audit_entry(
        report, history, build_args=recorded_args, artifact_digest=artifact.digest,
    )
    return result
