"""
Tests for engine executor — sequencing, toolchain teardown, privilege drop, audit.
"""

from pathlib import Path

from provisioner.adapters.mock import MockAdapter
from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.engine.executor import (
    BuildReport,
    execute_plan,
    generate_operation_id,
    write_audit_entry,
)
from provisioner.core.models.manifest import BuildFlags, Manifest, PackageSpec
from provisioner.core.models.recipe import Recipe
from provisioner.core.models.stage import Plan, Stage, StageKind
from provisioner.core.persistence.audit import AuditWriter
from provisioner.core.services.provision.resolver.package_resolution import resolve_packages
from provisioner.core.services.provision.resolver.plan_resolution import plan_stages


def _plan(dev: bool = False) -> Plan:
    recipe = Recipe.model_validate({
        "name": "svc",
        "app": None,
        "system": {"runtime": ["postgresql-client"], "build_only": ["build-base"]},
        "identity": {"name": "django-user"},
    })
    manifest = Manifest(
        runtime=(
            PackageSpec(name="postgresql-client", ecosystem="system"),
            PackageSpec(name="Django", specifier=">=4.2"),
        ),
        build_only=(PackageSpec(name="build-base", ecosystem="system"),),
        dev=(PackageSpec(name="flake8"),),
    )
    return plan_stages(recipe, resolve_packages(manifest, dev=dev), BuildFlags(dev=dev))


def _statuses(report: BuildReport) -> dict[str, str]:
    return {r.action_id: r.status for r in report.receipts if not r.metadata.get("teardown")}


class TestExecutePlan:
    def test_all_stages_in_order(self, mock_registry):
        registry, mock = mock_registry
        plan = _plan()
        report = execute_plan(plan, registry)
        assert report.all_ok
        assert report.status == "ok"
        # the downgrade is handled by the engine, not dispatched
        assert mock.called_ids == [s.id for s in plan.stages if s.kind != StageKind.DOWNGRADE]
        assert [r.action_id for r in report.receipts] == [s.id for s in plan.stages]

    def test_purge_dispatched_once(self, mock_registry):
        registry, mock = mock_registry
        execute_plan(_plan(), registry)
        assert mock.called_ids.count("toolchain-purge") == 1

    def test_run_as_after_downgrade_only(self, mock_registry):
        registry, mock = mock_registry
        report = execute_plan(_plan(), registry)
        assert report.run_as == "django-user"
        assert all(c.run_as is None for c in mock.call_log)

    def test_report_metadata(self, mock_registry):
        registry, _ = mock_registry
        plan = _plan(dev=True)
        report = execute_plan(plan, registry, operation_id="build-1")
        assert report.operation_id == "build-1"
        assert report.plan_digest == plan.digest
        assert report.dev is True
        assert report.total == plan.total_stages

    def test_failure_inside_toolchain_tears_down(self, mock_registry):
        registry, mock = mock_registry
        mock.set_failure("pip-runtime", error="error: command 'gcc' failed")
        report = execute_plan(_plan(), registry)

        assert not report.all_ok
        assert report.failed_stage == "pip-runtime"
        assert "gcc" in report.error
        # toolchain purged right after the failing stage, nothing else ran
        assert mock.called_ids[-2:] == ["pip-runtime", "toolchain-purge"]
        teardown = [r for r in report.receipts if r.metadata.get("teardown")]
        assert [r.action_id for r in teardown] == ["toolchain-purge"]

        statuses = _statuses(report)
        assert statuses["pip-runtime"] == "failed"
        assert statuses["runtime-env"] == "skipped"
        assert statuses["create-user"] == "skipped"
        assert statuses["downgrade"] == "skipped"
        assert report.run_as is None

    def test_failed_toolchain_install_not_purged(self, mock_registry):
        registry, mock = mock_registry
        mock.set_failure("toolchain-install", error="ERROR: unable to select packages")
        report = execute_plan(_plan(), registry)
        assert report.failed_stage == "toolchain-install"
        assert "toolchain-purge" not in mock.called_ids
        assert _statuses(report)["toolchain-purge"] == "skipped"

    def test_failure_before_toolchain(self, mock_registry):
        registry, mock = mock_registry
        mock.set_failure("venv")
        report = execute_plan(_plan(), registry)
        assert mock.called_ids == ["venv"]
        assert report.failed == 1
        assert report.skipped == _plan().total_stages - 1

    def test_failed_purge_fails_build(self, mock_registry):
        registry, mock = mock_registry
        mock.set_failure("toolchain-purge", error="apk del failed")
        report = execute_plan(_plan(), registry)
        assert report.failed_stage == "toolchain-purge"
        # a failed purge is not retried as teardown
        assert mock.called_ids.count("toolchain-purge") == 1
        assert _statuses(report)["create-user"] == "skipped"

    def test_failed_user_creation(self, mock_registry):
        registry, mock = mock_registry
        mock.set_failure("create-user", error="Account 'django-user' exists with uid 0")
        report = execute_plan(_plan(), registry)
        assert report.failed_stage == "create-user"
        assert report.run_as is None
        assert _statuses(report)["downgrade"] == "skipped"

    def test_root_stage_after_downgrade_refused(self, mock_registry):
        registry, mock = mock_registry
        plan = Plan(recipe="svc", stages=[
            Stage(id="create-user", kind=StageKind.CREATE_USER, adapter="identity"),
            Stage(id="downgrade", kind=StageKind.DOWNGRADE, needs_root=False,
                  params={"user": "django-user"}),
            Stage(id="late-install", kind=StageKind.INSTALL, adapter="apk"),
        ])
        report = execute_plan(plan, registry)
        assert report.failed_stage == "late-install"
        assert "needs root" in report.error
        assert "late-install" not in mock.called_ids

    def test_unprivileged_stage_after_downgrade_runs_as_identity(self, mock_registry):
        registry, mock = mock_registry
        plan = Plan(recipe="svc", stages=[
            Stage(id="create-user", kind=StageKind.CREATE_USER, adapter="identity"),
            Stage(id="downgrade", kind=StageKind.DOWNGRADE, needs_root=False,
                  params={"user": "django-user"}),
            Stage(id="smoke", kind=StageKind.INSTALL, adapter="shell", needs_root=False),
        ])
        report = execute_plan(plan, registry)
        assert report.all_ok
        assert mock.call_log[-1].run_as == "django-user"

    def test_dry_run_executes_nothing(self):
        registry = AdapterRegistry()
        mock = MockAdapter(adapter_name="pip")
        registry.register(mock)
        for name in ("shell", "apk", "filesystem", "identity"):
            registry.register(MockAdapter(adapter_name=name))
        report = execute_plan(_plan(), registry, dry_run=True)
        assert report.all_ok
        assert mock.call_count == 0
        assert report.skipped == report.total - 1   # the engine-side downgrade

    def test_to_dict(self, mock_registry):
        registry, _ = mock_registry
        data = execute_plan(_plan(), registry).to_dict()
        assert data["status"] == "ok"
        assert data["failed_stage"] is None
        assert len(data["receipts"]) == data["total"]


class TestAuditEntry:
    def test_written(self, tmp_path: Path, mock_registry):
        registry, _ = mock_registry
        report = execute_plan(_plan(), registry, operation_id="build-1")
        writer = AuditWriter(project_root=tmp_path)
        write_audit_entry(report, writer, artifact_digest="abc")
        entry = writer.read_all()[0]
        assert entry.operation_id == "build-1"
        assert entry.status == "ok"
        assert entry.artifact_digest == "abc"
        assert entry.stages_total == report.total

    def test_failed_build(self, tmp_path: Path, mock_registry):
        registry, mock = mock_registry
        mock.set_failure("pip-runtime", error="gcc failed")
        report = execute_plan(_plan(), registry)
        writer = AuditWriter(project_root=tmp_path)
        write_audit_entry(report, writer)
        entry = writer.read_all()[0]
        assert entry.status == "failed"
        assert entry.failed_stage == "pip-runtime"
        assert entry.errors

    def test_rejected_after_run(self, tmp_path: Path, mock_registry):
        registry, _ = mock_registry
        report = execute_plan(_plan(), registry)
        writer = AuditWriter(project_root=tmp_path)
        write_audit_entry(report, writer, error="Artifact failed verification")
        entry = writer.read_all()[0]
        assert entry.status == "failed"
        assert entry.errors == ["Artifact failed verification"]


class TestOperationId:
    def test_format(self):
        op_id = generate_operation_id()
        assert op_id.startswith("build-")
        assert len(op_id.split("-")) == 4

    def test_unique(self):
        assert generate_operation_id() != generate_operation_id()
