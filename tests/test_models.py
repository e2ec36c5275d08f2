"""
Tests for core data models — Recipe, Manifest, Stage, Plan, Artifact, Receipt.
"""

import pytest
from pydantic import ValidationError

from provisioner.core.models import Receipt
from provisioner.core.models.artifact import BuildArtifact
from provisioner.core.models.manifest import (
    Manifest,
    PackageSpec,
    normalize_name,
    parse_bool,
)
from provisioner.core.models.recipe import Identity, Recipe
from provisioner.core.models.stage import Plan, Stage, StageKind


class TestRecipe:
    def test_minimal(self):
        r = Recipe(name="svc")
        assert r.venv == "/py"
        assert r.system.manager == "apk"
        assert r.system.toolchain_label == ".tmp-build-deps"
        assert r.identity.name == "app-user"
        assert r.expose == [8000]
        assert r.args["DEV"] is False

    def test_missing_name_rejected(self):
        with pytest.raises(ValidationError):
            Recipe()

    def test_venv_bin(self):
        assert Recipe(name="svc", venv="/opt/venv/").venv_bin == "/opt/venv/bin"

    def test_resolved_env_file_default(self):
        assert Recipe(name="svc").resolved_env_file == "/py/runtime.env"

    def test_resolved_env_file_explicit(self):
        r = Recipe(name="svc", env_file="/etc/profile.d/app.sh")
        assert r.resolved_env_file == "/etc/profile.d/app.sh"

    def test_runtime_env_path_last_and_prefixed(self):
        r = Recipe(name="svc", env={"DJANGO_SETTINGS_MODULE": "app.settings", "PATH": "/x"})
        env = r.runtime_env()
        assert list(env)[-1] == "PATH"
        assert env["PATH"] == "/py/bin:$PATH"
        assert env["PYTHONUNBUFFERED"] == "1"
        assert env["DJANGO_SETTINGS_MODULE"] == "app.settings"

    def test_runtime_env_keeps_unbuffered_output(self):
        env = Recipe(name="svc", env={"PYTHONUNBUFFERED": "0"}).runtime_env()
        assert env["PYTHONUNBUFFERED"] == "1"
        assert list(env) == ["PYTHONUNBUFFERED", "PATH"]

    def test_stage_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            Recipe(name="svc", stage_timeout=0)

    def test_dev_default_must_be_boolean(self):
        assert Recipe(name="svc", args={"DEV": "yes"}).args["DEV"] == "yes"
        with pytest.raises(ValidationError, match="DEV"):
            Recipe(name="svc", args={"DEV": "sometimes"})

    def test_unknown_manager_rejected(self):
        with pytest.raises(ValidationError):
            Recipe(name="svc", system={"manager": "yum"})


class TestIdentity:
    def test_root_rejected(self):
        with pytest.raises(ValidationError, match="privileged"):
            Identity(name="root")

    def test_uid_zero_rejected(self):
        with pytest.raises(ValidationError):
            Identity(name="svc", uid=0)

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            Identity(name="  ")

    def test_name_stripped(self):
        assert Identity(name=" django-user ").name == "django-user"


class TestPackageSpec:
    def test_normalize_python(self):
        assert normalize_name("Django_REST.framework") == "django-rest-framework"

    def test_normalize_system_verbatim(self):
        assert normalize_name("Build_Base", "system") == "Build_Base"

    def test_key(self):
        assert PackageSpec(name="PyYAML").key == "pyyaml"

    def test_requirement(self):
        assert PackageSpec(name="django", specifier=">=4.2").requirement == "django>=4.2"

    def test_requirement_with_url(self):
        spec = PackageSpec(name="pkg", specifier="@ https://example.invalid/pkg.whl")
        assert spec.requirement == "pkg @ https://example.invalid/pkg.whl"

    def test_frozen(self):
        spec = PackageSpec(name="django")
        with pytest.raises(ValidationError):
            spec.name = "flask"


class TestManifest:
    def _manifest(self) -> Manifest:
        return Manifest(
            runtime=(
                PackageSpec(name="postgresql-client", ecosystem="system"),
                PackageSpec(name="Django"),
            ),
            build_only=(PackageSpec(name="build-base", ecosystem="system"),),
            dev=(PackageSpec(name="flake8"), PackageSpec(name="django")),
        )

    def test_names_by_ecosystem(self):
        m = self._manifest()
        assert m.names("runtime", "python") == {"django"}
        assert m.names("runtime", "system") == {"postgresql-client"}
        assert m.names("runtime") == {"django", "postgresql-client"}

    def test_dev_only_names(self):
        assert self._manifest().dev_only_names == {"flake8"}

    def test_frozen(self):
        m = self._manifest()
        with pytest.raises(ValidationError):
            m.dev = ()


class TestParseBool:
    @pytest.mark.parametrize("value", ["true", "TRUE", "1", "yes", True])
    def test_true(self, value):
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", ["false", "False", "0", "no", "", None, False])
    def test_false(self, value):
        assert parse_bool(value) is False

    def test_garbage(self):
        with pytest.raises(ValueError, match="DEV"):
            parse_bool("maybe")


class TestPlan:
    def _plan(self) -> Plan:
        return Plan(
            recipe="svc",
            stages=[
                Stage(id="venv", kind=StageKind.VENV, layer_key="aaa"),
                Stage(id="create-user", kind=StageKind.CREATE_USER, layer_key="bbb"),
            ],
        )

    def test_digest_is_last_layer_key(self):
        assert self._plan().digest == "bbb"

    def test_empty_digest(self):
        assert Plan().digest == ""

    def test_index_of(self):
        plan = self._plan()
        assert plan.index_of("create-user") == 1
        with pytest.raises(KeyError):
            plan.index_of("nope")

    def test_of_kind(self):
        assert [s.id for s in self._plan().of_kind(StageKind.VENV)] == ["venv"]

    def test_to_dict_serializes_kind(self):
        data = self._plan().to_dict()
        assert data["stages"][0]["kind"] == "venv"
        assert data["digest"] == "bbb"


class TestBuildArtifact:
    def test_digest_ignores_timestamps(self):
        a = BuildArtifact(recipe="svc", python_packages=["django"], operation_id="op-1")
        b = BuildArtifact(recipe="svc", python_packages=["django"], operation_id="op-2",
                          built_at="2020-01-01T00:00:00+00:00")
        assert a.digest == b.digest

    def test_digest_tracks_content(self):
        a = BuildArtifact(recipe="svc", python_packages=["django"])
        b = BuildArtifact(recipe="svc", python_packages=["django", "flake8"])
        assert a.digest != b.digest

    def test_to_dict_includes_digest(self):
        a = BuildArtifact(recipe="svc")
        assert a.to_dict()["digest"] == a.digest


class TestReceipt:
    def test_success(self):
        r = Receipt.success(adapter="pip", action_id="pip-runtime", output="done")
        assert r.ok and not r.failed

    def test_failure(self):
        r = Receipt.failure(adapter="apk", action_id="system-runtime", error="boom")
        assert r.failed
        assert r.error == "boom"

    def test_skip(self):
        r = Receipt.skip(adapter="pip", action_id="pip-dev", reason="nothing")
        assert r.status == "skipped"
        assert r.output == "nothing"
