"""
Tests for artifact verification — domain checks and the verify use case.
"""

import json
from pathlib import Path

from provisioner.core.models.artifact import BuildArtifact
from provisioner.core.models.manifest import Manifest, PackageSpec
from provisioner.core.persistence.artifact_store import publish_artifact
from provisioner.core.services.provision.domain.verification import verify_artifact
from provisioner.core.use_cases.verify import verify_published


def _manifest() -> Manifest:
    return Manifest(
        runtime=(
            PackageSpec(name="postgresql-client", ecosystem="system"),
            PackageSpec(name="Django", specifier=">=4.2"),
        ),
        build_only=(PackageSpec(name="build-base", ecosystem="system"),),
        dev=(PackageSpec(name="flake8"),),
    )


def _artifact(**overrides) -> BuildArtifact:
    data = {
        "recipe": "svc",
        "dev": False,
        "system_packages": ["postgresql-client"],
        "python_packages": ["django"],
        "identity": "django-user",
    }
    data.update(overrides)
    return BuildArtifact(**data)


class TestVerifyArtifact:
    def test_sound(self):
        assert verify_artifact(_artifact(), _manifest()) == []

    def test_sound_dev(self):
        artifact = _artifact(dev=True, python_packages=["django", "flake8"])
        assert verify_artifact(artifact, _manifest()) == []

    def test_dev_package_leaked(self):
        artifact = _artifact(python_packages=["django", "flake8"])
        problems = verify_artifact(artifact, _manifest())
        assert problems == ["Dev-only packages in a non-dev build: flake8"]

    def test_dev_package_missing(self):
        problems = verify_artifact(_artifact(dev=True), _manifest())
        assert problems == ["Python packages missing: flake8"]

    def test_runtime_system_package_missing(self):
        problems = verify_artifact(_artifact(system_packages=[]), _manifest())
        assert problems == ["System packages missing: postgresql-client"]

    def test_toolchain_residue(self):
        artifact = _artifact(system_packages=["postgresql-client", "build-base"])
        problems = verify_artifact(artifact, _manifest())
        assert problems == ["Build toolchain left behind: build-base"]

    def test_toolchain_also_runtime_is_allowed(self):
        manifest = _manifest().model_copy(update={
            "build_only": (PackageSpec(name="postgresql-client", ecosystem="system"),),
        })
        assert verify_artifact(_artifact(), manifest) == []

    def test_privileged_identity(self):
        problems = verify_artifact(_artifact(identity="root", identity_uid=0), _manifest())
        assert len(problems) == 2

    def test_login_and_home(self):
        artifact = _artifact(login_disabled=False, home_created=True)
        problems = verify_artifact(artifact, _manifest())
        assert "Runtime identity has a usable login" in problems
        assert "Runtime identity has a home directory" in problems


class TestVerifyPublished:
    def _project(self, make_project) -> Path:
        return make_project()

    def test_sound_lock(self, make_project):
        config = self._project(make_project)
        artifact = _artifact(
            system_packages=["postgresql-client"],
            python_packages=["django", "psycopg2"],
        )
        publish_artifact(artifact, config.parent / "provision.lock.json")
        result = verify_published(config)
        assert result.ok
        assert result.to_dict()["digest"] == artifact.digest

    def test_tampered_lock(self, make_project):
        config = self._project(make_project)
        lock = config.parent / "provision.lock.json"
        artifact = _artifact(
            system_packages=["postgresql-client", "musl-dev"],
            python_packages=["django", "psycopg2", "flake8"],
        )
        publish_artifact(artifact, lock)
        result = verify_published(config)
        assert not result.ok
        assert len(result.violations) == 2

    def test_no_lock(self, make_project):
        result = verify_published(self._project(make_project))
        assert not result.ok
        assert "No published artifact" in result.error

    def test_corrupt_lock(self, make_project):
        config = self._project(make_project)
        (config.parent / "provision.lock.json").write_text("{not json")
        result = verify_published(config)
        assert "No published artifact" in result.error

    def test_bad_config(self, tmp_path: Path):
        result = verify_published(tmp_path / "provision.yml")
        assert result.error
        assert json.loads(json.dumps(result.to_dict()))["ok"] is False
