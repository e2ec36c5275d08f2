"""
Shared test fixtures and configuration.
"""

import textwrap
from pathlib import Path

import pytest

from provisioner.adapters.mock import MockAdapter
from provisioner.adapters.registry import AdapterRegistry

RECIPE = textwrap.dedent("""\
    name: test-app
    maintainer: tests
    base_image: python:3.12-alpine
    system:
      manager: apk
      runtime: [postgresql-client]
      build_only: [build-base, postgresql-dev, musl-dev]
    identity:
      name: app-user
""")

RUNTIME_REQUIREMENTS = textwrap.dedent("""\
    # web stack
    Django>=4.2,<4.3
    psycopg2>=2.9
""")

DEV_REQUIREMENTS = textwrap.dedent("""\
    flake8>=7.0
    pytest
""")


@pytest.fixture
def make_project(tmp_path: Path):
    """Factory that lays out a recipe directory and returns provision.yml."""

    def _make(
        recipe: str = RECIPE,
        runtime: str | None = RUNTIME_REQUIREMENTS,
        dev: str | None = DEV_REQUIREMENTS,
    ) -> Path:
        (tmp_path / "app").mkdir(exist_ok=True)
        (tmp_path / "app" / "manage.py").write_text("")
        if runtime is not None:
            (tmp_path / "requirements.txt").write_text(runtime)
        if dev is not None:
            (tmp_path / "requirements.dev.txt").write_text(dev)
        config = tmp_path / "provision.yml"
        config.write_text(recipe)
        return config

    return _make


@pytest.fixture
def mock_registry() -> tuple[AdapterRegistry, MockAdapter]:
    """Registry whose every dispatch goes to one recording MockAdapter."""
    mock = MockAdapter()
    registry = AdapterRegistry()
    registry.set_mock_mode(True, mock)
    return registry, mock
