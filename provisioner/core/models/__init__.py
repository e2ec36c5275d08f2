"""
Domain models — Pydantic types for the provisioning pipeline.

All models are re-exported here for convenient access:

    from provisioner.core.models import Recipe, Manifest, Plan, Stage, Receipt
"""

from provisioner.core.models.action import Action, Receipt
from provisioner.core.models.artifact import BuildArtifact
from provisioner.core.models.manifest import (
    BuildFlags,
    Manifest,
    PackageSpec,
    normalize_name,
    parse_bool,
)
from provisioner.core.models.recipe import (
    AppSource,
    Identity,
    Recipe,
    RequirementFiles,
    SystemPackages,
)
from provisioner.core.models.stage import Plan, Stage, StageKind
from provisioner.core.models.template import GeneratedFile

__all__ = [
    "Action",
    "AppSource",
    "BuildArtifact",
    "BuildFlags",
    "GeneratedFile",
    "Identity",
    "Manifest",
    "PackageSpec",
    "Plan",
    "Receipt",
    "Recipe",
    "RequirementFiles",
    "Stage",
    "StageKind",
    "SystemPackages",
    "normalize_name",
    "parse_bool",
]
