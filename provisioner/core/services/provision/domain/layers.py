"""
L1 Domain — chained layer keys (pure).

Each stage's key digests its own inputs together with the key of the
stage below it, so a key changes exactly when the stage or anything
before it changes. The topmost key identifies the whole plan.
No I/O.
"""

from __future__ import annotations

import hashlib
import json

from provisioner.core.models.stage import Stage


def base_layer_key(base_image: str) -> str:
    """Key of the empty layer on top of ``base_image``."""
    return hashlib.sha256(f"base:{base_image}".encode("utf-8")).hexdigest()


def layer_key(stage: Stage, parent_key: str) -> str:
    payload = json.dumps(stage.fingerprint(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(f"{parent_key}\n{payload}".encode("utf-8")).hexdigest()


def compute_layer_keys(stages: list[Stage], base_image: str) -> list[Stage]:
    """Fill in ``layer_key`` on every stage (in place) and return them."""
    parent = base_layer_key(base_image)
    for stage in stages:
        stage.layer_key = layer_key(stage, parent)
        parent = stage.layer_key
    return stages
