"""
L1 Domain — plan ordering rules (pure).

The plan is authored in a fixed order; these checks make sure nobody
authored it wrong. Every rule is checked and every violation reported,
so one run shows all problems at once. No I/O.
"""

from __future__ import annotations

from provisioner.core.errors import PlanValidationError
from provisioner.core.models.stage import Plan, StageKind


def validate_plan(plan: Plan) -> list[str]:
    """Check the ordering rules of a plan.

    Rules:
    - stage ids are unique
    - every toolchain scope is installed once, then purged once
    - every purge precedes the downgrade
    - exactly one create-user, before exactly one downgrade
    - nothing needing root runs after the downgrade

    Returns:
        List of error strings (empty = valid).
    """
    errors: list[str] = []
    stages = plan.stages

    seen: set[str] = set()
    for s in stages:
        if s.id in seen:
            errors.append(f"Duplicate stage ID: {s.id}")
        seen.add(s.id)

    creates = [i for i, s in enumerate(stages) if s.kind == StageKind.CREATE_USER]
    downgrades = [i for i, s in enumerate(stages) if s.kind == StageKind.DOWNGRADE]
    if len(creates) != 1:
        errors.append(f"Expected exactly one create-user stage, found {len(creates)}")
    if len(downgrades) != 1:
        errors.append(f"Expected exactly one downgrade stage, found {len(downgrades)}")
    downgrade_at = downgrades[0] if downgrades else len(stages)
    if creates and downgrades and creates[0] > downgrade_at:
        errors.append("create-user must come before the downgrade")

    # ── Toolchain scopes ──
    opened: dict[str, int] = {}
    closed: dict[str, int] = {}
    for i, s in enumerate(stages):
        if s.kind == StageKind.TOOLCHAIN_INSTALL:
            if not s.scope:
                errors.append(f"Toolchain stage '{s.id}' has no scope")
            elif s.scope in opened:
                errors.append(f"Toolchain scope '{s.scope}' installed twice")
            else:
                opened[s.scope] = i
        elif s.kind == StageKind.TOOLCHAIN_PURGE:
            if not s.scope:
                errors.append(f"Purge stage '{s.id}' has no scope")
            elif s.scope not in opened:
                errors.append(
                    f"Toolchain scope '{s.scope}' purged before it was installed"
                )
            elif s.scope in closed:
                errors.append(f"Toolchain scope '{s.scope}' purged twice")
            else:
                closed[s.scope] = i
                if i > downgrade_at:
                    errors.append(
                        f"Toolchain scope '{s.scope}' purged after the downgrade"
                    )
    for scope in opened:
        if scope not in closed:
            errors.append(f"Toolchain scope '{scope}' is never purged")

    # ── Nothing privileged after the downgrade ──
    for s in stages[downgrade_at + 1:]:
        if s.needs_root:
            errors.append(f"Stage '{s.id}' needs root after the downgrade")

    return errors


def ensure_valid(plan: Plan) -> Plan:
    """Raise ``PlanValidationError`` if any ordering rule is broken."""
    errors = validate_plan(plan)
    if errors:
        raise PlanValidationError(errors)
    return plan
