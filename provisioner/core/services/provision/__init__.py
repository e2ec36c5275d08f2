"""
Provisioning service — package re-exports.

Layers, innermost first (each imports only from the ones before it):
domain (pure rules) → resolver (manifest → plan) → detection (host
queries) → execution (scopes and privilege state used by the engine).
"""

# ── L1: Domain ──
from provisioner.core.services.provision.domain.layers import (  # noqa: F401
    compute_layer_keys,
)
from provisioner.core.services.provision.domain.ordering import (  # noqa: F401
    ensure_valid,
    validate_plan,
)
from provisioner.core.services.provision.domain.verification import (  # noqa: F401
    verify_artifact,
)

# ── L2: Resolver ──
from provisioner.core.services.provision.resolver.package_resolution import (  # noqa: F401
    Resolution,
    resolve_packages,
)
from provisioner.core.services.provision.resolver.plan_resolution import (  # noqa: F401
    plan_stages,
)

# ── L3: Detection ──
from provisioner.core.services.provision.detection.inventory import (  # noqa: F401
    installed_packages,
)

# ── L4: Execution ──
from provisioner.core.services.provision.execution.privilege import (  # noqa: F401
    PrivilegeGuard,
)
from provisioner.core.services.provision.execution.toolchain import (  # noqa: F401
    Toolchain,
    build_toolchain,
)
