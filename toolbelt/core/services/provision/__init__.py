"""
Tool provisioning service — package re-exports.

Each symbol lives in its single-responsibility module inside the
appropriate layer (data → detection → execution → orchestration)::

    from toolbelt.core.services.provision import run_provisioning
"""

# ── L3: Detection ──
from toolbelt.core.services.provision.detection.platform import (  # noqa: F401
    PlatformInfo,
    PreconditionError,
    check_preconditions,
    detect_platform,
)
from toolbelt.core.services.provision.detection.probe import (  # noqa: F401
    ProbeResult,
    probe_tool,
)
from toolbelt.core.services.provision.detection.tool_version import (  # noqa: F401
    get_tool_version,
)
from toolbelt.core.services.provision.detection.verification import (  # noqa: F401
    ReportEntry,
    VerificationReport,
    build_report,
)

# ── L4: Execution ──
from toolbelt.core.services.provision.execution.shell_profile import (  # noqa: F401
    ensure_line_present,
    resolve_profile_path,
)
from toolbelt.core.services.provision.execution.strategies import (  # noqa: F401
    InstallSession,
    apply_post_install,
    install_tool,
)

# ── L5: Orchestration ──
from toolbelt.core.services.provision.orchestration.orchestrator import (  # noqa: F401
    RunReport,
    StepOutcome,
    run_provisioning,
)
