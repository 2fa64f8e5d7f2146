# -----------------------------------------------------------------------------
# CORE LAYER
# -----------------------------------------------------------------------------
# The orchestration logic:
# - PreflightChecker: host gate
# - HostPlanner: target resolution and SDK gate
# - ResourceEstimator: disk space gate
# - DirectoryLifecycleManager: build, output and precious directories
# - BuildSessionRunner: sequential sandboxed sessions
# - ReportFormatter: operator-facing output
# - Orchestrator: wires the above together
# -----------------------------------------------------------------------------

from .config import BuildConfig, load_config
from .directories import DirectoryLifecycleManager, build_layout
from .orchestrator import Orchestrator, exit_code_for
from .planner import DEFAULT_HOSTS, HostPlanner, platform_family
from .preflight import PreflightChecker
from .report import ReportFormatter
from .resources import ResourceEstimator
from .runner import BuildSessionRunner

__all__ = [
    "BuildConfig", "load_config",
    "DirectoryLifecycleManager", "build_layout",
    "Orchestrator", "exit_code_for",
    "DEFAULT_HOSTS", "HostPlanner", "platform_family",
    "PreflightChecker",
    "ReportFormatter",
    "ResourceEstimator",
    "BuildSessionRunner",
]
