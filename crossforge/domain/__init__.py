# -----------------------------------------------------------------------------
# DOMAIN LAYER
# -----------------------------------------------------------------------------
# Targets, directory layout and build sessions, plus the error taxonomy every
# other layer raises.
# -----------------------------------------------------------------------------

from .errors import CrossforgeError
from .models import (
    BuildSession,
    DirectoryLayout,
    DirectoryPlan,
    Mount,
    PlatformFamily,
    PreciousDirectory,
    RunReport,
    SessionState,
    Target,
    TargetOutcome,
)

__all__ = [
    "CrossforgeError",
    "BuildSession", "DirectoryLayout", "DirectoryPlan", "Mount", "PlatformFamily",
    "PreciousDirectory", "RunReport", "SessionState", "Target", "TargetOutcome",
]
