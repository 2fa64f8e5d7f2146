"""crossforge: deterministic, containerized multi-target build orchestration."""

__version__ = "0.1.0"
