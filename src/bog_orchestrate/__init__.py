"""bog-orchestrate: ownership-aware delegation of code changes to agent CLIs."""

__version__ = "0.1.0"
