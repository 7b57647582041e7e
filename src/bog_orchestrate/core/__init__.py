"""Orchestration core: ownership, plans, permissions, scheduling and the skim lifecycle."""

from .config import MergeStrategy, OrchestrateConfig, load_config
from .dock import ReplanContext, extract_json_plan, parse_dock_output, run_dock
from .orchestrator import OrchestrateResult, Orchestrator
from .ownership import AgentRole, OwnershipDirectory, load_ownership
from .permissions import Violation, check_agent_permissions
from .plan import (
    AgentResult,
    AgentResultStatus,
    AgentTask,
    DockPlan,
    StatusKind,
    topological_sort,
    validate_plan,
)
from .skim import SkimRunResult, WorkPacket, run_skim_lifecycle

__all__ = [
    "AgentResult",
    "AgentResultStatus",
    "AgentRole",
    "AgentTask",
    "DockPlan",
    "MergeStrategy",
    "OrchestrateConfig",
    "OrchestrateResult",
    "Orchestrator",
    "OwnershipDirectory",
    "ReplanContext",
    "SkimRunResult",
    "StatusKind",
    "Violation",
    "WorkPacket",
    "check_agent_permissions",
    "extract_json_plan",
    "load_config",
    "load_ownership",
    "parse_dock_output",
    "run_dock",
    "run_skim_lifecycle",
    "topological_sort",
    "validate_plan",
]
