"""Utility modules for bog-orchestrate."""

from .process_utils import kill_and_reap, kill_process_group, kill_process_tree
from .rich_logging import ContextLogger, OrchestrateLogFormatter, setup_rich_logging
from .subprocess_utils import (
    SubprocessError,
    run_command,
    run_git_command,
)
from .validators import validate_branch_name, validate_identifier

__all__ = [
    "ContextLogger",
    "OrchestrateLogFormatter",
    "SubprocessError",
    "kill_and_reap",
    "kill_process_group",
    "kill_process_tree",
    "run_command",
    "run_git_command",
    "setup_rich_logging",
    "validate_branch_name",
    "validate_identifier",
]
