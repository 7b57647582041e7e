"""Exception taxonomy for orchestration runs.

Task-local outcomes (a violation, a failed agent invocation, an auto-commit
with nothing to commit) are folded into result values and never raised.
Everything here is fatal to the step that raises it.
"""

from typing import List, Optional


class OrchestrateError(Exception):
    """Base class for all orchestration errors."""


class ContextLoadError(OrchestrateError):
    """Ownership or configuration could not be loaded before the run started."""


class DockFailedError(OrchestrateError):
    """The planner process failed or its output held no usable plan."""


class InvalidPlanError(OrchestrateError):
    """A plan violated the ownership directory or the dependency rules."""

    def __init__(self, reason: str, index: Optional[int] = None):
        self.reason = reason
        self.index = index
        if index is None:
            super().__init__(reason)
        else:
            super().__init__(f"Task {index}: {reason}")


class AgentFailedError(OrchestrateError):
    """A task could not run because its sandbox could not be prepared or inspected."""

    def __init__(self, agent: str, message: str):
        self.agent = agent
        self.message = message
        super().__init__(f"Agent '{agent}' failed: {message}")


class PermissionViolationError(OrchestrateError):
    """Reporting form of a permission violation; never raised by the scheduler."""

    def __init__(self, agent: str, violations: List["Violation"]):
        self.agent = agent
        self.violations = list(violations)
        super().__init__(
            f"Agent '{agent}' violated file ownership: {len(self.violations)} violation(s)"
        )


class ReplanExhaustedError(OrchestrateError):
    """Violations were still outstanding after the replan budget was spent."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Replanning exhausted after {attempts} attempt(s)")


class WorktreeError(OrchestrateError):
    """Base class for git worktree failures."""


class CreateFailedError(WorktreeError):
    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"Failed to create worktree at {path}: {message}")


class RemoveFailedError(WorktreeError):
    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"Failed to remove worktree at {path}: {message}")


class GitFailedError(WorktreeError):
    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Git command failed: {message}")


class ProviderError(OrchestrateError):
    """Base class for agent process invocation failures."""


class ProviderNotFoundError(ProviderError):
    def __init__(self, executable: str):
        self.executable = executable
        super().__init__(f"CLI executable not found: {executable}")


class ProviderTimeoutError(ProviderError):
    def __init__(self, seconds: float, partial_stdout: str = "", partial_stderr: str = ""):
        self.seconds = seconds
        self.partial_stdout = partial_stdout
        self.partial_stderr = partial_stderr
        super().__init__(f"Agent process timed out after {seconds}s")


class ProviderIOError(ProviderError):
    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Agent process I/O error: {message}")
