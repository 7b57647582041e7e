"""Plan model, validation and execution ordering."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..errors import InvalidPlanError
from .ownership import OwnershipDirectory
from .permissions import Violation

logger = logging.getLogger(__name__)


class AgentTask(BaseModel):
    """One unit of work for one agent."""
    agent: str
    instruction: str
    focus_files: List[str] = Field(default_factory=list)
    depends_on: List[int] = Field(default_factory=list)
    # Optional model override; routes the task to the matching provider family
    model: Optional[str] = None

    @field_validator("depends_on")
    @classmethod
    def validate_depends_on(cls, v: List[int]) -> List[int]:
        for dep in v:
            if dep < 0:
                raise ValueError(f"depends_on index must be >= 0, got {dep}")
        return v


class DockPlan(BaseModel):
    """Planner output: a summary plus an ordered task list."""
    summary: str
    tasks: List[AgentTask]


class StatusKind(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PERMISSION_VIOLATION = "permission_violation"


@dataclass(frozen=True)
class AgentResultStatus:
    """Terminal outcome of one task."""
    kind: StatusKind
    message: Optional[str] = None
    violations: List[Violation] = field(default_factory=list)

    @classmethod
    def success(cls) -> "AgentResultStatus":
        return cls(kind=StatusKind.SUCCESS)

    @classmethod
    def failed(cls, message: str) -> "AgentResultStatus":
        return cls(kind=StatusKind.FAILED, message=message)

    @classmethod
    def permission_violation(cls, violations: List[Violation]) -> "AgentResultStatus":
        return cls(kind=StatusKind.PERMISSION_VIOLATION, violations=list(violations))

    @property
    def is_success(self) -> bool:
        return self.kind == StatusKind.SUCCESS

    def describe(self) -> str:
        if self.kind == StatusKind.SUCCESS:
            return "OK"
        if self.kind == StatusKind.FAILED:
            return f"FAILED: {self.message}"
        return f"DENIED ({len(self.violations)} violation(s))"


@dataclass
class AgentResult:
    """Outcome of running one task in one worktree."""
    agent: str
    task_index: int
    status: AgentResultStatus
    files_modified: List[str] = field(default_factory=list)
    stdout: str = ""
    stderr: str = ""

    def to_dict(self) -> Dict:
        return {
            "agent": self.agent,
            "task_index": self.task_index,
            "status": self.status.kind.value,
            "message": self.status.message,
            "violations": [v.to_dict() for v in self.status.violations],
            "files_modified": self.files_modified,
        }


def validate_plan(plan: DockPlan, directory: OwnershipDirectory) -> None:
    """
    Validate a plan against the ownership directory and dependency rules.

    Every agent must be registered, and every dependency must point at an
    earlier task. The second rule makes the graph acyclic by construction.

    Raises:
        InvalidPlanError: On the first offending task
    """
    task_count = len(plan.tasks)
    for i, task in enumerate(plan.tasks):
        if directory.agent_role(task.agent) is None:
            raise InvalidPlanError(f"agent '{task.agent}' is not registered", index=i)
        for dep in task.depends_on:
            if dep >= task_count:
                raise InvalidPlanError(
                    f"depends_on index {dep} is out of bounds (only {task_count} tasks)",
                    index=i,
                )
            if dep >= i:
                raise InvalidPlanError(
                    f"depends_on index {dep} is not a prior task (would create cycle)",
                    index=i,
                )


def topological_sort(tasks: List[AgentTask]) -> List[int]:
    """
    Order task indices so every dependency runs before its dependents (Kahn).

    Ready tasks are taken from a stack, so of several independent ready tasks
    the most recently readied one runs first.

    Raises:
        InvalidPlanError: If the dependency graph has a cycle
    """
    n = len(tasks)
    in_degree = [0] * n
    dependents: List[List[int]] = [[] for _ in range(n)]

    for i, task in enumerate(tasks):
        for dep in task.depends_on:
            if 0 <= dep < n:
                in_degree[i] += 1
                dependents[dep].append(i)

    ready = [i for i in range(n) if in_degree[i] == 0]
    order: List[int] = []

    while ready:
        node = ready.pop()
        order.append(node)
        for succ in dependents[node]:
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                ready.append(succ)

    if len(order) != n:
        raise InvalidPlanError("Task dependency cycle detected")

    return order
