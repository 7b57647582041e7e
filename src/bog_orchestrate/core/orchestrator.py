"""Task scheduler: plan, run tasks in dependency order, merge or reject, replan on violations."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import AgentFailedError, CreateFailedError, OrchestrateError, ReplanExhaustedError
from ..llm.base import Provider
from ..utils.rich_logging import ContextLogger
from ..workspace.worktree_manager import CleanupWarning, WorktreeInfo, WorktreeManager
from .agent import execute_agent_task
from .config import MergeStrategy, OrchestrateConfig
from .dock import ReplanContext, run_dock
from .ownership import OwnershipDirectory
from .permissions import Violation
from .plan import AgentResult, DockPlan, StatusKind, topological_sort
from .sidecar import SidecarReader

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    return f"{datetime.now().strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:6]}"


@dataclass
class OrchestrateResult:
    """Outcome of a whole run."""
    plan: DockPlan
    agent_results: List[AgentResult]
    merged: bool
    violations: List[Tuple[str, List[Violation]]] = field(default_factory=list)
    attempts: int = 1
    run_id: str = ""
    cleanup_warnings: List[CleanupWarning] = field(default_factory=list)
    # Why the run did not merge: AgentFailedError or ReplanExhaustedError
    error: Optional[OrchestrateError] = None


@dataclass
class AttemptOutcome:
    """What happened while executing one plan."""
    results: List[AgentResult] = field(default_factory=list)
    violations: List[Tuple[str, List[Violation]]] = field(default_factory=list)
    succeeded: List[WorktreeInfo] = field(default_factory=list)
    failed: Optional[AgentResult] = None

    @property
    def clean(self) -> bool:
        return self.failed is None and not self.violations


def execute_tasks(
    plan: DockPlan,
    order: List[int],
    run_id: str,
    directory: OwnershipDirectory,
    provider: Provider,
    worktree_manager: WorktreeManager,
    config: OrchestrateConfig,
    merge_strategy: MergeStrategy,
    sidecar_reader: Optional[SidecarReader] = None,
    allow_owned_sidecars: bool = False,
) -> AttemptOutcome:
    """
    Run tasks in the given order, stopping at the first one that is not a clean success.

    With the incremental strategy each success is merged immediately.

    Raises:
        AgentFailedError: If a worktree cannot be created, committed or inspected
        GitFailedError: If an incremental merge fails
    """
    outcome = AttemptOutcome()

    for idx in order:
        task = plan.tasks[idx]
        try:
            worktree = worktree_manager.create_worktree(task.agent, run_id)
        except CreateFailedError as e:
            raise AgentFailedError(task.agent, str(e)) from e
        except ValueError as e:
            raise AgentFailedError(task.agent, f"invalid worktree name: {e}") from e

        result = execute_agent_task(
            task, idx, worktree, directory, provider, worktree_manager, config, sidecar_reader,
            allow_owned_sidecars=allow_owned_sidecars,
        )
        outcome.results.append(result)

        if result.status.kind == StatusKind.SUCCESS:
            if merge_strategy == MergeStrategy.INCREMENTAL:
                worktree_manager.merge_changes(worktree)
            if worktree not in outcome.succeeded:
                outcome.succeeded.append(worktree)
        elif result.status.kind == StatusKind.FAILED:
            outcome.failed = result
            break
        else:
            outcome.violations.append((result.agent, list(result.status.violations)))
            break

    return outcome


class Orchestrator:
    """Drives dock -> execute -> merge/reject, replanning on permission violations."""

    def __init__(
        self,
        repo_root: Path,
        directory: OwnershipDirectory,
        provider: Provider,
        config: Optional[OrchestrateConfig] = None,
        worktree_manager: Optional[WorktreeManager] = None,
        sidecar_reader: Optional[SidecarReader] = None,
    ):
        self.repo_root = Path(repo_root)
        self.directory = directory
        self.provider = provider
        self.config = config or OrchestrateConfig()
        self.worktree_manager = worktree_manager or WorktreeManager(
            self.repo_root,
            worktree_dir=self.config.worktree_dir,
            branch_prefix=self.config.branch_prefix,
        )
        self.sidecar_reader = sidecar_reader

    def plan_only(self, request: str) -> DockPlan:
        """Run just the dock and return the validated plan."""
        return run_dock(self.directory, request, self.provider, self.repo_root, self.config)

    def run(
        self,
        request: str,
        max_replan_attempts: Optional[int] = None,
        merge_strategy: Optional[MergeStrategy] = None,
    ) -> OrchestrateResult:
        """
        Execute a full orchestration run.

        Only permission violations trigger a replan. A failed task ends the run
        on the spot. Every attempt's worktrees are removed before the next
        attempt starts or the run returns.

        Raises:
            DockFailedError, InvalidPlanError: Planning failed (no replan)
            AgentFailedError: A task's worktree could not be prepared or inspected
            GitFailedError: A merge failed
        """
        max_attempts = (
            self.config.max_replan_attempts if max_replan_attempts is None else max_replan_attempts
        )
        strategy = merge_strategy or self.config.merge_strategy
        base_run_id = new_run_id()
        log = ContextLogger(logger, run_id=base_run_id)
        replan_context: Optional[ReplanContext] = None
        cleanup_warnings: List[CleanupWarning] = []
        attempt = 0

        while True:
            # Each attempt gets its own worktree namespace
            run_id = f"{base_run_id}-{attempt + 1}"
            log.phase_change("dock")
            log.info(f"Attempt {attempt + 1}/{max_attempts + 1}")

            plan = run_dock(
                self.directory, request, self.provider, self.repo_root, self.config, replan_context
            )
            order = topological_sort(plan.tasks)
            log.info(f"Plan: {plan.summary} ({len(plan.tasks)} task(s), order {order})")

            log.phase_change("execute")
            try:
                outcome = execute_tasks(
                    plan, order, run_id, self.directory, self.provider,
                    self.worktree_manager, self.config, strategy, self.sidecar_reader,
                )
                if outcome.clean and strategy == MergeStrategy.ALL_OR_NOTHING:
                    log.phase_change("merge")
                    for worktree in outcome.succeeded:
                        self.worktree_manager.merge_changes(worktree)
            finally:
                cleanup_warnings.extend(self.worktree_manager.cleanup_run(run_id))

            if outcome.clean:
                log.info(f"Run merged ({len(outcome.results)} task(s))")
                return OrchestrateResult(
                    plan=plan,
                    agent_results=outcome.results,
                    merged=True,
                    attempts=attempt + 1,
                    run_id=base_run_id,
                    cleanup_warnings=cleanup_warnings,
                )

            if outcome.failed is not None:
                failed = outcome.failed
                log.error(f"Task {failed.task_index} ({failed.agent}) failed; rejecting run")
                return OrchestrateResult(
                    plan=plan,
                    agent_results=outcome.results,
                    merged=False,
                    violations=outcome.violations,
                    attempts=attempt + 1,
                    run_id=base_run_id,
                    cleanup_warnings=cleanup_warnings,
                    error=AgentFailedError(failed.agent, failed.status.message or "failed"),
                )

            if attempt < max_attempts:
                log.warning(
                    f"Rejected attempt {attempt + 1}: violations by "
                    f"{', '.join(agent for agent, _ in outcome.violations)}; replanning"
                )
                attempt += 1
                replan_context = ReplanContext(
                    previous_plan=plan,
                    violations=outcome.violations,
                    attempt_number=attempt,
                )
                continue

            log.error(f"Violations remain after {attempt + 1} attempt(s); rejecting run")
            return OrchestrateResult(
                plan=plan,
                agent_results=outcome.results,
                merged=False,
                violations=outcome.violations,
                attempts=attempt + 1,
                run_id=base_run_id,
                cleanup_warnings=cleanup_warnings,
                error=ReplanExhaustedError(attempt + 1),
            )
