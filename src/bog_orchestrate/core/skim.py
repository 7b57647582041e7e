"""Work-item lifecycle: run an integration, collect pending change requests,
delegate them to the owning subsystem agents, then merge all or nothing.
"""

import logging
import subprocess
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..errors import AgentFailedError, ContextLoadError, OrchestrateError, PermissionViolationError
from ..llm.base import Provider
from ..utils.rich_logging import ContextLogger
from ..utils.subprocess_utils import run_command
from ..workspace.worktree_manager import CleanupWarning, WorktreeManager
from .config import MergeStrategy, OrchestrateConfig
from .orchestrator import execute_tasks
from .ownership import OwnershipDirectory
from .permissions import Violation
from .plan import AgentResult, AgentTask, DockPlan
from .sidecar import (
    ChangeRequest,
    RequestStatus,
    SidecarReader,
    YamlSidecarReader,
    discover_sidecars,
    source_path_for,
)

logger = logging.getLogger(__name__)


@dataclass
class WorkItemGroup:
    """Pending requests recorded in one sidecar."""
    sidecar_path: str
    source_path: str
    items: List[ChangeRequest]


@dataclass
class WorkPacket:
    """All pending requests addressed to one subsystem."""
    subsystem: str
    agent: str
    groups: List[WorkItemGroup] = field(default_factory=list)

    @property
    def item_count(self) -> int:
        return sum(len(g.items) for g in self.groups)


@dataclass
class SkimRunResult:
    skimsystem: str
    integration_output: str
    work_packets: List[WorkPacket] = field(default_factory=list)
    agent_results: List[AgentResult] = field(default_factory=list)
    merged: bool = False
    violations: List[Tuple[str, List[Violation]]] = field(default_factory=list)
    cleanup_warnings: List[CleanupWarning] = field(default_factory=list)
    error: Optional[OrchestrateError] = None


class IntegrationRunner(ABC):
    """Produces pending change requests for a skimsystem (outside this package)."""

    @abstractmethod
    def run(self, skimsystem: str, action: Optional[str] = None) -> str:
        """Run the integration and return its textual output."""
        pass


class CommandIntegrationRunner(IntegrationRunner):
    """Runs the configured integration command in the repository root."""

    def __init__(self, repo_root: Path, config: OrchestrateConfig):
        self.repo_root = Path(repo_root)
        self.config = config

    def build_command(self, skimsystem: str, action: Optional[str]) -> List[str]:
        cmd = [
            token.replace("{skimsystem}", skimsystem).replace("{action}", action or "")
            for token in self.config.skim.integration_command
        ]
        if action and not any("{action}" in t for t in self.config.skim.integration_command):
            cmd.extend(["--action", action])
        return cmd

    def run(self, skimsystem: str, action: Optional[str] = None) -> str:
        cmd = self.build_command(skimsystem, action)
        try:
            result = run_command(
                cmd,
                cwd=self.repo_root,
                check=False,
                timeout=self.config.skim.integration_timeout_seconds,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ContextLoadError(f"integration command {' '.join(cmd)}: {e}") from e

        if result.returncode != 0:
            logger.warning(f"Integration exited {result.returncode}: {' '.join(cmd)}")
        return f"{result.stdout}{result.stderr}"


def collect_pending_requests(
    repo_root: Path,
    directory: OwnershipDirectory,
    skimsystem: str,
    config: OrchestrateConfig,
    reader: Optional[SidecarReader] = None,
) -> List[WorkPacket]:
    """
    Group pending requests filed by the skimsystem's owner by owning subsystem.

    Sidecars that cannot be read, carry no subsystem, or name an undeclared
    subsystem are skipped.
    """
    reader = reader or YamlSidecarReader()
    requester = directory.skimsystem_owner(skimsystem)
    if requester is None:
        raise ContextLoadError(f"Skimsystem '{skimsystem}' is not declared")

    by_subsystem: Dict[str, List[WorkItemGroup]] = defaultdict(list)
    suffix = config.sidecar_suffix

    for path in discover_sidecars(repo_root, suffix, [config.worktree_dir]):
        sidecar = reader.read(path)
        if sidecar is None or not sidecar.subsystem:
            continue

        pending = [
            cr for cr in sidecar.change_requests
            if cr.status == RequestStatus.PENDING and cr.from_agent == requester
        ]
        if not pending:
            continue

        if sidecar.subsystem not in directory.subsystems:
            logger.warning(
                f"Skipping {len(pending)} request(s) in {path}: "
                f"subsystem '{sidecar.subsystem}' is not declared"
            )
            continue

        rel = path.relative_to(repo_root).as_posix()
        by_subsystem[sidecar.subsystem].append(
            WorkItemGroup(sidecar_path=rel, source_path=source_path_for(rel, suffix), items=pending)
        )

    packets = [
        WorkPacket(subsystem=name, agent=directory.subsystem_owner(name), groups=groups)
        for name, groups in by_subsystem.items()
    ]
    packets.sort(key=lambda p: p.subsystem)
    return packets


def build_task_from_packet(packet: WorkPacket, skimsystem: str, sidecar_suffix: str = ".bog") -> AgentTask:
    """One task per packet listing every item by id, plus how to close each one."""
    instruction = (
        f"Address the following change requests filed by the {skimsystem} skimsystem "
        f"against the {packet.subsystem} subsystem. For each request, make the change "
        f"in the source file. Then update the request in the {sidecar_suffix} sidecar file: "
        "change `status: pending` to `status: resolved`. If you cannot or should not make "
        "a change, set `status: denied` and explain why in the description.\n\n"
    )
    focus_files: List[str] = []
    for group in packet.groups:
        instruction += f"### {group.source_path}\n"
        for item in group.items:
            instruction += f"- [{item.id}] {item.description}\n"
        instruction += "\n"
        focus_files.extend([group.source_path, group.sidecar_path])

    return AgentTask(agent=packet.agent, instruction=instruction.rstrip() + "\n", focus_files=focus_files)


def run_skim_lifecycle(
    repo_root: Path,
    directory: OwnershipDirectory,
    skimsystem: str,
    provider: Provider,
    config: Optional[OrchestrateConfig] = None,
    action: Optional[str] = None,
    integration_runner: Optional[IntegrationRunner] = None,
    worktree_manager: Optional[WorktreeManager] = None,
    sidecar_reader: Optional[SidecarReader] = None,
) -> SkimRunResult:
    """
    Integration -> collect -> delegate -> merge all or nothing.

    There is no replanning: the first failed or violating packet rejects
    every packet's changes.

    Raises:
        ContextLoadError: Unknown skimsystem or integration could not start
        AgentFailedError: A worktree could not be prepared or inspected
        GitFailedError: A merge failed
    """
    config = config or OrchestrateConfig()
    repo_root = Path(repo_root)
    run_id = f"skim-{uuid.uuid4().hex[:8]}"
    log = ContextLogger(logger, run_id=run_id)

    if skimsystem not in directory.skimsystems:
        raise ContextLoadError(f"Skimsystem '{skimsystem}' is not declared")

    runner = integration_runner or CommandIntegrationRunner(repo_root, config)
    worktree_manager = worktree_manager or WorktreeManager(
        repo_root, worktree_dir=config.worktree_dir, branch_prefix=config.branch_prefix
    )

    log.phase_change("integration")
    integration_output = runner.run(skimsystem, action)

    log.phase_change("collect")
    packets = collect_pending_requests(repo_root, directory, skimsystem, config, sidecar_reader)
    result = SkimRunResult(
        skimsystem=skimsystem,
        integration_output=integration_output,
        work_packets=packets,
    )
    if not packets:
        log.info("No pending change requests; nothing to delegate")
        result.merged = True
        return result

    for packet in packets:
        log.info(
            f"{packet.subsystem} ({packet.agent}): {packet.item_count} request(s) "
            f"across {len(packet.groups)} file(s)"
        )

    plan = DockPlan(
        summary=f"Resolve {skimsystem} change requests",
        tasks=[build_task_from_packet(p, skimsystem, config.sidecar_suffix) for p in packets],
    )

    log.phase_change("delegate")
    try:
        outcome = execute_tasks(
            plan, list(range(len(plan.tasks))), run_id, directory, provider,
            worktree_manager, config, MergeStrategy.ALL_OR_NOTHING, sidecar_reader,
            allow_owned_sidecars=True,
        )
        if outcome.clean:
            log.phase_change("merge")
            for worktree in outcome.succeeded:
                worktree_manager.merge_changes(worktree)
    finally:
        result.cleanup_warnings = worktree_manager.cleanup_run(run_id)

    result.agent_results = outcome.results
    result.violations = outcome.violations
    result.merged = outcome.clean
    if outcome.failed is not None:
        result.error = AgentFailedError(
            outcome.failed.agent, outcome.failed.status.message or "failed"
        )
    elif outcome.violations:
        agent, violations = outcome.violations[0]
        log.warning(f"Rejecting: {agent} touched {len(violations)} file(s) outside its ownership")
        result.error = PermissionViolationError(agent, violations)
    return result
