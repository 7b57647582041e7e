"""Run one task for one agent inside its worktree and judge the resulting diff."""

import logging
from typing import List, Optional

from ..errors import AgentFailedError, ProviderError, WorktreeError
from ..llm.base import Provider, ProviderOptions
from ..workspace.worktree_manager import WorktreeInfo, WorktreeManager
from .config import OrchestrateConfig
from .ownership import AgentRole, OwnershipDirectory
from .permissions import check_agent_permissions
from .plan import AgentResult, AgentResultStatus, AgentTask
from .prompt_builder import build_skimsystem_agent_prompt, build_subsystem_agent_prompt
from .sidecar import SidecarReader, collect_skim_observations

logger = logging.getLogger(__name__)


def build_agent_system_prompt(
    directory: OwnershipDirectory,
    task: AgentTask,
    role: AgentRole,
    worktree: WorktreeInfo,
    config: OrchestrateConfig,
    sidecar_reader: Optional[SidecarReader] = None,
) -> str:
    if role == AgentRole.SUBSYSTEM:
        return build_subsystem_agent_prompt(directory, task.agent, task)

    observations = collect_skim_observations(
        worktree.path,
        directory.agent_skimsystems(task.agent),
        config.sidecar_suffix,
        [config.worktree_dir],
        reader=sidecar_reader,
    )
    return build_skimsystem_agent_prompt(
        directory, task.agent, task, observations, config.sidecar_suffix
    )


def execute_agent_task(
    task: AgentTask,
    task_index: int,
    worktree: WorktreeInfo,
    directory: OwnershipDirectory,
    provider: Provider,
    worktree_manager: WorktreeManager,
    config: Optional[OrchestrateConfig] = None,
    sidecar_reader: Optional[SidecarReader] = None,
    allow_owned_sidecars: bool = False,
) -> AgentResult:
    """
    Invoke the agent in its worktree, commit what it did and check ownership.

    Provider failures and non-zero exits are folded into a FAILED result.
    allow_owned_sidecars lets a subsystem agent close change requests in the
    sidecars of its own files.

    Raises:
        AgentFailedError: If the worktree cannot be committed or inspected
    """
    config = config or OrchestrateConfig()
    role = directory.agent_role(task.agent)
    if role is None:
        return AgentResult(
            agent=task.agent,
            task_index=task_index,
            status=AgentResultStatus.failed(f"agent '{task.agent}' is not registered"),
        )

    system_prompt = build_agent_system_prompt(
        directory, task, role, worktree, config, sidecar_reader
    )
    options = ProviderOptions(
        timeout_seconds=config.provider.agent_timeout_seconds,
        model=task.model or config.provider.default_model,
        read_only=False,
        allowed_tools=list(config.provider.agent_allowed_tools),
        max_budget_usd=config.provider.max_budget_usd,
        agent_label=task.agent,
    )

    logger.info(f"Running task {task_index} for {task.agent} ({role.value}) in {worktree.path}")
    try:
        output = provider.invoke(task.instruction, system_prompt, worktree.path, options)
    except ProviderError as e:
        logger.error(f"Task {task_index} ({task.agent}) provider failure: {e}")
        return AgentResult(
            agent=task.agent,
            task_index=task_index,
            status=AgentResultStatus.failed(str(e)),
        )

    if output.exit_code != 0:
        message = f"exit code {output.exit_code}: {output.stderr.strip()}"
        logger.error(f"Task {task_index} ({task.agent}) failed: {message}")
        return AgentResult(
            agent=task.agent,
            task_index=task_index,
            status=AgentResultStatus.failed(message),
            stdout=output.stdout,
            stderr=output.stderr,
        )

    try:
        worktree_manager.auto_commit(worktree)
        diff = worktree_manager.inspect_diff(worktree)
    except WorktreeError as e:
        raise AgentFailedError(task.agent, str(e)) from e

    files_modified: List[str] = [entry.path for entry in diff]
    violations = check_agent_permissions(
        task.agent, role, files_modified, directory, config.sidecar_suffix,
        allow_owned_sidecars=allow_owned_sidecars,
    )

    if violations:
        logger.warning(
            f"Task {task_index} ({task.agent}) touched {len(violations)} file(s) outside its ownership"
        )
        status = AgentResultStatus.permission_violation(violations)
    else:
        logger.info(f"Task {task_index} ({task.agent}) succeeded, {len(files_modified)} file(s) changed")
        status = AgentResultStatus.success()

    return AgentResult(
        agent=task.agent,
        task_index=task_index,
        status=status,
        files_modified=files_modified,
        stdout=output.stdout,
        stderr=output.stderr,
    )
