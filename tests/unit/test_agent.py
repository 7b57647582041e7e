"""Tests for running a single agent task."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from bog_orchestrate.core.agent import execute_agent_task
from bog_orchestrate.core.plan import AgentTask, StatusKind
from bog_orchestrate.errors import AgentFailedError, GitFailedError, ProviderNotFoundError
from bog_orchestrate.llm.base import Provider, ProviderOutput
from bog_orchestrate.workspace.worktree_manager import ChangeKind, DiffEntry, WorktreeInfo


@pytest.fixture
def worktree(tmp_path):
    return WorktreeInfo(
        path=tmp_path,
        branch="orch/r1/core-agent",
        agent="core-agent",
        run_id="r1",
        base_commit="abc123",
    )


def _manager(*paths):
    manager = MagicMock()
    manager.auto_commit.return_value = bool(paths)
    manager.inspect_diff.return_value = [DiffEntry(p, ChangeKind.MODIFIED) for p in paths]
    return manager


def _provider(output=None, error=None):
    provider = MagicMock(spec=Provider)
    if error is not None:
        provider.invoke.side_effect = error
    else:
        provider.invoke.return_value = output or ProviderOutput(stdout="ok", stderr="", exit_code=0)
    return provider


class TestExecuteAgentTask:
    """Tests for execute_agent_task."""

    def test_success(self, directory, worktree, fast_config):
        """Test a clean run inside the agent's globs."""
        manager = _manager("src/ast.rs")
        task = AgentTask(agent="core-agent", instruction="add spans")

        result = execute_agent_task(task, 0, worktree, directory, _provider(), manager, fast_config)

        assert result.status.kind == StatusKind.SUCCESS
        assert result.files_modified == ["src/ast.rs"]
        assert result.stdout == "ok"
        manager.auto_commit.assert_called_once_with(worktree)

    def test_violation(self, directory, worktree, fast_config):
        """Test that foreign files turn the result into a violation."""
        manager = _manager("src/ast.rs", "src/cli.rs")
        task = AgentTask(agent="core-agent", instruction="x")

        result = execute_agent_task(task, 3, worktree, directory, _provider(), manager, fast_config)

        assert result.status.kind == StatusKind.PERMISSION_VIOLATION
        assert result.task_index == 3
        assert [v.path for v in result.status.violations] == ["src/cli.rs"]

    def test_provider_options(self, directory, worktree, fast_config):
        """Test that the agent runs writable in its worktree with agent tools."""
        provider = _provider()
        task = AgentTask(agent="core-agent", instruction="x", model="opus")
        execute_agent_task(task, 0, worktree, directory, provider, _manager(), fast_config)

        prompt, system_prompt, working_dir, options = provider.invoke.call_args[0]
        assert working_dir == worktree.path
        assert options.read_only is False
        assert options.model == "opus"
        assert options.agent_label == "core-agent"
        assert options.allowed_tools == fast_config.provider.agent_allowed_tools
        assert options.timeout_seconds == fast_config.provider.agent_timeout_seconds

    def test_nonzero_exit_is_failure(self, directory, worktree, fast_config):
        """Test that a failing CLI yields a failed result without committing."""
        manager = _manager()
        output = ProviderOutput(stdout="", stderr="  out of turns \n", exit_code=1)
        task = AgentTask(agent="core-agent", instruction="x")

        result = execute_agent_task(task, 0, worktree, directory, _provider(output), manager, fast_config)

        assert result.status.kind == StatusKind.FAILED
        assert result.status.message == "exit code 1: out of turns"
        manager.auto_commit.assert_not_called()

    def test_provider_error_is_failure(self, directory, worktree, fast_config):
        """Test that provider exceptions are folded into the result."""
        task = AgentTask(agent="core-agent", instruction="x")
        result = execute_agent_task(
            task, 0, worktree, directory, _provider(error=ProviderNotFoundError("claude")),
            _manager(), fast_config,
        )
        assert result.status.kind == StatusKind.FAILED
        assert "claude" in result.status.message

    def test_unregistered_agent(self, directory, worktree, fast_config):
        """Test that an unknown agent fails without invoking anything."""
        provider = _provider()
        task = AgentTask(agent="ghost-agent", instruction="x")
        result = execute_agent_task(task, 0, worktree, directory, provider, _manager(), fast_config)
        assert result.status.kind == StatusKind.FAILED
        provider.invoke.assert_not_called()

    def test_git_failure_raises(self, directory, worktree, fast_config):
        """Test that an uninspectable worktree aborts the run."""
        manager = _manager()
        manager.inspect_diff.side_effect = GitFailedError("index locked")
        task = AgentTask(agent="core-agent", instruction="x")
        with pytest.raises(AgentFailedError, match="index locked"):
            execute_agent_task(task, 0, worktree, directory, _provider(), manager, fast_config)

    def test_skimsystem_prompt_includes_observations(self, directory, worktree, fast_config):
        """Test that a skimsystem agent sees non-compliant observations from its worktree."""
        (worktree.path / "src").mkdir()
        (worktree.path / "src" / "parser.rs.bog").write_text(
            "skims:\n  quality: {status: red, notes: no context}\n"
        )
        provider = _provider()
        task = AgentTask(agent="quality-agent", instruction="review")

        result = execute_agent_task(
            task, 0, worktree, directory, provider, _manager("src/parser.rs.bog"), fast_config
        )

        assert result.status.kind == StatusKind.SUCCESS
        system_prompt = provider.invoke.call_args[0][1]
        assert "- [quality] src/parser.rs: red - no context" in system_prompt
