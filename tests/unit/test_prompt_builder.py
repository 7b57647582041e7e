"""Tests for planner and agent instruction text."""

from bog_orchestrate.core.permissions import Violation
from bog_orchestrate.core.plan import AgentTask
from bog_orchestrate.core.prompt_builder import (
    build_dock_replan_prompt,
    build_dock_system_prompt,
    build_skimsystem_agent_prompt,
    build_subsystem_agent_prompt,
)


class TestDockPrompts:
    """Tests for the dock prompts."""

    def test_system_prompt_carries_declarations(self, directory):
        """Test that the planner sees raw declarations, registry and rules."""
        prompt = build_dock_system_prompt(directory)
        assert "READ-ONLY" in prompt
        assert "owner: core-agent" in prompt
        assert "- core-agent (role: subsystem)" in prompt
        assert "- core (owner: core-agent): files = ['src/ast.rs', 'src/parser.rs']" in prompt
        assert '"depends_on": [0]' in prompt

    def test_replan_prompt_lists_violations(self, directory):
        """Test that the replan prompt reports each offending path."""
        prompt = build_dock_replan_prompt(
            directory,
            [("core-agent", [Violation("src/cli.rs", "outside its declared globs")])],
            attempt=2,
        )
        assert prompt.startswith(build_dock_system_prompt(directory))
        assert "## PREVIOUS ATTEMPT FAILED (attempt 2)" in prompt
        assert "Agent 'core-agent' violated permissions:" in prompt
        assert "  - src/cli.rs: outside its declared globs" in prompt


class TestAgentPrompts:
    """Tests for agent prompts."""

    def test_subsystem_prompt(self, directory):
        """Test that a subsystem agent is told its globs and task."""
        task = AgentTask(agent="core-agent", instruction="add spans", focus_files=["src/ast.rs"])
        prompt = build_subsystem_agent_prompt(directory, "core-agent", task)
        assert "You are core-agent, a subsystem agent" in prompt
        assert "- src/ast.rs\n- src/parser.rs" in prompt
        assert "add spans" in prompt

    def test_subsystem_prompt_without_focus_files(self, directory):
        """Test the placeholder for a task without focus files."""
        task = AgentTask(agent="cli-agent", instruction="x")
        assert "(none specified)" in build_subsystem_agent_prompt(directory, "cli-agent", task)

    def test_skimsystem_prompt(self, directory):
        """Test that a skimsystem agent gets principles, observations and the boundary."""
        task = AgentTask(agent="quality-agent", instruction="review errors")
        prompt = build_skimsystem_agent_prompt(
            directory, "quality-agent", task, ["- [quality] src/parser.rs: red"]
        )
        assert "- [quality] errors carry context" in prompt
        assert "- [quality] src/parser.rs: red" in prompt
        assert "You may ONLY modify *.bog sidecar files" in prompt
        assert "from: quality-agent" in prompt

    def test_skimsystem_prompt_no_observations(self, directory):
        """Test the placeholder when nothing is non-compliant."""
        task = AgentTask(agent="quality-agent", instruction="review")
        assert "(none recorded)" in build_skimsystem_agent_prompt(directory, "quality-agent", task)
