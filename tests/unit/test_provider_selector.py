"""Tests for provider routing and CLI command construction."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from bog_orchestrate.core.config import OrchestrateConfig
from bog_orchestrate.llm.base import ProviderOptions, ProviderOutput
from bog_orchestrate.llm.claude_cli_backend import ClaudeCLIProvider, budget_to_turns
from bog_orchestrate.llm.codex_cli_backend import CodexCLIProvider
from bog_orchestrate.llm.process_runner import ProcessResult
from bog_orchestrate.llm.provider_selector import (
    ProviderFamily,
    RoutingProvider,
    build_default_provider,
    select_family,
)


class TestSelectFamily:
    """Tests for model prefix routing."""

    @pytest.mark.parametrize("model", ["gpt-5", "o3-mini", "o4-mini", "codex-mini-latest", "GPT-4.1"])
    def test_codex_models(self, model):
        """Test that OpenAI model ids route to codex."""
        assert select_family(model) == ProviderFamily.CODEX

    @pytest.mark.parametrize("model", [None, "", "sonnet", "claude-opus-4", "opus"])
    def test_default_is_claude(self, model):
        """Test that everything else routes to claude."""
        assert select_family(model) == ProviderFamily.CLAUDE


class TestRoutingProvider:
    """Tests for RoutingProvider."""

    def test_requires_claude(self):
        """Test that a default route is mandatory."""
        with pytest.raises(ValueError):
            RoutingProvider({ProviderFamily.CODEX: MagicMock()})

    def test_dispatches_by_model(self, tmp_path):
        """Test that invoke goes to the family of options.model."""
        claude, codex = MagicMock(), MagicMock()
        router = RoutingProvider({ProviderFamily.CLAUDE: claude, ProviderFamily.CODEX: codex})

        router.invoke("p", "s", tmp_path, ProviderOptions(model="gpt-5"))
        router.invoke("p", "s", tmp_path, ProviderOptions())

        codex.invoke.assert_called_once()
        claude.invoke.assert_called_once()

    def test_missing_family_falls_back_to_claude(self):
        """Test fallback when no codex provider is configured."""
        claude = MagicMock()
        router = RoutingProvider({ProviderFamily.CLAUDE: claude})
        assert router.provider_for("gpt-5") is claude

    def test_build_default_provider(self):
        """Test that config values reach both providers."""
        config = OrchestrateConfig(provider={"claude_executable": "/opt/claude", "codex_executable": "cx"})
        router = build_default_provider(config)
        assert router.providers[ProviderFamily.CLAUDE].executable == "/opt/claude"
        assert router.providers[ProviderFamily.CODEX].executable == "cx"


class TestClaudeCLIProvider:
    """Tests for ClaudeCLIProvider."""

    def test_build_command(self):
        """Test flags for a read-only dock call."""
        provider = ClaudeCLIProvider(max_turns_default=12)
        cmd = provider.build_command(
            "plan it", "you are the dock",
            ProviderOptions(model="sonnet", read_only=True, allowed_tools=["Read", "Grep"]),
        )
        assert cmd == [
            "claude", "-p", "plan it",
            "--system-prompt", "you are the dock",
            "--output-format", "stream-json",
            "--verbose",
            "--model", "sonnet",
            "--allowedTools", "Read,Grep",
            "--max-turns", "12",
        ]

    def test_budget_becomes_turn_cap(self):
        """Test that a dollar budget maps to --max-turns."""
        assert budget_to_turns(1.01) == 21
        assert budget_to_turns(0.001) == 1
        cmd = ClaudeCLIProvider().build_command("p", "s", ProviderOptions(max_budget_usd=0.52))
        assert cmd[-2:] == ["--max-turns", "11"]

    def test_env_drops_nested_session_marker(self):
        """Test that CLAUDECODE is removed from the child environment."""
        with patch.dict("os.environ", {"CLAUDECODE": "1", "KEEP_ME": "yes"}):
            env = ClaudeCLIProvider().build_env()
        assert "CLAUDECODE" not in env
        assert env["KEEP_ME"] == "yes"

    def test_invoke_parses_stream(self, tmp_path):
        """Test that invoke feeds stdout lines to the parser and returns its answer."""
        lines = [
            '{"type": "assistant", "message": {"content": [{"type": "text", "text": "hi"}]}}\n',
            '{"type": "result", "result": "final answer", "num_turns": 1}\n',
        ]

        def fake_run(cmd, *, cwd, timeout_seconds, on_stdout_line, on_stderr_line, env, poll_interval):
            for line in lines:
                on_stdout_line(line)
            return ProcessResult(exit_code=0, stdout="".join(lines), stderr="")

        with patch("bog_orchestrate.llm.claude_cli_backend.run_streaming", side_effect=fake_run):
            output = ClaudeCLIProvider().invoke("p", "s", tmp_path, ProviderOptions(timeout_seconds=5))

        assert output.success
        assert output.stdout == "final answer"
        assert output.stats.terminal_event_seen


class TestCodexCLIProvider:
    """Tests for CodexCLIProvider."""

    def test_build_command_read_only(self):
        """Test sandbox and prompt layout for a read-only call."""
        cmd = CodexCLIProvider().build_command(
            "plan it", "you are the dock", Path("/repo"), ProviderOptions(model="gpt-5", read_only=True)
        )
        assert cmd == [
            "codex", "exec", "--json", "--skip-git-repo-check",
            "--sandbox", "read-only",
            "-C", "/repo",
            "--model", "gpt-5",
            "[System]\nyou are the dock\n\nplan it",
        ]

    def test_build_command_write(self):
        """Test that agent calls get a writable sandbox."""
        cmd = CodexCLIProvider().build_command("do", "", Path("/wt"), ProviderOptions())
        assert cmd[cmd.index("--sandbox") + 1] == "workspace-write"
        assert cmd[-1] == "do"

    def test_invoke_nonzero_exit(self, tmp_path):
        """Test that a failing codex run is returned, not raised."""
        result = ProcessResult(exit_code=1, stdout="", stderr="auth required")
        with patch("bog_orchestrate.llm.codex_cli_backend.run_streaming", return_value=result):
            output = CodexCLIProvider().invoke("p", "s", tmp_path, ProviderOptions())
        assert not output.success
        assert output.stderr == "auth required"
        assert output.stdout == ""
