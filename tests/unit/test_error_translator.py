"""Tests for ErrorTranslator - verifies user-friendly error messages."""

from bog_orchestrate.errors import (
    ContextLoadError,
    DockFailedError,
    GitFailedError,
    InvalidPlanError,
    ProviderNotFoundError,
    ProviderTimeoutError,
)
from bog_orchestrate.errors.translator import ErrorTranslator, UserFriendlyError


class TestErrorTranslation:
    """Tests for mapping orchestration errors to messages."""

    def test_provider_not_found(self):
        """Test that a missing CLI points at installation."""
        result = ErrorTranslator().translate(ProviderNotFoundError("claude"))
        assert isinstance(result, UserFriendlyError)
        assert result.title == "Agent CLI not installed"
        assert any("claude" in a.lower() for a in result.actions)

    def test_timeout(self):
        """Test that timeouts suggest raising the limit."""
        result = ErrorTranslator().translate(ProviderTimeoutError(300))
        assert result.title == "Agent took too long"

    def test_context_load(self):
        """Test ownership loading failures."""
        result = ErrorTranslator().translate(ContextLoadError("Cannot read ownership file"))
        assert result.title == "Could not load ownership declarations"

    def test_invalid_plan(self):
        """Test plan validation failures."""
        result = ErrorTranslator().translate(InvalidPlanError("agent 'x' is not registered", index=0))
        assert result.title == "The planner produced an invalid plan"

    def test_dock_failed(self):
        """Test planner failures."""
        result = ErrorTranslator().translate(DockFailedError("Could not parse DockPlan from output"))
        assert result.title == "Planning failed"

    def test_git_failure(self):
        """Test git failures."""
        result = ErrorTranslator().translate(GitFailedError("merging orch/r1/a: conflict"))
        assert result.title == "Git operation failed"

    def test_unknown_error_fallback(self):
        """Test the generic fallback."""
        result = ErrorTranslator().translate(RuntimeError("something odd"))
        assert result.title == "Unexpected error"
        assert result.explanation == "something odd"
        assert result.show_technical is False


class TestFormatForCli:
    """Tests for format_for_cli."""

    def test_numbered_actions_and_details(self):
        """Test that actions are numbered and technical details appended."""
        translator = ErrorTranslator()
        output = translator.format_for_cli(translator.translate(DockFailedError("exit code 1: nope")))
        assert "Planning failed" in output
        assert "  1. " in output
        assert "exit code 1: nope" in output

    def test_fallback_hides_details(self):
        """Test that unknown errors are not repeated as technical details."""
        translator = ErrorTranslator()
        output = translator.format_for_cli(translator.translate(RuntimeError("odd")))
        assert "Technical details" not in output
