"""Translate orchestration errors to user-friendly messages."""

import re
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    original_error: Exception
    title: str
    explanation: str
    actions: List[str]
    show_technical: bool = False


class ErrorTranslator:
    """Translate technical errors to user-friendly messages."""

    ERROR_PATTERNS = {
        r"ProviderNotFoundError|CLI executable not found": {
            "title": "Agent CLI not installed",
            "explanation": "The command-line tool that runs agents could not be found on PATH.",
            "actions": [
                "Install the Claude CLI (claude) or the Codex CLI (codex)",
                "Or point provider.claude_executable / provider.codex_executable at it in the config file",
            ],
        },
        r"ProviderTimeoutError|timed out after": {
            "title": "Agent took too long",
            "explanation": "An agent process ran past its wall-clock limit and was killed.",
            "actions": [
                "Raise provider.agent_timeout_seconds or provider.dock_timeout_seconds",
                "Split the request into smaller pieces",
            ],
        },
        r"ContextLoadError": {
            "title": "Could not load ownership declarations",
            "explanation": "The ownership file or configuration is missing or malformed, so no agent was started.",
            "actions": [
                "Check that the ownership file exists under --path",
                "Validate the YAML syntax of the ownership and config files",
            ],
        },
        r"InvalidPlanError": {
            "title": "The planner produced an invalid plan",
            "explanation": "The plan referenced an unknown agent or a dependency that does not come earlier in the task list.",
            "actions": [
                "Run again with --plan-only to inspect the plan",
                "Make sure every agent the request needs is declared in the ownership file",
            ],
        },
        r"DockFailedError": {
            "title": "Planning failed",
            "explanation": "The planning agent exited with an error or its output did not contain a plan.",
            "actions": [
                "Run with --log-level DEBUG to see the planner output",
                "Rephrase the request more concretely",
            ],
        },
        r"GitFailedError|CreateFailedError|RemoveFailedError|merge.*conflict": {
            "title": "Git operation failed",
            "explanation": "A worktree could not be created, inspected or merged back. Merge conflicts are not resolved automatically.",
            "actions": [
                "Make sure the repository has at least one commit and a clean working tree",
                "Run 'git worktree prune' and retry",
            ],
        },
    }

    def translate(self, error: Exception) -> UserFriendlyError:
        """Convert exception to user-friendly format."""
        error_type = type(error).__name__
        full_error = f"{error_type}: {error}"

        for pattern, translation in self.ERROR_PATTERNS.items():
            if re.search(pattern, full_error, re.IGNORECASE):
                return UserFriendlyError(
                    original_error=error,
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=translation["actions"],
                    show_technical=True,
                )

        # Fallback for unknown errors
        return UserFriendlyError(
            original_error=error,
            title="Unexpected error",
            explanation=str(error),
            actions=["Run with --log-level DEBUG for details"],
            show_technical=False,
        )

    def format_for_cli(self, friendly_error: UserFriendlyError) -> str:
        """Format error for CLI display (rich markup)."""
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{friendly_error.explanation}\n\n"

        output += "[bold]How to fix:[/]\n"
        for i, action in enumerate(friendly_error.actions, 1):
            output += f"  {i}. {action}\n"

        if friendly_error.show_technical:
            output += f"\n[dim]Technical details:[/]\n[dim]{friendly_error.original_error}[/]"

        return output
