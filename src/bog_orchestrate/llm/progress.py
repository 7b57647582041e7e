"""Stream accumulation and one-line progress summaries shared by CLI providers."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from .base import ProviderOptions, ProviderStats

logger = logging.getLogger(__name__)

COMMAND_SUMMARY_LIMIT = 80
TEXT_SUMMARY_LIMIT = 100


def shorten_path(path: str, working_dir: Optional[Path]) -> str:
    """Strip the sandbox directory prefix so the path reads project-relative."""
    if not path:
        return path
    normalized = path.replace("\\", "/")
    if working_dir is not None:
        for prefix in {str(working_dir), str(working_dir.resolve())}:
            prefix = prefix.rstrip("/") + "/"
            if normalized.startswith(prefix):
                return normalized[len(prefix):]
    return normalized


def truncate(text: str, limit: int) -> str:
    """Cut text to ``limit`` characters, ending with '...' when shortened."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def first_line(text: str, limit: int = TEXT_SUMMARY_LIMIT) -> str:
    for line in text.splitlines():
        if line.strip():
            return truncate(line.strip(), limit)
    return ""


def summarize_tool_input(
    tool_name: str,
    tool_input: Dict[str, Any],
    working_dir: Optional[Path] = None,
) -> Optional[str]:
    """Extract a short human-readable summary from tool input."""
    if not tool_input:
        return None

    if tool_name in ("Read", "Edit", "Write", "MultiEdit", "NotebookEdit"):
        path = tool_input.get("file_path") or tool_input.get("path", "")
        return shorten_path(path, working_dir) if path else None
    elif tool_name == "Bash":
        cmd = tool_input.get("command", "")
        return truncate(cmd, COMMAND_SUMMARY_LIMIT) if cmd else None
    elif tool_name == "Grep":
        pattern = tool_input.get("pattern", "")
        path = tool_input.get("path", "")
        if pattern and path:
            return f'"{pattern}" in {shorten_path(path, working_dir)}'
        return f'"{pattern}"' if pattern else None
    elif tool_name == "Glob":
        return tool_input.get("pattern") or None
    else:
        for key in ("query", "url", "pattern", "description"):
            if key in tool_input:
                val = str(tool_input[key])
                return truncate(val, COMMAND_SUMMARY_LIMIT) if val else None

    return None


class StreamCollector(ABC):
    """Accumulates counters, final text and progress lines for one invocation.

    Concrete parsers decode their wire format and call ``progress``,
    ``add_text`` and ``set_result``; ``final_output`` prefers the terminal
    result text and falls back to the last assistant text.
    """

    def __init__(self, options: ProviderOptions, working_dir: Optional[Path] = None):
        self.options = options
        self.working_dir = working_dir
        self.stats = ProviderStats()
        self.progress_lines: List[str] = []
        self._result_text: Optional[str] = None
        self._last_text: Optional[str] = None
        self._raw_lines: List[str] = []

    @abstractmethod
    def feed(self, line: str) -> None:
        """Decode one stdout line of the wire format."""
        pass

    def progress(self, summary: str) -> None:
        line = f"[{self.options.agent_label}] {summary}"
        self.progress_lines.append(line)
        logger.info(line)
        if self.options.on_progress:
            self.options.on_progress(line)

    def progress_tool(self, tool_name: str, tool_input: Dict[str, Any]) -> None:
        summary = summarize_tool_input(tool_name, tool_input, self.working_dir)
        self.progress(f"{tool_name}: {summary}" if summary else tool_name)

    def add_text(self, text: str) -> None:
        if text and text.strip():
            self._last_text = text

    def add_raw(self, line: str) -> None:
        """Keep non-JSON stdout so a CLI without stream support still yields output."""
        self._raw_lines.append(line)

    def set_answer(self, text: Optional[str]) -> None:
        """Record final text without marking the stream finished."""
        if text:
            self._result_text = text

    def set_result(self, text: Optional[str]) -> None:
        self.stats.terminal_event_seen = True
        if text:
            self._result_text = text

    def add_usage(self, input_tokens: int = 0, output_tokens: int = 0) -> None:
        self.stats.input_tokens += input_tokens or 0
        self.stats.output_tokens += output_tokens or 0

    def final_output(self) -> str:
        if self._result_text is not None:
            return self._result_text
        if self._last_text is not None:
            if not self.stats.terminal_event_seen:
                logger.debug("No terminal result event; using last assistant text")
            return self._last_text
        return "".join(self._raw_lines)
