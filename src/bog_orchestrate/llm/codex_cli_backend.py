"""Codex CLI provider (``codex exec --json``)."""

import json
import logging
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from .base import Provider, ProviderOptions, ProviderOutput
from .process_runner import DEFAULT_POLL_INTERVAL, run_streaming
from .progress import COMMAND_SUMMARY_LIMIT, StreamCollector, first_line, shorten_path, truncate

logger = logging.getLogger(__name__)


class FileChange(BaseModel):
    path: str
    kind: str = "update"


class AgentMessageItem(BaseModel):
    type: Literal["agent_message"]
    text: str = ""


class ReasoningItem(BaseModel):
    type: Literal["reasoning"]
    text: str = ""


class CommandExecutionItem(BaseModel):
    type: Literal["command_execution"]
    command: str = ""
    exit_code: Optional[int] = None


class FileChangeItem(BaseModel):
    type: Literal["file_change"]
    changes: List[FileChange] = Field(default_factory=list)


class McpToolCallItem(BaseModel):
    type: Literal["mcp_tool_call"]
    server: str = ""
    tool: str = ""


class WebSearchItem(BaseModel):
    type: Literal["web_search"]
    query: str = ""


class ErrorItem(BaseModel):
    type: Literal["error"]
    message: str = ""


ThreadItem = Annotated[
    Union[
        AgentMessageItem,
        ReasoningItem,
        CommandExecutionItem,
        FileChangeItem,
        McpToolCallItem,
        WebSearchItem,
        ErrorItem,
    ],
    Field(discriminator="type"),
]
_KNOWN_ITEMS = {
    "agent_message", "reasoning", "command_execution", "file_change",
    "mcp_tool_call", "web_search", "error",
}


class CodexUsage(BaseModel):
    input_tokens: int = 0
    cached_input_tokens: int = 0
    output_tokens: int = 0


class TurnError(BaseModel):
    message: str = ""


class ThreadStartedEvent(BaseModel):
    type: Literal["thread.started"]
    thread_id: str = ""


class TurnStartedEvent(BaseModel):
    type: Literal["turn.started"]


class TurnCompletedEvent(BaseModel):
    type: Literal["turn.completed"]
    usage: CodexUsage = Field(default_factory=CodexUsage)


class TurnFailedEvent(BaseModel):
    type: Literal["turn.failed"]
    error: TurnError = Field(default_factory=TurnError)


class StreamErrorEvent(BaseModel):
    type: Literal["error"]
    message: str = ""


class ItemEvent(BaseModel):
    type: Literal["item.started", "item.updated", "item.completed"]
    item: Optional[ThreadItem] = None

    @field_validator("item", mode="before")
    @classmethod
    def drop_unknown_item(cls, v: Any) -> Any:
        # todo_list and future item kinds are not summarized
        if isinstance(v, dict) and v.get("type") not in _KNOWN_ITEMS:
            return None
        return v


CodexEvent = Annotated[
    Union[
        ThreadStartedEvent,
        TurnStartedEvent,
        TurnCompletedEvent,
        TurnFailedEvent,
        StreamErrorEvent,
        ItemEvent,
    ],
    Field(discriminator="type"),
]
_event_adapter = TypeAdapter(CodexEvent)
_KNOWN_EVENTS = {
    "thread.started", "turn.started", "turn.completed", "turn.failed", "error",
    "item.started", "item.updated", "item.completed",
}


def decode_codex_event(line: str) -> Optional[Any]:
    """Decode one ``exec --json`` line; None for unknown event types."""
    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError("stream event is not a JSON object")
    if data.get("type") not in _KNOWN_EVENTS:
        return None
    return _event_adapter.validate_python(data)


class CodexStreamParser(StreamCollector):
    """Turns Codex thread events into progress lines, counters and final text."""

    def feed(self, line: str) -> None:
        line = line.strip()
        if not line:
            return

        try:
            event = decode_codex_event(line)
        except (ValueError, ValidationError):
            self.add_raw(line + "\n")
            return

        if event is None:
            logger.debug(f"Ignoring unknown codex event: {line[:80]}")
        elif isinstance(event, ItemEvent):
            if event.type == "item.completed" and event.item is not None:
                self._on_item(event.item)
            elif event.type == "item.started" and isinstance(event.item, CommandExecutionItem):
                self.progress(f"Bash: {truncate(event.item.command, COMMAND_SUMMARY_LIMIT)}")
        elif isinstance(event, TurnCompletedEvent):
            self.stats.turns += 1
            self.add_usage(event.usage.input_tokens, event.usage.output_tokens)
            self.set_result(None)
        elif isinstance(event, TurnFailedEvent):
            logger.warning(f"[{self.options.agent_label}] turn failed: {event.error.message}")
        elif isinstance(event, StreamErrorEvent):
            logger.warning(f"[{self.options.agent_label}] stream error: {event.message}")

    def _on_item(self, item: Any) -> None:
        if isinstance(item, AgentMessageItem):
            self.add_text(item.text)
            # Last agent message of a completed turn is the answer
            self.set_answer(item.text)
            summary = first_line(item.text)
            if summary:
                self.progress(summary)
        elif isinstance(item, FileChangeItem):
            for change in item.changes:
                self.progress(f"{change.kind}: {shorten_path(change.path, self.working_dir)}")
        elif isinstance(item, McpToolCallItem):
            self.progress(f"{item.server}.{item.tool}")
        elif isinstance(item, WebSearchItem):
            self.progress(f"WebSearch: {truncate(item.query, COMMAND_SUMMARY_LIMIT)}")
        elif isinstance(item, ErrorItem):
            logger.warning(f"[{self.options.agent_label}] {item.message}")


class CodexCLIProvider(Provider):
    """Provider that drives ``codex exec`` in JSON event mode.

    Codex has no tool allowlist or budget flag; read-only runs use its
    read-only sandbox instead.
    """

    def __init__(self, executable: str = "codex", poll_interval: float = DEFAULT_POLL_INTERVAL):
        self.executable = executable
        self.poll_interval = poll_interval

    def build_command(
        self,
        prompt: str,
        system_prompt: str,
        working_dir: Path,
        options: ProviderOptions,
    ) -> List[str]:
        sandbox = "read-only" if options.read_only else "workspace-write"
        cmd = [
            self.executable, "exec",
            "--json",
            "--skip-git-repo-check",
            "--sandbox", sandbox,
            "-C", str(working_dir),
        ]
        if options.model:
            cmd.extend(["--model", options.model])
        cmd.append(f"[System]\n{system_prompt}\n\n{prompt}" if system_prompt else prompt)
        return cmd

    def invoke(
        self,
        prompt: str,
        system_prompt: str,
        working_dir: Path,
        options: ProviderOptions,
    ) -> ProviderOutput:
        label = options.agent_label
        if options.allowed_tools:
            logger.debug(f"[{label}] codex ignores tool allowlist {options.allowed_tools}")
        if options.max_budget_usd is not None:
            logger.debug(f"[{label}] codex ignores budget ${options.max_budget_usd}")

        cmd = self.build_command(prompt, system_prompt, working_dir, options)
        parser = CodexStreamParser(options, working_dir)

        logger.info(
            f"[{label}] Starting codex (model={options.model or 'default'}, "
            f"read_only={options.read_only}, timeout={options.timeout_seconds}s)"
        )
        result = run_streaming(
            cmd,
            cwd=working_dir,
            timeout_seconds=options.timeout_seconds,
            on_stdout_line=parser.feed,
            on_stderr_line=lambda line: logger.debug(f"[{label}] {line.rstrip()}"),
            poll_interval=self.poll_interval,
        )

        stats = parser.stats
        logger.info(
            f"[{label}] codex exited {result.exit_code} after {stats.turns} turn(s) "
            f"({stats.input_tokens:,} in / {stats.output_tokens:,} out)"
        )
        return ProviderOutput(
            stdout=parser.final_output(),
            stderr=result.stderr,
            exit_code=result.exit_code,
            stats=stats,
        )
