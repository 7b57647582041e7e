"""Claude CLI provider (``--output-format stream-json``)."""

import json
import logging
import math
import os
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from .base import Provider, ProviderOptions, ProviderOutput
from .process_runner import DEFAULT_POLL_INTERVAL, run_streaming
from .progress import StreamCollector, first_line

logger = logging.getLogger(__name__)

# Removed from the child env so nested CLI sessions are allowed to start
_BLOCKED_ENV_VARS = frozenset({"CLAUDECODE"})

# Rough cost of one agent turn, used to turn a dollar budget into --max-turns
COST_PER_TURN_USD = 0.05


def budget_to_turns(budget_usd: float) -> int:
    return max(1, math.ceil(budget_usd / COST_PER_TURN_USD))


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0


class TextBlock(BaseModel):
    type: Literal["text"]
    text: str = ""


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"]
    name: str = "unknown"
    input: Dict[str, Any] = Field(default_factory=dict)


ContentBlock = Annotated[Union[TextBlock, ToolUseBlock], Field(discriminator="type")]
_KNOWN_BLOCKS = {"text", "tool_use"}


class AssistantMessage(BaseModel):
    content: List[ContentBlock] = Field(default_factory=list)
    usage: Optional[Usage] = None

    @field_validator("content", mode="before")
    @classmethod
    def drop_unknown_blocks(cls, v: Any) -> Any:
        # thinking, tool_result, ... are not summarized
        if isinstance(v, list):
            return [b for b in v if isinstance(b, dict) and b.get("type") in _KNOWN_BLOCKS]
        return v


class SystemEvent(BaseModel):
    type: Literal["system"]
    subtype: str = ""
    session_id: str = ""
    model: Optional[str] = None


class AssistantEvent(BaseModel):
    type: Literal["assistant"]
    message: AssistantMessage = Field(default_factory=AssistantMessage)


class UserEvent(BaseModel):
    type: Literal["user"]


class ResultEvent(BaseModel):
    type: Literal["result"]
    subtype: str = ""
    result: Optional[str] = None
    is_error: bool = False
    num_turns: Optional[int] = None
    total_cost_usd: Optional[float] = None
    usage: Optional[Usage] = None


ClaudeEvent = Annotated[
    Union[SystemEvent, AssistantEvent, UserEvent, ResultEvent],
    Field(discriminator="type"),
]
_event_adapter = TypeAdapter(ClaudeEvent)
_KNOWN_EVENTS = {"system", "assistant", "user", "result"}


def decode_claude_event(line: str) -> Optional[Any]:
    """Decode one stream-json line.

    Returns None for unknown event types. Raises ValueError for lines that
    are not JSON objects or do not fit their declared event type.
    """
    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError("stream event is not a JSON object")
    if data.get("type") not in _KNOWN_EVENTS:
        return None
    return _event_adapter.validate_python(data)


class ClaudeStreamParser(StreamCollector):
    """Turns stream-json events into progress lines, counters and final text."""

    def feed(self, line: str) -> None:
        line = line.strip()
        if not line:
            return

        try:
            event = decode_claude_event(line)
        except (ValueError, ValidationError):
            # Not JSON (or not an event) - keep as plain output
            self.add_raw(line + "\n")
            return

        if event is None:
            logger.debug(f"Ignoring unknown stream-json event: {line[:80]}")
        elif isinstance(event, AssistantEvent):
            self._on_assistant(event)
        elif isinstance(event, ResultEvent):
            self._on_result(event)
        elif isinstance(event, SystemEvent):
            if event.subtype == "init" and event.session_id:
                logger.debug(f"[{self.options.agent_label}] session {event.session_id}")

    def _on_assistant(self, event: AssistantEvent) -> None:
        self.stats.turns += 1
        message = event.message
        if message.usage:
            self.add_usage(message.usage.input_tokens, message.usage.output_tokens)

        texts = [b.text for b in message.content if isinstance(b, TextBlock)]
        tools = [b for b in message.content if isinstance(b, ToolUseBlock)]
        for text in texts:
            self.add_text(text)

        if tools:
            for block in tools:
                self.progress_tool(block.name, block.input)
        elif texts:
            summary = first_line("\n".join(texts))
            if summary:
                self.progress(summary)

    def _on_result(self, event: ResultEvent) -> None:
        # Result usage may cover only the last turn; keep the larger of the two
        if event.usage:
            self.stats.input_tokens = max(self.stats.input_tokens, event.usage.input_tokens)
            self.stats.output_tokens = max(self.stats.output_tokens, event.usage.output_tokens)
        if event.num_turns is not None:
            self.stats.turns = event.num_turns
        self.stats.cost_usd = event.total_cost_usd
        self.set_result(event.result)
        if event.is_error:
            logger.warning(f"[{self.options.agent_label}] result reported error ({event.subtype})")


class ClaudeCLIProvider(Provider):
    """Provider that drives the ``claude`` CLI in print mode."""

    def __init__(
        self,
        executable: str = "claude",
        max_turns_default: int = 50,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.executable = executable
        self.max_turns_default = max_turns_default
        self.poll_interval = poll_interval

    def build_command(self, prompt: str, system_prompt: str, options: ProviderOptions) -> List[str]:
        cmd = [
            self.executable,
            "-p", prompt,
            "--system-prompt", system_prompt,
            "--output-format", "stream-json",
            "--verbose",
        ]
        if options.model:
            cmd.extend(["--model", options.model])
        if options.allowed_tools:
            cmd.extend(["--allowedTools", ",".join(options.allowed_tools)])

        if options.max_budget_usd is not None:
            max_turns = budget_to_turns(options.max_budget_usd)
        else:
            max_turns = self.max_turns_default
        cmd.extend(["--max-turns", str(max_turns)])
        return cmd

    def build_env(self) -> Dict[str, str]:
        return {k: v for k, v in os.environ.items() if k not in _BLOCKED_ENV_VARS}

    def invoke(
        self,
        prompt: str,
        system_prompt: str,
        working_dir: Path,
        options: ProviderOptions,
    ) -> ProviderOutput:
        cmd = self.build_command(prompt, system_prompt, options)
        parser = ClaudeStreamParser(options, working_dir)
        label = options.agent_label

        logger.info(
            f"[{label}] Starting claude (model={options.model or 'default'}, "
            f"read_only={options.read_only}, timeout={options.timeout_seconds}s)"
        )
        result = run_streaming(
            cmd,
            cwd=working_dir,
            timeout_seconds=options.timeout_seconds,
            on_stdout_line=parser.feed,
            on_stderr_line=lambda line: logger.debug(f"[{label}] {line.rstrip()}"),
            env=self.build_env(),
            poll_interval=self.poll_interval,
        )

        stats = parser.stats
        cost = f", ~${stats.cost_usd:.4f}" if stats.cost_usd is not None else ""
        logger.info(
            f"[{label}] claude exited {result.exit_code} after {stats.turns} turn(s) "
            f"({stats.input_tokens:,} in / {stats.output_tokens:,} out{cost})"
        )
        return ProviderOutput(
            stdout=parser.final_output(),
            stderr=result.stderr,
            exit_code=result.exit_code,
            stats=stats,
        )
