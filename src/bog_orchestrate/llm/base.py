"""Base provider interface for agent CLI invocations."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional


@dataclass
class ProviderOptions:
    """Options controlling one provider invocation."""
    timeout_seconds: float = 300
    model: Optional[str] = None
    read_only: bool = False
    allowed_tools: Optional[List[str]] = None  # None = CLI default tool set
    max_budget_usd: Optional[float] = None
    agent_label: str = "agent"  # prefix for progress lines
    on_progress: Optional[Callable[[str], None]] = None


@dataclass
class ProviderStats:
    """Counters accumulated from the event stream."""
    turns: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: Optional[float] = None
    terminal_event_seen: bool = False


@dataclass
class ProviderOutput:
    """Normalized result of one invocation, independent of CLI family."""
    stdout: str
    stderr: str
    exit_code: int
    stats: ProviderStats = field(default_factory=ProviderStats)

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class Provider(ABC):
    """Runs one instruction in one working directory through an agent CLI."""

    @abstractmethod
    def invoke(
        self,
        prompt: str,
        system_prompt: str,
        working_dir: Path,
        options: ProviderOptions,
    ) -> ProviderOutput:
        """
        Run the agent to completion or until the timeout expires.

        Raises:
            ProviderNotFoundError: The CLI executable is missing
            ProviderTimeoutError: The wall-clock limit elapsed; the process tree was killed
            ProviderIOError: Spawning or reading the process failed
        """
        pass
