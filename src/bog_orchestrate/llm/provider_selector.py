"""Route an invocation to the CLI family that serves the requested model."""

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

from .base import Provider, ProviderOptions, ProviderOutput
from .claude_cli_backend import ClaudeCLIProvider
from .codex_cli_backend import CodexCLIProvider

logger = logging.getLogger(__name__)


class ProviderFamily(str, Enum):
    CLAUDE = "claude"
    CODEX = "codex"


# Model id prefix -> family; anything unmatched (or no model) goes to Claude
MODEL_PREFIXES: Tuple[Tuple[str, ProviderFamily], ...] = (
    ("gpt-", ProviderFamily.CODEX),
    ("o1", ProviderFamily.CODEX),
    ("o3", ProviderFamily.CODEX),
    ("o4", ProviderFamily.CODEX),
    ("codex", ProviderFamily.CODEX),
)


def select_family(model: Optional[str]) -> ProviderFamily:
    """Pick the provider family for a model identifier."""
    if not model:
        return ProviderFamily.CLAUDE
    normalized = model.strip().lower()
    for prefix, family in MODEL_PREFIXES:
        if normalized.startswith(prefix):
            return family
    return ProviderFamily.CLAUDE


class RoutingProvider(Provider):
    """Provider that dispatches each call by ``options.model``."""

    def __init__(self, providers: Dict[ProviderFamily, Provider]):
        if ProviderFamily.CLAUDE not in providers:
            raise ValueError("RoutingProvider needs a Claude provider as the default route")
        self.providers = providers

    def provider_for(self, model: Optional[str]) -> Provider:
        family = select_family(model)
        provider = self.providers.get(family)
        if provider is None:
            logger.warning(f"No {family.value} provider configured for model '{model}', using claude")
            provider = self.providers[ProviderFamily.CLAUDE]
        return provider

    def invoke(
        self,
        prompt: str,
        system_prompt: str,
        working_dir: Path,
        options: ProviderOptions,
    ) -> ProviderOutput:
        return self.provider_for(options.model).invoke(prompt, system_prompt, working_dir, options)


def build_default_provider(config) -> RoutingProvider:
    """Build the routing provider from an ``OrchestrateConfig``."""
    provider_cfg = config.provider
    return RoutingProvider({
        ProviderFamily.CLAUDE: ClaudeCLIProvider(
            executable=provider_cfg.claude_executable,
            max_turns_default=provider_cfg.max_turns_default,
            poll_interval=provider_cfg.poll_interval_seconds,
        ),
        ProviderFamily.CODEX: CodexCLIProvider(
            executable=provider_cfg.codex_executable,
            poll_interval=provider_cfg.poll_interval_seconds,
        ),
    })
