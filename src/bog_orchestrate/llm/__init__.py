"""Agent CLI providers."""

from .base import Provider, ProviderOptions, ProviderOutput, ProviderStats
from .claude_cli_backend import ClaudeCLIProvider
from .codex_cli_backend import CodexCLIProvider
from .provider_selector import ProviderFamily, RoutingProvider, build_default_provider, select_family

__all__ = [
    "ClaudeCLIProvider",
    "CodexCLIProvider",
    "Provider",
    "ProviderFamily",
    "ProviderOptions",
    "ProviderOutput",
    "ProviderStats",
    "RoutingProvider",
    "build_default_provider",
    "select_family",
]
