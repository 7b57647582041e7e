"""Dock: the read-only planning phase that turns a request into a validated plan."""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError

from ..errors import DockFailedError, ProviderError
from ..llm.base import Provider, ProviderOptions
from .config import OrchestrateConfig
from .ownership import OwnershipDirectory
from .permissions import Violation
from .plan import DockPlan, validate_plan
from .prompt_builder import build_dock_replan_prompt, build_dock_system_prompt

logger = logging.getLogger(__name__)

# Envelope keys that may carry the real payload as a string
ENVELOPE_KEYS = ("result", "content", "text", "output")

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?(.*?)```", re.DOTALL)


@dataclass
class ReplanContext:
    """Feedback for the planner after an attempt was rejected for violations."""
    previous_plan: DockPlan
    violations: List[Tuple[str, List[Violation]]] = field(default_factory=list)
    attempt_number: int = 1


def _plan_from_value(value: Any) -> Optional[DockPlan]:
    if not isinstance(value, dict):
        return None
    try:
        return DockPlan.model_validate(value)
    except ValidationError:
        return None


def _plan_from_json(text: str) -> Optional[DockPlan]:
    try:
        return _plan_from_value(json.loads(text))
    except ValueError:
        return None


def _first_brace_object(text: str) -> Optional[str]:
    """Substring from the first '{' to its matching '}' by raw brace depth.

    Braces inside JSON string literals are counted too.
    """
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    for i in range(start, len(text)):
        ch = text[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def extract_json_plan(text: str) -> DockPlan:
    """
    Recover a plan from loose text: bare JSON, a fenced block, or JSON in prose.

    Raises:
        DockFailedError: If no strategy yields a valid plan
    """
    text = text.strip()

    plan = _plan_from_json(text)
    if plan is not None:
        return plan

    for match in _FENCE_RE.finditer(text):
        plan = _plan_from_json(match.group(1).strip())
        if plan is not None:
            return plan

    candidate = _first_brace_object(text)
    if candidate is not None:
        plan = _plan_from_json(candidate)
        if plan is not None:
            return plan

    preview = text if len(text) <= 500 else text[:500] + "..."
    raise DockFailedError(f"Could not parse DockPlan from output: {preview}")


def parse_dock_output(stdout: str, _depth: int = 0) -> DockPlan:
    """
    Parse planner output, unwrapping JSON envelopes whose string field holds the plan.

    Raises:
        DockFailedError: If no plan can be recovered
    """
    stdout = stdout.strip()

    try:
        value = json.loads(stdout)
    except ValueError:
        value = None

    if isinstance(value, dict):
        plan = _plan_from_value(value)
        if plan is not None:
            return plan
        if _depth < 3:
            for key in ENVELOPE_KEYS:
                nested = value.get(key)
                if isinstance(nested, str) and nested.strip():
                    try:
                        return parse_dock_output(nested, _depth + 1)
                    except DockFailedError:
                        continue
    elif isinstance(value, str) and _depth < 3:
        # A JSON-encoded string holding the plan text
        return parse_dock_output(value, _depth + 1)

    return extract_json_plan(stdout)


def run_dock(
    directory: OwnershipDirectory,
    user_request: str,
    provider: Provider,
    repo_root: Path,
    config: Optional[OrchestrateConfig] = None,
    replan_context: Optional[ReplanContext] = None,
) -> DockPlan:
    """
    Ask the planning agent for a plan and validate it.

    The planner runs in the repository root with read-only tools.

    Raises:
        DockFailedError: Provider failure, non-zero exit, or unparseable output
        InvalidPlanError: The plan breaks ownership or dependency rules
    """
    config = config or OrchestrateConfig()
    suffix = config.sidecar_suffix

    if replan_context is not None:
        system_prompt = build_dock_replan_prompt(
            directory, replan_context.violations, replan_context.attempt_number, suffix
        )
    else:
        system_prompt = build_dock_system_prompt(directory, suffix)

    options = ProviderOptions(
        timeout_seconds=config.provider.dock_timeout_seconds,
        model=config.provider.default_model,
        read_only=True,
        allowed_tools=list(config.provider.dock_allowed_tools),
        max_budget_usd=config.provider.max_budget_usd,
        agent_label="dock",
    )

    logger.info(f"Planning request with dock (replan={replan_context is not None})")
    try:
        output = provider.invoke(user_request, system_prompt, repo_root, options)
    except ProviderError as e:
        raise DockFailedError(str(e)) from e

    if output.exit_code != 0:
        raise DockFailedError(f"exit code {output.exit_code}: {output.stderr.strip()}")

    plan = parse_dock_output(output.stdout)
    validate_plan(plan, directory)
    logger.info(f"Dock produced {len(plan.tasks)} task(s): {plan.summary}")
    return plan
