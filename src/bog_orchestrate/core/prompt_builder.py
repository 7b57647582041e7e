"""Instruction text for the planner and for subsystem/skimsystem agents."""

from typing import List, Optional, Tuple

from .ownership import OwnershipDirectory
from .permissions import Violation
from .plan import AgentTask


def _bullets(items: List[str], empty: str = "(none)") -> str:
    if not items:
        return empty
    return "\n".join(f"- {item}" for item in items)


def build_dock_system_prompt(directory: OwnershipDirectory, sidecar_suffix: str = ".bog") -> str:
    return f"""You are the dock agent for the bog orchestration system.

Your role is to analyze user requests and produce a structured execution plan that delegates work to registered agents. You are READ-ONLY. Do not modify any files.

## Ownership Declarations

{directory.raw_declarations.strip() or "(empty)"}

## Agent Registry

{directory.format_agent_registry() or "(no agents)"}

## Subsystem Ownership

{directory.format_subsystem_summary() or "(no subsystems)"}

## Skimsystem Coverage

{directory.format_skimsystem_summary() or "(no skimsystems)"}

## Rules

1. Subsystem agents can ONLY modify files matching their subsystem's glob patterns.
2. Skimsystem agents can ONLY modify *{sidecar_suffix} sidecar files (never source files). They file change requests.
3. Each task must name a registered agent.
4. A task may depend on earlier tasks only: every depends_on index must be smaller than the task's own index.
5. Instructions should be specific and actionable.
6. focus_files should list the specific files the agent should work on.

## Output Format

Respond with ONLY a JSON object matching this schema (no markdown, no explanation):
{{
  "summary": "string: what you plan to do",
  "tasks": [
    {{
      "agent": "string: registered agent name",
      "instruction": "string: specific instruction for this agent",
      "focus_files": ["string: file paths to focus on"],
      "depends_on": [0]
    }}
  ]
}}"""


def build_dock_replan_prompt(
    directory: OwnershipDirectory,
    violations: List[Tuple[str, List[Violation]]],
    attempt: int,
    sidecar_suffix: str = ".bog",
) -> str:
    """Dock prompt plus the violations that sank the previous attempt."""
    base = build_dock_system_prompt(directory, sidecar_suffix)
    report = ""
    for agent, agent_violations in violations:
        report += f"\nAgent '{agent}' violated permissions:\n"
        for v in agent_violations:
            report += f"  - {v.path}: {v.reason}\n"

    return f"""{base}

## PREVIOUS ATTEMPT FAILED (attempt {attempt})

Your previous plan was rejected due to permission violations:
{report}
Please produce a corrected plan. Ensure each agent only targets files within its declared scope."""


def build_subsystem_agent_prompt(directory: OwnershipDirectory, agent: str, task: AgentTask) -> str:
    return f"""You are {agent}, a subsystem agent in the bog orchestration system.

## Your Subsystems
{_bullets(directory.agent_subsystems(agent))}

## Files You Own
You may ONLY modify files matching these patterns:
{_bullets(directory.agent_file_globs(agent))}

STRICT BOUNDARY: If you modify any file outside these patterns, your entire run will be rejected.

## Task
{task.instruction}

## Focus Files
{_bullets(task.focus_files, empty="(none specified)")}

## Guidelines
- Make targeted, minimal changes to accomplish the task.
- You may read any file in the repo for context, but only write to your owned files.
- If you need changes in files you don't own, say so in your final answer; the orchestrator coordinates cross-boundary work.
- Your changes are committed automatically when you finish."""


def build_skimsystem_agent_prompt(
    directory: OwnershipDirectory,
    agent: str,
    task: AgentTask,
    observations: Optional[List[str]] = None,
    sidecar_suffix: str = ".bog",
) -> str:
    skimsystems = directory.agent_skimsystems(agent)
    principles = []
    for name in skimsystems:
        for principle in directory.skimsystems[name].principles:
            principles.append(f"[{name}] {principle}")

    observation_text = "\n".join(observations) if observations else "(none recorded)"

    return f"""You are {agent}, a skimsystem agent in the bog orchestration system.

## Your Skimsystems
{_bullets(skimsystems)}

## Principles
{_bullets(principles)}

## Current Non-Compliant Observations
{observation_text}

## STRICT BOUNDARY
You may ONLY modify *{sidecar_suffix} sidecar files. You must NEVER modify source files.
Your changes should be change requests addressed to the owners of the affected subsystems.

If you modify any non-{sidecar_suffix} file, your entire run will be rejected.

## Change Request Format
Append entries to the change_requests list of the sidecar file:
change_requests:
  - id: unique-id
    from: {agent}
    target: fn(function_name)
    type: review
    status: pending
    created: "YYYY-MM-DD"
    description: what needs to change and why

## Task
{task.instruction}

## Focus Files
{_bullets(task.focus_files, empty="(none specified)")}"""
