"""Ownership enforcement for agent diffs.

``check_agent_permissions`` is the only gate between "an agent produced a
diff" and "the diff may be merged". It is pure: same inputs, same violations.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from pathspec import PathSpec

from .ownership import AgentRole, OwnershipDirectory


@dataclass(frozen=True)
class Violation:
    """One offending path and why it was rejected."""
    path: str
    reason: str

    def to_dict(self) -> dict:
        return {"path": self.path, "reason": self.reason}


def compile_globs(globs: Iterable[str]) -> PathSpec:
    """Compile ownership globs into a root-anchored matcher.

    ``*`` stays within one path segment and ``**`` crosses segments; every
    pattern is anchored at the repository root so ``*.rs`` only covers
    top-level files.
    """
    anchored = [g if g.startswith("/") else f"/{g}" for g in globs if g.strip()]
    return PathSpec.from_lines("gitwildmatch", anchored)


def _owns(spec: PathSpec, path: str, sidecar_suffix: str, allow_owned_sidecars: bool) -> bool:
    if spec.match_file(path):
        return True
    if allow_owned_sidecars and path.endswith(sidecar_suffix):
        return spec.match_file(path[: -len(sidecar_suffix)])
    return False


def check_agent_permissions(
    agent: str,
    role: Optional[AgentRole],
    changed_paths: Iterable[str],
    directory: OwnershipDirectory,
    sidecar_suffix: str = ".bog",
    allow_owned_sidecars: bool = False,
) -> List[Violation]:
    """
    Check every changed path against what the agent may touch.

    Args:
        agent: Agent name
        role: The agent's role, or None if it is unregistered
        changed_paths: Repository-relative paths from the agent's diff
        directory: Ownership snapshot for the run
        sidecar_suffix: Suffix marking sidecar files
        allow_owned_sidecars: Also let a subsystem agent edit the sidecars of
            files it owns (used when it resolves change requests)

    Returns:
        One Violation per offending path (empty when the diff is clean)
    """
    paths = list(changed_paths)
    violations: List[Violation] = []

    if role is None:
        for path in paths:
            violations.append(Violation(
                path=path,
                reason=f"Agent '{agent}' is not registered in the ownership declarations",
            ))
        return violations

    if role == AgentRole.SUBSYSTEM:
        spec = compile_globs(directory.agent_file_globs(agent))
        for path in paths:
            if not _owns(spec, path, sidecar_suffix, allow_owned_sidecars):
                violations.append(Violation(
                    path=path,
                    reason=(
                        f"Subsystem agent '{agent}' modified '{path}' "
                        "outside its declared globs"
                    ),
                ))
        return violations

    for path in paths:
        if not path.endswith(sidecar_suffix):
            violations.append(Violation(
                path=path,
                reason=(
                    f"Skimsystem agent '{agent}' modified non-sidecar file '{path}' "
                    f"(skimsystem agents may only modify {sidecar_suffix} sidecar files)"
                ),
            ))
    return violations
