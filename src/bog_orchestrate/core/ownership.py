"""Read-only ownership directory: which agent owns which files, and in which role.

The directory is built once per run from the ownership declaration file and
handed explicitly to every component that needs it. Nothing re-reads the
declarations mid-run.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..errors import ContextLoadError
from ..utils.validators import validate_identifier

logger = logging.getLogger(__name__)


class AgentRole(str, Enum):
    """Role an agent plays, derived from the units it owns."""
    SUBSYSTEM = "subsystem"    # owns primary source files by glob
    SKIMSYSTEM = "skimsystem"  # owns only sidecar files, across subsystems


class SubsystemDecl(BaseModel):
    """A source-owning unit."""
    model_config = ConfigDict(frozen=True)

    owner: str
    files: List[str] = Field(default_factory=list)
    description: str = ""
    status: Optional[str] = None

    @field_validator("files")
    @classmethod
    def validate_files(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("a subsystem must declare at least one file glob")
        return v


class SkimsystemDecl(BaseModel):
    """A cross-cutting unit that may only touch sidecar files."""
    model_config = ConfigDict(frozen=True)

    owner: str
    # "all" or a list of subsystem names
    targets: Union[str, List[str]] = "all"
    principles: List[str] = Field(default_factory=list)
    description: str = ""


class AgentDecl(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str = ""


class OwnershipDirectory(BaseModel):
    """Immutable snapshot of the ownership declarations for one run."""
    model_config = ConfigDict(frozen=True)

    subsystems: Dict[str, SubsystemDecl] = Field(default_factory=dict)
    skimsystems: Dict[str, SkimsystemDecl] = Field(default_factory=dict)
    agents: Dict[str, AgentDecl] = Field(default_factory=dict)
    raw_declarations: str = ""

    @model_validator(mode="after")
    def validate_roles(self) -> "OwnershipDirectory":
        subsystem_owners = {s.owner for s in self.subsystems.values()}
        skim_owners = {s.owner for s in self.skimsystems.values()}
        both = sorted(subsystem_owners & skim_owners)
        if both:
            raise ValueError(
                f"agent(s) {', '.join(both)} own both a subsystem and a skimsystem; "
                "an agent must have exactly one role"
            )
        for owner in subsystem_owners | skim_owners:
            validate_identifier(owner, "agent name")
        for name, skim in self.skimsystems.items():
            if isinstance(skim.targets, list):
                unknown = [t for t in skim.targets if t not in self.subsystems]
                if unknown:
                    raise ValueError(
                        f"skimsystem '{name}' targets undeclared subsystem(s): {', '.join(unknown)}"
                    )
        return self

    def agent_role(self, agent: str) -> Optional[AgentRole]:
        """Role of an agent, or None when the agent is unregistered."""
        if any(s.owner == agent for s in self.subsystems.values()):
            return AgentRole.SUBSYSTEM
        if any(s.owner == agent for s in self.skimsystems.values()):
            return AgentRole.SKIMSYSTEM
        return None

    def agent_subsystems(self, agent: str) -> List[str]:
        return sorted(name for name, s in self.subsystems.items() if s.owner == agent)

    def agent_skimsystems(self, agent: str) -> List[str]:
        return sorted(name for name, s in self.skimsystems.items() if s.owner == agent)

    def agent_file_globs(self, agent: str) -> List[str]:
        """Union of the file globs of every subsystem the agent owns."""
        globs: List[str] = []
        for name in self.agent_subsystems(agent):
            globs.extend(self.subsystems[name].files)
        return globs

    def registered_agents(self) -> List[str]:
        owners = {s.owner for s in self.subsystems.values()}
        owners |= {s.owner for s in self.skimsystems.values()}
        return sorted(owners)

    def subsystem_owner(self, subsystem: str) -> Optional[str]:
        decl = self.subsystems.get(subsystem)
        return decl.owner if decl else None

    def skimsystem_owner(self, skimsystem: str) -> Optional[str]:
        decl = self.skimsystems.get(skimsystem)
        return decl.owner if decl else None

    def skimsystem_targets(self, skimsystem: str) -> List[str]:
        """Subsystem names a skimsystem covers ("all" expands to every subsystem)."""
        decl = self.skimsystems.get(skimsystem)
        if decl is None:
            return []
        if isinstance(decl.targets, str):
            return sorted(self.subsystems)
        return list(decl.targets)

    def agent_description(self, agent: str) -> str:
        decl = self.agents.get(agent)
        if decl and decl.description:
            return decl.description
        return "(no description)"

    def format_agent_registry(self) -> str:
        lines = []
        for agent in self.registered_agents():
            role = self.agent_role(agent)
            lines.append(f"- {agent} (role: {role.value}): {self.agent_description(agent)}")
        return "\n".join(lines)

    def format_subsystem_summary(self) -> str:
        lines = []
        for name in sorted(self.subsystems):
            sub = self.subsystems[name]
            lines.append(f"- {name} (owner: {sub.owner}): files = {sub.files}")
        return "\n".join(lines)

    def format_skimsystem_summary(self) -> str:
        lines = []
        for name in sorted(self.skimsystems):
            skim = self.skimsystems[name]
            targets = ", ".join(self.skimsystem_targets(name))
            lines.append(f"- {name} (owner: {skim.owner}): targets = {targets}")
        return "\n".join(lines)


def load_ownership(path: Path) -> OwnershipDirectory:
    """Load the ownership declarations from a YAML file.

    Raises:
        ContextLoadError: If the file is missing, malformed or inconsistent
    """
    try:
        raw = path.read_text()
    except OSError as e:
        raise ContextLoadError(f"Cannot read ownership file {path}: {e}") from e

    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise ContextLoadError(f"Malformed ownership file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ContextLoadError(f"Ownership file {path} must contain a mapping")

    try:
        directory = OwnershipDirectory(
            subsystems=data.get("subsystems") or {},
            skimsystems=data.get("skimsystems") or {},
            agents=data.get("agents") or {},
            raw_declarations=raw,
        )
    except ValidationError as e:
        raise ContextLoadError(f"Invalid ownership file {path}: {e}") from e

    logger.info(
        f"Loaded ownership: {len(directory.subsystems)} subsystem(s), "
        f"{len(directory.skimsystems)} skimsystem(s), "
        f"{len(directory.registered_agents())} agent(s)"
    )
    return directory
