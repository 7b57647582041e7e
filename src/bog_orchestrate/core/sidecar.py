"""Sidecar metadata files: skim observations and addressed change requests.

A sidecar sits next to its source file (``src/parser.rs`` ->
``src/parser.rs.bog``). The default reader understands a YAML layout:

    file:
      subsystem: core
    skims:
      quality: {status: red, notes: "missing error context"}
    change_requests:
      - id: cr-1
        from: quality-agent
        target: fn(parse)
        type: review
        status: pending
        created: "2026-01-12"
        description: add error context to parse failures
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class RequestStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    DENIED = "denied"


class ChangeRequest(BaseModel):
    """A pending, addressed unit of follow-up work (a work item)."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    from_agent: str = Field(alias="from")
    target: str = ""
    change_type: str = Field(default="review", alias="type")
    status: RequestStatus = RequestStatus.PENDING
    priority: Optional[str] = None
    created: Optional[str] = None
    description: str = ""

    @field_validator("created", mode="before")
    @classmethod
    def stringify_created(cls, v):
        # YAML loads unquoted dates as date objects
        return None if v is None else str(v)


class SkimObservation(BaseModel):
    status: str = "unknown"
    notes: str = ""

    @property
    def compliant(self) -> bool:
        return self.status.lower() in ("green", "ok", "pass", "compliant")


class FileHeader(BaseModel):
    subsystem: Optional[str] = None


class SidecarFile(BaseModel):
    file: FileHeader = Field(default_factory=FileHeader)
    skims: Dict[str, SkimObservation] = Field(default_factory=dict)
    change_requests: List[ChangeRequest] = Field(default_factory=list)

    @property
    def subsystem(self) -> Optional[str]:
        return self.file.subsystem


class SidecarReader(ABC):
    """Turns a sidecar file into a SidecarFile."""

    @abstractmethod
    def read(self, path: Path) -> Optional[SidecarFile]:
        """Return the parsed sidecar, or None if it cannot be understood."""
        pass


class YamlSidecarReader(SidecarReader):
    def read(self, path: Path) -> Optional[SidecarFile]:
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError("top level is not a mapping")
            return SidecarFile(**data)
        except (OSError, yaml.YAMLError, ValidationError, ValueError, TypeError) as e:
            logger.debug(f"Skipping unreadable sidecar {path}: {e}")
            return None


def discover_sidecars(root: Path, suffix: str, exclude_dirs: List[str]) -> List[Path]:
    """All sidecar files under root, sorted, skipping .git and scratch directories."""
    excluded = set(exclude_dirs) | {".git"}
    found = []
    for path in root.rglob(f"*{suffix}"):
        rel = path.relative_to(root)
        if rel.parts and rel.parts[0] in excluded:
            continue
        if path.is_file():
            found.append(path)
    return sorted(found)


def source_path_for(sidecar_rel: str, suffix: str) -> str:
    """``src/parser.rs.bog`` -> ``src/parser.rs``"""
    if sidecar_rel.endswith(suffix):
        return sidecar_rel[: -len(suffix)]
    return sidecar_rel


def collect_skim_observations(
    root: Path,
    skimsystems: List[str],
    suffix: str,
    exclude_dirs: List[str],
    reader: Optional[SidecarReader] = None,
) -> List[str]:
    """Non-compliant observations recorded for the given skimsystems, one line each."""
    reader = reader or YamlSidecarReader()
    observations: List[str] = []
    for path in discover_sidecars(root, suffix, exclude_dirs):
        sidecar = reader.read(path)
        if sidecar is None:
            continue
        rel = path.relative_to(root).as_posix()
        for name in skimsystems:
            obs = sidecar.skims.get(name)
            if obs is None or obs.compliant:
                continue
            line = f"- [{name}] {source_path_for(rel, suffix)}: {obs.status}"
            if obs.notes:
                line += f" - {obs.notes}"
            observations.append(line)
    return observations
