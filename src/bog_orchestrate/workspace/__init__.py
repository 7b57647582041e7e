"""Worktree isolation for agent tasks."""

from .worktree_manager import (
    ChangeKind,
    CleanupWarning,
    DiffEntry,
    WorktreeInfo,
    WorktreeManager,
)

__all__ = ["ChangeKind", "CleanupWarning", "DiffEntry", "WorktreeInfo", "WorktreeManager"]
