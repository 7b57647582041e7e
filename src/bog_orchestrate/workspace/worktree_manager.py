"""Git worktree manager for isolated agent sandboxes.

Every (run, agent) pair gets its own branch-backed worktree under a scratch
directory inside the repository. Agents edit only their worktree; the root
tree changes only through ``merge_changes``.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..errors import CreateFailedError, GitFailedError, RemoveFailedError, WorktreeError
from ..utils.subprocess_utils import SubprocessError, run_git_command
from ..utils.validators import validate_branch_name, validate_identifier

logger = logging.getLogger(__name__)

DEFAULT_WORKTREE_DIR = ".bog-worktrees"
DEFAULT_BRANCH_PREFIX = "orch"
GIT_TIMEOUT_SECONDS = 120


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class DiffEntry:
    path: str
    kind: ChangeKind


@dataclass
class WorktreeInfo:
    """An isolated checkout for one agent in one run."""
    path: Path
    branch: str
    agent: str
    run_id: str
    base_commit: str

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["path"] = str(self.path)
        return data


@dataclass(frozen=True)
class CleanupWarning:
    """A worktree (or scratch directory) that could not be removed."""
    path: str
    message: str


def parse_name_status(output: str) -> List[DiffEntry]:
    """Parse ``git diff --name-status`` output.

    Renames and copies yield the new path as added; a rename also yields the
    old path as deleted. Unknown status letters count as modified.
    """
    entries: List[DiffEntry] = []
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) < 2 or not parts[0]:
            continue
        status = parts[0][0]
        if status in ("R", "C") and len(parts) >= 3:
            if status == "R":
                entries.append(DiffEntry(parts[1], ChangeKind.DELETED))
            entries.append(DiffEntry(parts[2], ChangeKind.ADDED))
        elif status == "A":
            entries.append(DiffEntry(parts[1], ChangeKind.ADDED))
        elif status == "D":
            entries.append(DiffEntry(parts[1], ChangeKind.DELETED))
        else:
            entries.append(DiffEntry(parts[1], ChangeKind.MODIFIED))
    return entries


def merge_diff_entries(*sources: List[DiffEntry]) -> List[DiffEntry]:
    """Union of several entry lists, deduplicated by path; first classification wins."""
    seen = set()
    merged: List[DiffEntry] = []
    for entries in sources:
        for entry in entries:
            if entry.path in seen:
                continue
            seen.add(entry.path)
            merged.append(entry)
    return merged


class WorktreeManager:
    """Creates, inspects, commits, merges and removes agent worktrees."""

    def __init__(
        self,
        repo_root: Path,
        worktree_dir: str = DEFAULT_WORKTREE_DIR,
        branch_prefix: str = DEFAULT_BRANCH_PREFIX,
    ):
        self.repo_root = Path(repo_root).resolve()
        self.base_dir = self.repo_root / worktree_dir
        self.branch_prefix = branch_prefix
        self._active: Dict[Tuple[str, str], WorktreeInfo] = {}

    def _git(self, args: List[str], cwd: Path, check: bool = True) -> subprocess.CompletedProcess:
        # Report non-ASCII paths verbatim instead of C-quoted
        return run_git_command(
            ["-c", "core.quotePath=false"] + args,
            cwd=cwd,
            check=check,
            timeout=GIT_TIMEOUT_SECONDS,
        )

    def branch_name(self, run_id: str, agent: str) -> str:
        return validate_branch_name(f"{self.branch_prefix}/{run_id}/{agent}")

    def worktree_path(self, run_id: str, agent: str) -> Path:
        return self.base_dir / run_id / agent

    def active_worktrees(self, run_id: Optional[str] = None) -> List[WorktreeInfo]:
        return [
            info for info in self._active.values()
            if run_id is None or info.run_id == run_id
        ]

    def _ensure_base_dir(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        # Keep the scratch directory out of the root tree's status
        ignore_file = self.base_dir / ".gitignore"
        if not ignore_file.exists():
            ignore_file.write_text("*\n")

    def create_worktree(self, agent: str, run_id: str) -> WorktreeInfo:
        """
        Create a worktree on a new branch rooted at the current HEAD.

        A second request for the same (run, agent) returns the existing worktree.

        Raises:
            CreateFailedError: If HEAD cannot be read or git refuses the worktree
        """
        validate_identifier(agent, "agent name")
        validate_identifier(run_id, "run id")

        key = (run_id, agent)
        existing = self._active.get(key)
        if existing is not None:
            logger.debug(f"Reusing worktree for {agent} in run {run_id}: {existing.path}")
            return existing

        path = self.worktree_path(run_id, agent)
        branch = self.branch_name(run_id, agent)

        try:
            base_commit = self._git(["rev-parse", "HEAD"], cwd=self.repo_root).stdout.strip()
            self._ensure_base_dir()
            path.parent.mkdir(parents=True, exist_ok=True)
            self._git(["worktree", "add", "-b", branch, str(path), "HEAD"], cwd=self.repo_root)
        except SubprocessError as e:
            raise CreateFailedError(str(path), e.stderr.strip() or str(e)) from e
        except (OSError, subprocess.TimeoutExpired) as e:
            raise CreateFailedError(str(path), str(e)) from e

        info = WorktreeInfo(
            path=path,
            branch=branch,
            agent=agent,
            run_id=run_id,
            base_commit=base_commit,
        )
        self._active[key] = info
        logger.info(f"Created worktree: {path} (branch: {branch}, base: {base_commit[:8]})")
        return info

    def inspect_diff(self, worktree: WorktreeInfo) -> List[DiffEntry]:
        """
        Everything the agent changed: uncommitted edits, untracked files and
        commits made since the base commit.

        Raises:
            GitFailedError: If any git invocation fails
        """
        try:
            uncommitted = self._git(["diff", "--name-status", "HEAD"], cwd=worktree.path).stdout
            untracked = self._git(
                ["ls-files", "--others", "--exclude-standard"], cwd=worktree.path
            ).stdout
            committed = self._git(
                ["diff", "--name-status", f"{worktree.base_commit}..HEAD"], cwd=worktree.path
            ).stdout
        except (SubprocessError, subprocess.TimeoutExpired, OSError) as e:
            raise GitFailedError(f"inspecting diff in {worktree.path}: {e}") from e

        untracked_entries = [
            DiffEntry(line, ChangeKind.ADDED) for line in untracked.splitlines() if line.strip()
        ]
        return merge_diff_entries(
            parse_name_status(uncommitted),
            untracked_entries,
            parse_name_status(committed),
        )

    def auto_commit(self, worktree: WorktreeInfo) -> bool:
        """
        Stage and commit everything in the worktree.

        Returns:
            False if there was nothing to commit, True if a commit was made

        Raises:
            GitFailedError: If staging or committing fails
        """
        try:
            self._git(["add", "-A"], cwd=worktree.path)
            staged = self._git(["diff", "--cached", "--quiet"], cwd=worktree.path, check=False)
            if staged.returncode == 0:
                logger.debug(f"Nothing to commit for {worktree.agent}")
                return False
            if staged.returncode != 1:
                raise GitFailedError(
                    f"diff --cached failed in {worktree.path}: {staged.stderr.strip()}"
                )
            self._git(
                ["commit", "-m", f"bog-orchestrate: agent '{worktree.agent}' changes"],
                cwd=worktree.path,
            )
        except (SubprocessError, subprocess.TimeoutExpired, OSError) as e:
            raise GitFailedError(f"auto-commit in {worktree.path}: {e}") from e

        logger.info(f"Committed changes for {worktree.agent} on {worktree.branch}")
        return True

    def merge_changes(self, worktree: WorktreeInfo) -> None:
        """
        Merge the worktree branch into the root tree's current branch (--no-ff).

        Conflicts are not resolved; the merge is aborted and GitFailedError raised.
        """
        message = f"bog-orchestrate: merge agent '{worktree.agent}' changes"
        try:
            self._git(["merge", "--no-ff", worktree.branch, "-m", message], cwd=self.repo_root)
        except SubprocessError as e:
            abort = self._git(["merge", "--abort"], cwd=self.repo_root, check=False)
            if abort.returncode != 0:
                logger.warning(f"merge --abort failed in {self.repo_root}: {abort.stderr.strip()}")
            raise GitFailedError(
                f"merging {worktree.branch}: {e.stderr.strip() or e.stdout.strip()}"
            ) from e
        except (subprocess.TimeoutExpired, OSError) as e:
            raise GitFailedError(f"merging {worktree.branch}: {e}") from e

        logger.info(f"Merged {worktree.branch} into {self.repo_root}")

    def remove_worktree(self, worktree: WorktreeInfo) -> None:
        """
        Force-remove a worktree and delete its branch.

        Raises:
            RemoveFailedError: If either git command fails
        """
        self._active.pop((worktree.run_id, worktree.agent), None)
        errors: List[str] = []
        # The branch is deleted even when the worktree could not be removed
        for args in (
            ["worktree", "remove", "--force", str(worktree.path)],
            ["branch", "-D", worktree.branch],
        ):
            try:
                self._git(args, cwd=self.repo_root)
            except SubprocessError as e:
                errors.append(f"{args[0]} {args[1]}: {e.stderr.strip() or e}")
            except (subprocess.TimeoutExpired, OSError) as e:
                errors.append(f"{args[0]} {args[1]}: {e}")

        if errors:
            raise RemoveFailedError(str(worktree.path), "; ".join(errors))
        logger.info(f"Removed worktree: {worktree.path}")

    def cleanup_run(self, run_id: str) -> List[CleanupWarning]:
        """
        Remove every worktree of a run, continuing past individual failures.

        Returns:
            One CleanupWarning per worktree (or directory) left behind
        """
        warnings: List[CleanupWarning] = []
        for info in self.active_worktrees(run_id):
            try:
                self.remove_worktree(info)
            except WorktreeError as e:
                logger.warning(f"Cleanup failed for {info.path}: {e}")
                warnings.append(CleanupWarning(path=str(info.path), message=str(e)))

        run_dir = self.base_dir / run_id
        if run_dir.exists():
            try:
                shutil.rmtree(run_dir)
            except OSError as e:
                logger.warning(f"Could not remove run directory {run_dir}: {e}")
                warnings.append(CleanupWarning(path=str(run_dir), message=str(e)))

        return warnings
