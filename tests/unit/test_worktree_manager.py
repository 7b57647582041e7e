"""Unit tests for WorktreeManager."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from bog_orchestrate.errors import CreateFailedError, GitFailedError, RemoveFailedError
from bog_orchestrate.utils.subprocess_utils import SubprocessError
from bog_orchestrate.workspace.worktree_manager import (
    ChangeKind,
    DiffEntry,
    WorktreeInfo,
    WorktreeManager,
    merge_diff_entries,
    parse_name_status,
)
from tests.unit.fakes import git


class TestParseNameStatus:
    """Tests for parse_name_status."""

    def test_basic_statuses(self):
        """Test added, modified and deleted lines."""
        output = "A\tsrc/new.rs\nM\tsrc/ast.rs\nD\tsrc/old.rs\n"
        assert parse_name_status(output) == [
            DiffEntry("src/new.rs", ChangeKind.ADDED),
            DiffEntry("src/ast.rs", ChangeKind.MODIFIED),
            DiffEntry("src/old.rs", ChangeKind.DELETED),
        ]

    def test_rename_yields_delete_and_add(self):
        """Test that a rename reports both the old and the new path."""
        assert parse_name_status("R100\tsrc/a.rs\tsrc/b.rs") == [
            DiffEntry("src/a.rs", ChangeKind.DELETED),
            DiffEntry("src/b.rs", ChangeKind.ADDED),
        ]

    def test_copy_yields_new_path(self):
        """Test that a copy reports only the new path."""
        assert parse_name_status("C75\tsrc/a.rs\tsrc/c.rs") == [
            DiffEntry("src/c.rs", ChangeKind.ADDED),
        ]

    def test_unknown_status_is_modified(self):
        """Test that type changes and other letters count as modified."""
        assert parse_name_status("T\tlink") == [DiffEntry("link", ChangeKind.MODIFIED)]

    def test_blank_and_malformed_lines_skipped(self):
        """Test that junk lines are ignored."""
        assert parse_name_status("\n\nM\n") == []


class TestMergeDiffEntries:
    """Tests for merge_diff_entries."""

    def test_first_classification_wins(self):
        """Test dedupe by path keeping the earliest entry."""
        merged = merge_diff_entries(
            [DiffEntry("a", ChangeKind.MODIFIED)],
            [DiffEntry("a", ChangeKind.ADDED), DiffEntry("b", ChangeKind.ADDED)],
        )
        assert merged == [DiffEntry("a", ChangeKind.MODIFIED), DiffEntry("b", ChangeKind.ADDED)]


class TestWorktreeInfo:
    """Tests for WorktreeInfo."""

    def test_to_dict(self):
        """Test serialization to dict."""
        info = WorktreeInfo(
            path=Path("/repo/.bog-worktrees/r1/core-agent"),
            branch="orch/r1/core-agent",
            agent="core-agent",
            run_id="r1",
            base_commit="abc123",
        )
        data = info.to_dict()
        assert data["path"] == "/repo/.bog-worktrees/r1/core-agent"
        assert data["branch"] == "orch/r1/core-agent"


class TestNaming:
    """Tests for branch and path naming."""

    def test_branch_and_path(self, tmp_path):
        """Test the (run, agent) naming scheme."""
        manager = WorktreeManager(tmp_path)
        assert manager.branch_name("r1", "core-agent") == "orch/r1/core-agent"
        assert manager.worktree_path("r1", "core-agent") == tmp_path.resolve() / ".bog-worktrees" / "r1" / "core-agent"

    def test_invalid_agent_name_rejected(self, tmp_path):
        """Test that agent names with path tricks are refused before git runs."""
        manager = WorktreeManager(tmp_path)
        with patch.object(manager, "_git") as mock_git:
            with pytest.raises(ValueError):
                manager.create_worktree("../escape", "r1")
            mock_git.assert_not_called()

    def test_create_failure_wrapped(self, tmp_path):
        """Test that git errors become CreateFailedError."""
        manager = WorktreeManager(tmp_path)
        error = SubprocessError(["git", "rev-parse", "HEAD"], 128, "fatal: not a git repository")
        with patch.object(manager, "_git", side_effect=error):
            with pytest.raises(CreateFailedError, match="not a git repository"):
                manager.create_worktree("core-agent", "r1")


class TestWorktreeLifecycle:
    """Tests against a real repository."""

    def test_create_worktree(self, git_repo):
        """Test that a worktree is checked out on its own branch at HEAD."""
        manager = WorktreeManager(git_repo)
        head = git(["rev-parse", "HEAD"], git_repo).strip()

        info = manager.create_worktree("core-agent", "r1")

        assert info.path.is_dir()
        assert (info.path / "src" / "ast.rs").exists()
        assert info.base_commit == head
        assert git(["rev-parse", "--abbrev-ref", "HEAD"], info.path).strip() == "orch/r1/core-agent"
        assert manager.active_worktrees("r1") == [info]

    def test_scratch_dir_ignored_by_root(self, git_repo):
        """Test that creating worktrees leaves the root status clean."""
        manager = WorktreeManager(git_repo)
        manager.create_worktree("core-agent", "r1")
        assert git(["status", "--porcelain"], git_repo).strip() == ""

    def test_same_run_and_agent_reused(self, git_repo):
        """Test that a second request returns the existing worktree."""
        manager = WorktreeManager(git_repo)
        first = manager.create_worktree("core-agent", "r1")
        assert manager.create_worktree("core-agent", "r1") is first

    def test_inspect_diff_sees_all_change_kinds(self, git_repo):
        """Test uncommitted, untracked and committed changes are all reported."""
        manager = WorktreeManager(git_repo)
        info = manager.create_worktree("core-agent", "r1")

        (info.path / "src" / "ast.rs").write_text("pub struct Ast { span: usize }\n")
        (info.path / "src" / "new.rs").write_text("// new\n")
        (info.path / "src" / "parser.rs").write_text("pub fn parse() -> Ast {}\n")
        git(["commit", "-q", "-am", "agent commit"], info.path)
        (info.path / "src" / "cli.rs").unlink()

        entries = {e.path: e.kind for e in manager.inspect_diff(info)}
        assert entries == {
            "src/cli.rs": ChangeKind.DELETED,
            "src/new.rs": ChangeKind.ADDED,
            "src/ast.rs": ChangeKind.MODIFIED,
            "src/parser.rs": ChangeKind.MODIFIED,
        }

    def test_non_ascii_paths_reported_verbatim(self, git_repo):
        """Test that git does not hand back C-quoted paths for non-ASCII names."""
        manager = WorktreeManager(git_repo)
        info = manager.create_worktree("quality-agent", "r1")
        (info.path / "src" / "é.bog").write_text("skims: {}\n", encoding="utf-8")

        assert manager.inspect_diff(info) == [DiffEntry("src/é.bog", ChangeKind.ADDED)]

        manager.auto_commit(info)
        assert manager.inspect_diff(info) == [DiffEntry("src/é.bog", ChangeKind.ADDED)]

    def test_auto_commit(self, git_repo):
        """Test that auto_commit reports whether anything was committed."""
        manager = WorktreeManager(git_repo)
        info = manager.create_worktree("core-agent", "r1")

        assert manager.auto_commit(info) is False

        (info.path / "src" / "ast.rs").write_text("changed\n")
        assert manager.auto_commit(info) is True
        assert git(["status", "--porcelain"], info.path).strip() == ""
        assert [e.path for e in manager.inspect_diff(info)] == ["src/ast.rs"]

    def test_merge_changes_into_root(self, git_repo):
        """Test that a committed worktree merges into the root tree."""
        manager = WorktreeManager(git_repo)
        info = manager.create_worktree("core-agent", "r1")
        (info.path / "src" / "ast.rs").write_text("merged\n")
        manager.auto_commit(info)

        manager.merge_changes(info)

        assert (git_repo / "src" / "ast.rs").read_text() == "merged\n"
        subject = git(["log", "-1", "--format=%s"], git_repo).strip()
        assert subject == "bog-orchestrate: merge agent 'core-agent' changes"

    def test_merge_conflict_aborted(self, git_repo):
        """Test that a conflicting merge is aborted and raised."""
        manager = WorktreeManager(git_repo)
        first = manager.create_worktree("core-agent", "r1")
        second = manager.create_worktree("cli-agent", "r1")
        for info, text in ((first, "one\n"), (second, "two\n")):
            (info.path / "src" / "ast.rs").write_text(text)
            manager.auto_commit(info)

        manager.merge_changes(first)
        with pytest.raises(GitFailedError):
            manager.merge_changes(second)

        assert (git_repo / "src" / "ast.rs").read_text() == "one\n"
        assert git(["status", "--porcelain"], git_repo).strip() == ""

    def test_cleanup_run_removes_worktrees_and_branches(self, git_repo):
        """Test that cleanup removes every worktree and branch of a run."""
        manager = WorktreeManager(git_repo)
        a = manager.create_worktree("core-agent", "r1")
        b = manager.create_worktree("cli-agent", "r1")
        other = manager.create_worktree("core-agent", "r2")

        warnings = manager.cleanup_run("r1")

        assert warnings == []
        assert not a.path.exists()
        assert not b.path.exists()
        assert other.path.exists()
        branches = git(["branch", "--list", "orch/*"], git_repo)
        assert "orch/r1/" not in branches
        assert "orch/r2/core-agent" in branches
        assert manager.active_worktrees("r1") == []

    def test_cleanup_reports_failures(self, git_repo):
        """Test that a removal failure becomes a warning, not an exception."""
        manager = WorktreeManager(git_repo)
        info = manager.create_worktree("core-agent", "r1")

        real_git = manager._git

        def failing_git(args, cwd, check=True):
            if args[:2] == ["worktree", "remove"]:
                raise SubprocessError(["git"] + args, 1, "locked")
            return real_git(args, cwd, check)

        with patch.object(manager, "_git", side_effect=failing_git):
            warnings = manager.cleanup_run("r1")

        assert len(warnings) == 1
        assert warnings[0].path == str(info.path)
        assert "locked" in warnings[0].message

    def test_branch_deleted_when_worktree_removal_fails(self, tmp_path):
        """Test that both removal steps run and both failures are reported."""
        manager = WorktreeManager(tmp_path)
        info = WorktreeInfo(
            path=tmp_path / "wt", branch="orch/r1/core-agent", agent="core-agent",
            run_id="r1", base_commit="abc",
        )
        calls = []

        def failing_git(args, cwd, check=True):
            calls.append(args[:2])
            raise SubprocessError(["git"] + args, 1, f"{args[0]} refused")

        with patch.object(manager, "_git", side_effect=failing_git):
            with pytest.raises(RemoveFailedError) as exc_info:
                manager.remove_worktree(info)

        assert calls == [["worktree", "remove"], ["branch", "-D"]]
        assert "worktree refused" in str(exc_info.value)
        assert "branch refused" in str(exc_info.value)
