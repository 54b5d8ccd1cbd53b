"""
Git Operations Module - Revision control adapter for the HelmRelease diff

This module wraps the git plumbing the comparison engine needs: repository
validation, merge-base resolution, worktree lifecycle, changed-file listing
and file-existence checks on remote branches.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional, Union

import git
from git.exc import GitCommandError, GitCommandNotFound, InvalidGitRepositoryError, NoSuchPathError

from .exceptions import GitError, RepositoryError

logger = logging.getLogger(__name__)


def _describe(error: GitCommandError) -> str:
    stderr = (error.stderr or "").strip()
    # GitPython prefixes captured stderr with "stderr: '...'"
    if stderr.startswith("stderr:"):
        stderr = stderr[len("stderr:"):].strip().strip("'").strip()
    return stderr or f"exit status {error.status}"


class Git:
    """
    Git adapter backed by GitPython.

    Every command runs from the top level of the repository that contains
    ``path`` (the current directory by default).
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, debug: bool = False):
        self.path = Path(path) if path else Path(os.getcwd())
        self.debug = debug
        self._repo: Optional[git.Repo] = None

    @property
    def repo(self) -> git.Repo:
        if self._repo is None:
            raise RepositoryError("git repository has not been validated; call validate_repository() first")
        return self._repo

    @property
    def repo_root(self) -> Path:
        """Absolute path of the repository top level."""
        return Path(self.repo.working_tree_dir)

    def _git(self, subcommand: str, *args: str) -> str:
        if self.debug:
            print(">>> " + " ".join(["git", subcommand, *args]), flush=True)
        logger.debug(f"Running: git {subcommand} {' '.join(args)}")

        try:
            return getattr(self.repo.git, subcommand.replace("-", "_"))(*args)
        except GitCommandNotFound as e:
            # git could not be started; status carries the OS error
            raise GitError(f"failed running 'git {subcommand} {' '.join(args)}': {e.status}") from e
        except GitCommandError as e:
            raise GitError(f"git {subcommand} {' '.join(args)} failed: {_describe(e)}") from e

    def validate_repository(self) -> None:
        """
        Make sure the working directory is inside a git work tree.

        Raises:
            RepositoryError: If no (non-bare) repository contains the path
        """
        try:
            repo = git.Repo(str(self.path), search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise RepositoryError(f"{self.path} is not inside a git repository") from e

        if repo.bare or repo.working_tree_dir is None:
            raise RepositoryError(f"{self.path} is inside a bare git repository")

        self._repo = repo
        try:
            inside = self._git("rev-parse", "--is-inside-work-tree")
        except GitError as e:
            self._repo = None
            raise RepositoryError(str(e)) from e

        if inside.strip() != "true":
            self._repo = None
            raise RepositoryError(f"{self.path} is not inside a git work tree")

        logger.debug(f"Git repository root: {self.repo_root}")

    def merge_base(self, ref_a: str, ref_b: str) -> str:
        """
        Return the best common ancestor of two refs.

        Args:
            ref_a: First ref (e.g. "origin/master")
            ref_b: Second ref (e.g. "HEAD")

        Returns:
            Full commit id of the merge base
        """
        return self._git("merge-base", ref_a, ref_b).strip()

    def add_worktree(self, path: Union[str, Path], ref: str) -> None:
        """Materialize ``ref`` at ``path``. The path must not exist yet."""
        if Path(path).exists():
            raise GitError(f"worktree path {path} already exists")
        self._git("worktree", "add", "--detach", str(path), ref)

    def remove_worktree(self, path: Union[str, Path]) -> None:
        """Remove a worktree created by add_worktree()."""
        self._git("worktree", "remove", "--force", str(path))

    def list_changed_files(self, from_commit: str) -> List[str]:
        """
        List files that differ between ``from_commit`` and the working tree.

        Renames are detected, so a renamed file is reported once under its
        new path. Paths are relative to the repository root.

        Returns:
            Changed paths in git's order; empty list when nothing changed
        """
        output = self._git("diff", "--find-renames", "--name-only", "-z", from_commit)
        return [p for p in output.split("\x00") if p.strip()]

    def file_exists_on_branch(self, path: str, remote: str, branch: str) -> bool:
        """Check whether ``path`` exists on ``remote/branch``. Never raises for a missing file."""
        file_spec = f"{remote}/{branch}:{path}"
        try:
            self._git("cat-file", "-e", file_spec)
            return True
        except GitError as e:
            logger.debug(f"{file_spec} not found: {e}")
            return False
