"""Mapping between repository-relative paths and the previous-revision worktree."""

from pathlib import Path, PurePosixPath
from typing import Union

from .exceptions import WorktreePathError


def to_worktree_path(path: str, worktree_root: Union[str, Path]) -> Path:
    """
    Locate a repository-relative path inside the worktree.

    >>> to_worktree_path("charts/app.yaml", "/tmp/ct_previous_revision_x")
    PosixPath('/tmp/ct_previous_revision_x/charts/app.yaml')

    Raises:
        WorktreePathError: If ``path`` is absolute or escapes the worktree
    """
    relative = PurePosixPath(path)
    if relative.is_absolute():
        raise WorktreePathError(f"{path} is absolute; expected a repository-relative path")
    if ".." in relative.parts:
        raise WorktreePathError(f"{path} escapes the worktree root")
    return Path(worktree_root).joinpath(*relative.parts)


def from_worktree_path(path: Union[str, Path], worktree_root: Union[str, Path]) -> str:
    """
    Strip the worktree root from a worktree path.

    >>> from_worktree_path("/tmp/ct_previous_revision_x/charts/app.yaml", "/tmp/ct_previous_revision_x")
    'charts/app.yaml'

    Raises:
        WorktreePathError: If ``path`` is not located under ``worktree_root``
    """
    try:
        relative = Path(path).relative_to(Path(worktree_root))
    except ValueError as e:
        raise WorktreePathError(f"{path} is not under worktree {worktree_root}") from e

    if not relative.parts:
        raise WorktreePathError(f"{path} is the worktree root itself")
    return relative.as_posix()
