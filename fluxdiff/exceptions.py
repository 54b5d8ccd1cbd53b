"""Exceptions raised by the HelmRelease diff pipeline."""

from typing import Optional, Sequence


class FluxDiffError(Exception):
    """Base class for all errors raised by flux-release-diff."""
    pass


class ConfigurationError(FluxDiffError):
    """Invalid or inconsistent configuration."""
    pass


class ProcessError(FluxDiffError):
    """An external command could not be started or exited non-zero."""

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        returncode: Optional[int] = None,
        stderr: str = "",
        cause: Optional[BaseException] = None,
    ):
        self.command = command
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
        self.cause = cause

        invocation = " ".join([command, *self.args_list])
        if cause is not None:
            message = f"failed running '{invocation}': {cause}"
        else:
            message = f"'{invocation}' exited with status {returncode}"
            if stderr:
                message += f": {stderr}"
        super().__init__(message)


class GitError(FluxDiffError):
    """A git invocation failed."""
    pass


class RepositoryError(GitError):
    """The working directory is not inside a git work tree."""
    pass


class MergeBaseError(GitError):
    """The merge base of the target branch and the since ref could not be resolved."""
    pass


class WorktreeError(GitError):
    """The previous-revision worktree could not be created."""
    pass


class WorktreePathError(FluxDiffError):
    """A path could not be mapped between the current tree and the worktree."""
    pass


class HelmError(FluxDiffError):
    """Base class for Helm related failures."""
    pass


class UnsupportedHelmVersionError(HelmError):
    """The installed Helm is older than the minimum supported major version."""
    pass


class RepositoryRegistrationError(HelmError):
    """A chart repository could not be registered with 'helm repo add'."""
    pass


class RenderError(HelmError):
    """'helm template' failed for a release."""
    pass


class ManifestError(FluxDiffError):
    """A file could not be read or parsed as a HelmRelease manifest."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")
