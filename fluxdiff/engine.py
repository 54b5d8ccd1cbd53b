"""
Revision Comparison Engine - finds changed HelmReleases and diffs their renders

Workflow:
1. Validate the repository and resolve the merge base of remote/target-branch and since
2. Stage the merge base in a temporary worktree (always removed afterwards)
3. Enumerate changed files and load them as HelmReleases (bad files are skipped)
4. Register the configured chart repositories
5. Pair each release with its previous revision, render both and diff them

Manifest load failures are tolerated per file; render failures abort the run.
"""

import contextlib
import difflib
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Protocol, Sequence, Tuple, Union

from .config import ALL_REPOS, Config, get_temp_base_dir, parse_key_value
from .exceptions import (
    ConfigurationError,
    GitError,
    ManifestError,
    MergeBaseError,
    RepositoryError,
    WorktreeError,
)
from .manifest import ReleaseManifest, load_manifest
from .worktree_paths import from_worktree_path, to_worktree_path

logger = logging.getLogger(__name__)

WORKTREE_PREFIX = "ct_previous_revision"
MANIFEST_SUFFIXES = (".yaml", ".yml")


class GitClient(Protocol):
    """Revision control operations the engine depends on."""

    @property
    def repo_root(self) -> Path: ...

    def validate_repository(self) -> None: ...

    def merge_base(self, ref_a: str, ref_b: str) -> str: ...

    def add_worktree(self, path: Union[str, Path], ref: str) -> None: ...

    def remove_worktree(self, path: Union[str, Path]) -> None: ...

    def list_changed_files(self, from_commit: str) -> List[str]: ...

    def file_exists_on_branch(self, path: str, remote: str, branch: str) -> bool: ...


class HelmClient(Protocol):
    """Chart rendering operations the engine depends on."""

    def add_repo(self, name: str, url: str, extra_args: List[str]) -> None: ...

    def template_with_values(self, manifest_path: str, values, chart_repo: str,
                             chart_name: str, chart_version: str) -> str: ...


@dataclass(frozen=True)
class RevisionRange:
    """The refs being compared and their merge base, resolved once per run."""

    remote: str
    target_branch: str
    since: str
    merge_base_commit: str

    @property
    def target_ref(self) -> str:
        return f"{self.remote}/{self.target_branch}"


@dataclass(frozen=True)
class DiffResult:
    """A changed release: both revisions and the diff of their rendered output."""

    new_manifest: ReleaseManifest
    old_manifest: ReleaseManifest
    diff: str


def unified_diff(old_text: str, new_text: str, old_label: str, new_label: str) -> str:
    """Line based unified diff; empty string when the texts are identical."""
    old_lines = old_text.splitlines(keepends=True)
    new_lines = new_text.splitlines(keepends=True)

    # Ensure last lines have newlines for proper diff
    if old_lines and not old_lines[-1].endswith("\n"):
        old_lines[-1] += "\n"
    if new_lines and not new_lines[-1].endswith("\n"):
        new_lines[-1] += "\n"

    return "".join(difflib.unified_diff(old_lines, new_lines, fromfile=old_label, tofile=new_label))


def _flag_groups(args: Sequence[str]) -> List[Tuple[str, List[str]]]:
    groups: List[Tuple[str, List[str]]] = []
    for token in args:
        if token.startswith("-"):
            groups.append((token.split("=", 1)[0], [token]))
        elif groups:
            groups[-1][1].append(token)
        else:
            groups.append(("", [token]))
    return groups


def merge_extra_args(global_args: Sequence[str], repo_args: Sequence[str]) -> List[str]:
    """
    Combine 'helm repo add' arguments shared by all repositories with
    repository-specific ones.

    A flag given in ``repo_args`` replaces the same flag (and its values) from
    ``global_args``:

    >>> merge_extra_args(["--username", "ci", "--pass-credentials"], ["--username", "bot"])
    ['--pass-credentials', '--username', 'bot']
    """
    repo_groups = _flag_groups(repo_args)
    overridden = {name for name, _ in repo_groups if name}

    merged: List[str] = []
    for name, tokens in _flag_groups(global_args):
        if name and name in overridden:
            continue
        merged.extend(tokens)
    for _, tokens in repo_groups:
        merged.extend(tokens)
    return merged


def is_excluded(path: str, excluded: Sequence[str]) -> bool:
    """True if the path, its file stem or any of its directories is excluded."""
    if not excluded:
        return False
    candidate = Path(path)
    names = {path, candidate.as_posix(), candidate.stem, *candidate.parent.parts}
    return any(entry in names for entry in excluded)


def generate_worktree_name() -> str:
    """Unique worktree directory name, e.g. ct_previous_revision_20251015_143052_abc123."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{WORKTREE_PREFIX}_{timestamp}_{uuid.uuid4().hex[:6]}"


class ReleaseDiffEngine:
    """
    Computes rendered diffs for HelmReleases changed since the merge base.

    Args:
        config: Effective configuration
        git: Revision control adapter
        helm: Chart renderer adapter
        temp_base: Directory for the previous-revision worktree
    """

    def __init__(self, config: Config, git: GitClient, helm: HelmClient,
                 temp_base: Optional[Union[str, Path]] = None):
        self.config = config
        self.git = git
        self.helm = helm
        self.temp_base = Path(temp_base) if temp_base else get_temp_base_dir()

    def compute_changed_releases(self) -> List[DiffResult]:
        """
        Render and diff every changed HelmRelease that has a previous revision.

        Returns:
            Diff results in the order the files were enumerated

        Raises:
            FluxDiffError: On any fatal error; the worktree is removed first
        """
        revision_range = self.compute_revision_range()

        with self.previous_revision_worktree(revision_range.merge_base_commit) as worktree:
            files = self.discover_files(revision_range)
            logger.info(f"All changed HelmRelease files: {files}")
            if not files:
                logger.info("No changed files found")
                return []

            manifests, skipped = self.load_current_manifests(files)
            self.register_chart_repositories()
            results, new_charts, skipped_old = self.process_releases(manifests, worktree, revision_range)

        skipped.extend(skipped_old)
        if skipped:
            logger.info(f"Skipped {len(skipped)} file(s) that could not be parsed: {skipped}")
        if new_charts:
            logger.info(f"Skipped {len(new_charts)} new chart(s) without a previous revision: {new_charts}")
        logger.info(f"✅ Computed {len(results)} HelmRelease diff(s)")
        return results

    def compute_revision_range(self) -> RevisionRange:
        cfg = self.config
        try:
            self.git.validate_repository()
        except GitError as e:
            raise RepositoryError(f"must be in a git repository: {e}") from e

        target_ref = f"{cfg.remote}/{cfg.target_branch}"
        logger.debug(f"Computing merge base of {target_ref} and {cfg.since}")
        try:
            merge_base = self.git.merge_base(target_ref, cfg.since)
        except GitError as e:
            raise MergeBaseError(f"could not compute merge base of {target_ref} and {cfg.since}: {e}") from e

        logger.info(f"Merge base of {target_ref} and {cfg.since}: {merge_base}")
        return RevisionRange(
            remote=cfg.remote,
            target_branch=cfg.target_branch,
            since=cfg.since,
            merge_base_commit=merge_base,
        )

    @contextlib.contextmanager
    def previous_revision_worktree(self, commit: str) -> Iterator[Path]:
        """Worktree checked out at ``commit``, removed on exit once it was created."""
        path = self.temp_base / generate_worktree_name()
        try:
            self.git.add_worktree(path, commit)
        except GitError as e:
            raise WorktreeError(f"could not create worktree for previous revision: {e}") from e
        logger.debug(f"Created previous revision worktree {path} at {commit}")

        try:
            yield path
        finally:
            try:
                self.git.remove_worktree(path)
                logger.debug(f"Removed previous revision worktree {path}")
            except GitError as e:
                logger.warning(f"⚠️ Failed to remove worktree {path}: {e}")

    def discover_files(self, revision_range: RevisionRange) -> List[str]:
        """Files to process: explicit charts, everything under chart dirs, or changed files."""
        cfg = self.config
        if cfg.charts:
            logger.info("Processing explicitly listed charts; change detection disabled")
            files = [self._repo_relative(chart) for chart in cfg.charts]
        elif cfg.all:
            logger.info("Processing all charts; change detection disabled")
            files = self.list_all_manifest_files()
        else:
            try:
                files = self.git.list_changed_files(revision_range.merge_base_commit)
            except GitError as e:
                raise GitError(f"failed creating diff: {e}") from e

        kept = []
        for path in files:
            if is_excluded(path, cfg.excluded_charts):
                logger.info(f"Excluding {path}")
                continue
            kept.append(path)
        return kept

    def _repo_relative(self, path: str) -> str:
        # Relative entries are resolved from the current directory
        candidate = (Path.cwd() / path).resolve()
        try:
            return candidate.relative_to(Path(self.git.repo_root).resolve()).as_posix()
        except ValueError as e:
            raise ConfigurationError(f"chart {path} is outside the repository {self.git.repo_root}") from e

    def list_all_manifest_files(self) -> List[str]:
        root = self.git.repo_root
        files: List[str] = []
        for chart_dir in self.config.chart_dirs:
            directory = root / chart_dir
            if not directory.is_dir():
                logger.warning(f"⚠️ Chart directory {chart_dir} does not exist")
                continue
            for path in sorted(directory.rglob("*")):
                if path.is_file() and path.suffix in MANIFEST_SUFFIXES:
                    relative = path.relative_to(root).as_posix()
                    if relative not in files:
                        files.append(relative)
        return files

    def load_current_manifests(self, files: Sequence[str]) -> Tuple[List[ReleaseManifest], List[str]]:
        """Load the current revision of each file, skipping (and logging) failures."""
        root = self.git.repo_root
        manifests: List[ReleaseManifest] = []
        skipped: List[str] = []
        for path in files:
            try:
                manifests.append(load_manifest(root / path, display_path=path))
            except ManifestError as e:
                logger.warning(f"Failed parsing a file, skipping: {e}")
                skipped.append(path)
        return manifests, skipped

    def register_chart_repositories(self) -> Dict[str, str]:
        """
        Run 'helm repo add' once per configured repository name.

        Returns:
            Registered repository names mapped to their URLs
        """
        repo_args = self.config.repo_extra_args()
        global_args = repo_args.get(ALL_REPOS, [])

        registered: Dict[str, str] = {}
        for entry in self.config.chart_repos:
            name, url = parse_key_value(entry, "chart-repos")
            if name in registered:
                if registered[name] != url:
                    logger.warning(f"⚠️ Ignoring duplicate chart repository {name}={url}; already registered as {registered[name]}")
                continue
            self.helm.add_repo(name, url, merge_extra_args(global_args, repo_args.get(name, [])))
            registered[name] = url
        return registered

    def find_previous_revision(self, manifest: ReleaseManifest, worktree: Path,
                               revision_range: RevisionRange) -> Optional[ReleaseManifest]:
        """
        Load the previous revision of a release from the worktree.

        Existence is checked on the target branch tip while the content is read
        from the merge base worktree. The manifest keeps the repository path
        as its identity because the worktree does not outlive the run.

        Returns:
            The previous manifest, or None for a new chart

        Raises:
            ManifestError: If the previous revision exists but cannot be parsed
        """
        previous_path = to_worktree_path(manifest.path, worktree)
        current_path = from_worktree_path(previous_path, worktree)

        if not self.git.file_exists_on_branch(current_path, revision_range.remote, revision_range.target_branch):
            logger.info(f"Unable to find {current_path} on {revision_range.target_ref}. New chart detected.")
            return None

        return load_manifest(previous_path, display_path=current_path)

    def process_releases(self, manifests: Sequence[ReleaseManifest], worktree: Path,
                         revision_range: RevisionRange) -> Tuple[List[DiffResult], List[str], List[str]]:
        results: List[DiffResult] = []
        new_charts: List[str] = []
        skipped: List[str] = []

        for manifest in manifests:
            try:
                previous = self.find_previous_revision(manifest, worktree, revision_range)
            except ManifestError as e:
                logger.warning(f"Failed to parse old HelmRelease, skipping: {e}")
                skipped.append(manifest.path)
                continue

            if previous is None:
                new_charts.append(manifest.path)
                continue

            results.append(self.check_diff(previous, manifest))

        return results, new_charts, skipped

    def check_diff(self, old: ReleaseManifest, new: ReleaseManifest) -> DiffResult:
        """Render both revisions and diff them. Render errors propagate."""
        old_template = self.helm.template_with_values(
            old.path, old.values, old.chart_ref, old.chart_name, old.chart_version
        )
        logger.debug(f"Old template for {new.path}:\n{old_template}")

        new_template = self.helm.template_with_values(
            new.path, new.values, new.chart_ref, new.chart_name, new.chart_version
        )
        logger.debug(f"New template for {new.path}:\n{new_template}")

        diff = unified_diff(old_template, new_template, f"a/{old.path}", f"b/{new.path}")
        if not diff:
            logger.info(f"{new.path}: no rendered changes")
        return DiffResult(new_manifest=new, old_manifest=old, diff=diff)
