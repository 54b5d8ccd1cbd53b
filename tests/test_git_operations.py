import shutil
from pathlib import Path

import git
import pytest

from fluxdiff.exceptions import GitError, RepositoryError
from fluxdiff.git_operations import Git
from tests.fakes import helm_release_yaml

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(shutil.which("git") is None, reason="git binary required"),
]


def configure_user(repo: git.Repo) -> None:
    with repo.config_writer() as config:
        config.set_value('user', 'name', 'Flux Diff Tests')
        config.set_value('user', 'email', 'tests@example.com')


def commit(repo: git.Repo, files: dict, message: str) -> str:
    root = Path(repo.working_tree_dir)
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    repo.index.add(list(files))
    return repo.index.commit(message).hexsha


@pytest.fixture
def cloned(tmp_path):
    """A clone of an upstream repo whose 'main' holds two releases, plus one feature commit."""
    upstream = git.Repo.init(tmp_path / "upstream")
    configure_user(upstream)
    base = commit(upstream, {
        "charts/a.yaml": helm_release_yaml(name="a", version="1.0.0"),
        "charts/b.yaml": helm_release_yaml(name="b", version="1.0.0"),
    }, "base")
    upstream.git.branch("-M", "main")

    work = git.Repo.clone_from(str(tmp_path / "upstream"), str(tmp_path / "work"))
    configure_user(work)
    work.git.mv("charts/b.yaml", "charts/c.yaml")
    head = commit(work, {
        "charts/a.yaml": helm_release_yaml(name="a", version="1.1.0"),
        "charts/new.yaml": helm_release_yaml(name="new"),
    }, "feature")

    adapter = Git(tmp_path / "work")
    adapter.validate_repository()
    return adapter, base, head


def test_validate_repository_from_subdirectory(cloned):
    adapter, _, _ = cloned
    nested = Git(adapter.repo_root / "charts")

    nested.validate_repository()

    assert nested.repo_root == adapter.repo_root


def test_validate_repository_outside_git(tmp_path):
    outside = tmp_path / "plain"
    outside.mkdir()

    with pytest.raises(RepositoryError):
        Git(outside).validate_repository()


def test_operations_require_validation(tmp_path):
    with pytest.raises(RepositoryError):
        Git(tmp_path).merge_base("HEAD", "HEAD")


def test_merge_base_is_symmetric(cloned):
    adapter, base, _ = cloned

    assert adapter.merge_base("origin/main", "HEAD") == base
    assert adapter.merge_base("HEAD", "origin/main") == base


def test_merge_base_of_unknown_ref(cloned):
    adapter, _, _ = cloned

    with pytest.raises(GitError, match="merge-base"):
        adapter.merge_base("origin/does-not-exist", "HEAD")


def test_list_changed_files_detects_renames(cloned):
    adapter, base, _ = cloned

    changed = adapter.list_changed_files(base)

    assert sorted(changed) == ["charts/a.yaml", "charts/c.yaml", "charts/new.yaml"]


def test_list_changed_files_includes_working_tree_edits(cloned):
    adapter, _, head = cloned
    assert adapter.list_changed_files(head) == []

    (adapter.repo_root / "charts" / "a.yaml").write_text(helm_release_yaml(name="a", version="1.2.0"))

    assert adapter.list_changed_files(head) == ["charts/a.yaml"]


def test_file_exists_on_branch(cloned):
    adapter, _, _ = cloned

    assert adapter.file_exists_on_branch("charts/a.yaml", "origin", "main") is True
    assert adapter.file_exists_on_branch("charts/new.yaml", "origin", "main") is False
    assert adapter.file_exists_on_branch("charts/a.yaml", "origin", "no-such-branch") is False


def test_worktree_lifecycle(cloned, tmp_path):
    adapter, base, _ = cloned
    worktree = tmp_path / "ct_previous_revision_test"

    adapter.add_worktree(worktree, base)
    try:
        assert "version: 1.0.0" in (worktree / "charts" / "a.yaml").read_text()
        assert (worktree / "charts" / "b.yaml").exists()
        assert not (worktree / "charts" / "new.yaml").exists()
    finally:
        adapter.remove_worktree(worktree)

    assert not worktree.exists()


def test_add_worktree_refuses_existing_path(cloned, tmp_path):
    adapter, base, _ = cloned
    existing = tmp_path / "existing"
    existing.mkdir()

    with pytest.raises(GitError, match="already exists"):
        adapter.add_worktree(existing, base)


def test_debug_echoes_git_invocations(cloned, capsys):
    adapter, _, _ = cloned
    adapter.debug = True

    adapter.merge_base("origin/main", "HEAD")

    assert ">>> git merge-base origin/main HEAD" in capsys.readouterr().out


def test_missing_git_executable_is_a_git_error(cloned, monkeypatch):
    adapter, _, _ = cloned
    monkeypatch.setattr(git.Git, "GIT_PYTHON_GIT_EXECUTABLE", "/nonexistent/git")

    with pytest.raises(GitError, match="failed running 'git merge-base origin/main HEAD'") as excinfo:
        adapter.merge_base("origin/main", "HEAD")

    assert "No such file or directory" in str(excinfo.value)
