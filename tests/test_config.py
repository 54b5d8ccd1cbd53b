import pytest

from fluxdiff.config import Config, load_configuration, read_environment, split_list
from fluxdiff.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    # keep ft.yaml discovery away from the developer's files
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("fluxdiff.config.CONFIG_SEARCH_DIRS", [tmp_path])


def test_defaults():
    config = load_configuration(environ={})

    assert config.remote == "origin"
    assert config.target_branch == "master"
    assert config.since == "HEAD"
    assert config.chart_dirs == ["charts"]
    assert config.all is False
    assert config.charts == []


def test_precedence_file_then_env_then_cli(tmp_path):
    config_file = tmp_path / "custom.yaml"
    config_file.write_text(
        "target-branch: develop\n"
        "remote: upstream\n"
        "chart-dirs:\n  - clusters\n  - apps\n"
        "chart-repos:\n  - bitnami=https://charts.bitnami.com/bitnami\n"
        "debug: true\n"
        "lint-conf: lintconf.yaml\n"
    )

    config = load_configuration(
        str(config_file),
        overrides={"remote": "fork", "since": None, "excluded_charts": ["a,b", "c"]},
        environ={"FT_TARGET_BRANCH": "main", "FT_ALL": "yes"},
    )

    assert config.target_branch == "main"
    assert config.remote == "fork"
    assert config.since == "HEAD"
    assert config.chart_dirs == ["clusters", "apps"]
    assert config.chart_repos == ["bitnami=https://charts.bitnami.com/bitnami"]
    assert config.excluded_charts == ["a", "b", "c"]
    assert config.debug is True
    assert config.all is True


def test_config_file_is_discovered(tmp_path):
    (tmp_path / "ft.yaml").write_text("since: feature\n")

    assert load_configuration(environ={}).since == "feature"


def test_missing_explicit_config_file():
    with pytest.raises(ConfigurationError, match="not found"):
        load_configuration("nope.yaml", environ={})


def test_config_file_must_be_mapping(tmp_path):
    (tmp_path / "ft.yaml").write_text("- just\n- a list\n")

    with pytest.raises(ConfigurationError, match="mapping"):
        load_configuration(environ={})


@pytest.mark.parametrize("values, message", [
    ({"chart_repos": ["no-equals-sign"]}, "expected name=value"),
    ({"chart_repos": ["bitnami="]}, "empty url"),
    ({"helm_repo_extra_args": ["=--username x"]}, "empty name"),
    ({"helm_repo_extra_args": ["repo=--password 'unbalanced"]}, "invalid extra arguments"),
    ({"all": True, "charts": ["a.yaml"]}, "mutually exclusive"),
    ({"since": ""}, "since"),
])
def test_validate_rejects_bad_values(values, message):
    with pytest.raises(ConfigurationError, match=message):
        Config(**values).validate()


def test_repo_extra_args_are_shell_split():
    config = Config(helm_repo_extra_args=["*=--pass-credentials", "private=--username bot --password 'p w'"])

    assert config.repo_extra_args() == {
        "*": ["--pass-credentials"],
        "private": ["--username", "bot", "--password", "p w"],
    }


def test_helm_template_args():
    config = Config(helm_extra_args="--kube-version 1.28", helm_extra_set_args="--set image.tag=v2")

    assert config.helm_template_args() == (["--kube-version", "1.28"], ["--set", "image.tag=v2"])


def test_print_config_writes_yaml_to_stderr(capsys):
    load_configuration(overrides={"target_branch": "main"}, print_config=True, environ={})

    err = capsys.readouterr().err
    assert "target-branch: main" in err
    assert "print-config: true" in err


def test_read_environment_ignores_unrelated_variables():
    assert read_environment({"HOME": "/root", "FT_REMOTE": "upstream"}) == {"remote": "upstream"}


def test_split_list():
    assert split_list(" a, b ,,c") == ["a", "b", "c"]
    assert split_list(["a,b", "c"]) == ["a", "b", "c"]
    assert split_list(None) == []
