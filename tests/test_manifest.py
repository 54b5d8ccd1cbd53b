import pytest
from pydantic import ValidationError

from fluxdiff.exceptions import ManifestError
from fluxdiff.manifest import load_manifest, parse_manifest
from tests.fakes import helm_release_yaml


def test_load_manifest_reads_chart_fields(tmp_path):
    path = tmp_path / "podinfo.yaml"
    path.write_text(helm_release_yaml(chart="podinfo", version="6.5.4", repo="podinfo-repo",
                                      values={"replicaCount": 2, "ingress": {"enabled": True}}))

    manifest = load_manifest(path, display_path="charts/podinfo.yaml")

    assert manifest.path == "charts/podinfo.yaml"
    assert manifest.name == "podinfo"
    assert manifest.chart_ref == "podinfo-repo"
    assert manifest.chart_name == "podinfo"
    assert manifest.chart_version == "6.5.4"
    assert manifest.values == {"replicaCount": 2, "ingress": {"enabled": True}}


def test_path_defaults_to_file_path(tmp_path):
    path = tmp_path / "release.yaml"
    path.write_text(helm_release_yaml())

    assert load_manifest(path).path == str(path)


REDIS_RELEASE = """
apiVersion: helm.toolkit.fluxcd.io/v2beta1
kind: HelmRelease
metadata:
  name: redis
spec:
  chart:
    spec:
      chart: redis
      version: {version}
      sourceRef:
        kind: HelmRepository
        name: bitnami
"""


def test_missing_values_and_integer_version():
    manifest = parse_manifest(REDIS_RELEASE.format(version="17"), "redis.yaml")

    assert manifest.values is None
    assert manifest.chart_version == "17"


def test_unquoted_float_version_is_rejected():
    with pytest.raises(ManifestError, match="quote it"):
        parse_manifest(REDIS_RELEASE.format(version="1.10"), "redis.yaml")

    assert parse_manifest(REDIS_RELEASE.format(version="'1.10'"), "redis.yaml").chart_version == "1.10"


def test_timestamps_in_values_stay_strings():
    text = helm_release_yaml() + "  values:\n    released: 2024-01-01\n    window: 2001-12-14t21:59:43.10-05:00\n"

    manifest = parse_manifest(text, "release.yaml")

    assert manifest.values == {"released": "2024-01-01", "window": "2001-12-14t21:59:43.10-05:00"}


def test_first_helm_release_in_multi_document_file():
    text = "apiVersion: v1\nkind: Namespace\nmetadata:\n  name: apps\n---\n" + helm_release_yaml(name="second")

    assert parse_manifest(text, "multi.yaml").name == "second"


def test_manifest_is_immutable():
    manifest = parse_manifest(helm_release_yaml(), "release.yaml")

    with pytest.raises(ValidationError):
        manifest.path = "other.yaml"


@pytest.mark.parametrize("text, reason", [
    ("kind: HelmRelease\nspec: [unclosed\n", "invalid YAML"),
    ("apiVersion: v1\nkind: ConfigMap\n", "no HelmRelease document"),
    ("", "no HelmRelease document"),
    ("kind: HelmRelease\nspec:\n  chart:\n    spec:\n      version: 1.0.0\n", "invalid HelmRelease"),
])
def test_parse_errors(text, reason):
    with pytest.raises(ManifestError, match=reason) as excinfo:
        parse_manifest(text, "broken.yaml")
    assert excinfo.value.path == "broken.yaml"


def test_unreadable_file(tmp_path):
    with pytest.raises(ManifestError, match="unable to read file"):
        load_manifest(tmp_path / "missing.yaml", display_path="missing.yaml")
