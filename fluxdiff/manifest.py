"""
Manifest Loader - HelmRelease model and YAML loading

Only the part of the Flux HelmRelease schema needed for rendering is modelled;
unknown fields are ignored. The values payload is kept as an opaque mapping
and handed to Helm unmodified, so it must stay JSON compatible: timestamps
are loaded as plain strings.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ManifestError

HELM_RELEASE_KIND = "HelmRelease"
TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class ManifestLoader(yaml.SafeLoader):
    """SafeLoader that keeps timestamps such as 2024-01-01 as strings."""


ManifestLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
ManifestLoader.add_constructor(TIMESTAMP_TAG, yaml.SafeLoader.construct_yaml_str)


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class SourceRef(_FrozenModel):
    kind: str = "HelmRepository"
    name: str
    namespace: Optional[str] = None


class ChartSpec(_FrozenModel):
    chart: str
    version: str = ""
    source_ref: SourceRef = Field(alias="sourceRef")

    @field_validator("version", mode="before")
    @classmethod
    def version_as_string(cls, value: Any) -> str:
        # YAML turns an unquoted 1.10 into the float 1.1; the original text is lost
        if isinstance(value, float):
            raise ValueError(f"version {value!r} was read as a number; quote it")
        return "" if value is None else str(value)


class ChartTemplate(_FrozenModel):
    spec: ChartSpec


class HelmReleaseSpec(_FrozenModel):
    chart: ChartTemplate
    release_name: Optional[str] = Field(default=None, alias="releaseName")
    values: Optional[Dict[str, Any]] = None


class ObjectMeta(_FrozenModel):
    name: str = ""
    namespace: Optional[str] = None


class HelmRelease(_FrozenModel):
    api_version: str = Field(default="", alias="apiVersion")
    kind: str
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: HelmReleaseSpec

    @field_validator("kind")
    @classmethod
    def must_be_helm_release(cls, value: str) -> str:
        if value != HELM_RELEASE_KIND:
            raise ValueError(f"expected kind {HELM_RELEASE_KIND}, got {value}")
        return value


class ReleaseManifest(_FrozenModel):
    """A HelmRelease together with the file it was read from."""

    path: str
    release: HelmRelease

    @property
    def chart_ref(self) -> str:
        """Name of the chart source (the repository name passed to helm)."""
        return self.release.spec.chart.spec.source_ref.name

    @property
    def chart_name(self) -> str:
        return self.release.spec.chart.spec.chart

    @property
    def chart_version(self) -> str:
        return self.release.spec.chart.spec.version

    @property
    def values(self) -> Optional[Dict[str, Any]]:
        return self.release.spec.values

    @property
    def name(self) -> str:
        return self.release.metadata.name


def parse_manifest(text: str, path: str) -> ReleaseManifest:
    """
    Parse YAML text into a ReleaseManifest.

    The first document of kind HelmRelease is used; other documents in a
    multi-document file are ignored.

    Raises:
        ManifestError: On YAML errors, a missing HelmRelease document or
            schema violations
    """
    try:
        documents = list(yaml.load_all(text, Loader=ManifestLoader))
    except yaml.YAMLError as e:
        raise ManifestError(path, f"invalid YAML: {e}") from e

    for document in documents:
        if isinstance(document, dict) and document.get("kind") == HELM_RELEASE_KIND:
            try:
                release = HelmRelease.model_validate(document)
            except ValidationError as e:
                raise ManifestError(path, f"invalid HelmRelease: {e}") from e
            return ReleaseManifest(path=path, release=release)

    raise ManifestError(path, "no HelmRelease document found")


def load_manifest(path: Union[str, Path], display_path: Optional[str] = None) -> ReleaseManifest:
    """
    Read a file and deserialize it into a ReleaseManifest.

    Args:
        path: File to read
        display_path: Identity recorded on the manifest (defaults to ``path``)

    Raises:
        ManifestError: If the file cannot be read or parsed. Callers skip the
            file rather than aborting the batch.
    """
    identity = display_path if display_path is not None else str(path)
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestError(identity, f"unable to read file: {e}") from e

    return parse_manifest(text, identity)
