"""
Helm Module - Chart renderer adapter

Registers chart repositories and renders charts with ``helm template``.
"""

import json
import logging
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .exceptions import (
    ProcessError,
    RenderError,
    RepositoryRegistrationError,
    UnsupportedHelmVersionError,
)
from .process import ProcessExecutor

logger = logging.getLogger(__name__)

MINIMUM_HELM_MAJOR = 3

# Both revisions are rendered under the same release name so it never shows up in the diff
RELEASE_NAME = "test"

_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)")


class Helm:
    """Helm adapter shelling out through a ProcessExecutor."""

    def __init__(
        self,
        executor: ProcessExecutor,
        extra_args: Optional[List[str]] = None,
        extra_set_args: Optional[List[str]] = None,
        temp_dir: Optional[Union[str, Path]] = None,
    ):
        self.exec = executor
        self.extra_args = list(extra_args or [])
        self.extra_set_args = list(extra_set_args or [])
        self.temp_dir = str(temp_dir) if temp_dir else None

    def add_repo(self, name: str, url: str, extra_args: List[str]) -> None:
        """
        Register a chart repository with 'helm repo add'.

        Raises:
            RepositoryRegistrationError: If helm fails
        """
        # extra args may carry credentials; keep them out of the log
        logger.debug(f"Adding chart repository {name} -> {url}")
        try:
            self.exec.run_process("helm", "repo", "add", name, url, extra_args)
        except ProcessError as e:
            raise RepositoryRegistrationError(f"failed adding repo: {name}={url}: {e}") from e

    def template_with_values(
        self,
        manifest_path: str,
        values: Optional[Dict[str, Any]],
        chart_repo: str,
        chart_name: str,
        chart_version: str,
    ) -> str:
        """
        Render ``chart_repo/chart_name`` at ``chart_version`` with ``values``.

        The values are written as JSON to a private temporary directory that
        is removed whether or not rendering succeeds.

        Args:
            manifest_path: HelmRelease file the values come from (for error messages)
            values: Opaque values payload; None renders with chart defaults
            chart_repo: Repository name registered with 'helm repo add'
            chart_name: Chart name within the repository
            chart_version: Chart version; empty means latest

        Returns:
            Rendered manifests as text

        Raises:
            RenderError: If the values cannot be written or helm fails
        """
        chart = f"{chart_repo}/{chart_name}"
        version_args = ["--version", chart_version] if chart_version else []

        with tempfile.TemporaryDirectory(prefix="template", dir=self.temp_dir) as temp_dir:
            values_file = Path(temp_dir) / "values.json"
            try:
                values_file.write_text(json.dumps(values or {}), encoding="utf-8")
            except (OSError, TypeError, ValueError) as e:
                raise RenderError(f"error creating temporary values file for {manifest_path}: {e}") from e

            try:
                return self.exec.run_process_and_capture_stdout(
                    "helm", "template", RELEASE_NAME, chart,
                    "-f", str(values_file),
                    version_args, self.extra_args, self.extra_set_args,
                )
            except ProcessError as e:
                raise RenderError(f"failed rendering {manifest_path} ({chart} {chart_version or 'latest'}): {e}") from e

    def version(self) -> str:
        return self.exec.run_process_and_capture_stdout("helm", "version", "--template", "{{ .Version }}")


def parse_major_version(version: str) -> int:
    """
    Return the major component of a Helm version string such as "v3.12.3".

    Raises:
        UnsupportedHelmVersionError: If the string is not a semantic version
    """
    match = _VERSION_RE.match(version.strip())
    if not match:
        raise UnsupportedHelmVersionError(f"unable to parse Helm version: '{version}'")
    return int(match.group(1))


def check_minimum_version(helm: Helm) -> str:
    """
    Fail unless the installed Helm is at least v3.

    Returns:
        The detected version string
    """
    try:
        version = helm.version()
    except ProcessError as e:
        raise UnsupportedHelmVersionError(f"unable to determine Helm version: {e}") from e

    if parse_major_version(version) < MINIMUM_HELM_MAJOR:
        raise UnsupportedHelmVersionError(
            f"minimum required Helm version is v{MINIMUM_HELM_MAJOR}.0.0; found: {version}"
        )
    logger.debug(f"Helm version: {version}")
    return version
