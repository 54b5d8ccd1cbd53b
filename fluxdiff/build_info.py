"""Build information shown by the version command."""

import os
from dataclasses import dataclass
from importlib import metadata
from typing import Dict, Optional

DISTRIBUTION_NAME = "flux-release-diff"


@dataclass(frozen=True)
class BuildInfo:
    version: str = "unreleased"
    git_commit: str = "unknown"
    build_date: str = "unknown"
    license: str = "Apache 2.0"

    @classmethod
    def from_environment(cls, environ: Optional[Dict[str, str]] = None) -> "BuildInfo":
        """
        Build info for this process.

        The version comes from the installed distribution; commit and date are
        stamped by the release pipeline through FT_GIT_COMMIT and FT_BUILD_DATE.
        """
        environ = os.environ if environ is None else environ
        try:
            version = metadata.version(DISTRIBUTION_NAME)
        except metadata.PackageNotFoundError:
            version = cls.version

        return cls(
            version=version,
            git_commit=environ.get("FT_GIT_COMMIT", cls.git_commit),
            build_date=environ.get("FT_BUILD_DATE", cls.build_date),
        )

    def lines(self):
        return [
            f"Version:\t {self.version}",
            f"Git commit:\t {self.git_commit}",
            f"Date:\t\t {self.build_date}",
            f"License:\t {self.license}",
        ]
