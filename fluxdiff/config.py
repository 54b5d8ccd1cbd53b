"""Configuration management for flux-release-diff."""

import logging
import os
import shlex
import sys
import tempfile
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "FT_"

# Searched in order when no --config is given
CONFIG_FILE_NAMES = ["ft.yaml", "ft.yml", "ft.json"]
CONFIG_SEARCH_DIRS = [Path("."), Path.home() / ".ft"]

# Wildcard name in helm-repo-extra-args applying to every repository
ALL_REPOS = "*"


def get_temp_base_dir() -> Path:
    """
    Get the base temporary directory for worktrees and rendered values.

    Priority:
    1. FT_TEMP_DIR environment variable (if set by user)
    2. System temp directory

    Returns:
        Path object pointing to the temp base directory
    """
    env_temp = os.getenv(f"{ENV_PREFIX}TEMP_DIR")
    if env_temp:
        temp_base = Path(env_temp)
        logger.debug(f"Using temp directory from {ENV_PREFIX}TEMP_DIR: {temp_base}")
        temp_base.mkdir(parents=True, exist_ok=True)
        return temp_base

    return Path(tempfile.gettempdir())


def split_list(value: Any) -> List[str]:
    """Accept a list or a comma separated string; drop empty entries."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = []
        for item in value:
            items.extend(str(item).split(","))
    return [item.strip() for item in items if item.strip()]


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def parse_key_value(entry: str, option: str) -> Tuple[str, str]:
    """
    Split a ``name=value`` entry.

    Raises:
        ConfigurationError: If the entry has no '=' or an empty name
    """
    if "=" not in entry:
        raise ConfigurationError(f"invalid {option} entry '{entry}': expected name=value")
    name, value = entry.split("=", 1)
    name = name.strip()
    if not name:
        raise ConfigurationError(f"invalid {option} entry '{entry}': empty name")
    return name, value.strip()


@dataclass
class Config:
    """Effective configuration of a diff run."""

    remote: str = "origin"
    target_branch: str = "master"
    since: str = "HEAD"
    excluded_charts: List[str] = field(default_factory=list)
    chart_dirs: List[str] = field(default_factory=lambda: ["charts"])
    all: bool = False
    charts: List[str] = field(default_factory=list)

    # Helm
    chart_repos: List[str] = field(default_factory=list)
    helm_repo_extra_args: List[str] = field(default_factory=list)
    # Accepted for config-file compatibility with chart-testing; no dependency build runs here
    helm_dependency_extra_args: List[str] = field(default_factory=list)
    helm_extra_args: str = ""
    helm_extra_set_args: str = ""

    debug: bool = False
    print_config: bool = False

    def validate(self) -> None:
        """Validate configuration and raise errors for malformed values."""
        for name in ("remote", "target_branch", "since"):
            if not getattr(self, name):
                raise ConfigurationError(f"Missing required configuration field: {name}")

        if self.all and self.charts:
            raise ConfigurationError("'all' and 'charts' are mutually exclusive")

        for entry in self.chart_repos:
            _, url = parse_key_value(entry, "chart-repos")
            if not url:
                raise ConfigurationError(f"invalid chart-repos entry '{entry}': empty url")
        try:
            self.repo_extra_args()
            shlex.split(self.helm_extra_args)
            shlex.split(self.helm_extra_set_args)
        except ValueError as e:
            raise ConfigurationError(f"invalid extra arguments: {e}") from e

    def repo_extra_args(self) -> Dict[str, List[str]]:
        """Map repository name (or '*') to its 'helm repo add' extra arguments."""
        result: Dict[str, List[str]] = {}
        for entry in self.helm_repo_extra_args:
            name, args = parse_key_value(entry, "helm-repo-extra-args")
            result[name] = shlex.split(args)
        return result

    def helm_template_args(self) -> Tuple[List[str], List[str]]:
        """Extra 'helm template' arguments and extra --set arguments."""
        return shlex.split(self.helm_extra_args), shlex.split(self.helm_extra_set_args)

    def to_dict(self) -> Dict[str, Any]:
        return {key.replace("_", "-"): value for key, value in asdict(self).items()}


_LIST_FIELDS = {f.name for f in fields(Config) if f.type in (List[str], "List[str]")}
_BOOL_FIELDS = {f.name for f in fields(Config) if f.type in (bool, "bool")}


def _coerce(name: str, value: Any) -> Any:
    if name in _LIST_FIELDS:
        return split_list(value)
    if name in _BOOL_FIELDS:
        return parse_bool(value)
    return "" if value is None else str(value)


def find_config_file() -> Optional[Path]:
    for directory in CONFIG_SEARCH_DIRS:
        for name in CONFIG_FILE_NAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
    return None


def read_config_file(path: Path) -> Dict[str, Any]:
    """
    Read a YAML (or JSON) configuration file.

    Keys may be written in kebab-case (as on the command line) or snake_case.
    Unknown keys are ignored with a debug message so chart-testing config
    files can be shared.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as e:
        raise ConfigurationError(f"failed reading config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"failed parsing config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {path} must contain a mapping")

    known = {f.name for f in fields(Config)}
    values: Dict[str, Any] = {}
    for key, value in data.items():
        name = str(key).replace("-", "_")
        if name not in known:
            logger.debug(f"Ignoring unknown config key '{key}' in {path}")
            continue
        values[name] = _coerce(name, value)
    return values


def read_environment(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Collect FT_* environment overrides (e.g. FT_TARGET_BRANCH=main)."""
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for f in fields(Config):
        env_name = f"{ENV_PREFIX}{f.name.upper()}"
        if env_name in environ:
            values[f.name] = _coerce(f.name, environ[env_name])
    return values


def load_configuration(
    config_file: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    print_config: bool = False,
    environ: Optional[Dict[str, str]] = None,
) -> Config:
    """
    Build the effective configuration.

    Precedence (lowest to highest): defaults, config file, FT_* environment
    variables, explicit command line values (``None`` means "not given").

    Args:
        config_file: Explicit config file; searched for when omitted
        overrides: Values from the command line
        print_config: Dump the effective configuration to stderr
        environ: Environment to read (defaults to os.environ)

    Returns:
        Validated Config
    """
    values: Dict[str, Any] = {}

    if config_file:
        path = Path(config_file)
        if not path.is_file():
            raise ConfigurationError(f"config file {config_file} not found")
    else:
        path = find_config_file()

    if path is not None:
        logger.info(f"Using config file: {path}")
        values.update(read_config_file(path))

    values.update(read_environment(environ))

    for name, value in (overrides or {}).items():
        if value is not None:
            values[name] = _coerce(name, value)

    config = Config(**values)
    if print_config:
        config.print_config = True
    config.validate()

    if config.print_config:
        print("-" * 72, file=sys.stderr)
        print(" Configuration", file=sys.stderr)
        print("-" * 72, file=sys.stderr)
        print(yaml.safe_dump(config.to_dict(), sort_keys=False, default_flow_style=False), file=sys.stderr)

    return config
