#!/usr/bin/env python3
"""
ft - Flux HelmRelease diff

Renders every HelmRelease changed since the merge base with the target branch,
old and new revision, and prints a markdown report with the rendered diffs.

Usage:
    ft diff --target-branch main --chart-repos bitnami=https://charts.bitnami.com/bitnami
    ft diff --config ft.yaml --print-config
    ft version

Exit codes: 0 on success (also when nothing changed), 1 on any fatal error.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from fluxdiff.build_info import BuildInfo
from fluxdiff.config import Config, get_temp_base_dir, load_configuration
from fluxdiff.engine import ReleaseDiffEngine
from fluxdiff.exceptions import FluxDiffError
from fluxdiff.git_operations import Git
from fluxdiff.helm import Helm, check_minimum_version
from fluxdiff.logging_config import setup_logging
from fluxdiff.process import ProcessExecutor
from fluxdiff.report import render_markdown_report

logger = logging.getLogger(__name__)

LIST_HELP = "May be specified multiple times or separate values with commas"

# CLI destinations that override configuration values
OVERRIDE_FIELDS = [
    "remote", "target_branch", "since", "excluded_charts", "chart_dirs", "all", "charts",
    "chart_repos", "helm_repo_extra_args", "helm_dependency_extra_args",
    "helm_extra_args", "helm_extra_set_args", "debug", "print_config",
]


def add_diff_arguments(parser: argparse.ArgumentParser) -> None:
    # Defaults live in Config; None means "not given on the command line"
    parser.add_argument('--config', type=str, help='Config file')
    parser.add_argument('--target-branch', help='The name of the target branch used to identify changed charts (default: master)')
    parser.add_argument('--since', help='The Git reference used to identify changed charts (default: HEAD)')
    parser.add_argument('--remote', help='The name of the Git remote used to identify changed charts (default: origin)')
    parser.add_argument('--excluded-charts', action='append', help=f'Charts that should be skipped. {LIST_HELP}')
    parser.add_argument('--chart-dirs', action='append', help=f'Directories containing HelmReleases (default: charts). {LIST_HELP}')
    parser.add_argument('--all', action='store_true', default=None,
                        help='Process all HelmReleases in the chart directories except those explicitly excluded. Disables changed charts detection')
    parser.add_argument('--charts', action='append',
                        help=f'Specific HelmRelease files to process. Disables changed charts detection. {LIST_HELP}')
    parser.add_argument('--chart-repos', action='append',
                        help=f"Chart repositories formatted as 'name=url' (ex: local=http://127.0.0.1:8879/charts). {LIST_HELP}")
    parser.add_argument('--helm-repo-extra-args', action='append',
                        help="Additional arguments for 'helm repo add' per repository, e.g. 'myrepo=--username test --password secret'; "
                             f"'*=args' applies to every repository. {LIST_HELP}")
    parser.add_argument('--helm-dependency-extra-args', action='append',
                        help="Additional arguments for 'helm dependency build' (accepted for config compatibility)")
    parser.add_argument('--helm-extra-args', help="Additional arguments for 'helm template'")
    parser.add_argument('--helm-extra-set-args', help="Additional --set arguments for 'helm template'")
    parser.add_argument('--debug', action='store_true', default=None,
                        help='Print CLI calls of external tools to stdout (caution: may expose credentials from helm-repo-extra-args)')
    parser.add_argument('--print-config', action='store_true', default=None,
                        help='Print the configuration to stderr (caution: may expose credentials from helm-repo-extra-args)')
    parser.add_argument('--report-file', type=str, help='Also write the markdown report to this file')
    parser.add_argument('--log-level', type=str, help='Log level (default: LOG_LEVEL env var or INFO)')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='ft',
        description='Flux test for HelmRelease changes in a remote upstream',
    )
    subparsers = parser.add_subparsers(dest='command', metavar='command')
    subparsers.required = True

    diff_parser = subparsers.add_parser('diff', help='Get HelmRelease diff information')
    add_diff_arguments(diff_parser)

    subparsers.add_parser('version', help='Print version information')
    return parser


def build_engine(config: Config) -> ReleaseDiffEngine:
    """Wire the production adapters and check the Helm version."""
    temp_base = get_temp_base_dir()
    extra_args, extra_set_args = config.helm_template_args()
    helm = Helm(ProcessExecutor(debug=config.debug), extra_args, extra_set_args, temp_dir=temp_base)
    check_minimum_version(helm)

    git = Git(debug=config.debug)
    return ReleaseDiffEngine(config, git, helm, temp_base=temp_base)


def run_diff(args: argparse.Namespace) -> int:
    logger.info("Checking diff for HelmReleases...")

    overrides = {name: getattr(args, name) for name in OVERRIDE_FIELDS}
    config = load_configuration(args.config, overrides, print_config=bool(args.print_config))

    engine = build_engine(config)
    results = engine.compute_changed_releases()

    report = render_markdown_report(results)
    print(report, end="")
    if args.report_file:
        Path(args.report_file).write_text(report, encoding="utf-8")
        logger.info(f"Report written to {args.report_file}")
    return 0


def run_version(build_info: BuildInfo) -> int:
    for line in build_info.lines():
        print(line)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    # Load environment variables from .env file
    load_dotenv()
    build_info = BuildInfo.from_environment()

    args = build_parser().parse_args(argv)
    if args.command == 'version':
        return run_version(build_info)

    try:
        setup_logging(args.log_level)
        return run_diff(args)
    except (FluxDiffError, OSError, ValueError) as e:
        logger.debug("Detailed error:", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
