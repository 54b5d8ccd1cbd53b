"""Markdown report of HelmRelease diff results."""

from typing import Sequence

from .engine import DiffResult


class Markdown:
    """Small builder for the markdown report."""

    def __init__(self):
        self.document = ""

    def add_h1(self, header: str) -> "Markdown":
        self.document += f"# {header}\n\n"
        return self

    def add_h2(self, header: str) -> "Markdown":
        self.document += f"## {header}\n\n"
        return self

    def add_text(self, text: str) -> "Markdown":
        self.document += f"{text}\n\n"
        return self

    def add_diff_block(self, diff: str) -> "Markdown":
        self.document += f"```diff\n{diff.rstrip()}\n```\n\n"
        return self


def render_markdown_report(results: Sequence[DiffResult]) -> str:
    """
    Render diff results as markdown, one section per HelmRelease file.

    Releases whose rendered output did not change are still listed.
    """
    markdown = Markdown().add_h1("HelmRelease diff")
    if not results:
        return markdown.add_text("No changed HelmReleases with a previous revision.").document

    for result in results:
        new = result.new_manifest
        old = result.old_manifest
        markdown.add_h2(new.path)
        markdown.add_text(
            f"Chart `{new.chart_ref}/{new.chart_name}`: "
            f"`{old.chart_version or 'latest'}` → `{new.chart_version or 'latest'}`"
        )
        if result.diff:
            markdown.add_diff_block(result.diff)
        else:
            markdown.add_text("_No rendered changes_")
    return markdown.document
