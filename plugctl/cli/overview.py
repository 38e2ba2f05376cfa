"""Markdown overview of the plugins in an index directory"""

import re
from typing import Iterable, List, Optional

from plugctl.core.index.models import Plugin

SEPARATOR = " | "

PAGE_HEADER = """## Available kubectl plugins

To install these kubectl plugins, run `plugctl install PLUGIN_NAME`.

The following plugins are currently available in the index. Note that this
table may be outdated; run `plugctl overview --plugins-dir DIR` against a
fresh index checkout to regenerate it.
"""

PAGE_FOOTER = """
---

_This page is generated by running `plugctl overview`._
"""

_GITHUB_REPO_PATTERN = re.compile(r".*github\.com/([^/]+/[^/#]+)")

# Homepages that are not on github.com but belong to a known repository
KNOWN_HOMEPAGES = {
    "https://sigs.k8s.io/krew": "kubernetes-sigs/krew",
    "https://kubernetes.github.io/ingress-nginx/kubectl-plugin/": "kubernetes/ingress-nginx",
    "https://kudo.dev/": "kudobuilder/kudo",
}


def find_repo(homepage: str) -> Optional[str]:
    """owner/repo for a homepage, or None"""
    match = _GITHUB_REPO_PATTERN.match(homepage)
    if match:
        return match.group(1)
    return KNOWN_HOMEPAGES.get(homepage)


def make_github_shield(homepage: str) -> str:
    repo = find_repo(homepage)
    if not repo:
        return ""
    return f"![GitHub stars](https://img.shields.io/github/stars/{repo}.svg?label=stars&logo=github)"


def _row(*cols: str) -> str:
    return SEPARATOR.join(cols)


def table_row(plugin: Plugin) -> str:
    name = plugin.name
    homepage = plugin.spec.homepage
    if homepage:
        name = f"[{name.strip()}]({homepage})"
    description = plugin.spec.short_description.strip()
    return _row(name, description, make_github_shield(homepage))


def render_overview(plugins: Iterable[Plugin]) -> str:
    """
    Render the overview page

    Args:
        plugins: Manifests, rendered in the given order

    Returns:
        Markdown text
    """
    lines: List[str] = [PAGE_HEADER]
    lines.append(_row("Name", "Description", "Stars"))
    lines.append(_row("----", "-----------", "-----"))
    lines.extend(table_row(plugin) for plugin in plugins)
    lines.append(PAGE_FOOTER)
    return "\n".join(lines)
