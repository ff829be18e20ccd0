"""Release listings used by the built-in plugins.

This module provides small functions for querying release sources:
- GitHub Releases API
- Zig download index

All functions take the plugin's HostFunctions, so every request goes
through the host's HTTP client (and is therefore mockable in tests).
Network failures propagate as HostNetworkError; malformed responses
raise PluginError.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tm.core.structured import StrDict, as_obj_list, as_str_dict, get_bool, get_str
from tm.plugin.pdk import PluginError
from tm.versions.spec import Exact, parse_exact

if TYPE_CHECKING:
    from tm.plugin.host import HostFunctions

__all__ = [
    "GITHUB_API",
    "ZIG_INDEX_URL",
    "GitHubRelease",
    "ReleaseList",
    "github_releases",
    "github_download_url",
    "release_list",
    "zig_index",
]

GITHUB_API = "https://api.github.com"
ZIG_INDEX_URL = "https://ziglang.org/download/index.json"


@dataclass(frozen=True, slots=True)
class GitHubRelease:
    tag: str
    prerelease: bool = False


def github_releases(host: HostFunctions, repo: str, per_page: int = 100) -> list[GitHubRelease]:
    """Fetch published releases of a repository, newest first.

    Args:
        host: Host functions of the calling plugin
        repo: Repository in "owner/repo" format (e.g., "ninja-build/ninja")
        per_page: Page size requested from the API

    Returns:
        Releases that are not drafts, in API order
    """
    url = f"{GITHUB_API}/repos/{repo}/releases?per_page={per_page}"
    items = as_obj_list(host.fetch_json(url))
    if items is None:
        raise PluginError(f"{repo}: expected a list of releases from {url}")

    releases: list[GitHubRelease] = []
    for item in items:
        table = as_str_dict(item)
        if table is None:
            continue
        tag = get_str(table, "tag_name")
        if tag is None or get_bool(table, "draft") is True:
            continue
        releases.append(GitHubRelease(tag=tag, prerelease=get_bool(table, "prerelease") is True))
    return releases


def github_download_url(repo: str, tag: str, asset: str) -> str:
    return f"https://github.com/{repo}/releases/download/{tag}/{asset}"


@dataclass(frozen=True, slots=True)
class ReleaseList:
    """Versions sorted newest first, with the newest stable one."""

    versions: tuple[str, ...]
    latest: str | None


def release_list(tagged: Iterable[tuple[str, bool]]) -> ReleaseList:
    """Sort (version, prerelease) pairs and pick the newest stable version.

    Strings that are not exact versions are dropped.
    """
    parsed: dict[Exact, bool] = {}
    for text, prerelease in tagged:
        exact = parse_exact(text)
        if exact is not None:
            parsed[exact] = prerelease or exact.is_prerelease
    ordered = sorted(parsed, reverse=True)
    latest = next((v for v in ordered if not parsed[v]), None)
    return ReleaseList(
        versions=tuple(str(v) for v in ordered),
        latest=str(latest) if latest is not None else None,
    )


def zig_index(host: HostFunctions, url: str = ZIG_INDEX_URL) -> StrDict:
    """Fetch the Zig download index.

    The index maps version keys ("0.13.0", ..., "master") to a table of
    platform entries ("x86_64-linux": {"tarball", "shasum", "size"}).
    """
    index = as_str_dict(host.fetch_json(url))
    if index is None:
        raise PluginError(f"expected a JSON object from {url}")
    return index
