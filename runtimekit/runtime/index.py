"""
Release indexes for Node.js, Bun and Deno.

Resolution consumes a read-only :class:`VersionIndex`. Two implementations
are provided:

- :class:`VersionIndexClient` fetches the official indexes over HTTP
  (nodejs.org/dist/index.json and the GitHub releases of oven-sh/bun and
  denoland/deno) and memoizes each runtime's list for the client lifetime.
- :class:`StaticVersionIndex` serves a fixed list, for tests and offline use.

Usage:
    index = VersionIndexClient(token=os.environ.get("GITHUB_TOKEN"))
    entries = index.releases(Runtime.NODE)
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import requests

from runtimekit.core.download import RetryPolicy, fetch_json
from runtimekit.core.exceptions import DownloadError
from runtimekit.runtime.versions import SEMVER_RE, ReleaseEntry, Runtime, strip_v_prefix

logger = logging.getLogger(__name__)

NODE_INDEX_URL = "https://nodejs.org/dist/index.json"
GITHUB_API_URL = "https://api.github.com"

# runtime -> (owner/repo, tag prefix)
GITHUB_RELEASE_REPOS = {
    Runtime.BUN: ("oven-sh/bun", "bun-v"),
    Runtime.DENO: ("denoland/deno", "v"),
}

RELEASES_PER_PAGE = 100
MAX_RELEASE_PAGES = 10


class VersionIndex(ABC):
    """Read-only view of the published releases of each runtime."""

    @abstractmethod
    def releases(self, runtime: Runtime) -> List[ReleaseEntry]:
        """
        List every known release of a runtime.

        Raises:
            DownloadError: If the index cannot be fetched
        """
        pass


class StaticVersionIndex(VersionIndex):
    """
    Index backed by fixed data.

    Example:
        >>> index = StaticVersionIndex({
        ...     Runtime.NODE: [ReleaseEntry("20.11.0", True, "iron"), "21.6.0"],
        ... })
    """

    def __init__(self, releases: Mapping[Runtime, Iterable[Union[ReleaseEntry, str]]]):
        self._releases: Dict[Runtime, List[ReleaseEntry]] = {}
        for runtime, entries in releases.items():
            self._releases[Runtime(runtime)] = [
                entry if isinstance(entry, ReleaseEntry) else ReleaseEntry(strip_v_prefix(entry))
                for entry in entries
            ]

    def releases(self, runtime: Runtime) -> List[ReleaseEntry]:
        return list(self._releases.get(Runtime(runtime), []))


def parse_node_index(data: Any) -> List[ReleaseEntry]:
    """
    Parse nodejs.org/dist/index.json.

    Each item carries ``version`` ('v20.11.0') and ``lts`` (false or the LTS
    codename, e.g. 'Iron').

    Raises:
        DownloadError: If the document is not a list
    """
    if not isinstance(data, list):
        raise DownloadError(f"Unexpected Node.js index format from {NODE_INDEX_URL}", url=NODE_INDEX_URL)

    entries = []
    for item in data:
        if not isinstance(item, dict) or not isinstance(item.get("version"), str):
            continue
        version = strip_v_prefix(item["version"])
        if not SEMVER_RE.match(version):
            logger.debug(f"Skipping unparseable Node.js version {item['version']!r}")
            continue
        lts = item.get("lts")
        is_lts = isinstance(lts, str) and bool(lts)
        entries.append(ReleaseEntry(version, is_lts, lts.lower() if is_lts else ""))
    return entries


def parse_github_releases(data: Any, tag_prefix: str) -> List[ReleaseEntry]:
    """
    Parse one page of the GitHub releases API.

    Drafts, pre-releases and tags without ``tag_prefix`` are skipped.
    """
    if not isinstance(data, list):
        raise DownloadError("Unexpected GitHub releases response format")

    entries = []
    for release in data:
        if not isinstance(release, dict):
            continue
        if release.get("draft") or release.get("prerelease"):
            continue
        tag = release.get("tag_name") or ""
        if not tag.startswith(tag_prefix):
            continue
        version = tag[len(tag_prefix):]
        match = SEMVER_RE.match(version)
        if not match:
            continue
        entries.append(ReleaseEntry(version, False, f"{match.group(1)}.{match.group(2)}"))
    return entries


class VersionIndexClient(VersionIndex):
    """
    Fetches release indexes over HTTP, each at most once per client.

    Args:
        token: GitHub token for the releases API (default: $GITHUB_TOKEN)
        timeout: Per-request timeout in seconds
        policy: Retry policy for every request
        session: Optional requests session
        max_pages: Upper bound on GitHub release pages fetched per runtime
    """

    def __init__(
        self,
        token: Optional[str] = None,
        timeout: float = 30,
        policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        max_pages: int = MAX_RELEASE_PAGES,
    ):
        self.token = token if token is not None else os.environ.get("GITHUB_TOKEN", "")
        self.timeout = timeout
        self.policy = policy
        self.session = session
        self.max_pages = max_pages
        self._memo: Dict[Runtime, List[ReleaseEntry]] = {}
        self._lock = threading.Lock()

    def releases(self, runtime: Runtime) -> List[ReleaseEntry]:
        runtime = Runtime(runtime)
        with self._lock:
            if runtime not in self._memo:
                if runtime is Runtime.NODE:
                    self._memo[runtime] = self._fetch_node()
                else:
                    self._memo[runtime] = self._fetch_github(runtime)
                logger.debug(f"Loaded {len(self._memo[runtime])} {runtime} releases")
            return list(self._memo[runtime])

    def _fetch_node(self) -> List[ReleaseEntry]:
        logger.info("Fetching Node.js release index")
        data = fetch_json(
            NODE_INDEX_URL, timeout=self.timeout, policy=self.policy, session=self.session
        )
        return parse_node_index(data)

    def _github_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _fetch_github(self, runtime: Runtime) -> List[ReleaseEntry]:
        repo, tag_prefix = GITHUB_RELEASE_REPOS[runtime]
        logger.info(f"Fetching {runtime.display_name} releases from {repo}")

        entries: List[ReleaseEntry] = []
        for page in range(1, self.max_pages + 1):
            url = (
                f"{GITHUB_API_URL}/repos/{repo}/releases"
                f"?per_page={RELEASES_PER_PAGE}&page={page}"
            )
            data = fetch_json(
                url,
                headers=self._github_headers(),
                timeout=self.timeout,
                policy=self.policy,
                session=self.session,
            )
            entries.extend(parse_github_releases(data, tag_prefix))
            if len(data) < RELEASES_PER_PAGE:
                break
        return entries


__all__ = [
    "NODE_INDEX_URL",
    "GITHUB_API_URL",
    "GITHUB_RELEASE_REPOS",
    "VersionIndex",
    "StaticVersionIndex",
    "VersionIndexClient",
    "parse_node_index",
    "parse_github_releases",
]
