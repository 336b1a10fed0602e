"""
Unit tests for release indexes.
"""

import pytest
import responses

from runtimekit.core.download import RetryPolicy
from runtimekit.core.exceptions import DownloadError
from runtimekit.runtime.index import (
    GITHUB_API_URL,
    NODE_INDEX_URL,
    StaticVersionIndex,
    VersionIndexClient,
    parse_github_releases,
    parse_node_index,
)
from runtimekit.runtime.versions import ReleaseEntry, Runtime

BUN_RELEASES_URL = f"{GITHUB_API_URL}/repos/oven-sh/bun/releases"
DENO_RELEASES_URL = f"{GITHUB_API_URL}/repos/denoland/deno/releases"


class TestParsers:
    """Test index document parsing."""

    def test_parse_node_index(self):
        """Test LTS codenames are lowercased and the v prefix dropped."""
        data = [
            {"version": "v23.3.0", "lts": False},
            {"version": "v22.12.0", "lts": "Jod"},
            {"version": "nightly"},
            "garbage",
        ]

        assert parse_node_index(data) == [
            ReleaseEntry("23.3.0", False, ""),
            ReleaseEntry("22.12.0", True, "jod"),
        ]

    def test_parse_node_index_rejects_non_list(self):
        """Test a non-list document raises DownloadError."""
        with pytest.raises(DownloadError, match="Unexpected Node.js index format"):
            parse_node_index({"error": "rate limited"})

    def test_parse_github_releases(self):
        """Test drafts, pre-releases and foreign tags are skipped."""
        data = [
            {"tag_name": "bun-v1.1.38", "draft": False, "prerelease": False},
            {"tag_name": "bun-v1.2.0", "draft": True},
            {"tag_name": "canary", "prerelease": True},
            {"tag_name": "v1.1.0"},
        ]

        assert parse_github_releases(data, "bun-v") == [ReleaseEntry("1.1.38", False, "1.1")]


class TestStaticVersionIndex:
    """Test the fixed index."""

    def test_accepts_strings(self):
        """Test plain version strings become entries."""
        index = StaticVersionIndex({Runtime.DENO: ["v2.1.4"]})

        assert index.releases(Runtime.DENO) == [ReleaseEntry("2.1.4")]
        assert index.releases(Runtime.BUN) == []


class TestVersionIndexClient:
    """Test fetching indexes over HTTP."""

    @responses.activate
    def test_node_index_memoized(self):
        """Test the Node.js index is fetched once per client."""
        responses.add(
            responses.GET,
            NODE_INDEX_URL,
            json=[{"version": "v20.18.1", "lts": "Iron"}, {"version": "v23.3.0", "lts": False}],
        )
        client = VersionIndexClient(token="")

        first = client.releases(Runtime.NODE)
        second = client.releases(Runtime.NODE)

        assert [entry.version for entry in first] == ["20.18.1", "23.3.0"]
        assert first == second
        assert len(responses.calls) == 1

    @responses.activate
    def test_github_token_header(self):
        """Test the GitHub token is sent as a bearer token."""
        responses.add(
            responses.GET,
            DENO_RELEASES_URL,
            json=[{"tag_name": "v2.1.4"}, {"tag_name": "v2.0.6"}],
        )
        client = VersionIndexClient(token="ghp_test")

        entries = client.releases(Runtime.DENO)

        assert [entry.version for entry in entries] == ["2.1.4", "2.0.6"]
        assert responses.calls[0].request.headers["Authorization"] == "Bearer ghp_test"

    @responses.activate
    def test_no_token_no_header(self):
        """Test no Authorization header without a token."""
        responses.add(responses.GET, BUN_RELEASES_URL, json=[{"tag_name": "bun-v1.1.38"}])

        VersionIndexClient(token="").releases(Runtime.BUN)

        assert "Authorization" not in responses.calls[0].request.headers

    @responses.activate
    def test_pagination_stops_on_short_page(self):
        """Test paging stops once a page is not full."""
        full_page = [{"tag_name": f"bun-v1.0.{n}"} for n in range(100)]
        responses.add(responses.GET, BUN_RELEASES_URL, json=full_page)
        responses.add(responses.GET, BUN_RELEASES_URL, json=[{"tag_name": "bun-v0.8.1"}])

        entries = VersionIndexClient(token="").releases(Runtime.BUN)

        assert len(entries) == 101
        assert len(responses.calls) == 2
        assert "page=2" in responses.calls[1].request.url

    @responses.activate
    def test_unreachable_index(self):
        """Test an unreachable index raises DownloadError."""
        responses.add(responses.GET, NODE_INDEX_URL, status=404)
        client = VersionIndexClient(token="", policy=RetryPolicy(max_attempts=1))

        with pytest.raises(DownloadError):
            client.releases(Runtime.NODE)
