"""
Unit tests for version resolution.
"""

import pytest

from runtimekit.core.exceptions import VersionNotFoundError
from runtimekit.runtime.index import StaticVersionIndex
from runtimekit.runtime.resolver import VersionResolver, read_version_file
from runtimekit.runtime.versions import (
    SOURCE_DEFAULT,
    SOURCE_INPUT,
    SOURCE_VERSION_FILE,
    ReleaseEntry,
    Runtime,
    RuntimeSpec,
)


@pytest.fixture
def resolver(release_index):
    return VersionResolver(release_index)


class TestMatch:
    """Test specifier matching."""

    @pytest.mark.parametrize(
        "specifier, expected",
        [
            ("20.9.0", "20.9.0"),
            ("v20.9.0", "20.9.0"),
            ("20", "20.18.1"),
            ("20.x", "20.18.1"),
            ("20.9", "20.9.0"),
            ("20.10.x", "20.10.0"),
            ("lts", "22.12.0"),
            ("lts/*", "22.12.0"),
            ("lts/iron", "20.18.1"),
            ("LTS/Hydrogen", "18.20.5"),
            ("latest", "23.3.0"),
            ("current", "23.3.0"),
            ("*", "23.3.0"),
        ],
    )
    def test_node_specifiers(self, resolver, specifier, expected):
        """Test Node.js specifiers pick the highest match."""
        assert resolver.match(Runtime.NODE, specifier) == expected

    def test_numeric_not_lexical(self, resolver):
        """Test 20.10.0 beats 20.9.0."""
        assert resolver.match(Runtime.NODE, "20.10") == "20.10.0"

    def test_prerelease_not_selected_by_alias(self, resolver):
        """Test aliases skip pre-releases."""
        assert resolver.match(Runtime.NODE, "latest") == "23.3.0"
        assert resolver.match(Runtime.BUN, "latest") == "1.1.38"

    def test_partial_skips_prerelease_only_line(self, release_index):
        """Test a major with only a pre-release does not match."""
        resolver = VersionResolver(release_index)

        with pytest.raises(VersionNotFoundError):
            resolver.match(Runtime.NODE, "24")

    def test_bun_and_deno(self, resolver):
        """Test other runtimes resolve from their own index."""
        assert resolver.match(Runtime.BUN, "1.1") == "1.1.38"
        assert resolver.match(Runtime.DENO, "2.x") == "2.1.4"
        assert resolver.match(Runtime.DENO, "1") == "1.46.3"

    def test_exact_not_published(self, resolver):
        """Test an unpublished exact version fails."""
        with pytest.raises(VersionNotFoundError, match="not published"):
            resolver.match(Runtime.NODE, "20.99.0")

    def test_unknown_codename(self, resolver):
        """Test an unknown LTS codename fails."""
        with pytest.raises(VersionNotFoundError, match="lts/argon"):
            resolver.match(Runtime.NODE, "lts/argon")

    def test_unrecognized_specifier(self, resolver):
        """Test garbage specifiers fail."""
        with pytest.raises(VersionNotFoundError, match="unrecognized"):
            resolver.match(Runtime.NODE, "twenty")

    def test_no_matching_major(self, resolver):
        """Test a major with no releases fails."""
        with pytest.raises(VersionNotFoundError):
            resolver.match(Runtime.NODE, "16")

    def test_non_semantic_entries_ignored(self):
        """Test malformed index entries are skipped by ranges and aliases."""
        resolver = VersionResolver(
            StaticVersionIndex({Runtime.BUN: ["1.1.38", "canary", "1.1", "1.0.36"]})
        )

        assert resolver.match(Runtime.BUN, "1") == "1.1.38"
        assert resolver.match(Runtime.BUN, "latest") == "1.1.38"


class TestResolveLtsLine:
    """Test resolution against a small index with a newer non-LTS release."""

    @pytest.fixture
    def resolver(self):
        return VersionResolver(
            StaticVersionIndex(
                {
                    Runtime.NODE: [
                        ReleaseEntry("20.9.0", False, ""),
                        ReleaseEntry("20.19.5", True, "iron"),
                        ReleaseEntry("18.20.0", True, "hydrogen"),
                    ]
                }
            )
        )

    @pytest.mark.parametrize("specifier", ["lts", "20"])
    def test_resolves_to_highest_lts(self, resolver, specifier):
        """Test both the alias and the major pick 20.19.5."""
        resolved = resolver.resolve(RuntimeSpec(Runtime.NODE, specifier, source=SOURCE_INPUT))

        assert resolved.concrete_version == "20.19.5"
        assert resolved.source == SOURCE_INPUT


class TestResolve:
    """Test resolving specs."""

    def test_input_specifier(self, resolver):
        """Test an explicit specifier keeps its source."""
        resolved = resolver.resolve(RuntimeSpec(Runtime.NODE, "20"))

        assert resolved.concrete_version == "20.18.1"
        assert resolved.requested_specifier == "20"
        assert resolved.source == SOURCE_INPUT

    def test_version_file(self, resolver, project_dir):
        """Test an empty specifier reads the version file."""
        nvmrc = project_dir / ".nvmrc"
        nvmrc.write_text("# pinned\nv18\n")

        resolved = resolver.resolve(RuntimeSpec(Runtime.NODE, "", nvmrc))

        assert resolved.concrete_version == "18.20.5"
        assert resolved.source == SOURCE_VERSION_FILE

    def test_specifier_beats_version_file(self, resolver, project_dir):
        """Test an explicit specifier wins over the file."""
        nvmrc = project_dir / ".nvmrc"
        nvmrc.write_text("18\n")

        resolved = resolver.resolve(RuntimeSpec(Runtime.NODE, "22", nvmrc))

        assert resolved.concrete_version == "22.12.0"

    def test_missing_version_file(self, resolver, project_dir):
        """Test an unreadable version file fails."""
        with pytest.raises(VersionNotFoundError, match="cannot read version file"):
            resolver.resolve(RuntimeSpec(Runtime.NODE, "", project_dir / ".nvmrc"))

    def test_empty_version_file(self, resolver, project_dir):
        """Test an empty version file fails."""
        nvmrc = project_dir / ".nvmrc"
        nvmrc.write_text("\n\n")

        with pytest.raises(VersionNotFoundError, match="empty"):
            resolver.resolve(RuntimeSpec(Runtime.NODE, "", nvmrc))

    def test_node_default(self, resolver):
        """Test Node.js defaults to the newest LTS."""
        resolved = resolver.resolve(RuntimeSpec(Runtime.NODE))

        assert resolved.concrete_version == "22.12.0"
        assert resolved.source == SOURCE_DEFAULT

    def test_bun_without_default(self, resolver):
        """Test Bun has no default."""
        with pytest.raises(VersionNotFoundError, match="no default"):
            resolver.resolve(RuntimeSpec(Runtime.BUN))

    def test_defaults_override(self, release_index):
        """Test defaults supplied by the package manager."""
        resolver = VersionResolver(release_index, defaults={Runtime.BUN: "1.0"})

        assert resolver.resolve(RuntimeSpec(Runtime.BUN)).concrete_version == "1.0.36"

    def test_empty_index(self):
        """Test an empty index never falls back."""
        resolver = VersionResolver(StaticVersionIndex({}))

        with pytest.raises(VersionNotFoundError):
            resolver.resolve(RuntimeSpec(Runtime.NODE, "20"))


class TestReadVersionFile:
    """Test version file parsing."""

    def test_first_meaningful_line(self, temp_dir):
        """Test comments and blank lines are skipped."""
        path = temp_dir / ".node-version"
        path.write_text("\n# comment\n  v20.11.0  \n22\n")

        assert read_version_file(path) == "20.11.0"
