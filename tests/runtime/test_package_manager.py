"""
Unit tests for package manager detection and activation.
"""

import json
from unittest.mock import patch

import pytest

from runtimekit.core.exceptions import PackageManagerConfigError
from runtimekit.runtime.package_manager import (
    PackageManagerInfo,
    active_package_managers,
    activate_package_manager,
    corepack_commands,
    dependency_install_command,
    detect_package_manager,
    parse_version_output,
    probe_version,
)
from runtimekit.runtime.versions import Runtime


def _write_package_json(project_dir, data):
    (project_dir / "package.json").write_text(json.dumps(data))


class TestDetectPackageManager:
    """Test the detection tiers."""

    def test_explicit_input_wins(self, project_dir):
        """Test an explicit name beats package.json and lockfiles."""
        _write_package_json(project_dir, {"packageManager": "yarn@4.5.0"})
        (project_dir / "bun.lock").write_text("")

        info = detect_package_manager(project_dir, "PNPM", "v9.15.0")

        assert info == PackageManagerInfo("pnpm", "9.15.0", "input")

    def test_explicit_unknown_name(self, project_dir):
        """Test unknown explicit names are rejected."""
        with pytest.raises(PackageManagerConfigError, match="Unknown package manager 'cnpm'"):
            detect_package_manager(project_dir, "cnpm")

    def test_explicit_range_rejected(self, project_dir):
        """Test explicit ranges are rejected."""
        with pytest.raises(PackageManagerConfigError, match="absolute version"):
            detect_package_manager(project_dir, "pnpm", "^9")

    def test_dev_engines_beats_package_manager_field(self, project_dir):
        """Test devEngines.packageManager wins over the corepack field."""
        _write_package_json(
            project_dir,
            {
                "packageManager": "yarn@4.5.0",
                "devEngines": {"packageManager": {"name": "pnpm", "version": "9.15.0"}},
            },
        )

        info = detect_package_manager(project_dir)

        assert info == PackageManagerInfo("pnpm", "9.15.0", "devEngines")

    def test_package_manager_field(self, project_dir):
        """Test the corepack field drops its hash."""
        _write_package_json(project_dir, {"packageManager": "yarn@4.5.0+sha512.deadbeef"})

        info = detect_package_manager(project_dir)

        assert info == PackageManagerInfo("yarn", "4.5.0", "packageManager-field")

    @pytest.mark.parametrize(
        "lockfiles, expected",
        [
            (["package-lock.json"], "npm"),
            (["yarn.lock"], "yarn"),
            (["pnpm-lock.yaml", "package-lock.json"], "pnpm"),
            (["bun.lockb"], "bun"),
            (["deno.lock", "package-lock.json"], "deno"),
        ],
    )
    def test_lockfile_heuristic(self, project_dir, lockfiles, expected):
        """Test lockfile precedence."""
        for name in lockfiles:
            (project_dir / name).write_text("")

        info = detect_package_manager(project_dir)

        assert info.name == expected
        assert info.source == "lockfile-heuristic"
        assert info.version == ""

    def test_default_npm(self, project_dir, caplog):
        """Test npm is the default, with a warning."""
        info = detect_package_manager(project_dir)

        assert info == PackageManagerInfo("npm", "", "default")
        assert "defaulting to npm" in caplog.text

    def test_version_without_name_warns(self, project_dir, caplog):
        """Test a lone package-manager-version is reported and not applied."""
        (project_dir / "pnpm-lock.yaml").write_text("")

        info = detect_package_manager(project_dir, explicit_version="9.15.0")

        assert info == PackageManagerInfo("pnpm", "", "lockfile-heuristic")
        assert "Ignoring package-manager-version '9.15.0'" in caplog.text


class TestPackageManagerInfo:
    """Test PackageManagerInfo helpers."""

    def test_runtime(self):
        """Test bun and deno map to their runtime."""
        assert PackageManagerInfo("bun", "", "input").runtime is Runtime.BUN
        assert PackageManagerInfo("pnpm", "", "input").runtime is None

    def test_str(self):
        """Test the name@version form."""
        assert str(PackageManagerInfo("pnpm", "9.15.0", "input")) == "pnpm@9.15.0"
        assert str(PackageManagerInfo("npm", "", "default")) == "npm"

    def test_active_package_managers(self):
        """Test installed bun and deno join the primary."""
        primary = PackageManagerInfo("npm", "", "default")

        assert active_package_managers(primary, [Runtime.NODE, Runtime.DENO, Runtime.BUN]) == [
            "npm",
            "deno",
            "bun",
        ]
        assert active_package_managers(PackageManagerInfo("bun", "", "input"), [Runtime.BUN]) == [
            "bun"
        ]


class TestProbing:
    """Test version probing."""

    @pytest.mark.parametrize(
        "output, expected",
        [
            ("10.9.2", "10.9.2"),
            ("v1.1.38", "1.1.38"),
            ("deno 2.1.4 (stable, release, x86_64-unknown-linux-gnu)\nv8 13.0", "2.1.4"),
            ("command not found", ""),
        ],
    )
    def test_parse_version_output(self, output, expected):
        """Test versions are extracted from --version output."""
        assert parse_version_output(output) == expected

    def test_probe_fills_version(self):
        """Test an unknown version is probed."""
        info = PackageManagerInfo("npm", "", "default")

        with patch("runtimekit.runtime.package_manager.query_command", return_value="10.9.2") as query:
            probed = probe_version(info)

        assert probed.version == "10.9.2"
        assert query.call_args[0][0] == ["npm", "--version"]

    def test_probe_keeps_known_version(self):
        """Test a known version is not probed."""
        info = PackageManagerInfo("pnpm", "9.15.0", "input")

        with patch("runtimekit.runtime.package_manager.query_command") as query:
            assert probe_version(info) is info

        query.assert_not_called()

    def test_probe_failure(self):
        """Test a failed probe leaves the version empty."""
        info = PackageManagerInfo("yarn", "", "lockfile-heuristic")

        with patch("runtimekit.runtime.package_manager.query_command", return_value=None):
            assert probe_version(info).version == ""


class TestActivation:
    """Test corepack activation."""

    def test_corepack_commands(self):
        """Test pnpm and yarn are activated through corepack."""
        assert corepack_commands(PackageManagerInfo("yarn", "", "lockfile-heuristic")) == [
            ["corepack", "enable"],
            ["corepack", "prepare", "yarn@stable", "--activate"],
        ]
        assert corepack_commands(PackageManagerInfo("pnpm", "9.15.0", "input"))[1][2] == "pnpm@9.15.0"
        assert corepack_commands(PackageManagerInfo("npm", "", "default")) == []

    def test_activate_runs_commands(self, project_dir):
        """Test activation runs each corepack command in the project."""
        with patch("runtimekit.runtime.package_manager.run_command") as run:
            activate_package_manager(PackageManagerInfo("pnpm", "", "input"), project_dir)

        assert [c[0][0] for c in run.call_args_list] == [
            ["corepack", "enable"],
            ["corepack", "prepare", "pnpm@latest", "--activate"],
        ]
        assert run.call_args.kwargs["cwd"] == project_dir


class TestDependencyInstallCommand:
    """Test dependency install commands."""

    @pytest.mark.parametrize(
        "name, lockfile, expected",
        [
            ("npm", "package-lock.json", ["npm", "ci"]),
            ("npm", None, ["npm", "install"]),
            ("pnpm", "pnpm-lock.yaml", ["pnpm", "install", "--frozen-lockfile"]),
            ("pnpm", None, ["pnpm", "install"]),
            ("yarn", "yarn.lock", ["yarn", "install", "--immutable"]),
            ("yarn", None, ["yarn", "install", "--no-immutable"]),
            ("bun", "bun.lock", ["bun", "install", "--frozen-lockfile"]),
            ("bun", None, ["bun", "install"]),
            ("deno", None, ["deno", "install"]),
        ],
    )
    def test_commands(self, project_dir, name, lockfile, expected):
        """Test frozen installs only with a lockfile."""
        if lockfile:
            (project_dir / lockfile).write_text("")

        assert dependency_install_command(name, project_dir) == expected

    def test_unknown(self, project_dir):
        """Test unknown package managers are rejected."""
        with pytest.raises(PackageManagerConfigError):
            dependency_install_command("cnpm", project_dir)
