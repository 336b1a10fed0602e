"""
Per-runtime download tables.

Everything that differs between Node.js, Bun and Deno installs (download URL,
archive name per platform, how the archive root is laid out and where the
executables live) is data in :data:`DISTRIBUTIONS`; the installer itself is
runtime-agnostic.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from runtimekit.core.exceptions import UnsupportedPlatformError
from runtimekit.core.platform import PlatformInfo
from runtimekit.runtime.versions import Runtime


@dataclass(frozen=True)
class Distribution:
    """
    How one runtime is published.

    Attributes:
        runtime: Runtime described by this entry
        url_template: Download URL with {version} and {asset} placeholders
        assets: Archive name template per platform string ('linux-x64', ...);
            platforms missing here are unsupported
        root_glob: Pattern matching the single top-level directory of the
            archive, or None when the archive is flat
        bin_subdirs: Directory holding the executables, relative to the root,
            per OS; '' means the root itself
        executable: Executable name without extension
        checksum_template: URL of a SHASUMS256.txt style file, if published
    """

    runtime: Runtime
    url_template: str
    assets: Dict[str, str]
    root_glob: Optional[str] = None
    bin_subdirs: Dict[str, str] = field(default_factory=dict)
    executable: str = ""
    checksum_template: Optional[str] = None

    def supports(self, platform: PlatformInfo) -> bool:
        return platform.platform_string() in self.assets

    def check_supported(self, platform: PlatformInfo) -> None:
        """
        Raises:
            UnsupportedPlatformError: If there is no build for the platform
        """
        if not self.supports(platform):
            raise UnsupportedPlatformError(self.runtime.value, platform.os, platform.arch)

    def asset_name(self, version: str, platform: PlatformInfo) -> str:
        self.check_supported(platform)
        return self.assets[platform.platform_string()].format(version=version)

    def download_url(self, version: str, platform: PlatformInfo) -> str:
        """
        Example:
            >>> DISTRIBUTIONS[Runtime.NODE].download_url("20.11.0", PlatformInfo("linux", "x64"))
            'https://nodejs.org/dist/v20.11.0/node-v20.11.0-linux-x64.tar.gz'
        """
        return self.url_template.format(
            version=version, asset=self.asset_name(version, platform)
        )

    def checksum_url(self, version: str) -> Optional[str]:
        if self.checksum_template is None:
            return None
        return self.checksum_template.format(version=version)

    def bin_subdir(self, platform: PlatformInfo) -> str:
        return self.bin_subdirs.get(platform.os, self.bin_subdirs.get("*", ""))

    def executable_name(self, platform: PlatformInfo) -> str:
        return f"{self.executable}.exe" if platform.is_windows else self.executable


NODE_DISTRIBUTION = Distribution(
    runtime=Runtime.NODE,
    url_template="https://nodejs.org/dist/v{version}/{asset}",
    assets={
        "linux-x64": "node-v{version}-linux-x64.tar.gz",
        "linux-arm64": "node-v{version}-linux-arm64.tar.gz",
        "darwin-x64": "node-v{version}-darwin-x64.tar.gz",
        "darwin-arm64": "node-v{version}-darwin-arm64.tar.gz",
        "win32-x64": "node-v{version}-win-x64.zip",
        "win32-arm64": "node-v{version}-win-arm64.zip",
    },
    root_glob="node-v*",
    bin_subdirs={"win32": "", "*": "bin"},
    executable="node",
    checksum_template="https://nodejs.org/dist/v{version}/SHASUMS256.txt",
)

BUN_DISTRIBUTION = Distribution(
    runtime=Runtime.BUN,
    url_template="https://github.com/oven-sh/bun/releases/download/bun-v{version}/{asset}",
    assets={
        "linux-x64": "bun-linux-x64.zip",
        "linux-arm64": "bun-linux-aarch64.zip",
        "darwin-x64": "bun-darwin-x64.zip",
        "darwin-arm64": "bun-darwin-aarch64.zip",
        "win32-x64": "bun-windows-x64.zip",
    },
    root_glob="bun-*",
    executable="bun",
    checksum_template=(
        "https://github.com/oven-sh/bun/releases/download/bun-v{version}/SHASUMS256.txt"
    ),
)

DENO_DISTRIBUTION = Distribution(
    runtime=Runtime.DENO,
    url_template="https://github.com/denoland/deno/releases/download/v{version}/{asset}",
    assets={
        "linux-x64": "deno-x86_64-unknown-linux-gnu.zip",
        "linux-arm64": "deno-aarch64-unknown-linux-gnu.zip",
        "darwin-x64": "deno-x86_64-apple-darwin.zip",
        "darwin-arm64": "deno-aarch64-apple-darwin.zip",
        "win32-x64": "deno-x86_64-pc-windows-msvc.zip",
        "win32-arm64": "deno-aarch64-pc-windows-msvc.zip",
    },
    executable="deno",
)

DISTRIBUTIONS: Dict[Runtime, Distribution] = {
    Runtime.NODE: NODE_DISTRIBUTION,
    Runtime.BUN: BUN_DISTRIBUTION,
    Runtime.DENO: DENO_DISTRIBUTION,
}


def get_distribution(runtime: Runtime) -> Distribution:
    return DISTRIBUTIONS[Runtime(runtime)]


def parse_shasums(content: str) -> Dict[str, str]:
    """
    Parse a SHASUMS256.txt file into {file name: sha256}.

    Example:
        >>> parse_shasums("abc123  node-v20.11.0-linux-x64.tar.gz\\n")
        {'node-v20.11.0-linux-x64.tar.gz': 'abc123'}
    """
    sums = {}
    for line in content.splitlines():
        parts = line.split()
        if len(parts) == 2:
            digest, name = parts
            sums[name.lstrip("*")] = digest.lower()
    return sums


__all__ = [
    "Distribution",
    "DISTRIBUTIONS",
    "NODE_DISTRIBUTION",
    "BUN_DISTRIBUTION",
    "DENO_DISTRIBUTION",
    "get_distribution",
    "parse_shasums",
]
