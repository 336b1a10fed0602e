"""Configuration module for RuntimeKit.

This module provides layered settings (runtimekit.yaml, action inputs and
command-line flags), package.json parsing and list-input normalization.
"""

from runtimekit.config.inputs import parse_list_input, parse_bool_input
from runtimekit.config.package_json import (
    PACKAGE_MANAGER_NAMES,
    PackageManagerDeclaration,
    PackageJson,
)
from runtimekit.config.settings import (
    NetworkSettings,
    Settings,
    load_settings,
)

__all__ = [
    "parse_list_input",
    "parse_bool_input",
    "PACKAGE_MANAGER_NAMES",
    "PackageManagerDeclaration",
    "PackageJson",
    "NetworkSettings",
    "Settings",
    "load_settings",
]
