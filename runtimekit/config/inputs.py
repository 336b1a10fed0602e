"""
Normalization of list-valued inputs.

Inputs such as ``additional-lockfiles`` and ``additional-cache-paths`` come
from YAML, CLI flags or action inputs, and users write lists in whatever shape
their workflow file makes convenient. All of the following produce
``["a", "b"]``::

    ["a", "b"]          JSON array
    a\\nb                newline-separated
    * a\\n* b            bullet list
    - a\\n- b            dash list
    a, b                comma-separated

and a bare ``a`` is a single item.
"""

import json
import re
from typing import Iterable, List, Union

LIST_MARKER_RE = re.compile(r"^\s*[-*]\s+")

TRUE_VALUES = ("true", "yes", "on", "1")
FALSE_VALUES = ("false", "no", "off", "0")


def parse_list_input(value: Union[str, Iterable[str], None]) -> List[str]:
    """
    Parse a list given in any of the supported textual forms.

    A value starting with '[' is tried as a JSON array first; text containing
    newlines is split into lines with leading '-' or '*' markers removed;
    anything else is split on commas. Items are trimmed and empty items
    dropped. Values that are already lists (from YAML) are only cleaned.

    Example:
        >>> parse_list_input("- **/deno.lock\\n- apps/*/bun.lock")
        ['**/deno.lock', 'apps/*/bun.lock']
    """
    if value is None:
        return []
    if not isinstance(value, str):
        return [str(item).strip() for item in value if str(item).strip()]

    text = value.strip()
    if not text:
        return []

    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if str(item).strip()]

    if "\n" in text:
        items = (LIST_MARKER_RE.sub("", line).strip() for line in text.splitlines())
        return [item for item in items if item]

    return [item.strip() for item in text.split(",") if item.strip()]


def parse_bool_input(value: Union[str, bool, None], default: bool = False) -> bool:
    """
    Parse a boolean input ('true'/'false', 'yes'/'no', ...).

    Raises:
        ValueError: For any other non-empty text
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if not text:
        return default
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValueError(f"Expected a boolean value, got '{value}'")


__all__ = ["parse_list_input", "parse_bool_input"]
