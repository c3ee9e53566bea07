"""Placeholder extraction and substitution for ``{{name}}`` templates.

Deliberately narrow: no escaping, filters or expressions. A placeholder is
anything between ``{{`` and the next ``}}`` that contains no ``}``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

PLACEHOLDER_PATTERN = re.compile(r"{{([^}]+)}}")


def extract_variables(text: str | None) -> list[str]:
    """Return the distinct placeholder names in ``text``, in first-seen order."""
    if not text:
        return []
    return list(dict.fromkeys(PLACEHOLDER_PATTERN.findall(text)))


def extract_all(texts: Iterable[str | None]) -> list[str]:
    """Union of the placeholders of several templates, in first-seen order."""
    names: dict[str, None] = {}
    for text in texts:
        for name in extract_variables(text):
            names[name] = None
    return list(names)


def render_template(text: str, values: Mapping[str, str]) -> str:
    """Replace every ``{{name}}`` occurrence for each name in ``values``.

    Placeholders without a value are left verbatim. Values are inserted
    literally, so backslashes or ``{{...}}`` inside a value are not expanded.
    """
    if not values:
        return text
    return PLACEHOLDER_PATTERN.sub(lambda m: values.get(m.group(1), m.group(0)), text)
