"""Environment variable expansion for plugin-supplied paths.

Only ``$NAME`` tokens are recognised. A template referencing a variable
that is unset or empty expands to ``None`` rather than to a path with a
hole in it, so callers can drop the entry.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Iterator, Mapping

__all__ = ["expand_env", "expand_all"]

_VAR_RE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")


def expand_env(template: str, environ: Mapping[str, str] | None = None) -> str | None:
    """Expand ``$VAR`` tokens in template.

    Args:
        template: Path template, e.g. "$HOME/.bun/install/global"
        environ: Variables to expand against (default: os.environ)

    Returns:
        Expanded string, or None if any referenced variable is unset or empty
    """
    env = os.environ if environ is None else environ
    missing = False

    def substitute(match: re.Match[str]) -> str:
        nonlocal missing
        value = env.get(match.group(1), "")
        if not value:
            missing = True
        return value

    expanded = _VAR_RE.sub(substitute, template)
    return None if missing else expanded


def expand_all(
    templates: Iterable[str], environ: Mapping[str, str] | None = None
) -> Iterator[str]:
    """Expand each template, dropping the ones that reference unset variables."""
    for template in templates:
        expanded = expand_env(template, environ)
        if expanded is not None:
            yield expanded
