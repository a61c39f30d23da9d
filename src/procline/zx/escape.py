"""Command template escaping.

Turns a ``str.format`` style template plus positional arguments into one
command line, wrapping each string argument in double quotes.
"""

from __future__ import annotations

from typing import Any

__all__ = ["escape", "quote"]


def quote(value: str) -> str:
    """Wrap a value in double quotes, escaping embedded double quotes."""
    return '"' + value.replace('"', '\\"') + '"'


def escape(template: str, *args: Any) -> str:
    """Format a command template with quoted string arguments.

    Args:
        template: Template with ``{}`` / ``{0}`` placeholders
        *args: Positional values; ``str`` values are quoted, others are
            formatted as-is

    Returns:
        The command line. A template that is already wrapped in double
        quotes is formatted without quoting the arguments.

    Example:
        escape("git commit -m {}", 'say "hi"')
        # 'git commit -m "say \\"hi\\""'
    """
    if len(template) >= 2 and template.startswith('"') and template.endswith('"'):
        return template.format(*args)

    quoted = [quote(arg) if isinstance(arg, str) else arg for arg in args]
    return template.format(*quoted)
