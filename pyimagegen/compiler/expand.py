"""Shell-style placeholder expansion for env and label values.

Supported forms: ``$NAME``, ``${NAME}``, ``${NAME:-word}``,
``${NAME-word}``, ``${NAME:+word}`` and ``${NAME+word}``. ``\\$``
produces a literal dollar sign. Names missing from the mapping expand
to the empty string.
"""

import re
from collections.abc import Mapping

from pyimagegen.errors import PlaceholderError

NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
BRACED_RE = re.compile(r"(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?:(?P<op>:?[-+])(?P<word>.*))?", re.S)


def _closing_brace(value: str, start: int) -> int:
    depth = 1
    i = start
    while i < len(value):
        if value.startswith("${", i):
            depth += 1
            i += 2
            continue
        if value[i] == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise PlaceholderError(f"Unterminated placeholder in '{value}'", value)


def _expand_braced(body: str, mapping: Mapping[str, str], original: str) -> str:
    match = BRACED_RE.fullmatch(body)
    if match is None:
        raise PlaceholderError(f"Unsupported placeholder '${{{body}}}'", original)

    name, op, word = match.group("name"), match.group("op"), match.group("word")
    value = mapping.get(name)
    if op is None:
        return value or ""
    if op == ":-":
        return value if value else expand_placeholders(word, mapping)
    if op == "-":
        return value if value is not None else expand_placeholders(word, mapping)
    if op == ":+":
        return expand_placeholders(word, mapping) if value else ""
    return expand_placeholders(word, mapping) if value is not None else ""


def expand_placeholders(value: str, mapping: Mapping[str, str]) -> str:
    """Expand shell-style placeholders in a value.

    Args:
        value: Text containing placeholders.
        mapping: Placeholder values (build arguments).

    Returns:
        The expanded text.

    Raises:
        PlaceholderError: If a placeholder is unterminated or unsupported.
    """
    out: list[str] = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == "\\" and value.startswith("$", i + 1):
            out.append("$")
            i += 2
        elif ch != "$":
            out.append(ch)
            i += 1
        elif value.startswith("{", i + 1):
            end = _closing_brace(value, i + 2)
            out.append(_expand_braced(value[i + 2 : end], mapping, value))
            i = end + 1
        elif match := NAME_RE.match(value, i + 1):
            out.append(mapping.get(match.group(0), ""))
            i = match.end()
        else:
            out.append("$")
            i += 1
    return "".join(out)


__all__ = ["expand_placeholders"]
