"""Rewrite client literal syntax into Python values.

The client writes keywords as ``:name``, false and the empty list as ``nil``
and true as ``t``. Command handlers receive Python forms instead: a quoted
bare symbol, ``None`` and ``True``.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from sexpdata import Quoted, Symbol

KEYWORD_MARKER = ":"
NIL = "nil"
TRUE = "t"


def normalize(value: Any) -> Any:
    """Recursively normalize a decoded request value.

    Normalizing an already normalized value returns an equal value. A
    quoted bare symbol is already a keyword and is left as it is, so ``:t``
    and ``:nil`` keep their names.
    """
    if isinstance(value, list):
        return [normalize(item) for item in value]
    if isinstance(value, Quoted):
        if isinstance(value.x, Symbol):
            return value
        return Quoted(normalize(value.x))
    if isinstance(value, Symbol):
        name = str(value)
        if name == NIL:
            return None
        if name == TRUE:
            return True
        if name.startswith(KEYWORD_MARKER) and len(name) > 1:
            return Quoted(Symbol(name[1:]))
    return value


def keyword(name: str) -> Symbol:
    """Build a keyword symbol for an outgoing message."""
    return Symbol(KEYWORD_MARKER + name)


def keyword_name(value: Any) -> Optional[str]:
    """Return the bare name of a normalized keyword, or None."""
    if isinstance(value, Quoted):
        inner = value.x
        if isinstance(inner, Symbol):
            return str(inner)
    return None


def symbol_name(value: Any) -> Optional[str]:
    """Return the text of a symbol or string argument."""
    if isinstance(value, (Symbol, str)):
        return str(value)
    name = keyword_name(value)
    if name is not None:
        return name
    return None


def plist_options(args: Sequence[Any]) -> tuple[list[Any], dict[str, Any]]:
    """Split normalized arguments into positional values and keyword options.

    Everything before the first keyword is positional; the rest is read as
    ``:key value`` pairs.
    """
    positional: list[Any] = []
    options: dict[str, Any] = {}
    index = 0
    while index < len(args) and keyword_name(args[index]) is None:
        positional.append(args[index])
        index += 1
    while index < len(args):
        name = keyword_name(args[index])
        value = args[index + 1] if index + 1 < len(args) else None
        if name is not None:
            options[name] = value
        index += 2
    return positional, options
