"""Adapter over the host Python interpreter.

Everything the protocol engine needs from "the runtime" lives here:
evaluation, namespaces, argument lists, documentation, completion and symbol
search. Handlers in ``commands`` only format what this module returns.
"""

from __future__ import annotations

import ast
import builtins
import contextlib
import inspect
import itertools
import keyword
import linecache
import logging
import pydoc
import re
import sys
from pathlib import Path
from typing import Any, Iterator, Optional, TextIO

logger = logging.getLogger(__name__)

USER_MODULE = "__swank__"

# Tags used by symbol search, in the order they are reported.
TAG_VARIABLE = "variable"
TAG_FUNCTION = "function"
TAG_GENERIC_FUNCTION = "generic-function"
TAG_MACRO = "macro"
TAG_SPECIAL_OPERATOR = "special-operator"
TAG_SETF = "setf"
TAG_CLASS = "class"

_FUZZY_FLAGS = {
    TAG_FUNCTION: "f",
    TAG_GENERIC_FUNCTION: "g",
    TAG_SETF: "a",
    TAG_CLASS: "c",
    TAG_MACRO: "m",
    TAG_SPECIAL_OPERATOR: "s",
    TAG_VARIABLE: "b",
}

_SOFT_KEYWORDS = frozenset(getattr(keyword, "softkwlist", ()))


@contextlib.contextmanager
def bound_streams(
    stdout: Optional[TextIO],
    stdin: Optional[TextIO],
    stderr: Optional[TextIO] = None,
) -> Iterator[None]:
    """Bind the interpreter's standard streams while evaluated code runs."""
    saved = sys.stdout, sys.stdin, sys.stderr
    if stdout is not None:
        sys.stdout = stdout
        sys.stderr = stderr if stderr is not None else stdout
    if stdin is not None:
        sys.stdin = stdin
    try:
        yield
    finally:
        sys.stdout, sys.stdin, sys.stderr = saved


class PythonRuntime:
    """Evaluate source and answer symbol queries against a namespace.

    Args:
        namespace: Globals for evaluated code. A fresh user namespace is made
            when omitted.
    """

    def __init__(self, namespace: Optional[dict[str, Any]] = None) -> None:
        if namespace is None:
            namespace = {"__name__": USER_MODULE, "__builtins__": builtins}
        self.namespace = namespace
        self.package = USER_MODULE
        self._counter = itertools.count(1)

    # ------------------------------------------------------------------
    # Namespaces

    def resolve_namespace(self, package: Optional[str] = None) -> dict[str, Any]:
        """Namespace for a package name; unknown names mean the user namespace."""
        if package:
            module = sys.modules.get(package)
            if module is not None and package != USER_MODULE:
                return vars(module)
        return self.namespace

    def set_package(self, package: str) -> str:
        if package != USER_MODULE and package not in sys.modules:
            raise LookupError(f"No module named {package!r} is loaded")
        self.package = package
        return package

    def prompt(self) -> str:
        return f"{self.package}>"

    # ------------------------------------------------------------------
    # Evaluation

    def evaluate(
        self,
        source: str,
        package: Optional[str] = None,
        *,
        stdout: Optional[TextIO] = None,
        stdin: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        namespace: Optional[dict[str, Any]] = None,
        local_namespace: Optional[Any] = None,
    ) -> list[Any]:
        """Run source text and return the values it produced.

        The value of a trailing bare expression is the result; source made
        only of statements produces no values.
        """
        globals_ = namespace if namespace is not None else self.resolve_namespace(package)
        filename = self._register_source(source)
        tree = ast.parse(source, filename=filename, mode="exec")
        body = tree.body
        tail: Optional[ast.Expression] = None
        if body and isinstance(body[-1], ast.Expr):
            tail = ast.Expression(body=body.pop().value)
        with bound_streams(stdout, stdin, stderr):
            if body:
                exec(compile(tree, filename, "exec"), globals_, local_namespace)
            if tail is None:
                return []
            value = eval(compile(tail, filename, "eval"), globals_, local_namespace)
        if value is not None and globals_ is self.namespace:
            globals_["_"] = value
        return [] if value is None else [value]

    def load_file(
        self,
        path: str,
        *,
        stdout: Optional[TextIO] = None,
        stdin: Optional[TextIO] = None,
    ) -> None:
        """Execute a file in the user namespace."""
        file_path = Path(path).expanduser()
        source = file_path.read_text(encoding="utf-8")
        code = compile(source, str(file_path), "exec")
        logger.info("Loading %s", file_path)
        with bound_streams(stdout, stdin):
            exec(code, self.namespace)

    def _register_source(self, source: str) -> str:
        filename = f"<swank-input-{next(self._counter)}>"
        linecache.cache[filename] = (
            len(source),
            None,
            source.splitlines(keepends=True),
            filename,
        )
        return filename

    # ------------------------------------------------------------------
    # Queries

    def lookup(self, name: str, package: Optional[str] = None) -> Any:
        """Resolve a possibly dotted name.

        Raises:
            LookupError: If the name is not bound.
        """
        parts = name.split(".")
        namespace = self.resolve_namespace(package)
        if parts[0] in namespace:
            value = namespace[parts[0]]
        elif hasattr(builtins, parts[0]):
            value = getattr(builtins, parts[0])
        elif parts[0] in sys.modules:
            value = sys.modules[parts[0]]
        else:
            raise LookupError(f"Name {parts[0]!r} is not defined")
        for part in parts[1:]:
            try:
                value = getattr(value, part)
            except AttributeError as exc:
                raise LookupError(f"{name!r} has no attribute {part!r}") from exc
        return value

    def arglist(self, name: str, package: Optional[str] = None) -> Optional[list[str]]:
        """Parameter texts of a callable, or None when unknown."""
        try:
            value = self.lookup(name, package)
            signature = inspect.signature(value)
        except (LookupError, TypeError, ValueError):
            return None
        return [str(parameter) for parameter in signature.parameters.values()]

    def describe(self, name: str, package: Optional[str] = None) -> str:
        if keyword.iskeyword(name) or name in _SOFT_KEYWORDS:
            return f"{name} is a Python keyword."
        try:
            value = self.lookup(name, package)
        except LookupError as exc:
            return str(exc)
        return pydoc.render_doc(value, title=f"{name}: %s", renderer=pydoc.plaintext)

    def completions(self, prefix: str, package: Optional[str] = None) -> list[str]:
        """Names starting with a prefix; ``obj.pre`` completes attributes."""
        head, dot, stem = prefix.rpartition(".")
        if dot:
            try:
                names = dir(self.lookup(head, package))
            except LookupError:
                return []
            return sorted(f"{head}.{name}" for name in set(names) if name.startswith(stem))
        return sorted(name for name in self._visible_names(package) if name.startswith(prefix))

    def fuzzy_completions(
        self,
        pattern: str,
        package: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[tuple[str, float, list[tuple[int, str]], str]]:
        """Names containing the pattern's characters in order.

        Returns:
            ``(name, score, chunks, flags)`` per match, best first. Chunks are
            ``(offset, text)`` runs of matched characters.
        """
        namespace = self.resolve_namespace(package)
        matches = []
        for name in self._visible_names(package):
            chunks = _subsequence_chunks(pattern, name)
            if chunks is None:
                continue
            score = _fuzzy_score(chunks, name)
            flags = self._fuzzy_flags(name, namespace)
            matches.append((name, score, chunks, flags))
        matches.sort(key=lambda match: (-match[1], match[0]))
        if limit:
            matches = matches[:limit]
        return matches

    def apropos(
        self,
        pattern: str,
        *,
        case_sensitive: bool = False,
        package: Optional[str] = None,
        external_only: bool = False,
    ) -> list[tuple[str, dict[str, str]]]:
        """Search bound names with a regular expression.

        Returns:
            ``(designator, {tag: summary})`` per match, sorted by designator.
        """
        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            regex = re.compile(pattern, flags)
        except re.error:
            regex = re.compile(re.escape(pattern), flags)
        results: dict[str, dict[str, str]] = {}
        for designator, value in self._searchable(package):
            name = designator.rpartition(".")[2]
            if not regex.search(name):
                continue
            if external_only and name.startswith("_"):
                continue
            results[designator] = {self.classify(value): _summary(value)}
        for word in itertools.chain(keyword.kwlist, sorted(_SOFT_KEYWORDS)):
            if regex.search(word) and word not in results:
                tag = TAG_MACRO if keyword.iskeyword(word) else TAG_SPECIAL_OPERATOR
                results[word] = {tag: "Python keyword."}
        return sorted(results.items())

    def classify(self, value: Any) -> str:
        """Search tag for a bound value."""
        if isinstance(value, type):
            return TAG_CLASS
        if isinstance(value, property):
            return TAG_SETF if value.fset is not None else TAG_VARIABLE
        try:
            generic = callable(getattr(value, "dispatch", None)) and hasattr(value, "registry")
        except Exception:  # noqa: BLE001 - arbitrary objects may fail attribute access
            generic = False
        if generic:
            return TAG_GENERIC_FUNCTION
        if callable(value):
            return TAG_FUNCTION
        return TAG_VARIABLE

    def _fuzzy_flags(self, name: str, namespace: dict[str, Any]) -> str:
        if keyword.iskeyword(name):
            return _FUZZY_FLAGS[TAG_MACRO]
        if name in _SOFT_KEYWORDS:
            return _FUZZY_FLAGS[TAG_SPECIAL_OPERATOR]
        if name in namespace:
            value = namespace[name]
        elif hasattr(builtins, name):
            value = getattr(builtins, name)
        else:
            return ""
        return _FUZZY_FLAGS[self.classify(value)]

    def _visible_names(self, package: Optional[str]) -> set[str]:
        names = set(self.resolve_namespace(package))
        names.update(dir(builtins))
        names.update(keyword.kwlist)
        names.update(_SOFT_KEYWORDS)
        return names

    def _searchable(self, package: Optional[str]) -> Iterator[tuple[str, Any]]:
        if package:
            yield from sorted(self.resolve_namespace(package).items())
            return
        yield from sorted(self.namespace.items())
        for name in dir(builtins):
            yield name, getattr(builtins, name)
        for module_name, module in sorted(sys.modules.items()):
            members = getattr(module, "__dict__", None)
            if not isinstance(members, dict) or module_name.startswith("_"):
                continue
            for name, value in sorted(members.items()):
                yield f"{module_name}.{name}", value


def _summary(value: Any) -> str:
    try:
        doc = inspect.getdoc(value) if callable(value) else None
    except Exception:  # noqa: BLE001 - arbitrary objects may fail introspection
        doc = None
    if doc:
        return doc.splitlines()[0]
    return "<no documentation>" if callable(value) else type(value).__name__


def _subsequence_chunks(pattern: str, name: str) -> Optional[list[tuple[int, str]]]:
    chunks: list[tuple[int, str]] = []
    position = 0
    lowered = name.lower()
    for char in pattern.lower():
        found = lowered.find(char, position)
        if found < 0:
            return None
        if chunks and chunks[-1][0] + len(chunks[-1][1]) == found:
            offset, text = chunks[-1]
            chunks[-1] = (offset, text + name[found])
        else:
            chunks.append((found, name[found]))
        position = found + 1
    return chunks


def _fuzzy_score(chunks: list[tuple[int, str]], name: str) -> float:
    score = 0.0
    for offset, text in chunks:
        weight = 10.0 if offset == 0 else 5.0 if name[offset - 1] in "_." else 1.0
        score += weight * len(text) ** 2
    return round(score / max(len(name), 1), 2)
