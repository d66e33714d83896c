"""Protocol commands exposed to the editor.

Each handler takes the request's ``CommandContext`` followed by the
normalized arguments of the request form.
"""

from __future__ import annotations

import os
import platform
import pprint
import socket
import sys
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from sexpdata import Symbol

from . import __version__
from .call_chain import frame_locals, frame_source_location
from .dispatcher import CommandContext
from .exceptions import NoRestartError
from .literals import keyword, plist_options, symbol_name
from .runtime import PythonRuntime

CURSOR_MARKER = "swank::%cursor-marker%"

COMPILATION_RESULT = [keyword("compilation-result"), None, True, 0.0, None, None]

# Commands answered with a fixed "no information" reply.
UNIMPLEMENTED_COMMANDS = (
    "swank:swank-require",
    "swank:buffer-first-change",
    "swank:find-definitions-for-emacs",
    "swank:xref",
    "swank:filename-to-modulename",
)


class SwankCommands:
    """Dispatch table of protocol commands backed by a runtime.

    Args:
        runtime: The interpreter adapter commands delegate to.
        protocol_version: Version string reported by ``connection-info``.
    """

    def __init__(
        self,
        runtime: Optional[PythonRuntime] = None,
        *,
        protocol_version: Optional[str] = None,
    ) -> None:
        self.runtime = runtime or PythonRuntime()
        self.protocol_version = protocol_version
        handlers: dict[str, Callable[..., Any]] = {
            "swank:connection-info": self._connection_info,
            "swank:create-repl": self._create_repl,
            "swank-repl:create-repl": self._create_repl,
            "swank:listener-eval": self._listener_eval,
            "swank-repl:listener-eval": self._listener_eval,
            "swank:compile-string-for-emacs": self._compile_string,
            "swank:interactive-eval": self._interactive_eval,
            "swank:pprint-eval": self._pprint_eval,
            "swank:operator-arglist": self._operator_arglist,
            "swank:throw-to-toplevel": self._throw_to_toplevel,
            "swank:sldb-abort": self._throw_to_toplevel,
            "swank:invoke-nth-restart-for-emacs": self._invoke_nth_restart,
            "swank:frame-locals-and-catch-tags": self._frame_locals_and_catch_tags,
            "swank:frame-source-location": self._frame_source_location,
            "swank:eval-string-in-frame": self._eval_string_in_frame,
            "swank:backtrace": self._backtrace,
            "swank:load-file": self._load_file,
            "swank:autodoc": self._autodoc,
            "swank:simple-completions": self._simple_completions,
            "swank:fuzzy-completions": self._fuzzy_completions,
            "swank:describe-symbol": self._describe_symbol,
            "swank:describe-function": self._describe_symbol,
            "swank:describe-definition-for-emacs": self._describe_definition,
            "swank:apropos-list-for-emacs": self._apropos_list,
            "swank:set-package": self._set_package,
            "swank:quit-lisp": self._quit_lisp,
        }
        for name in UNIMPLEMENTED_COMMANDS:
            handlers[name] = _no_information
        self._handlers = MappingProxyType(handlers)

    @property
    def handlers(self) -> Mapping[str, Callable[..., Any]]:
        return self._handlers

    # ------------------------------------------------------------------
    # Session

    def _connection_info(self, _ctx: CommandContext, *_args: Any) -> list[Any]:
        info: list[Any] = [
            keyword("pid"), os.getpid(),
            keyword("style"), None,
            keyword("encoding"), [keyword("coding-systems"), ["utf-8-unix"]],
            keyword("lisp-implementation"), [
                keyword("type"), platform.python_implementation(),
                keyword("name"), "python",
                keyword("version"), platform.python_version(),
                keyword("program"), sys.executable,
            ],
            keyword("machine"), [
                keyword("instance"), socket.gethostname(),
                keyword("type"), platform.machine(),
                keyword("version"), platform.platform(),
            ],
            keyword("features"), [],
            keyword("modules"), ["pyswank"],
            keyword("package"), [
                keyword("name"), self.runtime.package,
                keyword("prompt"), self.runtime.prompt(),
            ],
            keyword("server-version"), __version__,
        ]
        if self.protocol_version is not None:
            info.extend([keyword("version"), self.protocol_version])
        return info

    def _create_repl(self, _ctx: CommandContext, *_args: Any) -> list[str]:
        return [self.runtime.package, self.runtime.prompt()]

    def _set_package(self, _ctx: CommandContext, name: Any) -> list[str]:
        package = self.runtime.set_package(_require_text(name, "package"))
        return [package, self.runtime.prompt()]

    def _quit_lisp(self, _ctx: CommandContext, *_args: Any) -> None:
        raise SystemExit(0)

    # ------------------------------------------------------------------
    # Evaluation

    def _evaluate(self, ctx: CommandContext, source: Any) -> list[Any]:
        return self.runtime.evaluate(
            _require_text(source, "source"),
            ctx.package,
            stdout=ctx.stdout,
            stdin=ctx.stdin,
        )

    def _listener_eval(self, ctx: CommandContext, source: Any, *_args: Any) -> list[Any]:
        values = self._evaluate(ctx, source)
        return [keyword("values")] + [repr(value) for value in values]

    def _compile_string(self, ctx: CommandContext, source: Any, *_args: Any) -> list[Any]:
        self._evaluate(ctx, source)
        return list(COMPILATION_RESULT)

    def _interactive_eval(self, ctx: CommandContext, source: Any) -> str:
        values = self._evaluate(ctx, source)
        if not values:
            return "; No value"
        return "=> " + ", ".join(repr(value) for value in values)

    def _pprint_eval(self, ctx: CommandContext, source: Any) -> str:
        values = self._evaluate(ctx, source)
        if not values:
            return "; No value"
        return "\n".join(pprint.pformat(value) for value in values)

    def _load_file(self, ctx: CommandContext, filename: Any) -> bool:
        self.runtime.load_file(
            _require_text(filename, "filename"),
            stdout=ctx.stdout,
            stdin=ctx.stdin,
        )
        return True

    # ------------------------------------------------------------------
    # Debugger

    def _throw_to_toplevel(self, ctx: CommandContext, *_args: Any) -> None:
        ctx.session.escape()

    def _invoke_nth_restart(self, ctx: CommandContext, _level: Any, index: Any) -> None:
        if index != 0:
            raise NoRestartError(index)
        ctx.session.escape()

    def _frame_locals_and_catch_tags(self, ctx: CommandContext, index: Any) -> list[Any]:
        local_vars = [
            [keyword("name"), name, keyword("id"), slot, keyword("value"), text]
            for name, slot, text in frame_locals(ctx.session.most_recent_call_chain, index)
        ]
        return [local_vars, None]

    def _frame_source_location(self, ctx: CommandContext, index: Any) -> list[Any]:
        location = frame_source_location(ctx.session.most_recent_call_chain, index)
        if location is None:
            return [keyword("error"), f"No source for frame {index}"]
        filename, line = location
        return [
            keyword("location"),
            [keyword("file"), filename],
            [keyword("line"), line, 0],
            None,
        ]

    def _eval_string_in_frame(
        self,
        ctx: CommandContext,
        source: Any,
        index: Any,
        *_args: Any,
    ) -> str:
        entry = ctx.session.most_recent_call_chain.frame(index)
        if entry is None or entry.frame is None:
            raise LookupError(f"Frame {index} has no locals")
        values = self.runtime.evaluate(
            _require_text(source, "source"),
            stdout=ctx.stdout,
            stdin=ctx.stdin,
            namespace=entry.frame.f_globals,
            local_namespace=entry.frame.f_locals,
        )
        return ", ".join(repr(value) for value in values) or "; No value"

    def _backtrace(self, _ctx: CommandContext, *_args: Any) -> None:
        # Frames are only delivered with the :debug message.
        return None

    # ------------------------------------------------------------------
    # Documentation

    def _operator_arglist(self, ctx: CommandContext, name: Any, *_args: Any) -> Optional[str]:
        text = _require_text(name, "name")
        params = self.runtime.arglist(text, ctx.package)
        if params is None:
            return None
        return f"{text}({', '.join(params)})"

    def _autodoc(self, ctx: CommandContext, raw_form: Any, *_args: Any) -> Any:
        found = _form_at_cursor(raw_form)
        if found is None:
            return keyword("not-available")
        operator, argument_index = found
        params = self.runtime.arglist(operator, ctx.package)
        if params is None:
            return keyword("not-available")
        if 0 <= argument_index < len(params):
            params[argument_index] = f"===> {params[argument_index]} <==="
        return [f"{operator}({', '.join(params)})", True]

    def _describe_symbol(self, ctx: CommandContext, name: Any, *_args: Any) -> str:
        return self.runtime.describe(_require_text(name, "name"), ctx.package)

    def _describe_definition(self, ctx: CommandContext, name: Any, *_args: Any) -> str:
        return self._describe_symbol(ctx, name)

    # ------------------------------------------------------------------
    # Completion and search

    def _simple_completions(self, ctx: CommandContext, prefix: Any, *_args: Any) -> list[Any]:
        text = _require_text(prefix, "prefix")
        names = self.runtime.completions(text, ctx.package)
        return [names, _common_prefix(names) if names else text]

    def _fuzzy_completions(self, ctx: CommandContext, *args: Any) -> list[Any]:
        positional, options = plist_options(args)
        pattern = _require_text(positional[0] if positional else None, "prefix")
        limit = options.get("limit")
        matches = self.runtime.fuzzy_completions(
            pattern,
            ctx.package,
            limit=limit if isinstance(limit, int) else None,
        )
        completions = [
            [name, score, [[offset, text] for offset, text in chunks], flags]
            for name, score, chunks, flags in matches
        ]
        return [completions, None]

    def _apropos_list(
        self,
        _ctx: CommandContext,
        pattern: Any,
        external_only: Any = None,
        case_sensitive: Any = None,
        package: Any = None,
    ) -> list[Any]:
        results = self.runtime.apropos(
            _require_text(pattern, "pattern"),
            case_sensitive=bool(case_sensitive),
            package=symbol_name(package) if package is not None else None,
            external_only=bool(external_only),
        )
        entries = []
        for designator, tags in results:
            entry: list[Any] = [keyword("designator"), designator]
            for tag, summary in tags.items():
                entry.extend([keyword(tag), summary])
            entries.append(entry)
        return entries


def _no_information(_ctx: CommandContext, *_args: Any) -> None:
    return None


def _require_text(value: Any, what: str) -> str:
    text = symbol_name(value)
    if text is None:
        raise TypeError(f"Expected a string for {what}, got {value!r}")
    return text


def _common_prefix(names: list[str]) -> str:
    return os.path.commonprefix(names)


def _form_at_cursor(form: Any) -> Optional[tuple[str, int]]:
    """Find the operator and argument position of the innermost list
    holding the cursor marker."""
    if not isinstance(form, list):
        return None
    for position, item in enumerate(form):
        if isinstance(item, list):
            inner = _form_at_cursor(item)
            if inner is not None:
                return inner
        elif _is_cursor(item) and position > 0:
            operator = symbol_name(form[0])
            if operator is None or _is_cursor(form[0]):
                return None
            return operator, position - 1
    return None


def _is_cursor(item: Any) -> bool:
    return isinstance(item, Symbol) and str(item) == CURSOR_MARKER
