"""Tests for the protocol command table."""

from __future__ import annotations

import os

import pytest
from sexpdata import Quoted, Symbol

from conftest import rex
from pyswank import __version__
from pyswank.commands import COMPILATION_RESULT, UNIMPLEMENTED_COMMANDS, SwankCommands
from pyswank.literals import keyword_name


def kw(name: str) -> Quoted:
    return Quoted(Symbol(name))


def _reply(sent, request_id):
    for message in sent:
        if keyword_name(message[0]) == "return" and message[2] == request_id:
            return message[1]
    raise AssertionError(f"no reply for request {request_id}")


def _ok(sent, request_id):
    status = _reply(sent, request_id)
    assert status[0] == kw("ok"), status
    return status[1]


def _plist(items):
    return {keyword_name(items[i]): items[i + 1] for i in range(0, len(items), 2)}


def test_connection_info(drive) -> None:
    info = _plist(_ok(drive(rex("(swank:connection-info)", 1)), 1))
    assert info["pid"] == os.getpid()
    assert info["encoding"] == [kw("coding-systems"), ["utf-8-unix"]]
    assert _plist(info["lisp-implementation"])["name"] == "python"
    assert _plist(info["package"]) == {"name": "__swank__", "prompt": "__swank__>"}
    assert info["server-version"] == __version__
    assert "version" not in info


def test_connection_info_reports_protocol_version(runtime) -> None:
    commands = SwankCommands(runtime, protocol_version="2014-10-01")
    info = commands.handlers["swank:connection-info"](None)
    assert info[-2:] == [Symbol(":version"), "2014-10-01"]


@pytest.mark.parametrize("name", ["swank:create-repl", "swank-repl:create-repl"])
def test_create_repl(drive, name) -> None:
    assert _ok(drive(rex(f"({name} nil)", 1)), 1) == ["__swank__", "__swank__>"]


@pytest.mark.parametrize("name", ["swank:listener-eval", "swank-repl:listener-eval"])
def test_listener_eval_returns_values(drive, name) -> None:
    sent = drive(rex(f'({name} "[1, 2]")', 1), rex(f'({name} "x = 1")', 2))
    assert _ok(sent, 1) == [kw("values"), "[1, 2]"]
    assert _ok(sent, 2) == [kw("values")]


def test_compile_string_evaluates_for_effect(drive) -> None:
    sent = drive(
        rex('(swank:compile-string-for-emacs "def g(): return 5" "buf.py" ((:position 1)) "/tmp/buf.py" nil)', 1),
        rex('(swank:interactive-eval "g()")', 2),
    )
    assert _ok(sent, 1) == [kw("compilation-result"), [], True, 0.0, [], []]
    assert _ok(sent, 2) == "=> 5"
    assert COMPILATION_RESULT[0] == Symbol(":compilation-result")


def test_interactive_eval_without_value(drive) -> None:
    assert _ok(drive(rex('(swank:interactive-eval "z = 3")', 1)), 1) == "; No value"


def test_pprint_eval(drive) -> None:
    sent = drive(rex('(swank:pprint-eval "{\'b\': 1, \'a\': 2}")', 1))
    assert _ok(sent, 1) == "{'a': 2, 'b': 1}"


def test_operator_arglist(drive) -> None:
    sent = drive(
        rex('(swank:interactive-eval "def move(dx, dy=0): pass")', 1),
        rex('(swank:operator-arglist "move" "__swank__")', 2),
        rex('(swank:operator-arglist "unknown_op" "__swank__")', 3),
    )
    assert _ok(sent, 2) == "move(dx, dy=0)"
    assert _ok(sent, 3) == []


def test_autodoc_highlights_current_argument(drive) -> None:
    sent = drive(
        rex('(swank:interactive-eval "def move(dx, dy=0): pass")', 1),
        rex('(swank:autodoc (quote ("move" "1" swank::%cursor-marker%)) :print-right-margin 80)', 2),
        rex("(swank:autodoc (quote (swank::%cursor-marker%)))", 3),
        rex('(swank:autodoc (quote ("nothing_bound" swank::%cursor-marker%)))', 4),
    )
    assert _ok(sent, 2) == ["move(dx, ===> dy=0 <===)", True]
    assert _ok(sent, 3) == kw("not-available")
    assert _ok(sent, 4) == kw("not-available")


def test_autodoc_uses_innermost_form(drive) -> None:
    sent = drive(
        rex('(swank:autodoc (quote ("print" ("len" swank::%cursor-marker%))))', 1),
    )
    assert _ok(sent, 1) == ["len(===> obj <===)", True]


def test_simple_completions(drive) -> None:
    sent = drive(
        rex('(swank:interactive-eval "counter_a = 1\ncounter_b = 2")', 1),
        rex('(swank:simple-completions "counter" "__swank__")', 2),
        rex('(swank:simple-completions "zzz_none" "__swank__")', 3),
    )
    assert _ok(sent, 2) == [["counter_a", "counter_b"], "counter_"]
    assert _ok(sent, 3) == [[], "zzz_none"]


def test_fuzzy_completions(drive) -> None:
    sent = drive(
        rex('(swank:interactive-eval "def handle_request(): pass")', 1),
        rex('(swank:fuzzy-completions "hndlreq" "__swank__" :limit 5 :time-limit-in-msec 1500)', 2),
    )
    completions, flag = _ok(sent, 2)
    assert flag == []
    name, score, chunks, flags = completions[0]
    assert name == "handle_request"
    assert score > 0
    assert chunks[0] == [0, "h"]
    assert flags == "f"


def test_describe_commands(drive) -> None:
    sent = drive(
        rex('(swank:describe-symbol "len")', 1),
        rex('(swank:describe-function "len")', 2),
        rex('(swank:describe-definition-for-emacs "len" :function)', 3),
    )
    for request_id in (1, 2, 3):
        assert "Return the number of items" in _ok(sent, request_id)


def test_apropos_list(drive) -> None:
    sent = drive(
        rex('(swank:interactive-eval "class ApropoTarget:\n    \'\'\'Target.\'\'\'")', 1),
        rex('(swank:apropos-list-for-emacs "apropotarget" t nil "__swank__")', 2),
    )
    assert _ok(sent, 2) == [[kw("designator"), "ApropoTarget", kw("class"), "Target."]]


def test_set_package(drive) -> None:
    sent = drive(
        rex('(swank:set-package "os")', 1),
        rex('(swank:set-package "not_a_loaded_module")', 2),
    )
    assert _ok(sent, 1) == ["os", "os>"]
    assert any(keyword_name(message[0]) == "debug" for message in sent)


def test_load_file(drive, tmp_path) -> None:
    script = tmp_path / "loaded.py"
    script.write_text("from_file = 11\n", encoding="utf-8")
    sent = drive(
        rex(f'(swank:load-file "{script}")', 1),
        rex('(swank:interactive-eval "from_file")', 2),
    )
    assert _ok(sent, 1) is True
    assert _ok(sent, 2) == "=> 11"


def test_backtrace_is_always_nil(drive) -> None:
    assert _ok(drive(rex("(swank:backtrace 0 10)", 1)), 1) == []


@pytest.mark.parametrize("name", UNIMPLEMENTED_COMMANDS)
def test_unimplemented_commands_reply_nil(drive, name) -> None:
    assert _ok(drive(rex(f'({name} "anything")', 1)), 1) == []


def test_frame_source_location_without_chain(drive) -> None:
    value = _ok(drive(rex("(swank:frame-source-location 0)", 1)), 1)
    assert value == [kw("error"), "No source for frame 0"]


def test_eval_string_in_frame_without_chain_enters_debugger(drive) -> None:
    sent = drive(rex('(swank:eval-string-in-frame "1" 0 "__swank__")', 1))
    assert keyword_name(sent[0][0]) == "debug"
    assert "LookupError: Frame 0 has no locals" in sent[0][3][0]


def test_non_string_source_enters_debugger(drive) -> None:
    sent = drive(rex("(swank:interactive-eval 5)", 1))
    assert keyword_name(sent[0][0]) == "debug"
    assert "TypeError" in sent[0][3][0]


def test_quit_lisp_stops_the_session(drive) -> None:
    with pytest.raises(SystemExit):
        drive(rex("(swank:quit-lisp)", 1))


def test_handler_table_is_read_only(commands) -> None:
    with pytest.raises(TypeError):
        commands.handlers["swank:new"] = print  # type: ignore[index]
