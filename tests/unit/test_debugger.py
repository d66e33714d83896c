"""Tests for nested debugger levels."""

from __future__ import annotations

import pytest
from sexpdata import Quoted, Symbol

from conftest import SessionDriver, rex, tag, tags
from pyswank.debugger import RESTARTS, describe_condition


def kw(name: str) -> Quoted:
    return Quoted(Symbol(name))


def _fail(_ctx):
    raise RuntimeError("nested failure")


def _levels(sent, name):
    return [message[2] for message in sent if tag(message) == name]


@pytest.mark.parametrize("depth", [1, 2, 3, 5])
def test_escape_from_depth_closes_every_level_innermost_first(commands, depth) -> None:
    handlers = dict(commands.handlers, fail=_fail)
    requests = [rex("(fail)", request_id) for request_id in range(1, depth + 1)]
    restart_id = depth + 1
    requests.append(rex(f"(swank:invoke-nth-restart-for-emacs {depth} 0)", restart_id))

    sent = SessionDriver(handlers).run(*requests)

    assert _levels(sent, "debug") == list(range(1, depth + 1))
    assert _levels(sent, "debug-activate") == list(range(1, depth + 1))
    assert _levels(sent, "debug-return") == list(range(depth, 0, -1))

    unwinding = sent[2 * depth:]
    expected = [[kw("return"), [kw("abort")], restart_id]]
    for level in range(depth, 0, -1):
        expected.append([kw("debug-return"), True, level, []])
        expected.append([kw("return"), [kw("abort")], level])
    assert unwinding == expected


def test_nested_level_serves_ordinary_requests(drive) -> None:
    sent = drive(
        rex('(swank:interactive-eval "missing")', 1),
        rex('(swank:interactive-eval "6 * 7")', 2),
        rex("(swank:sldb-abort)", 3),
    )
    assert tags(sent) == [
        "debug",
        "debug-activate",
        "return",
        "return",
        "debug-return",
        "return",
    ]
    assert sent[2] == [kw("return"), [kw("ok"), "=> 42"], 2]


def test_unknown_restart_opens_another_level(drive) -> None:
    sent = drive(
        rex('(swank:interactive-eval "missing")', 1),
        rex("(swank:invoke-nth-restart-for-emacs 1 4)", 2),
    )
    debug_messages = [message for message in sent if tag(message) == "debug"]
    assert [message[2] for message in debug_messages] == [1, 2]
    assert "NoRestartError: No restart numbered 4" in debug_messages[1][3][0]


def test_stray_string_return_inside_level_keeps_serving(drive) -> None:
    sent = drive(
        rex('(swank:interactive-eval "missing")', 1),
        '(:emacs-return-string t 1 "unexpected")',
        rex('(swank:interactive-eval "1")', 2),
    )
    assert sent[2] == [kw("return"), [kw("ok"), "=> 1"], 2]


def test_peer_leaving_inside_level_ends_session(drive) -> None:
    sent = drive(rex('(swank:interactive-eval "missing")', 1))
    # The connection is gone, so neither the exit nor the abort can be sent.
    assert tags(sent) == ["debug", "debug-activate"]


def test_frame_locals_inside_debugger(drive) -> None:
    sent = drive(
        rex('(swank:interactive-eval "def f(x):\n    y = x * 2\n    return y / 0")', 1),
        rex('(swank:interactive-eval "f(3)")', 2),
        rex("(swank:frame-locals-and-catch-tags 0)", 3),
        rex('(swank:eval-string-in-frame "x + y" 0 "__swank__")', 4),
        rex("(swank:frame-locals-and-catch-tags 99)", 5),
        rex("(swank:frame-source-location 0)", 6),
    )
    replies = {message[2]: message[1] for message in sent if tag(message) == "return"}
    assert replies[3] == [
        kw("ok"),
        [
            [
                [kw("name"), "x", kw("id"), 0, kw("value"), "3"],
                [kw("name"), "y", kw("id"), 1, kw("value"), "6"],
            ],
            [],
        ],
    ]
    assert replies[4] == [kw("ok"), "9"]
    assert replies[5] == [kw("ok"), [[], []]]
    assert replies[6] == [
        kw("ok"),
        [kw("location"), [kw("file"), "<swank-input-1>"], [kw("line"), 3, 0], []],
    ]


def test_describe_condition_for_plain_error() -> None:
    summary, type_line, extras = describe_condition(KeyError("missing"))
    assert summary == "KeyError: 'missing'"
    assert type_line == "[Condition of type KeyError]"
    assert extras is None


def test_describe_condition_for_syntax_error() -> None:
    try:
        compile("1 +", "<swank-input-9>", "exec")
    except SyntaxError as exc:
        summary, _type_line, _extras = describe_condition(exc)
    assert summary.startswith("<swank-input-9>:1:")
    assert "SyntaxError: " in summary


def test_describe_condition_without_message() -> None:
    summary, _type_line, _extras = describe_condition(RuntimeError())
    assert summary == "RuntimeError"


def test_single_abort_restart_is_offered() -> None:
    assert RESTARTS == [["ABORT", "Return to top level."]]
