"""Tests for gitrel.output.console module."""

from __future__ import annotations

import pytest

from gitrel.output.console import (
    ConsoleProtocol,
    MockConsole,
    RichConsole,
    Style,
    tail_lines,
)


class TestStyle:
    def test_str_conversion(self) -> None:
        assert str(Style.SUCCESS) == "success"
        assert str(Style.DIM) == "dim"

    def test_all_styles_exist(self) -> None:
        expected = {"DEFAULT", "SUCCESS", "ERROR", "WARNING", "INFO", "DIM"}
        assert {s.name for s in Style} == expected


class TestTailLines:
    def test_keeps_last_lines(self) -> None:
        text = "\n".join(f"line {i}" for i in range(20))
        assert tail_lines(text, 3) == ["line 17", "line 18", "line 19"]

    def test_drops_blank_lines(self) -> None:
        assert tail_lines("a\n\n   \nb\n") == ["a", "b"]

    def test_zero_lines(self) -> None:
        assert tail_lines("a\nb", 0) == []


class TestMockConsole:
    """MockConsole records what the operator would have seen."""

    def test_print_captures_message(self) -> None:
        console = MockConsole()
        console.print("Branch: master")
        assert console.outputs[0].message == "Branch: master"
        assert console.outputs[0].style == Style.DEFAULT

    def test_prefixes(self) -> None:
        console = MockConsole()
        console.success("v3.3 tagged")
        console.error("branch creation request failed")
        console.warning("hook failed")
        console.info("master commit deferred, continuing...")

        assert console.messages == [
            "Success, v3.3 tagged",
            "ERROR: branch creation request failed",
            "warning: hook failed",
            "info: master commit deferred, continuing...",
        ]
        assert console.has_success()
        assert console.has_error()
        assert console.has_warning()

    def test_diagnostic_prints_indented_tail(self) -> None:
        console = MockConsole()
        raw = "\n".join(f"remote: {i}" for i in range(15))

        console.diagnostic(raw)

        assert len(console.outputs) == 10
        assert console.outputs[0].message == "  remote: 5"
        assert all(o.style == Style.DIM for o in console.outputs)

    def test_find_and_clear(self) -> None:
        console = MockConsole()
        console.print("To   version : 3.3")
        console.newline()

        assert len(console.find("3.3")) == 1
        console.clear()
        assert console.outputs == []

    def test_satisfies_protocol(self) -> None:
        console: ConsoleProtocol = MockConsole()
        console.info("release")


class TestRichConsole:
    def test_success_goes_to_stdout(self, capsys: pytest.CaptureFixture[str]) -> None:
        RichConsole().success("v3.3 tagged")
        captured = capsys.readouterr()
        assert "Success, v3.3 tagged" in captured.out

    def test_errors_go_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        console = RichConsole()
        console.error("rejected")
        console.diagnostic("! [rejected] master -> master (fetch first)")
        captured = capsys.readouterr()
        assert "ERROR: rejected" in captured.err
        assert "[rejected] master" in captured.err
        assert captured.out == ""

    def test_markup_in_messages_is_not_interpreted(self, capsys: pytest.CaptureFixture[str]) -> None:
        RichConsole().warning("tag [bold]v3[/bold] exists")
        assert "[bold]v3[/bold]" in capsys.readouterr().err
