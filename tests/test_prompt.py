import io

import pytest

from tas_quickstart import prompt


class FakeTTY(io.StringIO):
    def isatty(self):
        return True


@pytest.fixture
def tty_stdin(monkeypatch):
    def _install(text=""):
        monkeypatch.setattr(prompt.sys, "stdin", FakeTTY(text))

    return _install


def test_assume_yes_never_prompts(capsys):
    assert prompt.confirm("Proceed?", assume_yes=True) is True
    assert capsys.readouterr().out == ""


def test_non_interactive_means_no(monkeypatch):
    monkeypatch.setattr(prompt.sys, "stdin", io.StringIO("y\n"))
    assert prompt.confirm("Proceed?") is False


@pytest.mark.parametrize("char, expected", [("y", True), ("Y", True), ("n", False)])
def test_single_keypress(tty_stdin, monkeypatch, capsys, char, expected):
    tty_stdin()
    monkeypatch.setattr(prompt, "_get_single_char", lambda: char)

    assert prompt.confirm("Stop Redis?") is expected
    assert capsys.readouterr().out == f"Stop Redis? (y/n) {char}\n"


@pytest.mark.parametrize("line, expected", [("yes\n", True), ("y\n", True), ("no\n", False)])
def test_line_input_fallback(tty_stdin, monkeypatch, line, expected):
    tty_stdin(line)
    monkeypatch.setattr(prompt, "_get_single_char", lambda: None)

    assert prompt.confirm("Continue?") is expected


def test_eof_means_no(tty_stdin, monkeypatch):
    tty_stdin("")
    monkeypatch.setattr(prompt, "_get_single_char", lambda: None)

    assert prompt.confirm("Continue?") is False


def test_ctrl_c_means_no(tty_stdin, monkeypatch):
    tty_stdin()

    def interrupted():
        raise KeyboardInterrupt

    monkeypatch.setattr(prompt, "_get_single_char", interrupted)

    assert prompt.confirm("Continue?") is False


def test_key_at_end_of_input_falls_back():
    assert prompt._interpret_key("") is None


def test_raw_ctrl_c_interrupts():
    with pytest.raises(KeyboardInterrupt):
        prompt._interpret_key("\x03")


def test_plain_key_passes_through():
    assert prompt._interpret_key("y") == "y"


def test_eof_in_raw_mode_means_no(tty_stdin, monkeypatch):
    # Single-key read hits end of input, then line input does too.
    tty_stdin("")
    monkeypatch.setattr(prompt, "_get_single_char", lambda: prompt._interpret_key(""))

    assert prompt.confirm("Continue?") is False
