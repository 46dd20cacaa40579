import os

import pytest

from minishell.builtins import ShellExit, ShellState
from minishell.environment import Environment
from minishell.executor import (
    Command,
    Redirection,
    build_commands,
    find_executable,
    read_heredoc,
    remove_leading_tabs,
    run_pipeline,
    split_pipeline,
)
from minishell.expand import expand_tokens
from minishell.tokens import ShellSyntaxError, Token, TokenType, parse


@pytest.fixture
def state(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = os.environ.get("PATH", "/bin:/usr/bin")
    return ShellState(env=Environment.from_mapping({"PATH": path}))


def feeder(lines):
    feed = iter(lines)
    return lambda prompt: next(feed, None)


def run(state, line, lines=()):
    tokens = expand_tokens(parse(line), state.env, state.status)
    return run_pipeline(state, tokens, feeder(lines))


def test_split_pipeline_stages():
    stages = split_pipeline(parse("ls -l | wc"))
    assert [[t.text for t in stage] for stage in stages] == [["ls", "-l"], ["wc"]]


def test_split_pipeline_empty():
    assert split_pipeline([]) == []


def test_build_commands_with_redirections():
    commands = build_commands(parse("cat < in > out"))
    assert commands == [
        Command(
            argv=["cat"],
            redirections=[
                Redirection(TokenType.INPUT, "in"),
                Redirection(TokenType.REDIR, "out"),
            ],
        )
    ]


def test_build_commands_leading_redirection():
    commands = build_commands(parse("> out echo hi | cat"))
    assert commands[0].argv == ["echo", "hi"]
    assert commands[0].redirections == [Redirection(TokenType.REDIR, "out")]
    assert commands[1].argv == ["cat"]


def test_build_commands_missing_target():
    tokens = [Token("cat", TokenType.CMD), Token(">", TokenType.REDIR)]
    with pytest.raises(ShellSyntaxError):
        build_commands(tokens)


def test_heredoc_redirection_flag():
    assert Redirection(TokenType.DELIM_TAB, "EOF").is_heredoc
    assert not Redirection(TokenType.APPEND, "x").is_heredoc


def test_find_executable(tmp_path):
    bindir = tmp_path / "bin"
    bindir.mkdir()
    (bindir / "tool").write_text("")
    env = Environment([f"PATH=/nonexistent_dir::{bindir}"])
    assert find_executable("tool", env) == f"{bindir}/tool"
    assert find_executable("absent", env) is None


def test_find_executable_without_path():
    assert find_executable("ls", Environment(["HOME=/"])) is None
    assert find_executable("ls", Environment(["PATH="])) is None


def test_remove_leading_tabs():
    assert remove_leading_tabs("\t\tabc\t") == "abc\t"
    assert remove_leading_tabs("abc") == "abc"


def test_read_heredoc_stops_at_delimiter(state):
    body = read_heredoc("EOF", state, False, feeder(["a", "b", "EOF", "c"]))
    assert body == "a\nb\n"


def test_read_heredoc_end_of_input(state):
    assert read_heredoc("EOF", state, False, feeder(["only"])) == "only\n"


def test_read_heredoc_strips_tabs(state):
    body = read_heredoc("EOF", state, True, feeder(["\tx", "\tEOF"]))
    assert body == "x\n"
    kept = read_heredoc("EOF", state, False, feeder(["\tx", "\tEOF", "EOF"]))
    assert kept == "\tx\n\tEOF\n"


def test_read_heredoc_expands_variables(state):
    state.env.set("X=value")
    assert read_heredoc("EOF", state, False, feeder(["v=$X", "EOF"])) == "v=value\n"


def test_builtin_output_redirected(state, tmp_path):
    assert run(state, "echo hello > out") == 0
    assert (tmp_path / "out").read_text() == "hello\n"


def test_append_redirection(state, tmp_path):
    assert run(state, "echo a > out") == 0
    assert run(state, "echo b >> out") == 0
    assert (tmp_path / "out").read_text() == "a\nb\n"


def test_external_command_round_trip(state, tmp_path):
    (tmp_path / "in").write_text("alpha\nbeta\n")
    assert run(state, "cat < in > out") == 0
    assert (tmp_path / "out").read_text() == "alpha\nbeta\n"


def test_pipeline_of_programs(state, tmp_path):
    (tmp_path / "in").write_text("alpha\nbeta\n")
    assert run(state, "cat < in | cat | cat > out") == 0
    assert (tmp_path / "out").read_text() == "alpha\nbeta\n"


def test_builtin_feeds_pipeline(state, tmp_path):
    assert run(state, "echo hi there | cat > out") == 0
    assert (tmp_path / "out").read_text() == "hi there\n"


def test_heredoc_as_input(state, tmp_path):
    assert run(state, "cat << EOF > out", ["one", "two", "EOF"]) == 0
    assert (tmp_path / "out").read_text() == "one\ntwo\n"


def test_input_file_overrides_heredoc(state, tmp_path):
    (tmp_path / "in").write_text("file\n")
    assert run(state, "cat << EOF < in > out", ["doc", "EOF"]) == 0
    assert (tmp_path / "out").read_text() == "file\n"


def test_redirection_only_creates_file(state, tmp_path):
    assert run(state, "> out") == 0
    assert (tmp_path / "out").read_text() == ""


def test_exit_status_of_program(state):
    assert run(state, "sh -c 'exit 3'") == 3
    assert state.status == 3


def test_status_255_reported_as_127(state):
    assert run(state, "sh -c 'exit 255'") == 127


def test_command_not_found(state, capfd):
    assert run(state, "nosuchcmd_xyz") == 127
    assert "nosuchcmd_xyz: command not found" in capfd.readouterr().err


def test_command_not_found_in_pipeline(state):
    assert run(state, "nosuchcmd_xyz | nosuchcmd_abc") == 1


def test_missing_input_file(state, capfd):
    assert run(state, "cat < missing") == 1
    assert "minishell: missing:" in capfd.readouterr().err


def test_failed_stage_does_not_stop_pipeline(state, tmp_path):
    assert run(state, "cat < missing | cat > out") == 0
    assert (tmp_path / "out").read_text() == ""


def test_directory_cannot_run(state, tmp_path, capfd):
    (tmp_path / "sub").mkdir()
    assert run(state, "./sub") == 126
    assert "is a directory" in capfd.readouterr().err


def test_builtin_changes_last_only_outside_pipeline(state):
    run(state, "export A=1 | cat")
    assert state.env.get("A") is None
    run(state, "export A=1")
    assert state.env.get("A") == "1"


def test_exit_builtin_leaves_shell(state, capsys):
    with pytest.raises(ShellExit) as caught:
        run(state, "exit 7")
    assert caught.value.status == 7
    assert capsys.readouterr().out == "exit\n"


def test_exit_in_pipeline_does_not_leave(state):
    assert run(state, "exit 4 | exit 5") == 5