import pytest

from minishell.tokens import (
    VAR_MARK,
    ShellSyntaxError,
    Token,
    TokenType,
    UnclosedQuoteError,
    classify,
    mark_dollars,
    parse,
    reorder_redirections,
    split_line,
    tokenize,
    validate,
)


def texts(tokens):
    return [t.text for t in tokens]


def types(tokens):
    return [t.type for t in tokens]


def test_mark_dollars_outside_quotes():
    assert mark_dollars("echo $HOME") == "echo " + VAR_MARK + "HOME"


def test_mark_dollars_in_double_quotes():
    assert mark_dollars('"$X"') == '"' + VAR_MARK + 'X"'


def test_mark_dollars_keeps_single_quoted():
    assert mark_dollars("'$HOME'") == "'$HOME'"


def test_mark_dollars_nested_quote_is_balanced():
    assert mark_dollars("'\"'") == "'\"'"


@pytest.mark.parametrize("line", ["echo 'abc", 'echo "abc', "'a' \"b"])
def test_mark_dollars_unclosed(line):
    with pytest.raises(UnclosedQuoteError):
        mark_dollars(line)


def test_unclosed_quote_is_syntax_error():
    with pytest.raises(ShellSyntaxError, match="error open quotes"):
        mark_dollars('"')


def test_split_simple_words():
    assert split_line("echo hello world") == ["echo", "hello", "world"]


def test_split_blank_lines():
    assert split_line("") == []
    assert split_line("  \t  ") == []
    assert split_line("   ls  ") == ["ls"]


def test_split_operators_without_spaces():
    assert split_line("cat<in|wc>>out") == ["cat", "<", "in", "|", "wc", ">>", "out"]


def test_split_heredoc_operators():
    assert split_line("cat <<- EOF") == ["cat", "<<-", "EOF"]
    assert split_line("cat << EOF") == ["cat", "<<", "EOF"]


def test_split_keeps_quotes():
    assert split_line('echo "a b" c') == ["echo", '"a b"', "c"]


def test_split_operator_inside_quotes():
    assert split_line("echo 'a|b'") == ["echo", "'a|b'"]


def test_split_drops_mark_before_quote():
    assert split_line(VAR_MARK + '"x"') == ['"x"']


def test_split_keeps_mark_before_name():
    assert split_line("echo " + VAR_MARK + "USER") == ["echo", VAR_MARK + "USER"]


def test_split_only_space_ends_word():
    assert split_line("echo\thi") == ["echo\thi"]


def test_classify_redirection_target_is_cmd():
    tokens = classify(["echo", "hi", ">", "out"])
    assert types(tokens) == [TokenType.CMD, TokenType.ARG, TokenType.REDIR, TokenType.CMD]


def test_classify_heredoc_delimiter_is_arg():
    tokens = classify(["cat", "<<", "EOF"])
    assert types(tokens) == [TokenType.CMD, TokenType.DELIM, TokenType.ARG]


def test_classify_after_pipe():
    tokens = classify(["ls", "|", "wc", "-l"])
    assert types(tokens) == [TokenType.CMD, TokenType.PIPE, TokenType.CMD, TokenType.ARG]


def test_classify_quoted_operator_is_word():
    tokens = classify(["echo", '"|"'])
    assert types(tokens) == [TokenType.CMD, TokenType.ARG]


def test_classify_all_operators():
    tokens = classify([">>", "x", "<<-", "y", "<", "z"])
    assert types(tokens)[::2] == [TokenType.APPEND, TokenType.DELIM_TAB, TokenType.INPUT]


def test_reorder_moves_leading_redirection():
    tokens = tokenize("> out echo hi")
    assert texts(tokens) == ["echo", "hi", ">", "out"]
    assert tokens[0].type is TokenType.CMD
    assert tokens[2].type is TokenType.REDIR


def test_reorder_per_stage():
    tokens = tokenize("< in cat -e | > f wc -l")
    assert texts(tokens) == ["cat", "-e", "<", "in", "|", "wc", "-l", ">", "f"]


def test_reorder_keeps_already_ordered():
    original = classify(split_line("cat -e < in"))
    assert reorder_redirections(original) == original


def test_reorder_is_idempotent_and_preserves_words():
    tokens = classify(split_line("> a > b cat x << EOF y | wc"))
    once = reorder_redirections(tokens)
    assert reorder_redirections(once) == once
    assert sorted(texts(once)) == sorted(texts(tokens))


def test_reorder_keeps_lone_operator_for_validation():
    tokens = tokenize("cat > > f")
    assert texts(tokens) == ["cat", ">", ">", "f"]
    with pytest.raises(ShellSyntaxError):
        validate(tokens)


@pytest.mark.parametrize(
    "line",
    ["cat >", "| cat", "cat |", "cat | | wc", "cat > | wc", "cat < > f", "<<"],
)
def test_validate_rejects(line):
    with pytest.raises(ShellSyntaxError, match="syntax error"):
        validate(tokenize(line))


def test_validate_accepts_pipeline():
    tokens = tokenize("cat < in | wc -l > out")
    assert validate(tokens) == tokens


def test_parse_marks_variables():
    tokens = parse("echo $USER")
    assert texts(tokens) == ["echo", VAR_MARK + "USER"]


def test_parse_unclosed_quote():
    with pytest.raises(UnclosedQuoteError):
        parse("echo 'unterminated")


def test_parse_syntax_error():
    with pytest.raises(ShellSyntaxError):
        parse("ls |")


def test_token_type_groups():
    tokens = classify([">", "a", ">>", "b", "<", "c", "<<", "d", "<<-", "e", "|", "f"])
    redirections = [t.text for t in tokens if t.type.is_redirection]
    assert redirections == [">", ">>", "<", "<<", "<<-"]
    operators = [t.text for t in tokens if t.type.is_operator]
    assert operators == [">", ">>", "<", "<<", "<<-", "|"]
    assert not tokens[-1].type.is_operator


def test_token_equality():
    assert classify(["ls"]) == [Token("ls", TokenType.CMD)]