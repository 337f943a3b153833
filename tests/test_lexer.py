"""Lexer tests: token kinds, values and exact source positions."""

import pytest

from slm import CompileError, ErrorKind, Position, tokenize


def kinds(code):
    return [t.type for t in tokenize(code)]


def test_empty_source_is_just_eof():
    tokens = tokenize("")
    assert len(tokens) == 1
    assert tokens[0].type == "EOF"
    assert tokens[0].position == Position.ZERO


def test_exit_call_positions():
    tokens = tokenize("exit(42);")
    assert [(t.type, t.value, t.position) for t in tokens] == [
        ("IDENT", "exit", Position(0, 0, 4)),
        ("LPAREN", "(", Position(0, 4, 1)),
        ("NUMBER", 42, Position(0, 5, 2)),
        ("RPAREN", ")", Position(0, 7, 1)),
        ("END", ";", Position(0, 8, 1)),
        ("EOF", "", Position(0, 8, 1)),
    ]


def test_newline_resets_column():
    tokens = tokenize("let a = 7;\nexit(a);")
    assert tokens[0].position == Position(0, 0, 3)
    assert tokens[3].position == Position(0, 8, 1)
    assert tokens[5].type == "IDENT"
    assert tokens[5].position == Position(1, 0, 4)
    assert tokens[7].position == Position(1, 5, 1)


def test_keywords():
    assert kinds("let return lets _let") == ["LET", "RETURN", "IDENT", "IDENT", "EOF"]


def test_comments_produce_no_tokens():
    tokens = tokenize("# leading comment\nexit(1); # trailing ( ) \"")
    assert [t.type for t in tokens] == ["IDENT", "LPAREN", "NUMBER", "RPAREN", "END", "EOF"]
    assert tokens[0].position == Position(1, 0, 4)


def test_comment_at_end_of_input():
    assert kinds("# nothing here") == ["EOF"]


def test_string_literal_keeps_enclosed_text():
    tokens = tokenize('let s = "a b # c";')
    assert tokens[3].type == "STRING"
    assert tokens[3].value == "a b # c"
    assert tokens[3].position == Position(0, 8, 9)


def test_string_has_no_escape_processing():
    assert tokenize(r'"a\n"')[0].value == r"a\n"


def test_unicode_identifier():
    tokens = tokenize("let café_2 = 1;")
    assert tokens[1].value == "café_2"
    assert tokens[1].position == Position(0, 4, 6)


def test_number_then_identifier():
    assert kinds("1abc") == ["NUMBER", "IDENT", "EOF"]


def test_other_whitespace_is_skipped():
    tokens = tokenize("\texit (\r\n1 ) ;")
    assert [t.type for t in tokens] == ["IDENT", "LPAREN", "NUMBER", "RPAREN", "END", "EOF"]
    assert tokens[0].position == Position(0, 1, 4)
    assert tokens[2].position == Position(1, 0, 1)


def test_largest_integer():
    assert tokenize("18446744073709551615")[0].value == 2 ** 64 - 1


def test_integer_overflow_is_an_error():
    with pytest.raises(CompileError) as info:
        tokenize("exit(18446744073709551616);")
    assert info.value.kind is ErrorKind.INVALID_TOKEN
    assert info.value.position == Position(0, 5, 20)


def test_invalid_character():
    with pytest.raises(CompileError) as info:
        tokenize("exit(1);\nexit(2) $")
    err = info.value
    assert err.kind is ErrorKind.INVALID_TOKEN
    assert err.position == Position(1, 8, 1)
    assert err.message == "Invalid token '$'"


def test_unmatched_quote_before_newline():
    with pytest.raises(CompileError) as info:
        tokenize('let a = "abc;\nexit(1);')
    err = info.value
    assert err.kind is ErrorKind.UNMATCHED
    assert err.position == Position(0, 8, 5)
    assert err.message == "Unmatched '\"'"


def test_unmatched_quote_at_end_of_input():
    with pytest.raises(CompileError) as info:
        tokenize('exit("')
    assert info.value.kind is ErrorKind.UNMATCHED
    assert info.value.position == Position(0, 5, 1)


@pytest.mark.parametrize("code, char", [("let ² = 1;", "²"), ("exit(½);", "½")])
def test_identifier_must_start_with_a_letter(code, char):
    with pytest.raises(CompileError) as info:
        tokenize(code)
    err = info.value
    assert err.kind is ErrorKind.INVALID_TOKEN
    assert err.message == f"Invalid token '{char}'"
    assert err.position.length == 1
    assert err.position.column == code.index(char)


def test_numeric_symbols_may_continue_an_identifier():
    assert tokenize("x²")[0].value == "x²"
