"""
Unit tests for the SOCQL lexer and implicit-AND normalizer.

Tests token classification, positions, error recovery, source coverage
and normalizer idempotence.
"""

import pytest

from socql import Lexer, TokenType, insert_implicit_and, tokenize


def types_of(query):
    return [t.type for t in tokenize(query).tokens]


class TestTokenizer:
    """Test cases for token classification."""

    def test_tokenize_simple_condition(self):
        """Test tokenizing a field comparison with a string literal."""
        result = tokenize('user = "bob"')

        assert [t.type for t in result.tokens] == [
            TokenType.IDENTIFIER,
            TokenType.EQUALS,
            TokenType.STRING,
            TokenType.EOF,
        ]
        assert result.errors == []

        string = result.tokens[2]
        assert string.value == "bob"
        assert string.raw == '"bob"'
        assert (string.start, string.end) == (7, 12)
        assert string.column == 8

    def test_empty_input_yields_only_eof(self):
        """Test that empty input still produces an EOF token."""
        result = tokenize("")
        assert types_of("") == [TokenType.EOF]
        assert result.tokens[0].start == 0
        assert result.errors == []

    def test_keywords_are_case_insensitive(self):
        """Test keyword reclassification ignores case."""
        assert types_of("select WHERE Last")[:3] == [
            TokenType.SELECT,
            TokenType.WHERE,
            TokenType.LAST,
        ]

    def test_sql_clause_words_stay_identifiers(self):
        """Test FROM, JOIN and GROUP are lexed as identifiers."""
        assert types_of("FROM JOIN GROUP")[:3] == [TokenType.IDENTIFIER] * 3

    def test_count_and_time_units(self):
        """Test COUNT and time-unit keywords."""
        assert types_of("count days hours minutes seconds")[:5] == [
            TokenType.COUNT,
            TokenType.DAYS,
            TokenType.HOURS,
            TokenType.MINUTES,
            TokenType.SECONDS,
        ]

    def test_operators_longest_first(self):
        """Test that two-character operators win over their prefixes."""
        assert types_of("!= !~ >= <= = ~ > <")[:8] == [
            TokenType.NOT_EQUALS,
            TokenType.NOT_CONTAINS,
            TokenType.GREATER_EQ,
            TokenType.LESS_EQ,
            TokenType.EQUALS,
            TokenType.CONTAINS,
            TokenType.GREATER,
            TokenType.LESS,
        ]

    def test_delimiters(self):
        """Test pipe, parentheses, comma and bare star."""
        assert types_of("| ( ) , *")[:5] == [
            TokenType.PIPE,
            TokenType.LPAREN,
            TokenType.RPAREN,
            TokenType.COMMA,
            TokenType.STAR,
        ]

    def test_decimal_number(self):
        """Test a number with one decimal point."""
        tokens = tokenize("3.14").tokens
        assert tokens[0].type == TokenType.NUMBER
        assert tokens[0].value == "3.14"

    def test_trailing_dot_is_not_part_of_number(self):
        """Test a dot without a following digit ends the number."""
        result = tokenize("3.")
        assert result.tokens[0].value == "3"
        assert result.tokens[1].type == TokenType.INVALID
        assert len(result.errors) == 1

    def test_identifier_with_trailing_star_is_wildcard(self):
        """Test prefix wildcard patterns."""
        token = tokenize("powershell*").tokens[0]
        assert token.type == TokenType.WILDCARD
        assert token.value == "powershell*"

    def test_escaped_quote_inside_string(self):
        """Test that an escaped quote does not end the string."""
        result = tokenize(r'"a\"b"')
        assert result.errors == []
        assert result.tokens[0].value == r'a\"b'

    def test_single_quoted_string(self):
        """Test single-quoted literals."""
        token = tokenize("'admin'").tokens[0]
        assert token.type == TokenType.STRING
        assert token.value == "admin"


class TestLexerErrors:
    """Test cases for lexer error recovery."""

    def test_unterminated_string(self):
        """Test an unterminated string yields a partial token and an error."""
        result = tokenize('user = "abc')

        assert result.tokens[2].type == TokenType.STRING
        assert result.tokens[2].value == "abc"
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.message == "Unterminated string starting at line 1, column 8"
        assert (error.start, error.end) == (7, 11)

    def test_string_does_not_span_newline(self):
        """Test a newline terminates an open string with an error."""
        result = tokenize('"ab\ncd"')

        assert result.tokens[0].value == "ab"
        assert result.errors[0].line == 1
        assert result.tokens[1].type == TokenType.IDENTIFIER
        assert result.tokens[1].line == 2

    def test_lone_bang_is_invalid(self):
        """Test a '!' not followed by '=' or '~'."""
        result = tokenize('user ! "x"')

        assert result.tokens[1].type == TokenType.INVALID
        assert result.errors[0].message == "Unexpected character: '!'"
        assert result.tokens[-1].type == TokenType.EOF

    def test_scan_continues_after_error(self):
        """Test tokens after an invalid character are still produced."""
        assert types_of("a # b")[:3] == [
            TokenType.IDENTIFIER,
            TokenType.INVALID,
            TokenType.IDENTIFIER,
        ]


class TestPositions:
    """Test cases for line and column tracking."""

    def test_multiline_positions(self):
        """Test tokens on a second line."""
        tokens = tokenize("SELECT user\n| last 7 days").tokens

        pipe = tokens[2]
        assert pipe.type == TokenType.PIPE
        assert (pipe.line, pipe.column) == (2, 1)

        days = tokens[5]
        assert days.type == TokenType.DAYS
        assert (days.line, days.column) == (2, 10)

    def test_comment_is_dropped(self):
        """Test line comments are skipped."""
        tokens = tokenize("user = 1 // note\nstatus = 2").tokens

        assert [t.value for t in tokens[:6]] == ["user", "=", "1", "status", "=", "2"]
        assert tokens[3].line == 2

    @pytest.mark.parametrize("query", [
        'SELECT user, computer | where EventID = "1" | last 7 days',
        'user = "bob"   status ~ \'act*\'\n// trailing comment\n| agg count() by user',
        'regex_match(file_path, "\\\\.dll$") AND src_port >= 1024',
        'broken "string\nnext ! line # 3.',
        '',
    ])
    def test_tokens_cover_source(self, query):
        """Test token slices and dropped spans rebuild the input exactly."""
        rebuilt = []
        position = 0
        for token in tokenize(query).tokens:
            gap = query[position:token.start]
            assert gap.strip() == "" or "//" in gap
            rebuilt.append(gap)
            assert token.raw == query[token.start:token.end]
            rebuilt.append(token.raw)
            position = token.end

        assert "".join(rebuilt) == query

    def test_lexer_instances_share_nothing(self):
        """Test repeated tokenization gives identical results."""
        query = 'user = "a" | last 3 hours'
        lexer = Lexer(query)
        assert lexer.tokenize() == lexer.tokenize()
        assert tokenize(query) == tokenize(query)


class TestImplicitAnd:
    """Test cases for the implicit-AND normalizer."""

    def test_and_inserted_between_conditions(self):
        """Test juxtaposed conditions get a synthetic AND."""
        tokens = insert_implicit_and(tokenize('user = "bob" status = "active"').tokens)

        assert [t.type for t in tokens[2:5]] == [
            TokenType.STRING,
            TokenType.AND,
            TokenType.IDENTIFIER,
        ]
        synthetic = tokens[3]
        assert synthetic.value == "AND"
        assert synthetic.start == synthetic.end == 12
        assert synthetic.column == 13
        assert tokens[4].value == "status"

    def test_explicit_and_is_left_alone(self):
        """Test no AND is added next to an explicit one."""
        tokens = insert_implicit_and(tokenize('user = "a" AND status = "b"').tokens)
        assert [t.type for t in tokens].count(TokenType.AND) == 1

    def test_no_and_before_context_keywords(self):
        """Test commas, pipes and BY never receive an AND."""
        original = tokenize("SELECT user, computer | agg by user").tokens
        assert insert_implicit_and(original) == original

    def test_and_between_parenthesized_groups(self):
        """Test a closing parenthesis followed by an opening one."""
        tokens = insert_implicit_and(tokenize("(a = 1) (b = 2)").tokens)
        assert tokens[5].type == TokenType.AND

    def test_and_after_wildcard(self):
        """Test a wildcard operand ends an expression."""
        tokens = insert_implicit_and(tokenize("name = power* status = 1").tokens)
        assert tokens[3].type == TokenType.AND

    def test_input_is_not_mutated(self):
        """Test the normalizer returns a new list."""
        original = tokenize('a = 1 b = 2').tokens
        count = len(original)
        normalized = insert_implicit_and(original)

        assert len(original) == count
        assert len(normalized) == count + 1

    @pytest.mark.parametrize("query", [
        'user = "bob" status = "active"',
        '(a = 1) (b = 2) c = 3',
        'SELECT user FROM siem WHERE user = "a" computer = "b"',
        '',
    ])
    def test_idempotent(self, query):
        """Test normalizing twice equals normalizing once."""
        once = insert_implicit_and(tokenize(query).tokens)
        assert insert_implicit_and(once) == once
