"""
Tests for cursor context analysis, completion, signature help and hover.
"""

import pytest

from socql import (
    Clause,
    ExpectedType,
    analyze_context,
    complete,
    describe,
    load_default_registry,
    signature_help,
)


@pytest.fixture(scope="module")
def registry():
    """Default schema shared by the read-only tests in this module."""
    return load_default_registry()


def context(text, registry, offset=None):
    return analyze_context(text, len(text) if offset is None else offset, registry)


def labels(items):
    return [item.label for item in items]


class TestClauseDetection:
    """Test cases for clause resolution."""

    def test_select_clause(self, registry):
        """Test the cursor right after SELECT."""
        ctx = context("SELECT ", registry)
        assert ctx.current_clause == Clause.SELECT
        assert ctx.expected_type == ExpectedType.FIELD
        assert ctx.previous_token == "SELECT"

    def test_later_keyword_wins(self, registry):
        """Test the last clause keyword before the cursor is used."""
        ctx = context("SELECT user WHERE ", registry)
        assert ctx.current_clause == Clause.WHERE
        assert ctx.expected_type == ExpectedType.FIELD

    def test_pipe_after_keyword(self, registry):
        """Test a pipe after the last clause keyword."""
        ctx = context('SELECT user | last 7 ', registry)
        assert ctx.current_clause == Clause.PIPE

    def test_keyword_inside_string_is_ignored(self, registry):
        """Test words inside string literals never select a clause."""
        ctx = context('user = "select" ', registry)
        assert ctx.current_clause == Clause.NONE
        assert ctx.expected_type == ExpectedType.LOGICAL_OPERATOR

    def test_keyword_inside_comment_is_ignored(self, registry):
        """Test words inside comments never select a clause."""
        ctx = context("user = 1 // where\n", registry)
        assert ctx.current_clause == Clause.NONE

    def test_keyword_inside_identifier_is_ignored(self, registry):
        """Test clause keywords only match whole words."""
        ctx = context("selected = 1 ", registry)
        assert ctx.current_clause == Clause.NONE


class TestExpectedType:
    """Test cases for the expected-type decision."""

    def test_blank_prefix(self, registry):
        """Test an empty buffer expects a keyword."""
        assert context("", registry).expected_type == ExpectedType.KEYWORD
        assert context("   ", registry).expected_type == ExpectedType.KEYWORD

    def test_after_operator(self, registry):
        """Test a value is expected after a comparison operator."""
        ctx = context("user = ", registry)
        assert ctx.expected_type == ExpectedType.VALUE
        assert ctx.is_after_operator
        assert ctx.parent_field == "user"

    def test_inside_open_string(self, registry):
        """Test a value is expected inside an unterminated literal."""
        ctx = context('user = "ser', registry)
        assert ctx.expected_type == ExpectedType.VALUE
        assert ctx.parent_field == "user"
        assert ctx.word_at_cursor == "ser"

    def test_in_list(self, registry):
        """Test a value is expected inside an IN list."""
        ctx = context("EventID IN (", registry)
        assert ctx.expected_type == ExpectedType.VALUE
        assert ctx.parent_field == "EventID"

        assert context('EventID IN ("1", ', registry).expected_type == ExpectedType.VALUE

    @pytest.mark.parametrize("text", ["| ", "| la", "user = 1 | "])
    def test_after_pipe(self, registry, text):
        """Test a pipe command is expected right after a pipe."""
        ctx = context(text, registry)
        assert ctx.expected_type == ExpectedType.PIPE_COMMAND
        assert ctx.is_after_pipe
        assert ctx.current_clause == Clause.PIPE

    def test_pipe_where_expects_field(self, registry):
        """Test | where behaves as a WHERE clause."""
        ctx = context("| where ", registry)
        assert ctx.current_clause == Clause.WHERE
        assert ctx.expected_type == ExpectedType.FIELD
        assert not ctx.is_after_pipe

    def test_field_then_operator(self, registry):
        """Test an operator is expected after a field in WHERE."""
        ctx = context("| where user ", registry)
        assert ctx.expected_type == ExpectedType.OPERATOR
        assert ctx.parent_field == "user"

    @pytest.mark.parametrize("text", ["| last ", "| last 7 "])
    def test_time_unit(self, registry, text):
        """Test a time unit is expected after LAST and its number."""
        assert context(text, registry).expected_type == ExpectedType.TIME_UNIT

    def test_complete_condition(self, registry):
        """Test a logical operator is expected after a full condition."""
        ctx = context('user = "a" ', registry)
        assert ctx.expected_type == ExpectedType.LOGICAL_OPERATOR
        assert ctx.previous_token == '"a"'

    def test_select_list(self, registry):
        """Test positions inside a SELECT list."""
        assert context("SELECT user, ", registry).expected_type == ExpectedType.FIELD
        assert context("SELECT user ", registry).expected_type == ExpectedType.ANY

    def test_join_without_on(self, registry):
        """Test a keyword is expected until a JOIN has its ON."""
        assert context("SELECT user FROM siem JOIN socp ", registry).expected_type == ExpectedType.KEYWORD
        assert context("SELECT user FROM siem JOIN socp ON ", registry).expected_type == ExpectedType.FIELD

    def test_group_and_order(self, registry):
        """Test bare GROUP expects BY and GROUP BY expects a field."""
        assert context("SELECT user FROM siem GROUP ", registry).expected_type == ExpectedType.KEYWORD
        assert context("SELECT user FROM siem GROUP BY ", registry).expected_type == ExpectedType.FIELD
        assert context("SELECT user FROM siem ORDER BY ", registry).expected_type == ExpectedType.FIELD

    def test_typed_word_is_excluded_from_previous_token(self, registry):
        """Test the partial word does not count as the previous token."""
        ctx = context("SELECT us", registry)
        assert ctx.word_at_cursor == "us"
        assert ctx.previous_token == "SELECT"
        assert ctx.expected_type == ExpectedType.FIELD

    def test_trailing_comment_is_not_an_operator(self, registry):
        """Test an operator inside a line comment does not ask for a value."""
        ctx = context("SELECT user // a = \n", registry)
        assert ctx.expected_type == ExpectedType.ANY
        assert not ctx.is_after_operator
        assert ctx.parent_field == "user"

    def test_condition_followed_by_comment(self, registry):
        """Test a comment after a full condition leaves the condition complete."""
        ctx = context("user = 1 // foo", registry)
        assert ctx.expected_type == ExpectedType.LOGICAL_OPERATOR
        assert ctx.word_at_cursor == ""


class TestCursorOffsets:
    """Test cases for offset handling."""

    def test_only_prefix_is_inspected(self, registry):
        """Test text after the cursor is ignored."""
        ctx = analyze_context("| where user = 1", 2, registry)
        assert ctx.text_before_cursor == "| "
        assert ctx.expected_type == ExpectedType.PIPE_COMMAND

    def test_offset_is_clamped(self, registry):
        """Test offsets outside the buffer never raise."""
        assert analyze_context("user", 99, registry).text_before_cursor == "user"
        assert analyze_context("user", -5, registry).text_before_cursor == ""

    def test_malformed_input(self, registry):
        """Test garbage input still yields a context."""
        ctx = context("))) ! # ((", registry)
        assert ctx.expected_type in set(ExpectedType)

    def test_wire_shape(self, registry):
        """Test the serialized context keys."""
        data = context("user = ", registry).to_dict()
        assert data["expectedType"] == "VALUE"
        assert data["currentClause"] == "NONE"
        assert data["parentField"] == "user"
        assert data["isAfterOperator"] is True
        assert set(data) == {
            "wordAtCursor",
            "textBeforeCursor",
            "currentClause",
            "expectedType",
            "parentField",
            "isAfterPipe",
            "isAfterOperator",
            "previousToken",
        }


class TestCompletion:
    """Test cases for completion items."""

    def test_pipe_commands(self, registry):
        """Test only pipe commands are offered after a pipe."""
        items = complete("| ", 2, registry)
        assert labels(items) == ["last", "dedup", "eval", "agg", "order", "where", "regex"]
        assert "seconds" in items[0].insert_text

    def test_operators_follow_field_type(self, registry):
        """Test operators are filtered by the parent field type."""
        text = "| where src_port "
        result = labels(complete(text, len(text), registry))
        assert ">" in result
        assert "~" not in result

    def test_time_units_filtered_by_typed_word(self, registry):
        """Test prefix matches sort before substring matches."""
        text = "| last 7 d"
        assert labels(complete(text, len(text), registry)) == ["days", "seconds"]

    def test_value_examples(self, registry):
        """Test field examples are offered as values."""
        text = "platform_type = "
        items = complete(text, len(text), registry)
        assert labels(items) == ['"server"', '"workstation"']
        assert items[0].insert_text == '"server"'

    def test_value_examples_inside_literal(self, registry):
        """Test the opening quote is not inserted twice."""
        text = 'platform_type = "'
        items = complete(text, len(text), registry)
        assert items[0].insert_text == "server"

    def test_tables_after_from(self, registry):
        """Test tables are offered in a FROM clause."""
        text = "SELECT user FROM "
        result = labels(complete(text, len(text), registry))
        assert "siem" in result
        assert "user" in result

    def test_logical_operators(self, registry):
        """Test connectives and the pipe after a full condition."""
        text = 'user = "a" '
        result = labels(complete(text, len(text), registry))
        assert {"AND", "OR", "NOT", "|"} <= set(result)

    def test_typed_word_filters_and_ranks(self, registry):
        """Test filtering by the typed word with prefix matches first."""
        text = "SELECT us"
        result = labels(complete(text, len(text), registry))
        assert result[0] == "user"
        assert all("us" in label.lower() for label in result)

    def test_function_insert_text_is_a_snippet(self, registry):
        """Test function completions insert a call with tab stops."""
        text = "SELECT regex_m"
        item = complete(text, len(text), registry)[0]
        assert item.label == "regex_match"
        assert item.kind == "function"
        assert item.insert_text == 'regex_match(${1:field}, "${2:pattern}") '

    def test_blank_buffer_offers_keywords(self, registry):
        """Test an empty buffer starts with keywords."""
        items = complete("", 0, registry)
        assert "SELECT" in labels(items)
        assert items[0].kind == "keyword"


class TestSignatureHelp:
    """Test cases for function signature help."""

    def test_active_parameter(self, registry):
        """Test the argument index after one comma."""
        text = "regex_match(file_path, "
        help_ = signature_help(text, len(text), registry)

        assert help_.function == "regex_match"
        assert help_.label == "regex_match(field: field, pattern: string)"
        assert help_.active_parameter == 1
        assert (help_.parameters[0].start, help_.parameters[0].end) == (12, 24)
        assert help_.label[help_.parameters[1].start:help_.parameters[1].end] == "pattern: string"

    def test_active_parameter_is_clamped(self, registry):
        """Test extra arguments point at the last parameter."""
        text = "lower(a, b, "
        assert signature_help(text, len(text), registry).active_parameter == 0

    def test_innermost_call(self, registry):
        """Test nested calls resolve to the innermost open one."""
        text = "lower(concat(a, "
        assert signature_help(text, len(text), registry).function == "concat"

    def test_optional_parameter_label(self, registry):
        """Test optional parameters are marked."""
        text = "SELECT count("
        assert signature_help(text, len(text), registry).label == "count(field?: field)"

    @pytest.mark.parametrize("text", ["user = 1", "bogus(", "lower(user) ", ""])
    def test_no_signature(self, registry, text):
        """Test positions outside a known open call."""
        assert signature_help(text, len(text), registry) is None


class TestHover:
    """Test cases for hover descriptions."""

    def test_field(self, registry):
        """Test hovering a field name."""
        info = describe("user = 1", 2, registry)
        assert info.kind == "field"
        assert (info.start, info.end) == (0, 4)

    def test_function_needs_call(self, registry):
        """Test a function name is described only when called."""
        info = describe("lower(user)", 2, registry)
        assert info.kind == "function"
        assert (info.start, info.end) == (0, 5)
        assert describe("lower", 2, registry) is None

    def test_pipe_command(self, registry):
        """Test hovering a pipe command, including one that shares a function name."""
        assert describe("| dedup user", 4, registry).kind == "pipe_command"
        assert describe("| last 7 days", 3, registry).kind == "pipe_command"

    def test_keyword(self, registry):
        """Test hovering a keyword."""
        info = describe("SELECT user", 2, registry)
        assert info.kind == "keyword"
        assert info.contents[0] == "**SELECT** `keyword`"

    def test_operator_under_cursor(self, registry):
        """Test hovering an operator symbol."""
        info = describe('user ~ "x"', 5, registry)
        assert info.kind == "operator"
        assert (info.start, info.end) == (5, 6)

        info = describe('user != "x"', 6, registry)
        assert (info.start, info.end) == (5, 7)

    def test_operator_before_unknown_word(self, registry):
        """Test the operator before an unknown word is described."""
        info = describe("foo = 1", 6, registry)
        assert info.kind == "operator"
        assert (info.start, info.end) == (4, 5)

    def test_nothing_known(self, registry):
        """Test empty text and unknown words."""
        assert describe("", 0, registry) is None
        assert describe("foo", 1, registry) is None
