"""Tests for hcl module."""

import pytest

from atlas_orchestrator.errors import ErrorKind, ParseError
from atlas_orchestrator.hcl import (
    Attribute,
    BlankLine,
    Block,
    Comment,
    Document,
    _Parser,
    literal,
    parse_config,
    quote,
)


class TestParseConfig:
    """Tests for parsing configuration documents."""

    def test_empty_document(self) -> None:
        """Test that an empty source yields an empty document."""
        doc = parse_config("")

        assert doc.body.items == []
        assert doc.render() == ""

    def test_labeled_block(self) -> None:
        """Test parsing a block with a quoted label and an attribute."""
        doc = parse_config('env "dev" {\n  url = "sqlite://file.db"\n}\n')

        (block,) = doc.body.blocks()
        assert block.type == "env"
        assert block.labels == ["dev"]
        assert block.address == ("env", "dev")
        assert block.body.get_attribute("url").expr == '"sqlite://file.db"'

    def test_bare_label(self) -> None:
        """Test that identifier labels are accepted and rendered quoted."""
        doc = parse_config("env dev {\n}\n")

        assert doc.body.blocks()[0].labels == ["dev"]
        assert doc.render() == 'env "dev" {\n}\n'

    def test_expressions_kept_as_source(self) -> None:
        """Test that references and function calls are kept verbatim."""
        doc = parse_config(
            "env {\n"
            "  name = atlas.env\n"
            '  url  = getenv("DATABASE_URL")\n'
            '  dev  = "docker://mysql/8/${var.db}"\n'
            "}\n"
        )

        attrs = doc.body.blocks()[0].body.attributes()
        assert attrs["name"].expr == "atlas.env"
        assert attrs["url"].expr == 'getenv("DATABASE_URL")'
        assert attrs["dev"].expr == '"docker://mysql/8/${var.db}"'

    def test_single_line_block(self) -> None:
        """Test a one-line block with comma separated attributes."""
        doc = parse_config('env { url = "y", dev = "z" }')

        attrs = doc.body.blocks()[0].body.attributes()
        assert attrs["url"].expr == '"y"'
        assert attrs["dev"].expr == '"z"'

    def test_multiline_list(self) -> None:
        """Test that brackets keep an expression open across lines."""
        src = 'env {\n  schemas = [\n    "a",\n    "b",\n  ]\n}\n'

        doc = parse_config(src)

        assert doc.body.blocks()[0].body.get_attribute("schemas").expr == '[\n    "a",\n    "b",\n  ]'
        assert doc.render() == src

    def test_heredoc(self) -> None:
        """Test that heredoc bodies are kept whole."""
        src = "locals {\n  sql = <<EOT\nSELECT 1;\nEOT\n}\n"

        doc = parse_config(src)

        assert doc.body.blocks()[0].body.get_attribute("sql").expr == "<<EOT\nSELECT 1;\nEOT"
        assert doc.render() == src

    def test_comments_and_blank_lines(self) -> None:
        """Test that comments and blank lines survive a round trip."""
        src = (
            "# Base config\n"
            "variable \"token\" {\n"
            "  type = string # from the environment\n"
            "}\n"
            "\n"
            "// local env\n"
            "env \"local\" {\n"
            "  url = var.url\n"
            "}\n"
        )

        doc = parse_config(src)

        assert isinstance(doc.body.items[0], Comment)
        assert isinstance(doc.body.items[2], BlankLine)
        assert doc.body.blocks()[0].body.get_attribute("type").comment == "# from the environment"
        assert doc.render() == src

    def test_escaped_template_sequence(self) -> None:
        """Test that an escaped interpolation does not open a template."""
        doc = parse_config('env {\n  url = "$${not_a_template}"\n}\n')

        assert doc.body.blocks()[0].body.get_attribute("url").expr == '"$${not_a_template}"'

    def test_interpolation_with_braces(self) -> None:
        """Test that braces inside an interpolation do not close the block."""
        doc = parse_config('env {\n  url = "${lookup({a = "b"}, "a")}"\n}\n')

        assert doc.body.blocks()[0].body.get_attribute("url").expr == '"${lookup({a = "b"}, "a")}"'


class TestParseErrors:
    """Tests for malformed documents."""

    def test_missing_value(self) -> None:
        """Test that the position of an attribute without value is reported."""
        with pytest.raises(ParseError) as exc_info:
            parse_config("env {\n  url =\n}\n")

        assert exc_info.value.line == 2
        assert exc_info.value.column == 3
        assert exc_info.value.kind == ErrorKind.PARSE
        assert "atlas.hcl:2,3" in str(exc_info.value)

    def test_unclosed_block(self) -> None:
        """Test that a missing closing brace is reported."""
        with pytest.raises(ParseError, match="unclosed block"):
            parse_config("env {\n")

    def test_unexpected_closing_brace(self) -> None:
        """Test that a stray brace at the top level is reported."""
        with pytest.raises(ParseError) as exc_info:
            parse_config("}\n")

        assert (exc_info.value.line, exc_info.value.column) == (1, 1)

    def test_unterminated_string(self) -> None:
        """Test that a string running into the end of line is reported."""
        with pytest.raises(ParseError, match="unterminated string"):
            parse_config('env {\n  url = "sqlite://file.db\n}\n')

    def test_unbalanced_bracket(self) -> None:
        """Test that a mismatched bracket is reported."""
        with pytest.raises(ParseError, match="unbalanced"):
            parse_config("env {\n  schemas = [1, 2)\n}\n")

    def test_unterminated_heredoc(self) -> None:
        """Test that a heredoc without end marker is reported."""
        with pytest.raises(ParseError, match="heredoc"):
            parse_config("locals {\n  sql = <<EOT\nSELECT 1;\n")

    def test_heredoc_without_marker(self) -> None:
        """Test that a heredoc opener without a valid marker is reported at its position."""
        parser = _Parser("sql = <<\n", "atlas.hcl")
        parser.pos = 6

        with pytest.raises(ParseError, match="invalid heredoc marker") as exc_info:
            parser.skip_heredoc()

        assert (exc_info.value.line, exc_info.value.column) == (1, 7)

    def test_custom_filename(self) -> None:
        """Test that the filename is part of the error location."""
        with pytest.raises(ParseError, match="base.hcl:1,1"):
            parse_config("= 1\n", filename="base.hcl")


class TestRender:
    """Tests for rendering documents."""

    def test_aligns_equals_in_attribute_runs(self) -> None:
        """Test that '=' is aligned across consecutive attributes only."""
        block = Block(type="env")
        block.body.set_attribute_value("name", "tf")
        block.body.set_attribute_value("url", "sqlite://file.db")
        block.body.append_newline()
        block.body.set_attribute_value("revisions_schema", "public")
        doc = Document()
        doc.body.append_block(block)

        assert doc.render() == (
            "env {\n"
            '  name = "tf"\n'
            '  url  = "sqlite://file.db"\n'
            "\n"
            '  revisions_schema = "public"\n'
            "}\n"
        )

    def test_nested_blocks(self) -> None:
        """Test that nested blocks are indented by two spaces per level."""
        doc = Document()
        migration = doc.body.append_new_block("env", ["tf"]).body.append_new_block("migration")
        migration.body.append_new_block("repo").body.set_attribute_value("name", "app")

        assert str(doc) == (
            'env "tf" {\n'
            "  migration {\n"
            "    repo {\n"
            '      name = "app"\n'
            "    }\n"
            "  }\n"
            "}\n"
        )


class TestBody:
    """Tests for Body editing helpers."""

    def test_set_attribute_replaces_in_place(self) -> None:
        """Test that setting an existing attribute keeps its position."""
        doc = parse_config('env {\n  url = "a"\n  dev = "b"\n}\n')
        body = doc.body.blocks()[0].body

        body.set_attribute_value("url", "c")

        assert [a.name for a in body.attributes().values()] == ["url", "dev"]
        assert body.get_attribute("url").expr == '"c"'

    def test_set_attribute_traversal(self) -> None:
        """Test setting a bare reference."""
        doc = Document()
        attr = doc.body.set_attribute_traversal("exec_order", "LINEAR_SKIP")

        assert attr == Attribute(name="exec_order", expr="LINEAR_SKIP")

    def test_invalid_traversal(self) -> None:
        """Test that a traversal must be an identifier."""
        with pytest.raises(ValueError):
            Document().body.set_attribute_traversal("exec_order", "not valid")

    def test_remove_block_by_identity(self) -> None:
        """Test that only the given block instance is removed."""
        doc = parse_config("env {\n}\nenv {\n}\n")
        first, second = doc.body.blocks()

        assert doc.body.remove_block(second) is True
        assert doc.body.blocks() == [first]
        assert doc.body.blocks()[0] is first
        assert doc.body.remove_block(second) is False


class TestLiterals:
    """Tests for literal and quote."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (True, "true"),
            (False, "false"),
            (3, "3"),
            (1.5, "1.5"),
            ("text", '"text"'),
            (["a", 1], '["a", 1]'),
        ],
    )
    def test_literal(self, value, expected) -> None:
        """Test rendering Python values as literals."""
        assert literal(value) == expected

    def test_literal_unsupported(self) -> None:
        """Test that unsupported values are rejected."""
        with pytest.raises(TypeError):
            literal({"a": 1})

    def test_quote_escapes(self) -> None:
        """Test that quotes, backslashes, control characters and templates are escaped."""
        assert quote('a"b\\c\n${x}%{y}') == '"a\\"b\\\\c\\n$${x}%%{y}"'
