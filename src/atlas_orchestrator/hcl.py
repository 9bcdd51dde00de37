"""Structured configuration documents (the HCL subset used by atlas.hcl).

Documents are trees of typed, optionally labeled blocks. Attribute
expressions are kept as raw source text, so references such as ``atlas.env``
or function calls round-trip untouched. Comments and blank lines are
preserved; everything else is rendered in canonical form (two-space indent,
``=`` aligned across consecutive attributes).
"""

import re
from dataclasses import dataclass, field
from typing import Any, Union

from .constants import CONFIG_FILE_NAME, HCL_INDENT
from .errors import ParseError

IDENT_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_-]*")
HEREDOC_PATTERN = re.compile(r"<<(-?)([A-Za-z_][A-Za-z0-9_-]*)[ \t]*\r?\n")

_CLOSERS = {"(": ")", "[": "]", "{": "}"}


@dataclass
class Attribute:
    """``name = expression`` with the expression kept as source text."""

    name: str
    expr: str
    comment: str = ""


@dataclass
class Comment:
    """Standalone comment line(s), including the comment markers."""

    text: str


@dataclass
class BlankLine:
    """Empty line between body items."""


@dataclass
class Block:
    """Typed block with optional labels and a nested body."""

    type: str
    labels: list[str] = field(default_factory=list)
    body: "Body" = field(default_factory=lambda: Body())

    @property
    def address(self) -> tuple[str, ...]:
        """Identity used to match blocks during merges: (type, labels...)."""
        return (self.type, *self.labels)

    @property
    def address_str(self) -> str:
        """Dotted address of a block (``env.tf`` for ``env "tf" {}``)."""
        return ".".join(self.address)


BodyItem = Union[Attribute, Block, Comment, BlankLine]


@dataclass
class Body:
    """Ordered list of attributes, blocks, comments and blank lines."""

    items: list[BodyItem] = field(default_factory=list)

    def attributes(self) -> dict[str, Attribute]:
        return {item.name: item for item in self.items if isinstance(item, Attribute)}

    def get_attribute(self, name: str) -> Attribute | None:
        return self.attributes().get(name)

    def set_attribute_raw(self, name: str, expr: str) -> Attribute:
        """Replace an attribute's expression in place, or append a new attribute."""
        attr = self.get_attribute(name)
        if attr is not None:
            attr.expr = expr
            return attr
        attr = Attribute(name=name, expr=expr)
        self.items.append(attr)
        return attr

    def set_attribute_value(self, name: str, value: Any) -> Attribute:
        """Set an attribute to a literal value (string, bool, number or list)."""
        return self.set_attribute_raw(name, literal(value))

    def set_attribute_traversal(self, name: str, traversal: str) -> Attribute:
        """Set an attribute to a bare reference such as ``LINEAR_SKIP``."""
        if not IDENT_PATTERN.fullmatch(traversal):
            raise ValueError(f"Invalid traversal: {traversal!r}")
        return self.set_attribute_raw(name, traversal)

    def blocks(self) -> list[Block]:
        return [item for item in self.items if isinstance(item, Block)]

    def append_block(self, block: Block) -> Block:
        self.items.append(block)
        return block

    def append_new_block(self, type_: str, labels: list[str] | None = None) -> Block:
        return self.append_block(Block(type=type_, labels=list(labels or [])))

    def remove_block(self, block: Block) -> bool:
        """Remove a block by identity. Returns False if it is not in this body."""
        for idx, item in enumerate(self.items):
            if item is block:
                del self.items[idx]
                return True
        return False

    def append_newline(self) -> None:
        self.items.append(BlankLine())

    def ends_with_blank_line(self) -> bool:
        return bool(self.items) and isinstance(self.items[-1], BlankLine)


@dataclass
class Document:
    """Top-level configuration document."""

    body: Body = field(default_factory=Body)

    def render(self) -> str:
        lines = _render_body(self.body, 0)
        return "\n".join(lines) + "\n" if lines else ""

    def __str__(self) -> str:
        return self.render()


def literal(value: Any) -> str:
    """Render a Python value as an HCL literal expression."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return quote(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(literal(v) for v in value) + "]"
    raise TypeError(f"Unsupported literal type: {type(value).__name__}")


def quote(value: str) -> str:
    """Quote and escape a string, disabling template sequences."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("${", "$${")
        .replace("%{", "%%{")
    )
    return f'"{escaped}"'


def parse_config(text: str, filename: str = CONFIG_FILE_NAME) -> Document:
    """
    Parse a configuration document.

    Args:
        text: Document source
        filename: Name used in error positions

    Returns:
        Parsed Document

    Raises:
        ParseError: If the text is not a well-formed document
    """
    return Document(body=_Parser(text, filename).parse_body(closing=False))


def _render_body(body: Body, depth: int) -> list[str]:
    indent = HCL_INDENT * depth
    lines: list[str] = []
    items = body.items
    i = 0
    while i < len(items):
        item = items[i]
        if isinstance(item, Attribute):
            # Align '=' across the run of consecutive attributes
            j = i
            while j < len(items) and isinstance(items[j], Attribute):
                j += 1
            run: list[Attribute] = items[i:j]  # type: ignore[assignment]
            width = max(len(a.name) for a in run)
            for attr in run:
                line = f"{indent}{attr.name.ljust(width)} = {attr.expr}"
                if attr.comment:
                    line += f" {attr.comment}"
                lines.append(line)
            i = j
            continue
        if isinstance(item, Block):
            header = item.type + "".join(f" {quote(label)}" for label in item.labels)
            lines.append(f"{indent}{header} {{")
            lines.extend(_render_body(item.body, depth + 1))
            lines.append(f"{indent}}}")
        elif isinstance(item, Comment):
            lines.append(f"{indent}{item.text}")
        else:
            lines.append("")
        i += 1
    return lines


class _Parser:
    """Recursive-descent parser over the raw source."""

    def __init__(self, src: str, filename: str):
        self.src = src
        self.filename = filename
        self.pos = 0

    def error(self, message: str, pos: int | None = None) -> ParseError:
        pos = self.pos if pos is None else pos
        line = self.src.count("\n", 0, pos) + 1
        column = pos - self.src.rfind("\n", 0, pos)
        return ParseError(message, line=line, column=column, filename=self.filename)

    def peek(self, offset: int = 0) -> str:
        idx = self.pos + offset
        return self.src[idx] if idx < len(self.src) else ""

    def skip_inline_space(self) -> None:
        while self.peek() in (" ", "\t", "\r") and self.peek():
            self.pos += 1

    def at_comment(self) -> bool:
        c = self.peek()
        return c == "#" or (c == "/" and self.peek(1) in ("/", "*"))

    def parse_body(self, closing: bool) -> Body:
        body = Body()
        # A nested body starts on its block's header line
        has_content = closing
        while True:
            self.skip_inline_space()
            c = self.peek()
            if not c:
                if closing:
                    raise self.error("unclosed block, expected '}'")
                return body
            if c == "\n":
                self.pos += 1
                if not has_content:
                    body.append_newline()
                has_content = False
            elif c == "}":
                if not closing:
                    raise self.error("unexpected '}'")
                self.pos += 1
                return body
            elif c == ",":
                if not (has_content and body.items and isinstance(body.items[-1], Attribute)):
                    raise self.error("unexpected ','")
                self.pos += 1
            elif self.at_comment():
                body.items.append(Comment(self.read_comment()))
                has_content = True
            elif IDENT_PATTERN.match(self.src, self.pos):
                body.items.append(self.parse_item(closing))
                has_content = True
            else:
                raise self.error(f"unexpected character {c!r}")

    def parse_item(self, closing: bool) -> Attribute | Block:
        start = self.pos
        name = self.read_ident()
        self.skip_inline_space()

        if self.peek() == "=" and self.peek(1) != "=":
            self.pos += 1
            expr, comment = self.read_expr(closing)
            if not expr:
                raise self.error(f"missing value for attribute {name!r}", start)
            return Attribute(name=name, expr=expr, comment=comment)

        labels = []
        while True:
            self.skip_inline_space()
            c = self.peek()
            if c == '"':
                labels.append(self.read_string_literal())
            elif c == "{":
                self.pos += 1
                break
            elif c and IDENT_PATTERN.match(self.src, self.pos):
                labels.append(self.read_ident())
            else:
                raise self.error(f"expected '=' or '{{' after {name!r}")
        return Block(type=name, labels=labels, body=self.parse_body(closing=True))

    def read_ident(self) -> str:
        m = IDENT_PATTERN.match(self.src, self.pos)
        if not m:
            raise self.error("expected identifier")
        self.pos = m.end()
        return m.group()

    def read_string_literal(self) -> str:
        """Read a quoted label and return its unescaped value."""
        start = self.pos
        self.pos += 1
        out = []
        escapes = {"n": "\n", "r": "\r", "t": "\t", '"': '"', "\\": "\\"}
        while True:
            c = self.peek()
            if not c or c == "\n":
                raise self.error("unterminated string", start)
            self.pos += 1
            if c == '"':
                return "".join(out)
            if c == "\\":
                esc = self.peek()
                if esc not in escapes:
                    raise self.error(f"invalid escape sequence '\\{esc}'")
                out.append(escapes[esc])
                self.pos += 1
            else:
                out.append(c)

    def read_comment(self) -> str:
        start = self.pos
        if self.src.startswith("/*", self.pos):
            end = self.src.find("*/", self.pos + 2)
            if end == -1:
                raise self.error("unterminated comment", start)
            self.pos = end + 2
        else:
            end = self.src.find("\n", self.pos)
            self.pos = len(self.src) if end == -1 else end
        return self.src[start : self.pos].rstrip()

    def read_expr(self, closing: bool) -> tuple[str, str]:
        """
        Read an expression up to the end of its line at bracket depth 0.

        Returns:
            Tuple of (expression source, trailing comment)
        """
        start = self.pos
        stack: list[str] = []
        while True:
            c = self.peek()
            if not c:
                if stack:
                    raise self.error(f"unclosed expression, expected {stack[-1]!r}", start)
                break
            if not stack:
                if c == "\n" or c == ",":
                    break
                if c == "}" and closing:
                    break
                if self.at_comment():
                    break
            if c == '"':
                self.skip_template()
            elif c == "<" and self.peek(1) == "<" and HEREDOC_PATTERN.match(self.src, self.pos):
                self.skip_heredoc()
            elif c in _CLOSERS:
                stack.append(_CLOSERS[c])
                self.pos += 1
            elif c in (")", "]", "}"):
                if not stack or stack[-1] != c:
                    raise self.error(f"unbalanced {c!r}")
                stack.pop()
                self.pos += 1
            elif stack and self.at_comment():
                self.read_comment()
            else:
                self.pos += 1

        expr = self.src[start : self.pos].strip()
        self.skip_inline_space()
        comment = self.read_comment() if self.at_comment() else ""
        return expr, comment

    def skip_template(self) -> None:
        """Skip a quoted template, including nested interpolations."""
        start = self.pos
        self.pos += 1
        while True:
            c = self.peek()
            if not c or c == "\n":
                raise self.error("unterminated string", start)
            if c == "\\":
                self.pos += 2
            elif c == '"':
                self.pos += 1
                return
            elif c in ("$", "%") and self.peek(1) == "{":
                if self.peek(-1) == c:
                    # Escaped sequence ($${ or %%{)
                    self.pos += 2
                    continue
                self.pos += 2
                self.skip_interpolation()
            else:
                self.pos += 1

    def skip_interpolation(self) -> None:
        depth = 1
        start = self.pos
        while depth:
            c = self.peek()
            if not c:
                raise self.error("unterminated template interpolation", start)
            if c == '"':
                self.skip_template()
                continue
            if c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
            self.pos += 1

    def skip_heredoc(self) -> None:
        start = self.pos
        m = HEREDOC_PATTERN.match(self.src, self.pos)
        if m is None:
            raise self.error("invalid heredoc marker", start)
        marker = m.group(2)
        self.pos = m.end()
        while self.pos < len(self.src):
            end = self.src.find("\n", self.pos)
            line_end = len(self.src) if end == -1 else end
            line = self.src[self.pos : line_end]
            if line.strip() == marker:
                self.pos = line_end
                return
            self.pos = line_end + 1
        raise self.error(f"unterminated heredoc, expected {marker!r}", start)
