"""
Floor Plan Stylesheet Compiler

Features:
- Per-declaration measurement units (@unit chains, physical CSS units at 96 DPI)
- Rooms, walls, doors and background grids
- Repeat patterns expanded into evenly spaced placeholder rooms
- Error recovery: the parser never stops on malformed input
- Output: a unit-normalized model (JSON) and the CSS that renders it

Grammar (EBNF):
    drawing     ::= module_decl? top_item* draw_block
    module_decl ::= '@module' IDENTIFIER ';'
    top_item    ::= unit_decl | HIERARCHY ';'? | import_decl | export_decl
    unit_decl   ::= '@unit' (IDENTIFIER)? '=' measure ';'
    draw_block  ::= ('@draw' | '@plan') IDENTIFIER '{' canvas body_item* '}'
    canvas      ::= '@canvas' measure 'x' measure ';'
    body_item   ::= room | wall | door | grid | repeat | use
    room        ::= 'room' IDENTIFIER 'at' coord 'size' coord ('{' prop* '}' | ';')?
    prop        ::= 'label' ':' STRING ';' | IDENTIFIER ':' token* ';'
    wall        ::= 'wall' 'from' coord 'to' coord ';'
    door        ::= 'door' 'from' coord 'to' coord 'width' measure ';'
    repeat      ::= 'repeat' IDENTIFIER 'from' coord 'to' coord 'space' measure ';'
    grid        ::= '@grid' mode? ('size' measure ('x' measure)?)?
                    ('color' ('#' hexpart+ | IDENTIFIER))? ('alpha' measure)? ';'
    coord       ::= '(' measure ',' measure ')'
    measure     ::= NUMBER IDENTIFIER?

Example input:
    @unit U = 48px;
    @draw Home {
      @canvas 18U x 10U;
      @grid grid size 1U color #ccc alpha 0.15;
      room living at (1U, 1U) size (6U, 4U) { label: "Living Room"; }
      wall from (1U, 5U) to (13U, 5U);
      door from (7U, 2U) to (7U, 3U) width 0.9U;
      repeat Window from (8U, 0U) to (12U, 0U) space 2U;
    }
"""

from __future__ import annotations
import json
import logging
import math
import string
import sys
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import List, Optional, Dict, Any, Tuple, NamedTuple, Sequence

from floorplan_config import get_default_output_dir, get_log_level, get_preview_scale

logger = logging.getLogger(__name__)


# =============================================================================
# 1. SOURCE LOCATION & ERROR HANDLING
# =============================================================================

@dataclass(frozen=True)
class Position:
    line: int
    column: int
    offset: int = 0

    def __str__(self) -> str:
        return f"line {self.line}, col {self.column}"


@dataclass(frozen=True)
class Span:
    start: Position
    end: Position

    def __str__(self) -> str:
        return str(self.start)


class ErrorKind(Enum):
    LEXICAL = auto()
    SYNTAX = auto()
    SEMANTIC = auto()


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    message: str
    span: Optional[Span] = None
    severity: Severity = Severity.ERROR
    kind: ErrorKind = ErrorKind.SYNTAX
    hint: Optional[str] = None

    def __str__(self) -> str:
        where = f" ({self.span})" if self.span else ""
        return f"{self.severity.value}: {self.message}{where}"


class Diagnostics:
    """Ordered collection of recoverable problems found by every stage."""

    def __init__(self):
        self.items: List[Diagnostic] = []

    def error(self, text: str, span: Optional[Span] = None,
              hint: str = None, kind: ErrorKind = ErrorKind.SYNTAX):
        self.items.append(Diagnostic(text, span, Severity.ERROR, kind, hint))

    def warn(self, text: str, span: Optional[Span] = None,
             kind: ErrorKind = ErrorKind.SEMANTIC):
        self.items.append(Diagnostic(text, span, Severity.WARNING, kind))

    def extend(self, diagnostics: Sequence[Diagnostic]):
        self.items.extend(diagnostics)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.items if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.items if d.severity is Severity.WARNING]

    def has_errors(self) -> bool:
        return any(d.severity is Severity.ERROR for d in self.items)


class LexError(Exception):
    """Raised when the source contains a character no token can start with."""

    def __init__(self, char: str, position: Position):
        super().__init__(f"Unexpected character {char!r} at {position}")
        self.char = char
        self.position = position


# =============================================================================
# 2. LEXER
# =============================================================================

class TokenType(Enum):
    IDENTIFIER = "IDENTIFIER"
    NUMBER = "NUMBER"
    STRING = "STRING"

    AT_UNIT = "@unit"
    AT_DRAW = "@draw"
    AT_CANVAS = "@canvas"
    AT_GRID = "@grid"
    AT_MODULE = "@module"
    HIERARCHY = "HIERARCHY"

    ROOM = "room"
    WALL = "wall"
    DOOR = "door"

    IMPORT = "import"
    EXPORT = "export"
    USE = "use"
    REPEAT = "repeat"
    SPACE = "space"
    FROM = "from"
    AS = "as"
    WITH = "with"
    DEFAULT = "default"

    AT = "at"
    SIZE = "size"
    BETWEEN = "between"
    WIDTH = "width"
    ROTATE = "rotate"
    SCALE = "scale"
    SNAP = "snap"
    TO = "to"
    OFFSET = "offset"
    X = "x"

    GRID = "grid"
    VLINES = "vlines"
    HLINES = "hlines"
    LINES = "lines"
    DOTTED = "dotted"
    COLOR = "color"
    ALPHA = "alpha"

    LABEL = "label"

    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    LBRACKET = "["
    RBRACKET = "]"
    COMMA = ","
    SEMICOLON = ";"
    COLON = ":"
    DOT = "."
    EQUALS = "="

    MULTIPLY = "*"
    DIVIDE = "/"
    PLUS = "+"
    MINUS = "-"
    HASH = "#"

    # Never produced by the lexer; the parser still filters them out.
    COMMENT = "COMMENT"
    WHITESPACE = "WHITESPACE"
    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    start: Position
    end: Position

    @property
    def location(self) -> Position:
        return self.start

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r})"


DIGITS = set(string.digits)
IDENT_START = set(string.ascii_letters + "_")
IDENT_CHARS = IDENT_START | DIGITS | {"-"}


class Lexer:
    KEYWORDS = {
        '@unit': TokenType.AT_UNIT,
        '@draw': TokenType.AT_DRAW,
        '@plan': TokenType.AT_DRAW,
        '@canvas': TokenType.AT_CANVAS,
        '@grid': TokenType.AT_GRID,
        '@module': TokenType.AT_MODULE,
        'room': TokenType.ROOM,
        'wall': TokenType.WALL,
        'door': TokenType.DOOR,
        'import': TokenType.IMPORT,
        'export': TokenType.EXPORT,
        'use': TokenType.USE,
        'repeat': TokenType.REPEAT,
        'space': TokenType.SPACE,
        'from': TokenType.FROM,
        'as': TokenType.AS,
        'with': TokenType.WITH,
        'default': TokenType.DEFAULT,
        'at': TokenType.AT,
        'size': TokenType.SIZE,
        'between': TokenType.BETWEEN,
        'width': TokenType.WIDTH,
        'rotate': TokenType.ROTATE,
        'scale': TokenType.SCALE,
        'snap': TokenType.SNAP,
        'to': TokenType.TO,
        'offset': TokenType.OFFSET,
        'x': TokenType.X,
        'grid': TokenType.GRID,
        'vlines': TokenType.VLINES,
        'hlines': TokenType.HLINES,
        'lines': TokenType.LINES,
        'dotted': TokenType.DOTTED,
        'color': TokenType.COLOR,
        'alpha': TokenType.ALPHA,
        'label': TokenType.LABEL,
    }
    PUNCTUATION = {
        '(': TokenType.LPAREN, ')': TokenType.RPAREN,
        '{': TokenType.LBRACE, '}': TokenType.RBRACE,
        '[': TokenType.LBRACKET, ']': TokenType.RBRACKET,
        ',': TokenType.COMMA, ';': TokenType.SEMICOLON,
        ':': TokenType.COLON, '.': TokenType.DOT, '=': TokenType.EQUALS,
        '*': TokenType.MULTIPLY, '/': TokenType.DIVIDE,
        '+': TokenType.PLUS, '-': TokenType.MINUS, '#': TokenType.HASH,
    }
    ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', '\\': '\\'}

    def __init__(self, content: str):
        self.content = content
        self.pos = 0
        self.line = 1
        self.column = 1

    def loc(self) -> Position:
        return Position(self.line, self.column, self.pos)

    def at_end(self) -> bool:
        return self.pos >= len(self.content)

    def peek(self, offset: int = 0) -> str:
        idx = self.pos + offset
        return self.content[idx] if idx < len(self.content) else '\0'

    def advance(self) -> str:
        if self.at_end():
            return ''
        ch = self.content[self.pos]
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def skip_ws(self):
        while not self.at_end() and self.peek().isspace():
            self.advance()

    def skip_comment(self):
        self.advance()  # /
        self.advance()  # *
        while not self.at_end() and not (self.peek() == '*' and self.peek(1) == '/'):
            self.advance()
        if not self.at_end():
            self.advance()
            self.advance()

    def scan_string(self) -> Token:
        start = self.loc()
        quote = self.advance()
        chars = []
        while not self.at_end() and self.peek() != quote:
            if self.peek() == '\\':
                self.advance()
                escaped = self.advance()
                chars.append(self.ESCAPES.get(escaped, escaped))
            else:
                chars.append(self.advance())
        if not self.at_end():
            self.advance()  # closing quote
        return Token(TokenType.STRING, ''.join(chars), start, self.loc())

    def scan_number(self) -> Token:
        start = self.loc()
        start_pos = self.pos
        while self.peek() in DIGITS:
            self.advance()
        if self.peek() == '.' and self.peek(1) in DIGITS:
            self.advance()
            while self.peek() in DIGITS:
                self.advance()
        raw = self.content[start_pos:self.pos]
        return Token(TokenType.NUMBER, raw, start, self.loc())

    def scan_word(self) -> Token:
        start = self.loc()
        start_pos = self.pos
        if self.peek() == '@':
            self.advance()
            # @1, @2 ... number sections of a drawing
            if self.peek() in DIGITS:
                while self.peek() in DIGITS:
                    self.advance()
                return Token(TokenType.HIERARCHY, self.content[start_pos:self.pos], start, self.loc())
        while self.peek() in IDENT_CHARS:
            self.advance()
        raw = self.content[start_pos:self.pos]
        return Token(self.KEYWORDS.get(raw, TokenType.IDENTIFIER), raw, start, self.loc())

    def tokenize(self) -> List[Token]:
        tokens = []
        while not self.at_end():
            self.skip_ws()
            if self.at_end():
                break
            ch = self.peek()

            if ch == '/' and self.peek(1) == '*':
                self.skip_comment()
                continue

            if ch in ('"', "'"):
                tokens.append(self.scan_string())
                continue

            if ch in DIGITS:
                tokens.append(self.scan_number())
                continue

            if ch in IDENT_START or ch == '@':
                tokens.append(self.scan_word())
                continue

            if ch in self.PUNCTUATION:
                start = self.loc()
                self.advance()
                tokens.append(Token(self.PUNCTUATION[ch], ch, start, self.loc()))
                continue

            raise LexError(ch, self.loc())

        end = self.loc()
        tokens.append(Token(TokenType.EOF, '', end, end))
        return tokens


def tokenize(source: str) -> List[Token]:
    return Lexer(source).tokenize()


# =============================================================================
# 3. AST
# =============================================================================

GRID_MODES = ('grid', 'vlines', 'hlines', 'lines', 'dotted')


@dataclass(frozen=True)
class UnitDeclaration:
    name: str
    value: float
    unit: str
    span: Optional[Span] = None


@dataclass(frozen=True)
class Canvas:
    width: float
    height: float
    unit: str


@dataclass(frozen=True)
class Room:
    id: str
    x: float
    y: float
    width: float
    height: float
    unit: str
    label: Optional[str] = None
    properties: Optional[Dict[str, str]] = None
    span: Optional[Span] = None


@dataclass(frozen=True)
class Wall:
    x1: float
    y1: float
    x2: float
    y2: float
    unit: str
    span: Optional[Span] = None


@dataclass(frozen=True)
class Door:
    x1: float
    y1: float
    x2: float
    y2: float
    width: float
    unit: str
    span: Optional[Span] = None


@dataclass(frozen=True)
class Grid:
    mode: str
    size_x: float
    size_y: float
    unit: str
    color: Optional[str] = None
    alpha: Optional[float] = None
    span: Optional[Span] = None


@dataclass(frozen=True)
class RepeatPattern:
    component: str
    x1: float
    y1: float
    x2: float
    y2: float
    spacing: float
    unit: str
    span: Optional[Span] = None


# Reserved for multi-file composition; parsed but never compiled.

@dataclass(frozen=True)
class ModuleDeclaration:
    name: str
    span: Optional[Span] = None


@dataclass(frozen=True)
class ImportDeclaration:
    name: str
    alias: Optional[str] = None
    source: Optional[str] = None
    span: Optional[Span] = None


@dataclass(frozen=True)
class ExportDeclaration:
    name: str
    is_default: bool = False
    span: Optional[Span] = None


@dataclass(frozen=True)
class UsePlacement:
    module: str
    export: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    unit: Optional[str] = None
    rotate: Optional[float] = None
    scale: Optional[float] = None
    span: Optional[Span] = None


@dataclass(frozen=True)
class Drawing:
    name: str
    canvas: Canvas
    units: Tuple[UnitDeclaration, ...] = ()
    rooms: Tuple[Room, ...] = ()
    walls: Tuple[Wall, ...] = ()
    doors: Tuple[Door, ...] = ()
    grids: Tuple[Grid, ...] = ()
    repeats: Tuple[RepeatPattern, ...] = ()
    imports: Tuple[ImportDeclaration, ...] = ()
    exports: Tuple[ExportDeclaration, ...] = ()
    uses: Tuple[UsePlacement, ...] = ()
    module: Optional[ModuleDeclaration] = None
    span: Optional[Span] = None


class Measure(NamedTuple):
    value: float
    unit: str


class Coordinate(NamedTuple):
    x: float
    y: float
    unit: str


# =============================================================================
# 4. PARSER
# =============================================================================

@dataclass
class ParseResult:
    ast: Drawing
    errors: List[Diagnostic] = field(default_factory=list)


class Parser:
    """Recursive-descent parser; recovers by discarding one token and retrying."""

    DEFAULT_UNIT = 'U'
    FALLBACK_CANVAS = Canvas(10.0, 10.0, 'U')

    def __init__(self, tokens: List[Token], messages: Optional[Diagnostics] = None):
        self.tokens = [t for t in tokens
                       if t.type not in (TokenType.WHITESPACE, TokenType.COMMENT)]
        if not self.tokens or self.tokens[-1].type is not TokenType.EOF:
            end = self.tokens[-1].end if self.tokens else Position(1, 1, 0)
            self.tokens.append(Token(TokenType.EOF, '', end, end))
        self.messages = messages if messages is not None else Diagnostics()
        self.pos = 0

    def current(self) -> Token:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else self.tokens[-1]

    def peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        token = self.current()
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        return token

    def check(self, *types: TokenType) -> bool:
        return self.current().type in types

    def match(self, *types: TokenType) -> Optional[Token]:
        if self.check(*types):
            return self.advance()
        return None

    def expect(self, tt: TokenType) -> Optional[Token]:
        if self.check(tt):
            return self.advance()
        self.error(f"Expected {tt.value!r}, got {self.current().type.value!r}")
        return None

    def expect_value(self, tt: TokenType) -> str:
        token = self.expect(tt)
        return token.value if token else ''

    def error(self, text: str, hint: str = None):
        token = self.current()
        self.messages.error(text, Span(token.start, token.end), hint=hint)

    def span_from(self, start: Position) -> Span:
        end = self.tokens[self.pos - 1].end if self.pos > 0 else start
        return Span(start, end)

    # --- shared productions -------------------------------------------------

    def parse_measure(self) -> Measure:
        number = self.expect(TokenType.NUMBER)
        value = float(number.value) if number else 0.0
        unit = self.DEFAULT_UNIT
        if self.check(TokenType.IDENTIFIER):
            unit = self.advance().value
        return Measure(value, unit)

    def parse_coordinate(self) -> Coordinate:
        self.expect(TokenType.LPAREN)
        x = self.parse_measure()
        self.expect(TokenType.COMMA)
        y = self.parse_measure()
        self.expect(TokenType.RPAREN)
        # The first component decides the unit of the pair.
        return Coordinate(x.value, y.value, x.unit)

    def skip_statement(self):
        depth = 0
        while not self.check(TokenType.EOF, TokenType.AT_DRAW):
            if self.check(TokenType.SEMICOLON) and depth == 0:
                break
            if self.check(TokenType.LBRACE):
                depth += 1
            elif self.check(TokenType.RBRACE):
                if depth == 0:
                    break
                depth -= 1
            self.advance()
        self.match(TokenType.SEMICOLON)

    # --- top level ----------------------------------------------------------

    def parse(self) -> ParseResult:
        start = self.current().start

        module = None
        if self.check(TokenType.AT_MODULE):
            module_start = self.advance().start
            name = self.expect_value(TokenType.IDENTIFIER)
            self.expect(TokenType.SEMICOLON)
            module = ModuleDeclaration(name, self.span_from(module_start))

        units, imports, exports = [], [], []
        while not self.check(TokenType.AT_DRAW, TokenType.EOF):
            if self.match(TokenType.HIERARCHY):
                self.match(TokenType.SEMICOLON)
            elif self.check(TokenType.AT_UNIT):
                units.append(self.parse_unit())
            elif self.check(TokenType.IMPORT):
                imports.append(self.parse_import())
            elif self.check(TokenType.EXPORT):
                exports.append(self.parse_export())
            else:
                self.error(f"Unexpected token: {self.current().type.value}",
                           hint="Expected @unit, import, export or @draw")
                self.advance()

        self.expect(TokenType.AT_DRAW)
        name = self.expect_value(TokenType.IDENTIFIER)
        self.expect(TokenType.LBRACE)

        canvas = None
        if self.check(TokenType.AT_CANVAS):
            canvas = self.parse_canvas()
        if canvas is None:
            self.error("@canvas is required inside @draw", hint="@canvas 10U x 10U;")
            canvas = self.FALLBACK_CANVAS

        rooms, walls, doors, grids, repeats, uses = [], [], [], [], [], []
        while not self.check(TokenType.RBRACE, TokenType.EOF):
            if self.check(TokenType.ROOM):
                rooms.append(self.parse_room())
            elif self.check(TokenType.WALL):
                walls.append(self.parse_wall())
            elif self.check(TokenType.DOOR):
                doors.append(self.parse_door())
            elif self.check(TokenType.AT_GRID):
                grids.append(self.parse_grid())
            elif self.check(TokenType.USE):
                uses.append(self.parse_use())
            elif self.check(TokenType.REPEAT):
                repeats.append(self.parse_repeat())
            else:
                self.error(f"Unexpected token in draw body: {self.current().type.value}")
                self.advance()

        self.expect(TokenType.RBRACE)
        span = self.span_from(start)

        if not self.check(TokenType.EOF):
            token = self.current()
            self.messages.warn("Content after the draw block is ignored",
                               Span(token.start, token.end), kind=ErrorKind.SYNTAX)

        drawing = Drawing(
            name=name, canvas=canvas, units=tuple(units), rooms=tuple(rooms),
            walls=tuple(walls), doors=tuple(doors), grids=tuple(grids),
            repeats=tuple(repeats), imports=tuple(imports), exports=tuple(exports),
            uses=tuple(uses), module=module, span=span,
        )
        return ParseResult(drawing, list(self.messages.items))

    def parse_unit(self) -> UnitDeclaration:
        start = self.advance().start  # consume '@unit'
        # "@unit = 50px;" names the base unit, "@unit m = 100cm;" names m
        name = self.DEFAULT_UNIT
        if self.check(TokenType.IDENTIFIER) and self.peek().type is TokenType.EQUALS:
            name = self.advance().value
        self.expect(TokenType.EQUALS)
        measure = self.parse_measure()
        self.expect(TokenType.SEMICOLON)
        return UnitDeclaration(name, measure.value, measure.unit, self.span_from(start))

    def parse_import(self) -> ImportDeclaration:
        start = self.advance().start  # consume 'import'
        name = self.advance().value if self.check(TokenType.IDENTIFIER) else ''
        alias = source = None
        if self.match(TokenType.AS) and self.check(TokenType.IDENTIFIER):
            alias = self.advance().value
        if self.match(TokenType.FROM) and self.check(TokenType.STRING):
            source = self.advance().value
        self.skip_statement()
        return ImportDeclaration(name, alias, source, self.span_from(start))

    def parse_export(self) -> ExportDeclaration:
        start = self.advance().start  # consume 'export'
        is_default = self.match(TokenType.DEFAULT) is not None
        name = self.advance().value if self.check(TokenType.IDENTIFIER) else ''
        self.skip_statement()
        return ExportDeclaration(name, is_default, self.span_from(start))

    # --- draw body ----------------------------------------------------------

    def parse_canvas(self) -> Canvas:
        self.advance()  # consume '@canvas'
        width = self.parse_measure()
        if self.check(TokenType.X) or self.current().value in ('x', 'X'):
            self.advance()
        height = self.parse_measure()
        self.expect(TokenType.SEMICOLON)
        return Canvas(width.value, height.value, width.unit)

    def parse_room(self) -> Room:
        start = self.advance().start  # consume 'room'
        room_id = self.expect_value(TokenType.IDENTIFIER)
        self.expect(TokenType.AT)
        pos = self.parse_coordinate()
        self.expect(TokenType.SIZE)
        size = self.parse_coordinate()

        label = None
        properties: Dict[str, str] = {}
        if self.match(TokenType.LBRACE):
            while not self.check(TokenType.RBRACE, TokenType.EOF):
                if self.match(TokenType.LABEL):
                    self.expect(TokenType.COLON)
                    text = self.expect(TokenType.STRING)
                    if text:
                        label = text.value
                    self.expect(TokenType.SEMICOLON)
                elif self.check(TokenType.IDENTIFIER):
                    prop = self.advance().value
                    self.expect(TokenType.COLON)
                    parts = []
                    while not self.check(TokenType.SEMICOLON, TokenType.EOF, TokenType.RBRACE):
                        parts.append(self.advance().value)
                    self.match(TokenType.SEMICOLON)
                    properties[prop] = ' '.join(parts)
                else:
                    self.error(f"Unknown property: {self.current().value}")
                    self.advance()
            self.expect(TokenType.RBRACE)
        else:
            self.match(TokenType.SEMICOLON)

        return Room(room_id, pos.x, pos.y, size.x, size.y, pos.unit, label,
                    properties or None, self.span_from(start))

    def parse_wall(self) -> Wall:
        start = self.advance().start  # consume 'wall'
        self.expect(TokenType.FROM)
        a = self.parse_coordinate()
        self.expect(TokenType.TO)
        b = self.parse_coordinate()
        self.expect(TokenType.SEMICOLON)
        return Wall(a.x, a.y, b.x, b.y, a.unit, self.span_from(start))

    def parse_door(self) -> Door:
        start = self.advance().start  # consume 'door'
        self.expect(TokenType.FROM)
        a = self.parse_coordinate()
        self.expect(TokenType.TO)
        b = self.parse_coordinate()
        self.expect(TokenType.WIDTH)
        width = self.parse_measure()
        self.expect(TokenType.SEMICOLON)
        return Door(a.x, a.y, b.x, b.y, width.value, a.unit, self.span_from(start))

    def parse_repeat(self) -> RepeatPattern:
        start = self.advance().start  # consume 'repeat'
        component = self.expect_value(TokenType.IDENTIFIER)
        self.expect(TokenType.FROM)
        a = self.parse_coordinate()
        self.expect(TokenType.TO)
        b = self.parse_coordinate()
        self.expect(TokenType.SPACE)
        spacing = self.parse_measure()
        self.expect(TokenType.SEMICOLON)
        return RepeatPattern(component, a.x, a.y, b.x, b.y, spacing.value, a.unit,
                             self.span_from(start))

    def parse_grid(self) -> Grid:
        start = self.advance().start  # consume '@grid'

        mode = 'grid'
        mode_token = self.match(TokenType.GRID, TokenType.LINES, TokenType.VLINES,
                                TokenType.HLINES, TokenType.DOTTED)
        if mode_token:
            # "lines" stays its own mode in the model; older hand-offs folded it into "grid".
            mode = mode_token.value

        size_x = size_y = 1.0
        unit = self.DEFAULT_UNIT
        if self.match(TokenType.SIZE):
            size = self.parse_measure()
            size_x = size_y = size.value
            unit = size.unit
            if self.current().value in ('x', 'X'):
                self.advance()
                size_y = self.parse_measure().value

        color = None
        if self.match(TokenType.COLOR):
            if self.check(TokenType.HASH):
                # hex digits arrive as NUMBER / IDENTIFIER runs: "#9aa" -> '#', '9', 'aa'
                parts = [self.advance().value]
                while self.check(TokenType.NUMBER, TokenType.IDENTIFIER):
                    parts.append(self.advance().value)
                color = ''.join(parts)
            elif self.check(TokenType.IDENTIFIER):
                color = self.advance().value

        alpha = None
        if self.match(TokenType.ALPHA):
            alpha = self.parse_measure().value

        self.expect(TokenType.SEMICOLON)
        return Grid(mode, size_x, size_y, unit, color, alpha, self.span_from(start))

    def parse_use(self) -> UsePlacement:
        start = self.advance().start  # consume 'use'
        module = self.advance().value if self.check(TokenType.IDENTIFIER) else ''
        export = None
        if self.match(TokenType.DOT) and self.check(TokenType.IDENTIFIER):
            export = self.advance().value

        x = y = rotate = scale = None
        unit = None
        while not self.check(TokenType.SEMICOLON, TokenType.RBRACE, TokenType.EOF):
            if self.match(TokenType.AT) and self.check(TokenType.LPAREN):
                x, y, unit = self.parse_coordinate()
            elif self.match(TokenType.ROTATE) and self.check(TokenType.NUMBER):
                rotate = self.parse_measure().value
            elif self.match(TokenType.SCALE) and self.check(TokenType.NUMBER):
                scale = self.parse_measure().value
            else:
                self.advance()
        self.match(TokenType.SEMICOLON)
        return UsePlacement(module, export, x, y, unit, rotate, scale, self.span_from(start))


def parse(tokens: List[Token]) -> ParseResult:
    return Parser(tokens).parse()


def parse_source(source: str) -> ParseResult:
    return parse(tokenize(source))


# =============================================================================
# 5. SEMANTIC COMPILATION
# =============================================================================

def _semantic_warning(messages: Diagnostics, text: str, span: Optional[Span] = None):
    logger.warning(f"{text} ({span})" if span else text)
    messages.warn(text, span, kind=ErrorKind.SEMANTIC)


@dataclass(frozen=True)
class UnitTable:
    """Result of unit resolution: pixel size of every resolved unit."""

    units: Dict[str, float]
    scale: float
    diagnostics: Tuple[Diagnostic, ...] = ()

    def pixels(self, name: str) -> Optional[float]:
        return self.units.get(name)

    def to_base(self, value: float, unit: str) -> Optional[float]:
        """Express `value` given in `unit` in base units, or None if `unit` is unusable."""
        px = self.units.get(unit)
        if not px or not self.scale:
            return None
        return value * px / self.scale


class UnitResolver:
    BASE_UNIT = 'U'
    DEFAULT_BASE_PX = 50.0
    MAX_PASSES = 10
    # 96 DPI, 16px root font
    PHYSICAL_UNITS = {
        'px': 1.0,
        'cm': 37.795275591,
        'mm': 3.7795275591,
        'in': 96.0,
        'pt': 96 / 72,
        'pc': 16.0,
        'rem': 16.0,
        'em': 16.0,
    }

    def __init__(self, declarations: Sequence[UnitDeclaration]):
        self.declarations = list(declarations)
        self.messages = Diagnostics()

    def _pixels(self, decl: UnitDeclaration, table: Dict[str, float]) -> Optional[float]:
        if decl.unit in table:
            return decl.value * table[decl.unit]
        factor = self.PHYSICAL_UNITS.get(decl.unit)
        if factor is not None:
            return decl.value * factor
        return None

    def resolve(self) -> UnitTable:
        table: Dict[str, float] = {}

        base = next((d for d in self.declarations if d.name == self.BASE_UNIT), None)
        if base is not None:
            scale = self._pixels(base, table)
            if scale is None:
                scale = base.value
        else:
            scale = self.DEFAULT_BASE_PX
        table[self.BASE_UNIT] = scale

        passes = 0
        changed = True
        while changed and passes < self.MAX_PASSES:
            changed = False
            passes += 1
            for decl in self.declarations:
                if decl.name in table:
                    continue
                px = self._pixels(decl, table)
                if px is not None:
                    table[decl.name] = px
                    changed = True
        logger.debug(f"Unit resolution settled after {passes} pass(es)")

        for decl in self.declarations:
            if decl.name not in table:
                _semantic_warning(self.messages, f"Could not resolve unit: {decl.name}", decl.span)

        return UnitTable(dict(table), scale, tuple(self.messages.items))


def resolve_units(declarations: Sequence[UnitDeclaration]) -> UnitTable:
    return UnitResolver(declarations).resolve()


REPEAT_FOOTPRINT = 0.3


def expand_repeats(repeats: Sequence[RepeatPattern],
                   messages: Optional[Diagnostics] = None) -> List[Room]:
    """Turn each repeat pattern into placeholder rooms sampled along its segment.

    Sampling includes both endpoints: `floor(distance / spacing) + 1` points,
    measured in the pattern's own unit.
    """
    messages = messages if messages is not None else Diagnostics()
    rooms = []
    for pattern in repeats:
        if pattern.spacing <= 0:
            _semantic_warning(messages,
                              f"Repeat spacing must be positive for {pattern.component}, pattern skipped",
                              pattern.span)
            continue
        dx = pattern.x2 - pattern.x1
        dy = pattern.y2 - pattern.y1
        count = math.floor(math.hypot(dx, dy) / pattern.spacing) + 1
        for i in range(count):
            t = i / max(count - 1, 1)
            rooms.append(Room(
                id=f"{pattern.component.lower()}_{i}",
                x=pattern.x1 + dx * t,
                y=pattern.y1 + dy * t,
                width=REPEAT_FOOTPRINT,
                height=REPEAT_FOOTPRINT,
                unit=pattern.unit,
                label=pattern.component,
                span=pattern.span,
            ))
    return rooms


@dataclass(frozen=True)
class CanvasSize:
    cols: float
    rows: float


@dataclass(frozen=True)
class CompiledRoom:
    id: str
    x: float
    y: float
    w: float
    h: float
    label: Optional[str] = None
    css: Optional[Dict[str, str]] = None


@dataclass(frozen=True)
class CompiledWall:
    x1: float
    y1: float
    x2: float
    y2: float
    length: float
    angle: float


@dataclass(frozen=True)
class CompiledDoor:
    x1: float
    y1: float
    x2: float
    y2: float
    width: float
    length: float
    angle: float


@dataclass(frozen=True)
class CompiledGrid:
    mode: str
    sx: float
    sy: float
    color: Optional[str] = None
    alpha: Optional[float] = None


@dataclass(frozen=True)
class CompiledModel:
    scale: float
    canvas: CanvasSize
    units: Dict[str, float]
    rooms: Tuple[CompiledRoom, ...] = ()
    walls: Tuple[CompiledWall, ...] = ()
    doors: Tuple[CompiledDoor, ...] = ()
    grids: Tuple[CompiledGrid, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        rooms = []
        for room in self.rooms:
            entry = {'id': room.id, 'x': room.x, 'y': room.y, 'w': room.w, 'h': room.h}
            if room.label is not None:
                entry['label'] = room.label
            if room.css is not None:
                entry['css'] = dict(room.css)
            rooms.append(entry)
        grids = []
        for grid in self.grids:
            entry = {'mode': grid.mode, 'sx': grid.sx, 'sy': grid.sy}
            if grid.color is not None:
                entry['color'] = grid.color
            if grid.alpha is not None:
                entry['alpha'] = grid.alpha
            grids.append(entry)
        return {
            'scale': self.scale,
            'canvas': {'cols': self.canvas.cols, 'rows': self.canvas.rows},
            'units': dict(self.units),
            'rooms': rooms,
            'walls': [{'x1': w.x1, 'y1': w.y1, 'x2': w.x2, 'y2': w.y2,
                       'length': w.length, 'angle': w.angle} for w in self.walls],
            'doors': [{'x1': d.x1, 'y1': d.y1, 'x2': d.x2, 'y2': d.y2, 'width': d.width,
                       'length': d.length, 'angle': d.angle} for d in self.doors],
            'grids': grids,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


class Compiler:
    """Lowers one Drawing into a CompiledModel; scoped to a single compilation."""

    BASE_UNIT = UnitResolver.BASE_UNIT

    def __init__(self, ast: Drawing, messages: Optional[Diagnostics] = None):
        self.ast = ast
        self.messages = messages if messages is not None else Diagnostics()
        self.units: Optional[UnitTable] = None
        self._reported: set = set()

    def compile(self) -> CompiledModel:
        self.units = resolve_units(self.ast.units)
        self.messages.extend(self.units.diagnostics)

        rooms = list(self.ast.rooms) + expand_repeats(self.ast.repeats, self.messages)
        canvas = self.ast.canvas

        model = CompiledModel(
            scale=self.units.scale,
            canvas=CanvasSize(self._to_base(canvas.width, canvas.unit, self.ast.span),
                              self._to_base(canvas.height, canvas.unit, self.ast.span)),
            units=dict(self.units.units),
            rooms=tuple(self._room(r) for r in rooms),
            walls=tuple(self._wall(w) for w in self.ast.walls),
            doors=tuple(self._door(d) for d in self.ast.doors),
            grids=tuple(self._grid(g) for g in self.ast.grids),
        )
        logger.debug(f"Compiled {self.ast.name!r}: {len(model.rooms)} rooms, "
                     f"{len(model.walls)} walls, {len(model.doors)} doors")
        return model

    def _to_base(self, value: float, unit: str, span: Optional[Span]) -> float:
        converted = self.units.to_base(value, unit)
        if converted is not None:
            return converted
        key = (unit, span)
        if key not in self._reported:
            self._reported.add(key)
            if unit in self.units.units:
                zero = self.BASE_UNIT if not self.units.scale else unit
                text = f"Unit {zero} resolves to 0px, using value as-is"
            else:
                text = f"Unknown unit: {unit}, using value as-is"
            _semantic_warning(self.messages, text, span)
        return value

    def _segment(self, x1, y1, x2, y2, unit, span) -> Tuple[float, ...]:
        x1 = self._to_base(x1, unit, span)
        y1 = self._to_base(y1, unit, span)
        x2 = self._to_base(x2, unit, span)
        y2 = self._to_base(y2, unit, span)
        dx, dy = x2 - x1, y2 - y1
        return x1, y1, x2, y2, math.hypot(dx, dy), math.atan2(dy, dx) * (180 / math.pi)

    def _room(self, room: Room) -> CompiledRoom:
        return CompiledRoom(
            id=room.id,
            x=self._to_base(room.x, room.unit, room.span),
            y=self._to_base(room.y, room.unit, room.span),
            w=self._to_base(room.width, room.unit, room.span),
            h=self._to_base(room.height, room.unit, room.span),
            label=room.label,
            css=dict(room.properties) if room.properties is not None else None,
        )

    def _wall(self, wall: Wall) -> CompiledWall:
        return CompiledWall(*self._segment(wall.x1, wall.y1, wall.x2, wall.y2, wall.unit, wall.span))

    def _door(self, door: Door) -> CompiledDoor:
        x1, y1, x2, y2, length, angle = self._segment(
            door.x1, door.y1, door.x2, door.y2, door.unit, door.span)
        width = self._to_base(door.width, door.unit, door.span)
        return CompiledDoor(x1, y1, x2, y2, width, length, angle)

    def _grid(self, grid: Grid) -> CompiledGrid:
        return CompiledGrid(
            mode=grid.mode,
            sx=self._to_base(grid.size_x, grid.unit, grid.span),
            sy=self._to_base(grid.size_y, grid.unit, grid.span),
            color=grid.color,
            alpha=grid.alpha,
        )


def compile_model(ast: Drawing, diagnostics: Optional[Diagnostics] = None) -> CompiledModel:
    """Compile `ast` into a CompiledModel.

    Semantic warnings (unit resolution, unknown units, skipped repeats) are
    appended to `diagnostics`, which is the only place they are returned; pass
    a collector to read them. Without one they are still logged. The ast is
    never modified, so compiling it again yields an equal model.
    """
    return Compiler(ast, diagnostics).compile()


# =============================================================================
# 6. CODE GENERATION
# =============================================================================

def format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value)


def _hex_channel(digits: str) -> int:
    try:
        return int(digits, 16)
    except ValueError:
        return 0


def color_with_alpha(color: str, alpha: float) -> str:
    """Blend `alpha` into `color` for use in a gradient stop."""
    if color.startswith('#'):
        digits = color[1:]
        if len(digits) == 3:
            digits = ''.join(ch * 2 for ch in digits)
        elif len(digits) != 6:
            return color
        r, g, b = (_hex_channel(digits[i:i + 2]) for i in (0, 2, 4))
        return f"rgba({r}, {g}, {b}, {format_number(alpha)})"
    return f"color-mix(in srgb, {color} {format_number(alpha * 100)}%, transparent)"


class StylesheetGenerator:
    DEFAULT_GRID_COLOR = '#ddd'
    DEFAULT_GRID_ALPHA = 0.1
    WINDOW_LABEL = 'Window'

    def __init__(self, model: CompiledModel):
        self.model = model
        self.lines: List[str] = []

    def emit(self, *lines: str):
        self.lines.extend(lines)

    def generate(self) -> str:
        self.lines = ['/* Generated by floorplan-compiler */', '']
        self._drawing()
        self._grid()
        self._rooms()
        self._walls()
        self._doors()
        return '\n'.join(self.lines)

    def _drawing(self):
        self.emit(
            '.draw {',
            '  /* CSS custom properties */',
            f'  --u: {format_number(self.model.scale)}px;',
            f'  --cols: {format_number(self.model.canvas.cols)};',
            f'  --rows: {format_number(self.model.canvas.rows)};',
            '',
            '  /* Layout */',
            '  position: relative;',
            '  width: calc(var(--cols) * var(--u));',
            '  height: calc(var(--rows) * var(--u));',
            '  overflow: hidden;',
            '',
            '  /* Default styling */',
            '  background: #fafafa;',
            '  color: #333;',
            '  font-family: system-ui, -apple-system, sans-serif;',
            '}',
            '',
        )

    def _grid(self):
        # Only the first grid is rendered.
        if not self.model.grids:
            return
        grid = self.model.grids[0]
        color = grid.color or self.DEFAULT_GRID_COLOR
        alpha = grid.alpha if grid.alpha is not None else self.DEFAULT_GRID_ALPHA
        stop = color_with_alpha(color, alpha)
        sx, sy = format_number(grid.sx), format_number(grid.sy)

        selectors = []
        for mode in (grid.mode, 'grid', 'lines'):
            if mode not in selectors:
                selectors.append(mode)
        self.emit(',\n'.join(f'.draw[data-grid="{m}"]' for m in selectors) + ' {')

        if grid.mode == 'dotted':
            self.emit(
                f'  background-image: radial-gradient(circle at center, {stop} 1px, transparent 1px);',
                f'  background-size: calc(var(--u) * {sx}) calc(var(--u) * {sy});',
            )
        elif grid.mode == 'vlines':
            self.emit(
                '  background-image: repeating-linear-gradient(',
                '    to right,',
                f'    {stop} 0 1px,',
                f'    transparent 1px calc(var(--u) * {sx})',
                '  );',
            )
        elif grid.mode == 'hlines':
            self.emit(
                '  background-image: repeating-linear-gradient(',
                '    to bottom,',
                f'    {stop} 0 1px,',
                f'    transparent 1px calc(var(--u) * {sy})',
                '  );',
            )
        else:
            self.emit(
                '  background-image:',
                '    repeating-linear-gradient(',
                '      to right,',
                f'      {stop} 0 1px,',
                f'      transparent 1px calc(var(--u) * {sx})',
                '    ),',
                '    repeating-linear-gradient(',
                '      to bottom,',
                f'      {stop} 0 1px,',
                f'      transparent 1px calc(var(--u) * {sy})',
                '    );',
            )
        self.emit('}', '')

    def _rooms(self):
        window = f'.room[data-label="{self.WINDOW_LABEL}"]'
        self.emit(
            '.room {',
            '  position: absolute;',
            '  left: calc(var(--x) * var(--u));',
            '  top: calc(var(--y) * var(--u));',
            '  width: calc(var(--w) * var(--u));',
            '  height: calc(var(--h) * var(--u));',
            '  background: rgba(255, 255, 255, 0.9);',
            '  border: 2px solid #333;',
            '  box-sizing: border-box;',
            '}',
            '',
            f'{window} {{',
            '  background: linear-gradient(135deg, #e3f2fd 0%, #bbdefb 100%);',
            '  border: 2px solid #1976d2;',
            '  z-index: 8;',
            '}',
            '',
            '.room::after {',
            '  content: attr(data-label);',
            '  position: absolute;',
            '  inset: 0;',
            '  display: flex;',
            '  align-items: center;',
            '  justify-content: center;',
            '  font-size: 14px;',
            '  font-weight: 500;',
            '  text-align: center;',
            '  padding: 8px;',
            '  pointer-events: none;',
            '}',
            '',
            f'{window}::after {{',
            '  font-size: 0;',
            '}',
            '',
        )

    def _walls(self):
        self.emit(
            '.wall {',
            '  position: absolute;',
            '  left: calc(var(--x) * var(--u));',
            '  top: calc(var(--y) * var(--u));',
            '  width: calc(var(--len) * var(--u));',
            '  height: 4px;',
            '  background: #333;',
            '  transform-origin: left center;',
            '  transform: rotate(calc(var(--angle) * 1deg));',
            '  pointer-events: none;',
            '  z-index: 5;',
            '}',
            '',
        )

    def _doors(self):
        self.emit(
            '.door {',
            '  position: absolute;',
            '  left: calc(var(--x) * var(--u));',
            '  top: calc(var(--y) * var(--u));',
            '  width: calc(var(--len) * var(--u));',
            '  height: calc(var(--w) * var(--u));',
            '  background: white;',
            '  border: 2px solid #4080ff;',
            '  box-sizing: border-box;',
            '  transform-origin: left center;',
            '  transform: rotate(calc(var(--angle) * 1deg));',
            '  pointer-events: none;',
            '  z-index: 10;',
            '}',
            '',
        )


def generate_css(model: CompiledModel) -> str:
    return StylesheetGenerator(model).generate()


# =============================================================================
# 7. COMPILER DRIVER
# =============================================================================

class FloorPlanCompiler:
    def __init__(self, name: str = "<input>"):
        self.name = name
        self.tokens = None
        self.ast = None
        self.model = None
        self.messages = None

    def _report(self) -> Dict[str, Any]:
        model = self.model
        return {
            'is_valid': not self.messages.has_errors(),
            'errors': [d.message for d in self.messages.errors],
            'warnings': [d.message for d in self.messages.warnings],
            'canvas': (model.canvas.cols, model.canvas.rows) if model else None,
            'rooms': len(model.rooms) if model else 0,
            'walls': len(model.walls) if model else 0,
            'doors': len(model.doors) if model else 0,
            'grids': len(model.grids) if model else 0,
        }

    def compile(self, code: str, verbose: bool = True):
        if verbose:
            print("=" * 60)
            print("FLOOR PLAN COMPILER")
            print("=" * 60)

        self.messages = Diagnostics()
        self.tokens = self.ast = self.model = None

        # Lex
        if verbose:
            print("\n[PHASE 1: LEXICAL ANALYSIS]")
        try:
            self.tokens = tokenize(code)
        except LexError as exc:
            self.messages.error(str(exc), Span(exc.position, exc.position), kind=ErrorKind.LEXICAL)
            if verbose:
                print(f"  ✗ {exc}")
            return None, None, self._report(), None
        if verbose:
            print(f"  ✓ {len(self.tokens) - 1} tokens")

        # Parse
        if verbose:
            print("\n[PHASE 2: PARSING]")
        result = parse(self.tokens)
        self.ast = result.ast
        self.messages.extend(result.errors)
        if verbose:
            print(f"  ✓ @draw {self.ast.name}: {len(self.ast.units)} units, {len(self.ast.rooms)} rooms, "
                  f"{len(self.ast.walls)} walls, {len(self.ast.doors)} doors, "
                  f"{len(self.ast.grids)} grids, {len(self.ast.repeats)} repeats")

        # Compile
        if verbose:
            print("\n[PHASE 3: SEMANTIC COMPILATION]")
        self.model = compile_model(self.ast, self.messages)
        report = self._report()
        if verbose:
            cols, rows = report['canvas']
            print(f"  ✓ Scale: {format_number(self.model.scale)}px per U")
            print(f"  ✓ Canvas: {format_number(cols)} x {format_number(rows)} U")
            print(f"  {'✓' if report['is_valid'] else '✗'} Diagnostics {'CLEAN' if report['is_valid'] else 'HAVE ERRORS'}")
            for d in self.messages.items:
                tag = 'ERROR' if d.severity is Severity.ERROR else 'WARN'
                where = f" ({d.span})" if d.span else ""
                print(f"    [{tag}] {d.message}{where}")

        # Generate
        if verbose:
            print("\n[PHASE 4: CODE GENERATION]")
        css = generate_css(self.model)
        if verbose:
            print("  ✓ JSON & CSS generated")

        return self.model.to_json(), css, report, self.model


# =============================================================================
# 8. TESTS & MAIN
# =============================================================================

def _plan(body: str = "", canvas: str = "@canvas 10U x 10U;") -> str:
    return f"@unit U = 50px; @draw Test {{ {canvas} {body} }}"


TEST_CASES = [
    # =================================================================
    # CATEGORY 1: Basic Valid Inputs
    # =================================================================
    ("Basic: Empty drawing", _plan(), True, {'canvas': (10, 10), 'rooms': 0}),
    ("Basic: Plan alias", "@plan Test { @canvas 4U x 3U; }", True, {'canvas': (4, 3)}),
    ("Basic: No unit declaration", "@draw Test { @canvas 6U x 2U; }", True, {'canvas': (6, 2)}),
    ("Basic: Block comments", "/* header */ @draw T { /* c */ @canvas 2U x 2U; }", True, None),
    ("Basic: Module header", "@module house; @draw T { @canvas 2U x 2U; }", True, None),
    ("Basic: Hierarchy marker", "@1; @draw T { @canvas 2U x 2U; }", True, None),
    ("Basic: Newlines and tabs", "@draw T {\n\t@canvas 2U x 2U;\r\n}", True, None),

    # =================================================================
    # CATEGORY 2: Units
    # =================================================================
    ("Units: Physical base", "@unit U = 1cm; @draw T { @canvas 10U x 10U; }", True, {'canvas': (10, 10)}),
    ("Units: Named unit", "@unit U = 50px; @unit m = 100px; @draw T { @canvas 1m x 1m; }", True, {'canvas': (2, 2)}),
    ("Units: Unnamed declaration", "@unit = 25px; @draw T { @canvas 4U x 4U; }", True, {'canvas': (4, 4)}),
    ("Units: Unknown unit passes through", _plan("room a at (1zz, 2zz) size (3zz, 4zz);"), True, {'rooms': 1}),
    ("Units: Cyclic definitions", "@unit a = 2b; @unit b = 2a; @draw T { @canvas 2U x 2U; }", True, None),

    # =================================================================
    # CATEGORY 3: Rooms
    # =================================================================
    ("Room: With label", _plan('room living at (1U, 1U) size (6U, 4U) { label: "Living"; }'), True, {'rooms': 1}),
    ("Room: Semicolon form", _plan("room hall at (0U, 0U) size (2U, 2U);"), True, {'rooms': 1}),
    ("Room: Style properties",
     _plan("room k at (0U, 0U) size (2U, 2U) { background: red; border-radius: 8px; }"), True, {'rooms': 1}),
    ("Room: Several rooms",
     _plan("room a at (0U, 0U) size (1U, 1U); room b at (1U, 0U) size (1U, 1U); room c at (2U, 0U) size (1U, 1U);"),
     True, {'rooms': 3}),
    ("Room: Escaped label", _plan('room a at (0U, 0U) size (1U, 1U) { label: "Bob\\"s"; }'), True, None),
    ("Room: Single-quoted label", _plan("room a at (0U, 0U) size (1U, 1U) { label: 'Hall'; }"), True, None),
    ("Room: Missing size", _plan("room a at (0U, 0U);"), False, None),
    ("Room: Unknown property token", _plan("room a at (0U, 0U) size (1U, 1U) { 42; }"), False, None),

    # =================================================================
    # CATEGORY 4: Walls & Doors
    # =================================================================
    ("Wall: Horizontal", _plan("wall from (0U, 0U) to (5U, 0U);"), True, {'walls': 1}),
    ("Wall: Missing to", _plan("wall from (0U, 0U) (5U, 0U);"), False, None),
    ("Door: With width", _plan("door from (7U, 2U) to (7U, 3U) width 0.9U;"), True, {'doors': 1}),
    ("Door: Missing width", _plan("door from (7U, 2U) to (7U, 3U);"), False, None),

    # =================================================================
    # CATEGORY 5: Grids
    # =================================================================
    ("Grid: Defaults", _plan("@grid;"), True, {'grids': 1}),
    ("Grid: Dotted", _plan("@grid dotted size 2U;"), True, {'grids': 1}),
    ("Grid: Two sizes", _plan("@grid vlines size 1U x 2U color red alpha 0.5;"), True, None),
    ("Grid: Hex color", _plan("@grid grid size 1U color #ccc alpha 0.15;"), True, None),
    ("Grid: Unknown option", _plan("@grid size 1U weight 3;"), False, None),

    # =================================================================
    # CATEGORY 6: Repeat Patterns
    # =================================================================
    ("Repeat: Horizontal", _plan("repeat Window from (0U, 0U) to (8U, 0U) space 2U;"), True, {'rooms': 5}),
    ("Repeat: Vertical", _plan("repeat Window from (0U, 0U) to (0U, 6U) space 2U;"), True, {'rooms': 4}),
    ("Repeat: Single point", _plan("repeat Post from (1U, 1U) to (1U, 1U) space 2U;"), True, {'rooms': 1}),
    ("Repeat: Zero spacing skipped", _plan("repeat Post from (0U, 0U) to (4U, 0U) space 0U;"), True, {'rooms': 0}),
    ("Repeat: With authored rooms",
     _plan("room a at (0U, 0U) size (1U, 1U); repeat Window from (0U, 0U) to (8U, 0U) space 2U;"),
     True, {'rooms': 6}),

    # =================================================================
    # CATEGORY 7: Reserved Grammar
    # =================================================================
    ("Reserved: Import", 'import Ground from "./ground.arch"; @draw T { @canvas 2U x 2U; }', True, None),
    ("Reserved: Export", "export default Home; @draw T { @canvas 2U x 2U; }", True, None),
    ("Reserved: Use", _plan("use Ground at (0U, 0U) rotate 90;"), True, {'rooms': 0}),

    # =================================================================
    # CATEGORY 8: Syntax Errors & Recovery
    # =================================================================
    ("Syntax: Missing canvas", "@draw T { room a at (0U, 0U) size (1U, 1U); }", False,
     {'canvas': (10, 10), 'rooms': 1}),
    ("Syntax: Missing draw", "@unit U = 50px;", False, None),
    ("Syntax: Empty input", "", False, None),
    ("Syntax: Unknown body tokens", _plan("invalid syntax here"), False, None),
    ("Syntax: Unknown top-level token", "foo; @draw T { @canvas 2U x 2U; }", False, None),
    ("Syntax: Missing semicolon", "@draw T { @canvas 2U x 2U }", False, None),
    ("Syntax: Trailing content", "@draw T { @canvas 2U x 2U; } room", True, None),
    ("Recovery: Error then valid room", _plan("oops room a at (0U, 0U) size (1U, 1U);"), False, {'rooms': 1}),

    # =================================================================
    # CATEGORY 9: Invalid Characters (fatal)
    # =================================================================
    ("BadChar: Dollar sign", _plan("$"), False, None),
    ("BadChar: Percent", "@draw T { @canvas 50% x 2U; }", False, None),
    ("BadChar: Pipe", _plan("|"), False, None),
    ("BadChar: Unicode", _plan("é"), False, None),
]


def run_tests():
    """Table-driven self check of the whole pipeline."""
    print("\n" + "=" * 70)
    print("TEST SUITE")
    print("=" * 70)

    categories: Dict[str, list] = {}
    for test in TEST_CASES:
        categories.setdefault(test[0].split(":")[0], []).append(test)

    total_passed = total_failed = 0
    failed_tests = []

    for cat_name, cat_tests in categories.items():
        print(f"\n[{cat_name}]")
        cat_passed = cat_failed = 0

        for name, code, should_pass, expected in cat_tests:
            _, _, result, _ = FloorPlanCompiler(f"<{name}>").compile(code, verbose=False)

            ok = result['is_valid'] == should_pass
            if ok and expected:
                for key, val in expected.items():
                    if result.get(key) != val:
                        ok = False
                        break

            if ok:
                print(f"  ✓ {name}")
                cat_passed += 1
            else:
                print(f"  ✗ {name}")
                print(f"      Expected: {'pass' if should_pass else 'fail'}, "
                      f"Got: {'pass' if result['is_valid'] else 'fail'}")
                if result['errors']:
                    print(f"      Errors: {result['errors'][:2]}")
                cat_failed += 1
                failed_tests.append(name)

        total_passed += cat_passed
        total_failed += cat_failed
        print(f"  [{cat_passed}/{cat_passed + cat_failed} passed]")

    print("\n" + "=" * 70)
    print(f"TOTAL: {total_passed}/{total_passed + total_failed} tests passed")
    if failed_tests:
        print("\nFailed tests:")
        for t in failed_tests:
            print(f"  - {t}")
    print("=" * 70)

    return total_passed, total_failed


SAMPLE_SOURCE = """
@unit U = 48px;

@draw MyHome {
  @canvas 18U x 10U;
  @grid grid size 1U color #ccc alpha 0.15;

  room living at (1U, 1U) size (6U, 4U) {
    label: "Living Room";
  }

  room kitchen at (8U, 1U) size (5U, 3U) {
    label: "Kitchen";
  }

  room bedroom at (1U, 6U) size (5U, 3U) {
    label: "Bedroom";
  }

  wall from (1U, 5U) to (13U, 5U);
  wall from (7U, 1U) to (7U, 4U);

  door from (7U, 2U) to (7U, 3U) width 0.9U;

  repeat Window from (8U, 1U) to (12U, 1U) space 2U;
}
"""


def main(argv=None) -> int:
    import argparse
    p = argparse.ArgumentParser(description='Floor plan DSL to CSS compiler')
    p.add_argument('--test', action='store_true', help='run the built-in self check')
    p.add_argument('--code', type=str, help='source text to compile')
    p.add_argument('--input', type=str, help='source file to compile')
    p.add_argument('--output-dir', type=str, default=None)
    p.add_argument('--name', type=str, help='base name of the output files')
    p.add_argument('--png', action='store_true', help='also rasterise the preview with cairosvg')
    p.add_argument('--quiet', action='store_true')
    p.add_argument('--log-level', type=str, default=None)
    args = p.parse_args(argv)

    logging.basicConfig(level=get_log_level(args.log_level),
                        format="%(levelname)s %(name)s: %(message)s")

    if args.test:
        _, failed = run_tests()
        return 1 if failed else 0

    code, name = SAMPLE_SOURCE, 'floorplan'
    if args.code:
        code = args.code
    if args.input:
        code = Path(args.input).read_text(encoding='utf-8')
        name = Path(args.input).stem
    if args.name:
        name = args.name

    json_out, css_out, report, model = FloorPlanCompiler(args.input or "<input>").compile(
        code, verbose=not args.quiet)

    if model is None:
        for e in report['errors']:
            print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    from floorplan_preview import HAS_CAIROSVG, PreviewGenerator

    d = Path(args.output_dir) if args.output_dir else get_default_output_dir()
    d.mkdir(parents=True, exist_ok=True)
    (d / f'{name}.css').write_text(css_out, encoding='utf-8')
    (d / f'{name}.json').write_text(json_out, encoding='utf-8')
    preview = PreviewGenerator(model)
    svg_out = preview.svg()
    (d / f'{name}.svg').write_text(svg_out, encoding='utf-8')
    if args.png:
        if HAS_CAIROSVG:
            preview.png(svg_out, d / f'{name}.png', scale=get_preview_scale())
        else:
            logger.warning("cairosvg not installed, skipping PNG preview")
    if not args.quiet:
        print(f"\n✓ Output saved to {d}/")

    return 0 if report['is_valid'] else 1


if __name__ == "__main__":
    sys.exit(main())
