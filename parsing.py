"""
Keystone Programming Language Parser
Recursive-descent grammar for Keystone built on pyparsing, with AST nodes
and source spans
"""

from typing import List, Dict, Any, Union, Tuple, Optional, Type
from dataclasses import dataclass, field
import re
import sys

try:
    from pyparsing import (
        Word, WordEnd, alphas, nums, alphanums, Keyword, Literal, Forward, Group, Suppress,
        OneOrMore, Opt, one_of, lineno, ParserElement,
        ParseBaseException, ParseFatalException
    )
    # Enable packrat parsing for performance
    ParserElement.enable_packrat()
except ImportError:
    raise ImportError("pyparsing library not found. Install with: pip install pyparsing")

from error_handling import KeystoneErrorHandler, KeystoneParseError
from stdlib import (
    NESTING_RECURSION_LIMIT, int_literal_value, shorten_literal, recursion_limit
)


KEYWORDS = ('print', 'if', 'then', 'loop', 'times', 'end')
ARITHMETIC_OPERATORS = ('+', '-', '*', '/')
COMPARISON_OPERATORS = ('<', '>', '<=', '>=', '==', '!=')
OPERATORS = ARITHMETIC_OPERATORS + COMPARISON_OPERATORS


@dataclass(frozen=True)
class SourceSpan:
    """Source location information"""
    filename: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    text: str = ""

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return f"{self.filename}:{self.start_line}:{self.start_col}-{self.end_col}"
        return f"{self.filename}:{self.start_line}:{self.start_col}-{self.end_line}:{self.end_col}"


@dataclass(frozen=True)
class Token:
    """Keystone token with source information"""
    type: str
    value: Any
    span: SourceSpan

    def __str__(self) -> str:
        return f"{self.type}({self.value})"


# ============================================================================
# AST NODES
# ============================================================================

@dataclass(frozen=True)
class Number:
    value: int


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class BinaryOp:
    left: 'Expr'
    operator: str
    right: 'Expr'


Expr = Union[Number, Variable, BinaryOp]


# Statements remember the line they start on for error reports; the line
# does not take part in equality.
@dataclass(frozen=True)
class Assignment:
    name: str
    expr: Expr
    line: int = field(default=0, compare=False)


@dataclass(frozen=True)
class Print:
    expr: Expr
    line: int = field(default=0, compare=False)


@dataclass(frozen=True)
class If:
    condition: Expr
    body: Tuple['Statement', ...]
    line: int = field(default=0, compare=False)


@dataclass(frozen=True)
class Loop:
    count: int
    body: Tuple['Statement', ...]
    line: int = field(default=0, compare=False)


Statement = Union[Assignment, Print, If, Loop]


# ============================================================================
# TOKENIZER
# ============================================================================

class KeystoneTokenizerError(Exception):
    """Keystone tokenization error"""
    pass


class KeystoneTokenizer:
    """Keystone tokenizer, used for token dumps and block tracking in the REPL"""

    def __init__(self, filename: str = "<input>"):
        self.filename = filename
        self.number_pattern = re.compile(r'\d+')
        self.word_pattern = re.compile(r'[A-Za-z]+')
        # Longest operators first so '<=' wins over '<'
        operators_sorted = sorted(OPERATORS + ('=',), key=len, reverse=True)
        self.operator_pattern = re.compile('|'.join(re.escape(op) for op in operators_sorted))

    def tokenize(self, text: str) -> List[Token]:
        """Tokenize Keystone source code"""
        tokens = []

        for line_num, line in enumerate(text.split('\n'), 1):
            pos = 0
            while pos < len(line):
                if line[pos].isspace():
                    pos += 1
                    continue

                token = self._match_token_at_position(line, pos, line_num)
                if token is None:
                    char = line[pos]
                    span = SourceSpan(self.filename, line_num, pos + 1, line_num, pos + 2, char)
                    raise KeystoneTokenizerError(f"Unknown character '{char}' at {span}")
                tokens.append(token)
                pos += len(token.span.text)

        return tokens

    def _match_token_at_position(self, line: str, pos: int, line_num: int) -> Optional[Token]:
        """Match a token at a specific position using priority order"""
        for pattern, token_type in ((self.number_pattern, "NUMBER"),
                                    (self.operator_pattern, "OPERATOR"),
                                    (self.word_pattern, "IDENTIFIER")):
            match = pattern.match(line, pos)
            if not match:
                continue

            value = match.group(0)
            span = SourceSpan(self.filename, line_num, pos + 1, line_num, pos + len(value) + 1, value)
            if token_type == "NUMBER":
                number = int_literal_value(value)
                if number is None:
                    raise KeystoneTokenizerError(
                        f"Integer literal {shorten_literal(value)} out of range at {span}"
                    )
                return Token(token_type, number, span)
            if token_type == "IDENTIFIER" and value in KEYWORDS:
                return Token("KEYWORD", value, span)
            return Token(token_type, value, span)

        return None


def block_depth(tokens: List[Token]) -> int:
    """Number of if/loop blocks left open by a token stream"""
    depth = 0
    for token in tokens:
        if token.type != "KEYWORD":
            continue
        if token.value in ('if', 'loop'):
            depth += 1
        elif token.value == 'end':
            depth -= 1
    return depth


# ============================================================================
# GRAMMAR
# ============================================================================

class KeystoneGrammar:
    """Keystone grammar definition using pyparsing"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._setup_grammar()

    def _setup_grammar(self):
        """Setup the Keystone grammar, leaf rules first"""

        # Forward declaration for block bodies
        statement = Forward()

        print_kw = Keyword("print")
        if_kw = Keyword("if")
        then_kw = Keyword("then")
        loop_kw = Keyword("loop")
        times_kw = Keyword("times")
        end_kw = Keyword("end")

        def make_integer(s, loc, tokens):
            value = int_literal_value(tokens[0])
            if value is None:
                raise ParseFatalException(s, loc, f"integer literal {shorten_literal(tokens[0])} out of range")
            return value

        # WordEnd keeps '1y' from splitting into '1' and 'y'
        integer = (
            Word(nums).set_parse_action(make_integer) + WordEnd(alphanums)
        ).set_name("integer")
        identifier = Word(alphas).set_name("identifier").add_condition(
            lambda t: t[0] not in KEYWORDS, message="reserved keyword"
        )

        number = integer.copy().add_parse_action(lambda t: Number(t[0]))
        variable = identifier.copy().add_parse_action(lambda t: Variable(t[0]))
        term = (number | variable).set_name("term")

        # one_of reorders so multi-character operators match first
        operator = one_of(" ".join(OPERATORS)).set_name("operator")

        def make_expression(tokens):
            if len(tokens) == 1:
                return tokens[0]
            return BinaryOp(tokens[0], tokens[1], tokens[2])

        # At most one operator: 'a + b + c' leaves '+ c' unparsed
        expression = (term + Opt(operator + term)).set_name("expression").set_parse_action(make_expression)

        block = Group(OneOrMore(statement)).set_name("block")

        assignment = (
            identifier + Suppress(Literal("=")) + expression
        ).set_name("assignment").set_parse_action(
            lambda s, loc, t: Assignment(t[0], t[1], lineno(loc, s))
        )

        print_stmt = (
            Suppress(print_kw) + expression
        ).set_name("print").set_parse_action(
            lambda s, loc, t: Print(t[0], lineno(loc, s))
        )

        if_stmt = (
            Suppress(if_kw) + expression + Suppress(then_kw) + block + Suppress(end_kw)
        ).set_name("if").set_parse_action(
            lambda s, loc, t: If(t[0], tuple(t[1]), lineno(loc, s))
        )

        loop_stmt = (
            Suppress(loop_kw) + integer + Suppress(times_kw) + block + Suppress(end_kw)
        ).set_name("loop").set_parse_action(
            lambda s, loc, t: Loop(t[0], tuple(t[1]), lineno(loc, s))
        )

        # Alternatives are tried in this order; the first that matches wins
        statement <<= (assignment | print_stmt | if_stmt | loop_stmt).set_name("statement")

        program = OneOrMore(statement).set_name("program")

        # Store the main parsers
        self.program = program
        self.statement = statement
        self.expression = expression
        self.term = term
        self.operator = operator
        self.identifier = identifier
        self.integer = integer
        self.block = block

    def parse_program(self, text: str, filename: str = "<input>") -> List[Statement]:
        """Parse a complete Keystone program, consuming all of the input"""
        handler = KeystoneErrorHandler(text, filename)
        if not text.strip():
            raise handler.empty_program_error()

        try:
            with recursion_limit(NESTING_RECURSION_LIMIT):
                result = self.program.parse_string(text, parse_all=True)
        except ParseBaseException as e:
            raise handler.enhance_parse_exception(e) from e
        except RecursionError as e:
            raise handler.nesting_too_deep_error() from e

        statements = list(result)
        if self.debug:
            print(f"Parsed {len(statements)} top-level statements from {filename}", file=sys.stderr)
        return statements

    def parse_expression(self, text: str, filename: str = "<input>") -> Expr:
        """Parse a single Keystone expression"""
        try:
            result = self.expression.parse_string(text, parse_all=True)
        except ParseBaseException as e:
            raise KeystoneErrorHandler(text, filename).enhance_parse_exception(e) from e
        return result[0]


class KeystoneParser:
    """Main Keystone parser combining tokenizer and grammar"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.grammar = KeystoneGrammar(debug)

    def parse_file(self, filepath: str) -> List[Statement]:
        """Parse a Keystone source file"""
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            raise KeystoneParseError(f"File not found: {filepath}", filename=filepath)
        except UnicodeDecodeError as e:
            raise KeystoneParseError(f"Cannot decode file {filepath}: {e}", filename=filepath)
        return self.grammar.parse_program(content, filepath)

    def parse_string(self, text: str, filename: str = "<input>") -> List[Statement]:
        """Parse Keystone source code from string"""
        return self.grammar.parse_program(text, filename)

    def parse_expression(self, text: str, filename: str = "<input>") -> Expr:
        """Parse a single Keystone expression"""
        return self.grammar.parse_expression(text, filename)

    def tokenize(self, text: str, filename: str = "<input>") -> List[Token]:
        """Tokenize Keystone source code"""
        return KeystoneTokenizer(filename).tokenize(text)


# Factory functions for creating parsers
def create_parser(debug: bool = False) -> KeystoneParser:
    """Create a Keystone parser"""
    return KeystoneParser(debug=debug)


def create_debug_parser() -> KeystoneParser:
    """Create a Keystone parser with debug enabled"""
    return KeystoneParser(debug=True)


# ============================================================================
# AST UTILITIES
# ============================================================================

def find_nodes_by_type(statements: List[Statement], node_type: Type) -> List[Any]:
    """Find all nodes of a specific type in a program"""
    result = []

    def search(node):
        if isinstance(node, node_type):
            result.append(node)
        if isinstance(node, BinaryOp):
            search(node.left)
            search(node.right)
        elif isinstance(node, (Assignment, Print)):
            search(node.expr)
        elif isinstance(node, If):
            search(node.condition)
            for child in node.body:
                search(child)
        elif isinstance(node, Loop):
            for child in node.body:
                search(child)

    for statement in statements:
        search(statement)
    return result


def format_expr(expr: Expr) -> str:
    """Render an expression back to Keystone source"""
    if isinstance(expr, Number):
        return str(expr.value)
    if isinstance(expr, Variable):
        return expr.name
    return f"{format_expr(expr.left)} {expr.operator} {format_expr(expr.right)}"


def pretty_print_ast(node: Union[Statement, Expr], indent: int = 0) -> str:
    """Pretty print an AST node for debugging"""
    pad = "  " * indent
    if isinstance(node, Number):
        return f"{pad}Number({node.value})\n"
    if isinstance(node, Variable):
        return f"{pad}Variable({node.name})\n"
    if isinstance(node, BinaryOp):
        return (f"{pad}BinaryOp({node.operator})\n"
                + pretty_print_ast(node.left, indent + 1)
                + pretty_print_ast(node.right, indent + 1))
    if isinstance(node, Assignment):
        return f"{pad}Assignment({node.name})\n" + pretty_print_ast(node.expr, indent + 1)
    if isinstance(node, Print):
        return f"{pad}Print\n" + pretty_print_ast(node.expr, indent + 1)
    if isinstance(node, If):
        result = f"{pad}If\n" + pretty_print_ast(node.condition, indent + 1)
        result += f"{pad}  Then\n"
        for child in node.body:
            result += pretty_print_ast(child, indent + 2)
        return result
    if isinstance(node, Loop):
        result = f"{pad}Loop({node.count})\n"
        for child in node.body:
            result += pretty_print_ast(child, indent + 1)
        return result
    raise TypeError(f"Not an AST node: {node!r}")


def ast_to_dict(node: Union[Statement, Expr]) -> Dict[str, Any]:
    """Convert an AST node to dictionary representation"""
    if isinstance(node, Number):
        return {"type": "Number", "value": node.value}
    if isinstance(node, Variable):
        return {"type": "Variable", "name": node.name}
    if isinstance(node, BinaryOp):
        return {"type": "BinaryOp", "operator": node.operator,
                "left": ast_to_dict(node.left), "right": ast_to_dict(node.right)}
    if isinstance(node, Assignment):
        return {"type": "Assignment", "name": node.name, "expr": ast_to_dict(node.expr), "line": node.line}
    if isinstance(node, Print):
        return {"type": "Print", "expr": ast_to_dict(node.expr), "line": node.line}
    if isinstance(node, If):
        return {"type": "If", "condition": ast_to_dict(node.condition),
                "body": [ast_to_dict(child) for child in node.body], "line": node.line}
    if isinstance(node, Loop):
        return {"type": "Loop", "count": node.count,
                "body": [ast_to_dict(child) for child in node.body], "line": node.line}
    raise TypeError(f"Not an AST node: {node!r}")
