"""
Basic parsing tests for the Keystone language
Tests fundamental parsing capabilities
"""

import sys

import pytest
from pyparsing import ParseException
import parsing
from parsing import (
  Number, Variable, BinaryOp, Assignment, Print, If, Loop,
  find_nodes_by_type, pretty_print_ast, ast_to_dict, format_expr
)
from error_handling import KeystoneParseError


class TestBasicParsing:
  """Test basic parsing functionality"""

  def test_simple_program_parsing(self, grammar):
    """Test parsing of a simple program"""
    result = grammar.program.parse_string("myValue = 42", parse_all=True)
    assert len(result) == 1
    assert result[0] == Assignment("myValue", Number(42))

  def test_print_parsing(self, parser):
    assert parser.parse_string("print x") == [Print(Variable("x"))]

  def test_expression_parsing(self, grammar):
    """Test parsing of expressions"""
    assert grammar.expression.parse_string("myVar")[0] == Variable("myVar")
    assert grammar.expression.parse_string("7")[0] == Number(7)
    assert grammar.expression.parse_string("a * 3")[0] == BinaryOp(Variable("a"), "*", Number(3))

  @pytest.mark.parametrize("op", ["+", "-", "*", "/", "<", ">", "<=", ">=", "==", "!="])
  def test_every_operator(self, parser, op):
    expr = parser.parse_expression(f"a {op} 2")
    assert expr == BinaryOp(Variable("a"), op, Number(2))

  def test_operators_without_spaces(self, parser):
    assert parser.parse_string("x=a<=b") == [Assignment("x", BinaryOp(Variable("a"), "<=", Variable("b")))]

  def test_statements_separated_by_any_whitespace(self, parser):
    program = parser.parse_string("x = 1 print x\n\n\tprint   x + 1")
    assert program == [
        Assignment("x", Number(1)),
        Print(Variable("x")),
        Print(BinaryOp(Variable("x"), "+", Number(1))),
    ]

  def test_statement_lines_recorded(self, parser):
    program = parser.parse_string("x = 1\n\nprint x")
    assert [s.line for s in program] == [1, 3]


class TestBlocks:
  """Test if/loop block parsing"""

  def test_if_block(self, parser):
    program = parser.parse_string("if x then print 1 print 2 end")
    assert program == [If(Variable("x"), (Print(Number(1)), Print(Number(2))))]

  def test_loop_block(self, parser):
    program = parser.parse_string("loop 3 times\n  y = y + 1\nend")
    assert program == [Loop(3, (Assignment("y", BinaryOp(Variable("y"), "+", Number(1))),))]

  def test_nested_blocks(self, parser):
    code = """
    loop 2 times
      if a then
        loop 1 times
          print a
        end
      end
    end
    """
    program = parser.parse_string(code)
    assert len(program) == 1
    outer = program[0]
    assert isinstance(outer, Loop)
    inner_if = outer.body[0]
    assert isinstance(inner_if, If)
    assert inner_if.body == (Loop(1, (Print(Variable("a")),)),)
    assert inner_if.line == 3

  def test_empty_block_is_rejected(self, parser):
    with pytest.raises(KeystoneParseError):
      parser.parse_string("if 1 then end")

  def test_missing_end(self, parser):
    with pytest.raises(KeystoneParseError):
      parser.parse_string("loop 3 times print 1")

  def test_missing_times(self, parser):
    with pytest.raises(KeystoneParseError):
      parser.parse_string("loop 3 print 1 end")

  def test_loop_count_must_be_literal(self, parser):
    with pytest.raises(KeystoneParseError):
      parser.parse_string("loop n times print 1 end")

  def test_deeply_nested_blocks(self, parser):
    depth = 150
    program = parser.parse_string("if 1 then\n" * depth + "print 1\n" + "end\n" * depth)
    node = program[0]
    for _ in range(depth - 1):
      node = node.body[0]
    assert node.body == (Print(Number(1)),)
    assert node.line == depth

  def test_nesting_beyond_recursion_limit(self, parser, monkeypatch):
    monkeypatch.setattr(parsing, "NESTING_RECURSION_LIMIT", sys.getrecursionlimit())
    depth = 500
    with pytest.raises(KeystoneParseError, match="nested too deeply"):
      parser.parse_string("loop 1 times\n" * depth + "print 1\n" + "end\n" * depth)


class TestGrammarRestrictions:
  """The language deliberately stays small"""

  def test_operator_chaining_rejected(self, grammar):
    with pytest.raises(ParseException):
      grammar.expression.parse_string("a + b + c", parse_all=True)

  def test_chained_print_fails_whole_program(self, parser):
    with pytest.raises(KeystoneParseError):
      parser.parse_string("print 1 + 2 + 3")

  def test_parentheses_rejected(self, parser):
    with pytest.raises(KeystoneParseError):
      parser.parse_string("print (1 + 2)")

  def test_negative_literal_rejected(self, parser):
    with pytest.raises(KeystoneParseError):
      parser.parse_string("x = -1")

  def test_identifiers_are_alphabetic_only(self, parser):
    with pytest.raises(KeystoneParseError):
      parser.parse_string("x1 = 2")

  @pytest.mark.parametrize("keyword", ["print", "if", "then", "loop", "times", "end"])
  def test_keywords_are_reserved(self, parser, keyword):
    with pytest.raises(KeystoneParseError):
      parser.parse_string(f"{keyword} = 1")

  def test_keyword_prefix_is_an_identifier(self, parser):
    assert parser.parse_string("printx = 3 print printx") == [
        Assignment("printx", Number(3)),
        Print(Variable("printx")),
    ]

  def test_keyword_requires_separator(self, parser):
    with pytest.raises(KeystoneParseError):
      parser.parse_string("print1")

  def test_trailing_garbage_fails_whole_program(self, parser):
    with pytest.raises(KeystoneParseError):
      parser.parse_string("print 1 print 2 garbage$$")

  def test_empty_program(self, parser):
    with pytest.raises(KeystoneParseError) as exc_info:
      parser.parse_string("   \n\t ")
    assert exc_info.value.message == "Program is empty"

  def test_largest_literal(self, parser):
    assert parser.parse_string("x = 9223372036854775807") == [Assignment("x", Number(2 ** 63 - 1))]

  def test_literal_overflow_is_parse_error(self, parser):
    with pytest.raises(KeystoneParseError) as exc_info:
      parser.parse_string("x = 9223372036854775808")
    assert "out of range" in exc_info.value.message

  @pytest.mark.parametrize("code", [
      "print " + "9" * 5000,
      "loop " + "1" * 5000 + " times print 1 end",
  ])
  def test_huge_literal_is_parse_error(self, parser, code):
    with pytest.raises(KeystoneParseError) as exc_info:
      parser.parse_string(code)
    assert "out of range" in exc_info.value.message
    assert any("64-bit" in s for s in exc_info.value.suggestions)

  def test_leading_zeros(self, parser):
    assert parser.parse_string("print " + "0" * 40 + "7") == [Print(Number(7))]

  @pytest.mark.parametrize("code", ["x = 1y = 2 print y", "print 12ab"])
  def test_integer_requires_separator(self, parser, code):
    with pytest.raises(KeystoneParseError):
      parser.parse_string(code)

  def test_integer_next_to_operator(self, parser):
    assert parser.parse_string("x=1+2") == [Assignment("x", BinaryOp(Number(1), "+", Number(2)))]

  def test_parse_is_deterministic(self, parser):
    code = "a = 1 if a then loop 2 times print a * 2 end end"
    assert parser.parse_string(code) == parser.parse_string(code)


class TestAstUtilities:
  """Test AST helpers used by the CLI"""

  def test_find_nodes_by_type(self, parser):
    program = parser.parse_string("x = 1 if x then print x + 1 loop 2 times print y end end")
    assert find_nodes_by_type(program, Print) == [
        Print(BinaryOp(Variable("x"), "+", Number(1))),
        Print(Variable("y")),
    ]
    assert [v.name for v in find_nodes_by_type(program, Variable)] == ["x", "x", "y"]

  def test_pretty_print(self, parser):
    program = parser.parse_string("loop 2 times print a - 1 end")
    assert pretty_print_ast(program[0]) == (
        "Loop(2)\n"
        "  Print\n"
        "    BinaryOp(-)\n"
        "      Variable(a)\n"
        "      Number(1)\n"
    )

  def test_ast_to_dict(self, parser):
    program = parser.parse_string("if a != 0 then b = a end")
    assert ast_to_dict(program[0]) == {
        "type": "If",
        "condition": {
            "type": "BinaryOp",
            "operator": "!=",
            "left": {"type": "Variable", "name": "a"},
            "right": {"type": "Number", "value": 0},
        },
        "body": [{"type": "Assignment", "name": "b",
                  "expr": {"type": "Variable", "name": "a"}, "line": 1}],
        "line": 1,
    }

  def test_format_expr(self, parser):
    assert format_expr(parser.parse_expression("hoge < 2")) == "hoge < 2"
