"""
Keystone Standard Library
Built-in operators and output for Keystone
All values are signed 64-bit integers
"""

from typing import Callable, Dict, Iterator, Optional, TextIO
from contextlib import contextmanager
import operator
import sys


INT_MIN = -(2 ** 63)
INT_MAX = 2 ** 63 - 1
INT_MAX_DIGITS = len(str(INT_MAX))

# Enough stack for several hundred levels of nested if/loop blocks
NESTING_RECURSION_LIMIT = 10000


class KeystoneRuntimeError(Exception):
  """Fatal error raised while executing a Keystone program"""

  def __init__(self, message: str, line: Optional[int] = None):
    self.message = message
    self.line = line
    super().__init__(self._format_error())

  def _format_error(self) -> str:
    if self.line:
      return f"Runtime error at line {self.line}: {self.message}"
    return f"Runtime error: {self.message}"


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def check_int_range(value: int, op_name: str) -> int:
  """Reject results that do not fit a signed 64-bit integer"""
  if value < INT_MIN or value > INT_MAX:
    raise KeystoneRuntimeError(f"Integer overflow in {op_name}: {value} does not fit in 64 bits")
  return value


def int_literal_value(text: str) -> Optional[int]:
  """Value of a decimal literal, or None when it does not fit in 64 bits"""
  digits = text.lstrip('0') or '0'
  # int() refuses digit strings past sys.get_int_max_str_digits()
  if len(digits) > INT_MAX_DIGITS:
    return None
  value = int(digits)
  return value if value <= INT_MAX else None


def shorten_literal(text: str, width: int = 24) -> str:
  return text if len(text) <= width else f"{text[:width - 3]}..."


@contextmanager
def recursion_limit(limit: int) -> Iterator[None]:
  """Run the body with at least `limit` frames of recursion available"""
  previous = sys.getrecursionlimit()
  sys.setrecursionlimit(max(previous, limit))
  try:
    yield
  finally:
    sys.setrecursionlimit(previous)


def binary_arithmetic_op(op: Callable[[int, int], int], op_name: str) -> Callable[[int, int], int]:
  """
  Factory for checked binary arithmetic operations

  Examples:
    keystone_add = binary_arithmetic_op(operator.add, "addition")
    keystone_add(1, 2) -> 3
  """
  def arithmetic(x: int, y: int) -> int:
    return check_int_range(op(x, y), op_name)

  return arithmetic


def binary_comparison_op(op: Callable[[int, int], bool]) -> Callable[[int, int], int]:
  """Factory for comparisons; true is 1 and false is 0"""
  def comparison(x: int, y: int) -> int:
    return 1 if op(x, y) else 0

  return comparison


# ============================================================================
# ARITHMETIC
# ============================================================================

keystone_add = binary_arithmetic_op(operator.add, "addition")
keystone_sub = binary_arithmetic_op(operator.sub, "subtraction")
keystone_mul = binary_arithmetic_op(operator.mul, "multiplication")


def keystone_div(x: int, y: int) -> int:
  """Integer division truncating toward zero"""
  if y == 0:
    raise KeystoneRuntimeError("Division by zero")
  quotient = abs(x) // abs(y)
  if (x < 0) != (y < 0):
    quotient = -quotient
  return check_int_range(quotient, "division")


# ============================================================================
# COMPARISON
# ============================================================================

keystone_lt = binary_comparison_op(operator.lt)
keystone_gt = binary_comparison_op(operator.gt)
keystone_le = binary_comparison_op(operator.le)
keystone_ge = binary_comparison_op(operator.ge)
keystone_eq = binary_comparison_op(operator.eq)
keystone_ne = binary_comparison_op(operator.ne)


BUILTIN_OPERATORS: Dict[str, Callable[[int, int], int]] = {
    '+': keystone_add,
    '-': keystone_sub,
    '*': keystone_mul,
    '/': keystone_div,
    '<': keystone_lt,
    '>': keystone_gt,
    '<=': keystone_le,
    '>=': keystone_ge,
    '==': keystone_eq,
    '!=': keystone_ne,
}


# ============================================================================
# OUTPUT
# ============================================================================

def keystone_print(value: int, output: Optional[TextIO] = None) -> None:
  """Print a value and a newline to the output stream (stdout by default)"""
  print(value, file=output if output is not None else sys.stdout)
