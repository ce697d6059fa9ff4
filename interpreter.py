"""
Keystone Interpreter
Tree-walking evaluation over the parsed AST
One flat, mutable environment per run; printing is the only side effect
"""

from typing import Dict, List, Optional, TextIO
import sys

from parsing import (
  Number, Variable, BinaryOp, Assignment, Print, If, Loop,
  Expr, Statement, create_parser, format_expr
)
from stdlib import (
  KeystoneRuntimeError,
  BUILTIN_OPERATORS,
  NESTING_RECURSION_LIMIT,
  keystone_print,
  recursion_limit,
)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

def make_runtime_env(bindings: Optional[Dict[str, int]] = None) -> Dict[str, int]:
  """Create the flat variable environment for one run"""
  return dict(bindings) if bindings else {}


def make_execution_context(output: Optional[TextIO] = None, debug: bool = False) -> Dict:
  """Create the execution context threaded through evaluation"""
  return {
      'output': output,
      'debug': debug,
      'current_line': None,
  }


def env_lookup_value(env: Dict[str, int], name: str) -> int:
  """Unassigned variables read as zero"""
  return env.get(name, 0)


def env_bind_value(env: Dict[str, int], name: str, value: int) -> None:
  env[name] = value


def trace(context: Dict, message: str) -> None:
  if context['debug']:
    print(message, file=sys.stderr)


# ============================================================================
# EXPRESSION EVALUATION
# ============================================================================

def eval_expr(expr: Expr, env: Dict[str, int], context: Optional[Dict] = None) -> int:
  """Evaluate an expression against the environment and return its integer value"""
  if context is None:
    context = make_execution_context()

  if isinstance(expr, Number):
    return expr.value
  elif isinstance(expr, Variable):
    return env_lookup_value(env, expr.name)
  elif isinstance(expr, BinaryOp):
    return eval_binary_op(expr, env, context)
  else:
    raise TypeError(f"Unknown expression node: {expr!r}")


def eval_binary_op(expr: BinaryOp, env: Dict[str, int], context: Dict) -> int:
  """Evaluate binary operation, left operand first"""
  left_val = eval_expr(expr.left, env, context)
  right_val = eval_expr(expr.right, env, context)

  op_func = BUILTIN_OPERATORS.get(expr.operator)
  if op_func is None:
    raise KeystoneRuntimeError(f"Unknown operator: {expr.operator}", context['current_line'])

  try:
    result = op_func(left_val, right_val)
  except KeystoneRuntimeError as e:
    raise KeystoneRuntimeError(e.message, context['current_line']) from e

  trace(context, f"  {left_val} {expr.operator} {right_val} => {result}")
  return result


# ============================================================================
# STATEMENT EXECUTION
# ============================================================================

def exec_statement(statement: Statement, env: Dict[str, int], context: Optional[Dict] = None) -> None:
  """Execute one statement, mutating env in place"""
  if context is None:
    context = make_execution_context()

  context['current_line'] = statement.line
  trace(context, f"Executing: {type(statement).__name__} (line {statement.line})")

  if isinstance(statement, Assignment):
    exec_assignment(statement, env, context)
  elif isinstance(statement, Print):
    exec_print(statement, env, context)
  elif isinstance(statement, If):
    exec_if(statement, env, context)
  elif isinstance(statement, Loop):
    exec_loop(statement, env, context)
  else:
    raise TypeError(f"Unknown statement node: {statement!r}")


def exec_block(body, env: Dict[str, int], context: Dict) -> None:
  """Run a block in order against the same environment; blocks open no scope"""
  for statement in body:
    exec_statement(statement, env, context)


def exec_assignment(statement: Assignment, env: Dict[str, int], context: Dict) -> None:
  value = eval_expr(statement.expr, env, context)
  trace(context, f"  {statement.name} = {format_expr(statement.expr)} => {value}")
  env_bind_value(env, statement.name, value)


def exec_print(statement: Print, env: Dict[str, int], context: Dict) -> None:
  value = eval_expr(statement.expr, env, context)
  keystone_print(value, context['output'])


def exec_if(statement: If, env: Dict[str, int], context: Dict) -> None:
  """Any nonzero condition counts as true"""
  if eval_expr(statement.condition, env, context) != 0:
    exec_block(statement.body, env, context)


def exec_loop(statement: Loop, env: Dict[str, int], context: Dict) -> None:
  """Run the body count times; a count of zero or less skips it"""
  for _ in range(max(statement.count, 0)):
    exec_block(statement.body, env, context)


# ============================================================================
# PROGRAM EVALUATION
# ============================================================================

def eval_program(statements: List[Statement], debug: bool = False,
                 output: Optional[TextIO] = None,
                 env: Optional[Dict[str, int]] = None) -> Dict[str, int]:
  """
  Execute top-level statements in document order and return the final environment.
  A fresh empty environment is used unless one is passed in.
  """
  if env is None:
    env = make_runtime_env()
  context = make_execution_context(output, debug)
  try:
    with recursion_limit(NESTING_RECURSION_LIMIT):
      exec_block(statements, env, context)
  except RecursionError as e:
    raise KeystoneRuntimeError("Blocks are nested too deeply to execute", context['current_line']) from e
  return env


def run(source_text: str, output: Optional[TextIO] = None, debug: bool = False) -> None:
  """Parse then execute a Keystone program; nothing runs if parsing fails"""
  parser = create_parser(debug)
  statements = parser.parse_string(source_text)
  eval_program(statements, debug, output)


# ============================================================================
# FACTORY FUNCTIONS (for main.py)
# ============================================================================

class KeystoneInterpreter:
  """Interpreter with a persistent session environment for the REPL"""

  def __init__(self, debug: bool = False, output: Optional[TextIO] = None):
    self.debug = debug
    self.output = output
    self.environment: Dict[str, int] = make_runtime_env()

  def interpret_program(self, statements: List[Statement]) -> Dict[str, int]:
    """Run a whole program against a fresh environment"""
    return eval_program(statements, self.debug, self.output)

  def interpret_statements(self, statements: List[Statement]) -> Dict[str, int]:
    """Run statements against the session environment, keeping earlier bindings"""
    return eval_program(statements, self.debug, self.output, self.environment)

  def reset(self) -> None:
    self.environment.clear()


def create_interpreter(debug: bool = False, output: Optional[TextIO] = None) -> KeystoneInterpreter:
  """Factory function returning an interpreter"""
  return KeystoneInterpreter(debug=debug, output=output)


def create_debug_interpreter(output: Optional[TextIO] = None) -> KeystoneInterpreter:
  """Factory function returning a debug interpreter"""
  return create_interpreter(debug=True, output=output)
