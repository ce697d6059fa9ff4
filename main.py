"""
Keystone Programming Language - Main Entry Point
A minimal imperative language: integers, assignment, print, if and loop
"""

import sys
import argparse
from pathlib import Path
from typing import List, Optional
import os

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from parsing import (
  create_parser, create_debug_parser, pretty_print_ast, block_depth,
  KeystoneTokenizerError, KEYWORDS
)
from error_handling import KeystoneParseError
from interpreter import create_interpreter, create_debug_interpreter
from stdlib import KeystoneRuntimeError


VERSION = "Keystone v0.1.0"


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      prog='keystone',
      description='Keystone Programming Language - integers, assignment, print, if and loop',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s script.ks              # Run a Keystone script
  %(prog)s -c "print 1 + 2"       # Run a program given on the command line
  %(prog)s -i                     # Interactive mode
  %(prog)s --parse script.ks      # Parse and show the AST
  %(prog)s --tokens script.ks     # Show the token stream
  %(prog)s --debug script.ks      # Run with evaluation traces on stderr
        """
  )

  parser.add_argument(
      'script',
      nargs='?',
      help='Keystone script file to execute'
  )

  parser.add_argument(
      '-c', '--command',
      metavar='CODE',
      help='Program source to execute instead of a script file'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--parse',
      action='store_true',
      help='Parse and show the AST without running'
  )

  parser.add_argument(
      '--tokens',
      action='store_true',
      help='Show the token stream without running'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Enable debug output for all stages'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=VERSION
  )

  return parser


def report_error(message: str) -> None:
  print(message, file=sys.stderr)


def read_script(script_path: str) -> str:
  """Read a script file, exiting with a hint on failure"""
  try:
    return Path(script_path).read_text(encoding='utf-8')
  except FileNotFoundError:
    report_error(f"Error: Script file '{script_path}' not found")
    report_error("  Hint: Check the file path and make sure the file exists")
  except PermissionError:
    report_error(f"Error: Permission denied reading '{script_path}'")
    report_error("  Hint: Make sure you have read permissions for this file")
  except UnicodeDecodeError as e:
    report_error(f"Error: Cannot decode file '{script_path}': {e}")
    report_error("  Hint: Make sure the file is a text file with UTF-8 encoding")
  sys.exit(1)


def show_ast(source: str, name: str, debug: bool = False) -> None:
  """Parse source and show the AST"""
  parser = create_debug_parser() if debug else create_parser()
  try:
    statements = parser.parse_string(source, name)
  except KeystoneParseError as e:
    report_error(str(e))
    sys.exit(1)

  print(f"Parsed {len(statements)} top-level statements:")
  print("=" * 50)
  for i, statement in enumerate(statements, 1):
    print(f"\nStatement {i} (line {statement.line}):")
    print(pretty_print_ast(statement), end='')


def show_tokens(source: str, name: str) -> None:
  """Tokenize source and show one token per line"""
  parser = create_parser()
  try:
    tokens = parser.tokenize(source, name)
  except KeystoneTokenizerError as e:
    report_error(f"Tokenizer error in '{name}': {e}")
    sys.exit(1)

  for token in tokens:
    print(f"{token.span}\t{token}")


def run_source(source: str, name: str, debug: bool = False) -> None:
  """Parse and run a Keystone program, exiting with status 1 on failure"""
  parser = create_debug_parser() if debug else create_parser()
  interpreter = create_debug_interpreter() if debug else create_interpreter()

  try:
    statements = parser.parse_string(source, name)
  except KeystoneParseError as e:
    report_error(str(e))
    sys.exit(1)

  try:
    interpreter.interpret_program(statements)
  except KeystoneRuntimeError as e:
    report_error(f"\n{'='*70}")
    report_error(f"Runtime Error in '{name}'")
    report_error(f"{'='*70}")
    report_error(f"\nError: {e.message}")

    if e.line:
      lines = source.split('\n')
      report_error(f"\nLocation: {name}:{e.line}")
      if e.line <= len(lines):
        source_line = lines[e.line - 1].strip()
        report_error("\nSource:")
        report_error(f"  {source_line}")
        report_error(f"  {'~' * len(source_line)}")

    report_error(f"\n{'='*70}\n")
    sys.exit(1)


def setup_readline() -> None:
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser("~/.keystone_history")
  try:
    readline.read_history_file(history_file)
  except OSError:
    pass  # First run, no history yet

  readline.set_history_length(1000)

  completions = list(KEYWORDS) + [":parse", ":env", ":reset", ":help", "exit"]

  def completer(text, state):
    options = [cmd for cmd in completions if cmd.startswith(text)]
    if state < len(options):
      return options[state]
    return None

  readline.set_completer(completer)
  readline.parse_and_bind("tab: complete")

  import atexit
  atexit.register(readline.write_history_file, history_file)


def show_repl_help() -> None:
  print("REPL Commands:")
  print("  :parse <code>     - Show parsed AST")
  print("  :env              - Show current environment")
  print("  :reset            - Clear all variables")
  print("  :help             - Show this help")
  print("  exit              - Exit REPL")
  print()
  print("Language features:")
  print("  x = 5                        - Assignment")
  print("  print x * 2                  - Print one value per line")
  print("  if x > 1 then print x end    - Conditional block")
  print("  loop 3 times print x end     - Fixed-count loop")


def is_block_open(code: str) -> bool:
  """True while the buffered input still has unclosed if/loop blocks"""
  parser = create_parser()
  try:
    return block_depth(parser.tokenize(code)) > 0
  except KeystoneTokenizerError:
    # Let the parser report it
    return False


def run_interactive_mode(debug: bool = False) -> None:
  """Run Keystone in interactive mode with a persistent environment"""
  print(f"{VERSION} - Interactive Mode")
  print("Type 'exit' to quit, ':help' for commands")
  if READLINE_AVAILABLE:
    print("Readline enabled: Use ↑/↓ for history, Tab for completion")
  if debug:
    print("Debug mode enabled")
  print()

  setup_readline()

  parser = create_debug_parser() if debug else create_parser()
  interpreter = create_debug_interpreter() if debug else create_interpreter()
  buffer: List[str] = []

  while True:
    try:
      code = input("...   " if buffer else "ks> ")
    except KeyboardInterrupt:
      print("\nGoodbye!")
      break
    except EOFError:
      print("\nGoodbye!")
      break

    if not buffer:
      command = code.strip()
      if command == "exit":
        break
      if not command:
        continue
      if command == ":help":
        show_repl_help()
        continue
      if command == ":env":
        if interpreter.environment:
          for name, value in interpreter.environment.items():
            print(f"  {name} = {value}")
        else:
          print("  (no variables assigned)")
        continue
      if command == ":reset":
        interpreter.reset()
        print("Environment cleared")
        continue
      if command.startswith(":parse "):
        try:
          for statement in parser.parse_string(command[len(":parse "):]):
            print(pretty_print_ast(statement), end='')
        except KeystoneParseError as e:
          print(f"Parse error: {e}")
        continue

    buffer.append(code)
    source = '\n'.join(buffer)
    if is_block_open(source):
      continue
    buffer = []

    try:
      statements = parser.parse_string(source)
      interpreter.interpret_statements(statements)
    except KeystoneParseError as e:
      print(f"Parse error: {e}")
    except KeystoneRuntimeError as e:
      print(f"\nRuntime Error:\n  {e.message}\n")


def show_language_info() -> None:
  """Show Keystone language information"""
  print("Keystone Programming Language")
  print("=" * 50)
  print("A minimal imperative language with:")
  print("• 64-bit integer arithmetic and comparison")
  print("• Variable assignment (unassigned variables read as 0)")
  print("• print, if ... then ... end, loop N times ... end")
  print()


def main(argv: Optional[List[str]] = None) -> None:
  """Main entry point for Keystone"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args(argv)

  if args.command is not None:
    source, name = args.command, "<command>"
  elif args.script:
    source, name = read_script(args.script), args.script
  elif args.interactive:
    run_interactive_mode(debug=args.debug)
    return
  else:
    arg_parser.print_help()
    print()
    show_language_info()
    return

  if args.tokens:
    show_tokens(source, name)
  elif args.parse:
    show_ast(source, name, debug=args.debug)
  else:
    run_source(source, name, debug=args.debug)


if __name__ == "__main__":
  main()
