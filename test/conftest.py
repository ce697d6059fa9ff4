"""
Test configuration for Keystone tests
"""

import io
import sys
from pathlib import Path

import pytest

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from parsing import KeystoneGrammar, create_parser
from interpreter import create_interpreter


@pytest.fixture
def grammar():
  """Provide a fresh grammar instance for each test"""
  return KeystoneGrammar()


@pytest.fixture
def parser():
  return create_parser()


@pytest.fixture
def examples_dir():
  """Get the example programs directory path"""
  return project_root / "examples"


@pytest.fixture
def execute(parser):
  """Parse and run source, returning printed lines and the final environment"""
  def run_program(source):
    output = io.StringIO()
    env = create_interpreter(output=output).interpret_program(parser.parse_string(source))
    return output.getvalue().splitlines(), env
  return run_program
