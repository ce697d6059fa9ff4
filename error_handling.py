"""
Enhanced error handling for the Keystone parser with detailed error messages
Pure functional helpers plus a small exception class at the boundary
"""

from typing import List, Optional, Dict
from pyparsing import ParseBaseException
import re


OPERATOR_CHARS = "+-*/<>=!"
DEFAULT_FILENAME = "<input>"
MAX_UNDERLINE = 20


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_parse_error(
    message: str,
    location: int,
    line: int,
    column: int,
    expected: Optional[List[str]] = None,
    got: Optional[str] = None,
    context: Optional[str] = None,
    suggestions: Optional[List[str]] = None,
    filename: Optional[str] = None
) -> Dict:
    """Create an immutable parse error structure"""
    return {
        'message': message,
        'location': location,
        'line': line,
        'column': column,
        'expected': expected or [],
        'got': got,
        'context': context,
        'suggestions': suggestions or [],
        'filename': filename
    }


def format_parse_error(error: Dict) -> str:
    """Format parse error as a report; the source name is shown unless it is the default"""
    where = f"line {error['line']}, column {error['column']}"
    if error.get('filename') and error['filename'] != DEFAULT_FILENAME:
        where += f" of {error['filename']}"
    error_msg = f"Parse error at {where}:\n"
    error_msg += f"  {error['message']}\n"

    if error['expected']:
        error_msg += f"  Expected: {', '.join(error['expected'])}\n"

    if error['got']:
        error_msg += f"  Got: {error['got']}\n"

    if error['context']:
        error_msg += f"  Context:\n{error['context']}\n"

    if error['suggestions']:
        error_msg += "  Suggestions:\n"
        for suggestion in error['suggestions']:
            error_msg += f"    - {suggestion}\n"

    return error_msg


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def underline_width(line: str, col_num: int) -> int:
    """Width of the word starting at col_num, at least 1 and at most MAX_UNDERLINE"""
    match = re.match(r'\S+', line[col_num - 1:])
    if not match:
        return 1
    return min(len(match.group(0)), MAX_UNDERLINE)


def get_context_lines(source_text: str, line_num: int, col_num: int, context_lines: int = 2) -> str:
    """
    Render the lines leading up to the error with a gutter, underlining the
    word the parser stopped at:

           1 | x = 1
           2 | y = 2 garbage
             |       ^^^^^^^ Error here
    """
    lines = source_text.split('\n')
    if not 0 < line_num <= len(lines):
        return ""

    context_parts = [
        f"{i + 1:4d} | {lines[i]}"
        for i in range(max(0, line_num - context_lines - 1), line_num)
    ]
    width = underline_width(lines[line_num - 1], col_num)
    context_parts.append(f"{'':4} | {' ' * (col_num - 1)}{'^' * width} Error here")
    return '\n'.join(context_parts)


def extract_expected(exc: ParseBaseException) -> List[str]:
    """Extract expected tokens from exception"""
    # pyparsing only reports the expectation inside the message text
    match = re.search(r"Expected\s+(.+?)(?:,\s+found|\s+\(at|$)", exc.msg or "")
    if match:
        return [match.group(1)]
    return ["valid syntax"]


def extract_got(source_text: str, line_num: int, col_num: int) -> str:
    """Extract what was actually found at the error location"""
    lines = source_text.split('\n')

    if 0 < line_num <= len(lines):
        error_line = lines[line_num - 1]
        if col_num <= len(error_line):
            start = max(0, col_num - 1)
            end = min(len(error_line), col_num + 10)
            got_text = error_line[start:end].strip()
            if got_text:
                return f"'{got_text}'"
        return "end of line"
    return "end of input"


def generate_suggestions(message: str, got: str, expected: List[str]) -> List[str]:
    """Generate helpful suggestions based on the error"""
    suggestions = []
    expected_text = ' '.join(expected)

    if "out of range" in message:
        suggestions.append("Integer literals must fit in a signed 64-bit integer")

    if "(" in got or ")" in got:
        suggestions.append("Parentheses are not supported - assign intermediate results to variables")

    if "end of text" in expected_text and got[1:2] in OPERATOR_CHARS:
        suggestions.append(
            "Only one operator is allowed per expression - split 'a + b + c' into two assignments"
        )

    if "'end'" in expected_text:
        suggestions.append("Every 'if' and 'loop' block must be closed with 'end'")

    if "'then'" in expected_text:
        suggestions.append("Conditions are written as 'if <expr> then ... end'")

    if "'times'" in expected_text:
        suggestions.append("Loops are written as 'loop <integer> times ... end'")

    if got.startswith("'-"):
        suggestions.append("Negative literals are not supported - write '0 - n' instead")

    return suggestions


def enhance_parse_exception_dict(exc: ParseBaseException, source_text: str,
                                 filename: Optional[str] = None) -> Dict:
    """Convert pyparsing exception to enhanced Keystone error dict"""
    line_num = exc.lineno
    col_num = exc.column

    context = get_context_lines(source_text, line_num, col_num)
    expected = extract_expected(exc)
    got = extract_got(source_text, line_num, col_num)
    suggestions = generate_suggestions(exc.msg or "", got, expected)

    return make_parse_error(
        message=str(exc),
        location=exc.loc,
        line=line_num,
        column=col_num,
        expected=expected,
        got=got,
        context=context,
        suggestions=suggestions,
        filename=filename
    )


# ============================================================================
# EXCEPTION CLASSES
# ============================================================================

class KeystoneParseError(Exception):
    """Raised when source text does not match the Keystone grammar"""
    def __init__(self, message: str, location: int = 0, line: int = 0, column: int = 0,
                 expected: Optional[List[str]] = None, got: Optional[str] = None,
                 context: Optional[str] = None, suggestions: Optional[List[str]] = None,
                 filename: str = DEFAULT_FILENAME):
        self.message = message
        self.location = location
        self.line = line
        self.column = column
        self.expected = expected or []
        self.got = got
        self.context = context
        self.suggestions = suggestions or []
        self.filename = filename
        super().__init__(message)

    def to_dict(self) -> Dict:
        return make_parse_error(
            self.message, self.location, self.line, self.column,
            self.expected, self.got, self.context, self.suggestions, self.filename
        )

    def __str__(self) -> str:
        return format_parse_error(self.to_dict())


class KeystoneErrorHandler:
    """Turns pyparsing failures into KeystoneParseError for one source text"""
    def __init__(self, source_text: str, filename: str = DEFAULT_FILENAME):
        self.source_text = source_text
        self.filename = filename

    def enhance_parse_exception(self, exc: ParseBaseException) -> KeystoneParseError:
        """Convert pyparsing exception to enhanced Keystone error"""
        error_dict = enhance_parse_exception_dict(exc, self.source_text, self.filename)
        return KeystoneParseError(**error_dict)

    def empty_program_error(self) -> KeystoneParseError:
        return KeystoneParseError(
            message="Program is empty",
            line=1,
            column=1,
            expected=["statement"],
            got="end of input",
            suggestions=["A program needs at least one statement, e.g. 'print 1'"],
            filename=self.filename
        )

    def nesting_too_deep_error(self) -> KeystoneParseError:
        return KeystoneParseError(
            message="Blocks are nested too deeply to parse",
            line=1,
            column=1,
            suggestions=["Split deeply nested if/loop blocks into a flatter sequence of statements"],
            filename=self.filename
        )
