"""Parser for the default kiln template syntax."""

from kiln.parser.core import Parser
from kiln.parser.errors import ParseError

__all__ = ["ParseError", "Parser"]
