"""Code generator: template AST → Python module source."""

from kiln.compiler.core import Compiler

__all__ = ["Compiler"]
