"""Parser error handling for kiln.

Provides ParseError, a TemplateSyntaxError that knows the offending token
and can carry a suggestion.
"""

from __future__ import annotations

from kiln._types import Token
from kiln.environment.exceptions import TemplateSyntaxError


class ParseError(TemplateSyntaxError):
    """Syntax error located at a token."""

    def __init__(
        self,
        message: str,
        token: Token,
        source: str | None = None,
        name: str | None = None,
        filename: str | None = None,
        suggestion: str | None = None,
    ):
        self.token = token
        self.suggestion = suggestion
        super().__init__(
            message,
            lineno=token.lineno,
            name=name,
            filename=filename,
            source=source,
            col_offset=token.col_offset,
        )

    def _format_message(self) -> str:
        msg = super()._format_message()
        if self.suggestion:
            msg += f"\n\nSuggestion: {self.suggestion}"
        return msg
