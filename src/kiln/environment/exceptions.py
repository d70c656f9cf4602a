"""Exceptions for the kiln template environment.

Exception Hierarchy:
TemplateError (base)
├── TemplateNotFoundError     # Loader cannot resolve the template name
├── TemplateSyntaxError       # Tokenize/parse/compile failure
├── TemplateRuntimeError      # Failure while rendering a loaded template
│   └── UndefinedError        # Undefined variable with strict_variables on
└── LogicError                # API or configuration misuse

Propagation:
The environment only ever recovers from `TemplateNotFoundError`, and only
between candidates in `Environment.resolve_template()`. Every other error
reaches the caller unchanged. Unexpected exceptions raised while compiling
are wrapped into `TemplateSyntaxError` with the original kept as
``__cause__``, so compilation has a single failure type.

Example:
    ```
    K-TPL-002: Unexpected end of template, expected '}}'
      --> page.html:3
       |
      3 | <h1>{{ title </h1>
       |
      Docs: https://kiln.readthedocs.io/en/latest/errors.html#k-tpl-002
    ```

"""

from __future__ import annotations

from enum import Enum
from typing import Any

_KILN_DOCS_BASE = "https://kiln.readthedocs.io/en/latest/errors.html"


class ErrorCode(Enum):
    """Searchable error codes for kiln errors.

    Format: K-{CATEGORY}-{NUMBER}
    Categories: TPL (template loading/compiling), RUN (runtime), ENV (environment)
    """

    # Template loading errors (K-TPL-xxx)
    TEMPLATE_NOT_FOUND = "K-TPL-001"
    SYNTAX_ERROR = "K-TPL-002"
    COMPILE_ERROR = "K-TPL-003"

    # Runtime errors (K-RUN-xxx)
    UNDEFINED_VARIABLE = "K-RUN-001"
    RUNTIME_ERROR = "K-RUN-002"

    # Environment misuse (K-ENV-xxx)
    LOGIC_ERROR = "K-ENV-001"

    @property
    def docs_url(self) -> str:
        """Documentation URL for this error code."""
        return f"{_KILN_DOCS_BASE}#{self.value.lower()}"

    @property
    def category(self) -> str:
        """Error category (e.g., 'runtime', 'template', 'environment')."""
        prefix = self.value.split("-")[1]
        return {
            "TPL": "template",
            "RUN": "runtime",
            "ENV": "environment",
        }.get(prefix, "unknown")


def _source_lines(source: str | None, lineno: int | None, col_offset: int | None) -> list[str]:
    """Return the snippet lines for ``lineno`` in ``source`` (may be empty)."""
    if not source or not lineno:
        return []
    lines = source.splitlines()
    if not 0 < lineno <= len(lines):
        return []
    parts = ["   |", f"{lineno:>3} | {lines[lineno - 1]}"]
    if col_offset is not None:
        parts.append(f"   | {' ' * col_offset}^")
    return parts


class TemplateError(Exception):
    """Base exception for all kiln errors.

    Attributes:
        code: Optional ErrorCode for searchable error identification.
        template_name: Template the error belongs to, when known.
    """

    code: ErrorCode | None = None
    template_name: str | None = None

    def set_template(self, name: str | None, filename: str | None = None) -> None:
        """Attach the template the error belongs to, unless already known."""
        if self.template_name is None:
            self.template_name = name

    def format_compact(self) -> str:
        """Format error as a short diagnostic without traceback noise."""
        header = str(self)
        if self.code and self.code.value not in header:
            header = f"{self.code.value}: {header}"
        parts = [header]
        if self.template_name:
            parts.append(f"  --> {self.template_name}")
        if self.code:
            parts.append(f"  Docs: {self.code.docs_url}")
        return "\n".join(parts)


class TemplateNotFoundError(TemplateError):
    """Template not found by the configured loader.

    Raised by `Loader.get_source()` and surfaced by
    `Environment.load_template()`. `Environment.resolve_template()` raises a
    single aggregate instance when several candidate names all fail.

    Example:
            >>> env.get_template("nonexistent.html")
        TemplateNotFoundError: Template 'nonexistent.html' not found in: templates/

    """

    code: ErrorCode | None = ErrorCode.TEMPLATE_NOT_FOUND


class TemplateSyntaxError(TemplateError):
    """Template source could not be turned into executable code.

    Raised by the lexer, parser and compiler. `Environment.compile_source()`
    fills in ``name`` when the raising stage did not know it, and wraps any
    other exception from the pipeline into this type.

    When ``source`` and ``lineno`` are known the message includes the
    offending line, with a caret when ``col_offset`` is known too.
    """

    code: ErrorCode | None = ErrorCode.SYNTAX_ERROR

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        name: str | None = None,
        filename: str | None = None,
        source: str | None = None,
        col_offset: int | None = None,
    ):
        self.message = message
        self.lineno = lineno
        self.name = name
        self.filename = filename
        self.source = source
        self.col_offset = col_offset
        super().__init__(self._format_message())

    def set_template(self, name: str | None, filename: str | None = None) -> None:
        """Attach the template identity when the raising stage lacked it."""
        super().set_template(name, filename)
        if self.name is None:
            self.name = name
        if self.filename is None:
            self.filename = filename
        self.args = (self._format_message(),)

    @property
    def location(self) -> str:
        location = self.filename or self.name or "<template>"
        if self.lineno:
            location += f":{self.lineno}"
            if self.col_offset is not None:
                location += f":{self.col_offset}"
        return location

    def _format_message(self) -> str:
        header = f"Syntax Error: {self.message}\n  --> {self.location}"
        snippet = _source_lines(self.source, self.lineno, self.col_offset)
        if snippet:
            return header + "\n" + "\n".join(snippet)
        return header

    def format_compact(self) -> str:
        code_prefix = f"{self.code.value}: " if self.code else ""
        parts = [f"{code_prefix}{self.message}", f"  --> {self.location}"]
        snippet = _source_lines(self.source, self.lineno, self.col_offset)
        if snippet:
            parts.extend(snippet)
            parts.append("   |")
        if self.code:
            parts.append(f"  Docs: {self.code.docs_url}")
        return "\n".join(parts)


class TemplateRuntimeError(TemplateError):
    """Error raised while rendering an already-loaded template.

    Runtime errors pass through `Environment.render()` and
    `Environment.display()` untouched.

    Attributes:
        message: Error description
        template_name: Name of the template being rendered
        lineno: Line number in template source
        suggestion: Actionable fix suggestion

    """

    code: ErrorCode | None = ErrorCode.RUNTIME_ERROR

    def __init__(
        self,
        message: str,
        *,
        template_name: str | None = None,
        lineno: int | None = None,
        suggestion: str | None = None,
        values: dict[str, Any] | None = None,
    ):
        self.message = message
        self.template_name = template_name
        self.lineno = lineno
        self.suggestion = suggestion
        self.values = values or {}
        super().__init__(self._format_message())

    def set_template(self, name: str | None, filename: str | None = None) -> None:
        super().set_template(name, filename)
        self.args = (self._format_message(),)

    def _format_message(self) -> str:
        parts = [f"Runtime Error: {self.message}"]
        if self.template_name or self.lineno:
            loc = self.template_name or "<template>"
            if self.lineno:
                loc += f":{self.lineno}"
            parts.append(f"  Location: {loc}")
        if self.values:
            parts.append("  Values:")
            for name, value in self.values.items():
                value_repr = repr(value)
                if len(value_repr) > 80:
                    value_repr = value_repr[:77] + "..."
                parts.append(f"    {name} = {value_repr} ({type(value).__name__})")
        if self.suggestion:
            parts.append(f"\n  Suggestion: {self.suggestion}")
        return "\n".join(parts)


class UndefinedError(TemplateRuntimeError):
    """Raised when a template reads an undefined variable or attribute.

    Only raised when the environment has ``strict_variables`` enabled;
    otherwise undefined names render as an empty string.

    If ``available_names`` is provided, a "Did you mean?" suggestion is
    added when a close match exists.

    Example:
            >>> env = Environment(strict_variables=True)
            >>> env.from_string("{{ titl }}").render(title="Home")
        UndefinedError: Runtime Error: Variable 'titl' does not exist. Did you mean 'title'?

    """

    code: ErrorCode | None = ErrorCode.UNDEFINED_VARIABLE

    def __init__(
        self,
        name: str,
        template: str | None = None,
        lineno: int | None = None,
        available_names: frozenset[str] | None = None,
        *,
        owner: str | None = None,
    ):
        self.name = name
        message = (
            f"Attribute '{name}' does not exist on {owner}"
            if owner
            else f"Variable '{name}' does not exist"
        )
        if available_names:
            from difflib import get_close_matches

            matches = get_close_matches(name, available_names, n=1, cutoff=0.6)
            if matches:
                message += f". Did you mean '{matches[0]}'?"
        super().__init__(
            message,
            template_name=template,
            lineno=lineno,
            suggestion=f"Use {{{{ {name} | default('') }}}} for optional variables",
        )


class LogicError(TemplateError):
    """The environment was used or configured incorrectly.

    Raised synchronously for caller bugs, for example an unsupported
    ``cache`` option or registering a new global after the extensions have
    been initialized. Never raised for runtime conditions.
    """

    code: ErrorCode | None = ErrorCode.LOGIC_ERROR
