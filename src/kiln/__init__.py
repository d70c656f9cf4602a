"""kiln — template environment with persistent compiled-artifact caching.

kiln turns a named template into a reusable, executable render unit and
caches the compiled form across process runs, so templates are compiled
once and loaded many times.

Quickstart:
    >>> from kiln import Environment
    >>> env = Environment()
    >>> template = env.from_string("Hello, {{ name }}!")
    >>> template.render(name="World")
    'Hello, World!'

File-based templates with a persistent cache:
    >>> from kiln import Environment, FileSystemLoader
    >>> env = Environment(loader=FileSystemLoader("templates/"), cache=".kiln-cache")
    >>> env.render("index.html", page=page)

Architecture:
Template Source → Lexer → Parser → AST → Compiler → Python source → activate

Pipeline stages:
1. **Identity**: SHA-256 over loader cache key, extension signature and host
2. **Memo**: one Template per identity per Environment
3. **Cache**: stored artifact reused (checked for freshness with auto_reload)
4. **Compile**: Lexer → Parser → node visitors → Compiler, on cache miss
5. **Activate**: generated source executed once per identity per process

Caching:
The ``cache`` option takes ``False`` (disabled), a directory path
(`FilesystemCache`) or any `ArtifactCache`. Artifacts are plain Python
source files, written atomically.

Thread-Safety:
- An Environment serializes its own state changes with a lock
- Activation of a unit happens at most once per process
- Rendering uses only local state

"""

from kiln._types import Token, TokenType
from kiln.environment import (
    ArtifactCache,
    ChoiceLoader,
    DictLoader,
    Environment,
    ErrorCode,
    FilesystemCache,
    FileSystemLoader,
    FunctionLoader,
    Loader,
    LogicError,
    MemoryCache,
    NullCache,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    UndefinedError,
)
from kiln.extensions import Extension, NodeVisitor
from kiln.template import Template

__version__ = "0.1.0"

__all__ = [
    "ArtifactCache",
    "ChoiceLoader",
    "DictLoader",
    "Environment",
    "ErrorCode",
    "Extension",
    "FileSystemLoader",
    "FilesystemCache",
    "FunctionLoader",
    "Loader",
    "LogicError",
    "MemoryCache",
    "NodeVisitor",
    "NullCache",
    "Template",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "Token",
    "TokenType",
    "UndefinedError",
    "__version__",
]
