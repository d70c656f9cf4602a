"""kiln environment — configuration, loading, caching and compilation.

Public surface:
- `Environment`: orchestrates the load → compile → cache → activate pipeline
- Loaders: `FileSystemLoader`, `DictLoader`, `ChoiceLoader`, `FunctionLoader`
- Artifact caches: `NullCache`, `FilesystemCache`, `MemoryCache`
- Exceptions: `TemplateError` and its subclasses
"""

from kiln.environment.cache import (
    ArtifactCache,
    CustomTarget,
    DisabledTarget,
    FilesystemCache,
    FilesystemTarget,
    MemoryCache,
    NullCache,
    resolve_cache_target,
)
from kiln.environment.core import Environment
from kiln.environment.exceptions import (
    ErrorCode,
    LogicError,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    UndefinedError,
)
from kiln.environment.extension_set import ExtensionSet
from kiln.environment.loaders import (
    ChoiceLoader,
    DictLoader,
    FileSystemLoader,
    FunctionLoader,
    Loader,
)

__all__ = [
    "ArtifactCache",
    "ChoiceLoader",
    "CustomTarget",
    "DictLoader",
    "DisabledTarget",
    "Environment",
    "ErrorCode",
    "ExtensionSet",
    "FileSystemLoader",
    "FilesystemCache",
    "FilesystemTarget",
    "FunctionLoader",
    "Loader",
    "LogicError",
    "MemoryCache",
    "NullCache",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "UndefinedError",
    "resolve_cache_target",
]
