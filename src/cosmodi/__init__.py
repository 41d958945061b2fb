"""Type-keyed dependency injection container.

This package maps the type a constructor produces to that constructor, and
resolves a requested type by recursively building the dependencies declared
in constructor signatures, honoring a per-registration caching scope.

Exports:
- `Container`: registry of providers; resolves types, invokes functions and
  binds object fields with resolved dependencies.
- `Scope`: caching policy of a provider (transient or singleton).
- `from_context`, `use_container`, `current_container`: propagate a container
  through `contextvars` and look up named configurations from it.
- Errors: `CosmoError` and its subclasses.
"""

from ._container import Container, ProviderSpec, Scope
from ._context import CONTEXT_KEY, current_container, from_context, use_container
from ._errors import (
    CircularDependencyError,
    ConstructionError,
    CosmoError,
    NoProviderError,
    ResolutionError,
    UsageError,
    ValidationError,
)


__all__ = [
    "CONTEXT_KEY",
    "CircularDependencyError",
    "ConstructionError",
    "Container",
    "CosmoError",
    "NoProviderError",
    "ProviderSpec",
    "ResolutionError",
    "Scope",
    "UsageError",
    "ValidationError",
    "current_container",
    "from_context",
    "use_container",
]
