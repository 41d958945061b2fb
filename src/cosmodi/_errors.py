from __future__ import annotations

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Sequence


def type_name(key: Any) -> str:
    """Human readable name of a type key, used in error messages."""
    if isinstance(key, type):
        return key.__qualname__
    return repr(key).replace("typing.", "")


class CosmoError(Exception):
    """Base class of every error raised by the container."""


class ValidationError(CosmoError, TypeError):
    """A constructor was rejected at registration time."""


class UsageError(CosmoError, TypeError):
    """`invoke` or `bind` received an argument it cannot work with."""


class ConstructionError(CosmoError):
    """Error a constructor may return as the second output of `(value, error)`."""


class ResolutionError(CosmoError, RuntimeError):
    pass


class NoProviderError(ResolutionError):
    def __init__(self, key: Any) -> None:
        self.key = key
        super().__init__(f"no provider for type {type_name(key)}")


class CircularDependencyError(ResolutionError):
    def __init__(self, chain: Sequence[Any]) -> None:
        self.chain = tuple(chain)
        path = " -> ".join(type_name(k) for k in self.chain)
        super().__init__(f"circular dependency: {path}")
