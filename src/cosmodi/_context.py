"""ContextVar-based container propagation.

- `Container.context()` returns a copy of the current context with the container bound
- `use_container()` binds it in the current context for the duration of a block
- `from_context()` looks up a configured dependency through the bound container
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import Context, ContextVar, copy_context
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Iterator

    from ._container import Container


CONTEXT_KEY = "cosmodi:container"

_container_cv: ContextVar[Container | None] = ContextVar(CONTEXT_KEY, default=None)


def context_for(container: Container) -> Context:
    """Copy the current context and bind `container` inside the copy."""
    ctx = copy_context()
    ctx.run(_container_cv.set, container)
    return ctx


def current_container(ctx: Context | None = None) -> Container | None:
    """Return the container bound in `ctx` (default: the running context), if any."""
    if ctx is None:
        return _container_cv.get()
    return ctx.get(_container_cv)


@contextmanager
def use_container(container: Container) -> Iterator[Container]:
    token = _container_cv.set(container)
    try:
        yield container
    finally:
        _container_cv.reset(token)


def from_context(key: str, ctx: Context | None = None) -> Any:
    """Resolve the configuration `key` through the container bound in `ctx`.

    Returns None when no container is bound or the key cannot be resolved.
    Only dependencies registered with `Container.configure` are reachable.
    """
    container = current_container(ctx)
    if container is None:
        return None
    return container.get(key)
