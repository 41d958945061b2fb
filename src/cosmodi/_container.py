from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    TypeVar,
    overload,
)

from ._context import context_for
from ._errors import (
    CircularDependencyError,
    ConstructionError,
    NoProviderError,
    UsageError,
    ValidationError,
    type_name,
)
from ._reflect import Descriptor, check_provides, describe, public_fields


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from contextvars import Context

T = TypeVar("T")

_MISSING = object()


class Scope(Enum):
    TRANSIENT = "transient"
    SINGLETON = "singleton"


@dataclass(frozen=True)
class ProviderSpec:
    provides: Any
    constructor: Callable[..., object]
    scope: Scope
    descriptor: Descriptor


class Container:
    """Type-keyed dependency injection container.

    - register constructors (functions or classes) with a scope
    - resolve a type by recursively building its dependencies
    - invoke a function or bind an object's fields with resolved dependencies
    - named configurations on top of singleton providers.
    """

    def __init__(self) -> None:
        self._providers: dict[Any, ProviderSpec] = {}
        self._instances: dict[Any, object] = {}
        self._configurations: dict[str, Any] = {}
        self._lock = threading.RLock()

    # -- registration ------------------------------------------------------

    def register(
        self,
        scope: Scope,
        constructor: Callable[..., object],
        *,
        provides: Any = None,
    ) -> Any:
        """Register `constructor` as the provider of the type it returns.

        The produced type is read from the return annotation: ``-> T`` or
        ``-> tuple[T, Exception | None]`` for constructors that report errors
        as a second output. Classes produce themselves. `provides` names the
        produced type explicitly, e.g. to register an implementation under a
        Protocol.

        A later registration for the same type replaces the earlier one.
        Returns the produced type.

        Example:
          container.register(Scope.SINGLETON, load_config)
          container.register(Scope.TRANSIENT, SQLRepo, provides=Repo)

        """
        spec = self._spec(scope, constructor, provides)

        with self._lock:
            if spec.provides in self._providers:
                logger.debug("replacing provider for %s", type_name(spec.provides))
            self._providers[spec.provides] = spec

        logger.debug("registered %s provider for %s", scope.value, type_name(spec.provides))
        return spec.provides

    def add(self, constructor: Callable[..., object], *, provides: Any = None) -> Any:
        """Register a transient constructor."""
        return self.register(Scope.TRANSIENT, constructor, provides=provides)

    def add_singleton(self, constructor: Callable[..., object], *, provides: Any = None) -> Any:
        """Register a singleton constructor."""
        return self.register(Scope.SINGLETON, constructor, provides=provides)

    def _spec(self, scope: Scope, constructor: Callable[..., object], provides: Any) -> ProviderSpec:
        if not isinstance(scope, Scope):
            msg = f"scope must be a Scope, got {scope!r}"
            raise ValidationError(msg)

        if not callable(constructor):
            msg = "constructor must be a function"
            raise ValidationError(msg)

        descriptor = describe(constructor)
        name = getattr(constructor, "__qualname__", repr(constructor))

        if descriptor.outputs > 2 or (provides is None and descriptor.outputs == 0):  # noqa: PLR2004
            msg = f"constructor must return T or (T, error): {name}"
            raise ValidationError(msg)

        if provides is not None:
            check_provides(provides, descriptor.produces)
        key = descriptor.produces if provides is None else provides

        try:
            hash(key)
        except TypeError as e:
            msg = f"produced type {key!r} of {name} cannot be used as a key"
            raise ValidationError(msg) from e

        for dep in descriptor.dependencies:
            if not dep.annotated and not dep.has_default:
                msg = f"parameter '{dep.name}' of {name} has no type annotation"
                raise ValidationError(msg)

        return ProviderSpec(provides=key, constructor=constructor, scope=scope, descriptor=descriptor)

    def is_registered(self, key: Any) -> bool:
        """True when `key` has a provider or a cached instance."""
        with self._lock:
            return key in self._instances or key in self._providers

    # -- resolution --------------------------------------------------------

    @overload
    def resolve(self, key: type[T]) -> T: ...

    @overload
    def resolve(self, key: Any) -> Any: ...

    def resolve(self, key: Any) -> Any:
        """Return an instance of `key`, building its dependencies first.

        Singletons are constructed at most once per container; transients on
        every call. Raises NoProviderError, CircularDependencyError, or the
        error a constructor returned or raised.

        Constructors run while the container lock is held. A constructor that
        hands resolution off to another thread and waits for its result
        deadlocks; resolve from the same thread instead.
        """
        with self._lock:
            return self._resolve(key, ())

    def _resolve(self, key: Any, chain: tuple[Any, ...]) -> Any:
        if key in self._instances:
            return self._instances[key]

        spec = self._providers.get(key)
        if spec is None:
            raise NoProviderError(key)

        if key in chain:
            raise CircularDependencyError((*chain, key))

        args, kwargs = self._arguments(spec.descriptor, (*chain, key), owner=spec.constructor)
        value = _unwrap(spec.descriptor, spec.constructor(*args, **kwargs), owner=spec.constructor)

        if spec.scope is Scope.SINGLETON:
            self._instances[key] = value
            logger.debug("cached singleton %s", type_name(key))

        return value

    def _arguments(
        self,
        descriptor: Descriptor,
        chain: tuple[Any, ...],
        *,
        owner: Any,
    ) -> tuple[list[Any], dict[str, Any]]:
        """Resolve the dependencies of a callable in declaration order.

        Positional-only parameters are passed positionally, everything else by
        keyword. A parameter with a default keeps it when its type has no provider.
        """
        args: list[Any] = []
        kwargs: dict[str, Any] = {}

        for dep in descriptor.dependencies:
            positional = dep.kind is inspect.Parameter.POSITIONAL_ONLY

            if dep.has_default and (not dep.annotated or not self.is_registered(dep.key)):
                if positional:
                    args.append(dep.default)
                continue

            if not dep.annotated:
                msg = f"parameter '{dep.name}' of {getattr(owner, '__qualname__', owner)!r} has no type annotation"
                raise UsageError(msg)

            value = self._resolve(dep.key, chain)
            if positional:
                args.append(value)
            else:
                kwargs[dep.name] = value

        return args, kwargs

    # -- injection ---------------------------------------------------------

    def invoke(self, fn: Callable[..., T]) -> T:
        """Call `fn` with every parameter resolved from the container.

        All parameters are resolved before `fn` runs; if one fails, `fn` is
        not called. The return value of `fn` is returned, and a function
        annotated ``-> tuple[T, Exception | None]`` has its error raised.
        """
        if not callable(fn):
            msg = "invoke expects a function"
            raise UsageError(msg)

        descriptor = describe(fn, error=UsageError)
        with self._lock:
            args, kwargs = self._arguments(descriptor, (), owner=fn)

        return _unwrap(descriptor, fn(*args, **kwargs), owner=fn)

    def bind(self, target: T, fields: Mapping[str, Any] | Iterable[str] | None = None) -> T:
        """Assign resolved dependencies to the annotated attributes of `target`.

        Without `fields` every public, non-ClassVar annotated attribute of the
        target's class is bound, base classes first. `fields` restricts binding
        to an explicit mapping of attribute name -> type, or to a list of
        annotated attribute names.

        Binding stops at the first failure; attributes bound before it stay set.
        """
        if inspect.isclass(target) or not (hasattr(target, "__dict__") or hasattr(type(target), "__slots__")):
            msg = f"bind expects an object instance, got {target!r}"
            raise UsageError(msg)

        cls = type(target)
        bindings = _bindings(cls, fields)

        with self._lock:
            for name, key in bindings.items():
                value = self._resolve(key, ())
                try:
                    setattr(target, name, value)
                except AttributeError as e:
                    msg = f"cannot assign field '{name}' of {type_name(cls)}"
                    raise UsageError(msg) from e

        return target

    # -- named configurations ---------------------------------------------

    def configure(self, key: str, constructor: Callable[..., object]) -> None:
        """Register `constructor` as a singleton retrievable by name with `get`."""
        produced = self.add_singleton(constructor)
        with self._lock:
            self._configurations[key] = produced

    def get(self, key: str, default: Any = None) -> Any:
        """Return the configuration `key`, or `default` if unknown or unresolvable."""
        with self._lock:
            produced = self._configurations.get(key, _MISSING)
        if produced is _MISSING:
            return default

        try:
            return self.resolve(produced)
        except Exception:  # noqa: BLE001
            logger.debug("configuration %r could not be resolved", key, exc_info=True)
            return default

    def configurations(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._configurations)

    def context(self) -> Context:
        """Return a copy of the current context with this container bound.

        Dependencies registered with `configure` can then be retrieved with
        `cosmodi.from_context(key, ctx)`, or from code run via `ctx.run(...)`.
        """
        return context_for(self)


def _unwrap(descriptor: Descriptor, out: Any, *, owner: Any) -> Any:
    if not descriptor.returns_error:
        return out

    try:
        value, err = out
    except (TypeError, ValueError) as e:
        msg = f"{getattr(owner, '__qualname__', owner)!r} declares (T, error) outputs but returned {out!r}"
        raise ConstructionError(msg) from e

    if err is None:
        return value
    if not isinstance(err, BaseException):
        msg = f"{getattr(owner, '__qualname__', owner)!r} returned a non-exception error value {err!r}"
        raise ConstructionError(msg)
    raise err


def _bindings(cls: type, fields: Mapping[str, Any] | Iterable[str] | None) -> dict[str, Any]:
    try:
        annotated = public_fields(cls)
    except NameError as e:
        msg = f"cannot evaluate annotation '{e.name}' of {type_name(cls)}"
        raise UsageError(msg) from e
    except TypeError:
        annotated = {}

    if fields is None:
        return annotated

    if isinstance(fields, str):
        fields = [fields]

    requested = dict(fields) if isinstance(fields, Mapping) else dict.fromkeys(fields, _MISSING)

    bindings: dict[str, Any] = {}
    for name, key in requested.items():
        if name.startswith("_"):
            msg = f"field '{name}' of {type_name(cls)} is not public"
            raise UsageError(msg)
        if key is _MISSING:
            if name not in annotated:
                msg = f"{type_name(cls)} has no annotated field '{name}'"
                raise UsageError(msg)
            key = annotated[name]
        bindings[name] = key

    return bindings
