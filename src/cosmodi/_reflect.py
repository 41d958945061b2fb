"""Reflection helpers turning callables and classes into type-keyed descriptors.

A *type key* is whatever a parameter, return value or attribute is annotated
with: a class, a ``typing.Protocol`` or a parametrised generic such as
``list[int]``. Keys compare structurally, so two ``list[int]`` annotations
written in different modules name the same dependency.
"""

from __future__ import annotations

import inspect
import logging
import types
import typing
from dataclasses import dataclass
from typing import Any, ClassVar, Never, NoReturn, Union, get_args, get_origin, get_type_hints

from ._errors import CosmoError, ValidationError, type_name


logger = logging.getLogger(__name__)

EMPTY = inspect.Parameter.empty

_NO_OUTPUT = (EMPTY, None, type(None), NoReturn, Never)


@dataclass(frozen=True)
class Dependency:
    name: str
    key: Any
    kind: Any
    default: Any = EMPTY

    @property
    def annotated(self) -> bool:
        return self.key is not EMPTY

    @property
    def has_default(self) -> bool:
        return self.default is not EMPTY

    @property
    def keyword_only(self) -> bool:
        return self.kind is inspect.Parameter.KEYWORD_ONLY


@dataclass(frozen=True)
class Descriptor:
    """Reflected shape of a callable.

    `outputs` counts the declared outputs: 0 when nothing is produced, 1 for a
    plain value, 2 for the ``tuple[T, Exception | None]`` form and more when a
    longer tuple ends in an exception type.
    """

    dependencies: tuple[Dependency, ...]
    produces: Any
    outputs: int

    @property
    def returns_error(self) -> bool:
        return self.outputs == 2


def describe(fn: Any, *, error: type[CosmoError] = ValidationError) -> Descriptor:
    """Describe the parameters and outputs of `fn`.

    Classes produce themselves and depend on the parameters of whichever of
    ``__init__``, ``__new__`` or a metaclass ``__call__`` builds them.
    Annotations that cannot be evaluated raise `error`.
    """
    try:
        sig = inspect.signature(fn, eval_str=True)
    except NameError as exc:
        raise error(_unevaluated(fn, exc)) from exc
    except (TypeError, ValueError):
        # builtins without a signature: nothing to inject
        sig = inspect.Signature()

    if inspect.isclass(fn):
        hints = _signature_hints(sig)
        produces: Any = fn
        outputs = 1
    else:
        hints = _callable_hints(fn, sig, error)
        produces, outputs = _outputs(hints.get("return", EMPTY))

    deps = tuple(
        Dependency(name=name, key=hints.get(name, EMPTY), kind=p.kind, default=p.default)
        for name, p in sig.parameters.items()
        if p.kind not in (p.VAR_POSITIONAL, p.VAR_KEYWORD)
    )
    return Descriptor(dependencies=deps, produces=produces, outputs=outputs)


def _callable_hints(fn: Any, sig: inspect.Signature, error: type[CosmoError]) -> dict[str, Any]:
    if inspect.isfunction(fn) or inspect.ismethod(fn):
        target = fn
    elif inspect.isfunction(getattr(type(fn), "__call__", None)):
        target = type(fn).__call__
    else:
        # partials and other wrappers: the evaluated signature carries the annotations
        return _signature_hints(sig)

    try:
        return get_type_hints(target)
    except NameError as exc:
        raise error(_unevaluated(fn, exc)) from exc


def _signature_hints(sig: inspect.Signature) -> dict[str, Any]:
    hints = {name: p.annotation for name, p in sig.parameters.items() if p.annotation is not EMPTY}
    if sig.return_annotation is not EMPTY:
        hints["return"] = sig.return_annotation
    return hints


def _unevaluated(fn: Any, exc: NameError) -> str:
    return f"cannot evaluate annotation '{exc.name}' of {getattr(fn, '__qualname__', fn)!r}"


def _outputs(ret: Any) -> tuple[Any, int]:
    if any(ret is none for none in _NO_OUTPUT):
        return EMPTY, 0

    if get_origin(ret) is tuple:
        args = get_args(ret)
        if len(args) >= 2 and args[-1] is not Ellipsis and is_error_type(args[-1]):  # noqa: PLR2004
            return args[0], len(args)

    return ret, 1


def is_error_type(tp: Any) -> bool:
    """True for an exception class or an optional/union of exception classes."""
    if inspect.isclass(tp):
        return issubclass(tp, BaseException)

    if get_origin(tp) in (Union, types.UnionType):
        members = [a for a in get_args(tp) if a is not type(None)]
        return bool(members) and all(inspect.isclass(a) and issubclass(a, BaseException) for a in members)

    return False


def public_fields(cls: type) -> dict[str, Any]:
    """Public, non-ClassVar annotated attributes of `cls`, base classes first."""
    try:
        hints = get_type_hints(cls)
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s (%s) type hints", exc.name, cls.__name__, cls.__qualname__)
        raise

    return {
        name: hint
        for name, hint in hints.items()
        if not name.startswith("_") and hint is not ClassVar and get_origin(hint) is not ClassVar
    }


def is_protocol(tp: Any) -> bool:
    """Detect whether 'tp' is a typing.Protocol subclass (safe)."""
    if not inspect.isclass(tp):
        return False
    if hasattr(typing, "is_protocol"):
        # https://docs.python.org/3/library/typing.html#typing.is_protocol
        return typing.is_protocol(tp)
    return bool(getattr(tp, "_is_protocol", False)) and tp is not typing.Protocol


def check_provides(provides: Any, produced: Any) -> None:
    """Validate that a constructor declared to produce `produced` may be registered as `provides`.

    - Both classes, `provides` a normal class or ABC: require issubclass.
    - `provides` a Protocol: nominal via MRO, otherwise structural conformance.
    - Anything else (generics, unions, unannotated constructors) is accepted as is.
    """
    if produced is EMPTY or produced == provides:
        return
    if not (inspect.isclass(provides) and inspect.isclass(produced)):
        return

    if not is_protocol(provides):
        if not issubclass(produced, provides):
            msg = f"constructor produces {type_name(produced)}, which is not a subclass of {type_name(provides)}"
            raise ValidationError(msg)
        return

    if provides in getattr(produced, "__mro__", ()):
        return

    problems = _structural_mismatches(provides, produced)
    if problems:
        msg = (
            f"{type_name(produced)} does not structurally conform to protocol "
            f"{type_name(provides)}: {'; '.join(problems)}"
        )
        raise ValidationError(msg)


def _structural_mismatches(proto_cls: type, impl: type) -> list[str]:
    """Best-effort structural conformance: presence + basic callable arity."""
    missing: list[str] = []
    mismatches: list[str] = []

    try:
        proto_hints = get_type_hints(proto_cls)
    except (NameError, TypeError):
        proto_hints = {}

    for name in proto_hints:
        if not name.startswith("_") and not hasattr(impl, name):
            missing.append(name)

    for name, proto_attr in proto_cls.__dict__.items():
        if name.startswith("_") or not inspect.isfunction(proto_attr):
            continue

        impl_attr = getattr(impl, name, None)
        if impl_attr is None:
            missing.append(name)
            continue
        if not callable(impl_attr):
            mismatches.append(f"{name}: not callable on {impl.__name__}")
            continue

        try:
            proto_arity = _required_positional(inspect.signature(proto_attr))
            impl_arity = _required_positional(inspect.signature(impl_attr))
        except (TypeError, ValueError) as e:
            mismatches.append(f"{name}: unable to compare signatures ({e})")
            continue

        if impl_arity < proto_arity:
            mismatches.append(
                f"{name}: impl has fewer required positional params ({impl_arity}) than protocol ({proto_arity})"
            )

    problems = []
    if missing:
        problems.append(f"missing members: {', '.join(missing)}")
    if mismatches:
        problems.append(f"signature mismatches: {', '.join(mismatches)}")
    return problems


def _required_positional(sig: inspect.Signature) -> int:
    return sum(
        1
        for p in sig.parameters.values()
        if p.name != "self"
        and p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        and p.default is p.empty
    )
