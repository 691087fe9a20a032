"""Assignability checks used by registration and resolution.

A type token is any runtime type object: a class, an ABC, a ``typing.Protocol``
or a parametrised generic alias such as ``list[int]``. ``isinstance`` cannot be
used blindly on all of them, so the checks here pick the right strategy per
token kind.
"""

from __future__ import annotations

import inspect
import typing
from typing import Any, Protocol, cast, get_origin, get_type_hints


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def is_protocol(tp: Any) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def is_protocol(tp: Any) -> bool:
        """Detect whether 'tp' is a typing.Protocol subclass (safe)."""
        return (
            inspect.isclass(tp)
            and cast("type", Protocol) in tp.__mro__
            and bool(tp.__dict__.get("_is_protocol", False))
        )


def is_runtime_checkable_protocol(tp: Any) -> bool:
    if not is_protocol(tp):
        return False

    try:
        isinstance(None, tp)
    except TypeError:
        return False
    else:
        return True


def runtime_class(token: Any) -> type | None:
    """Return the class ``isinstance`` can test against, or ``None``.

    ``list[int]`` maps to ``list``; plain classes map to themselves.
    """
    origin = get_origin(token)
    if inspect.isclass(origin):
        return origin

    if inspect.isclass(token):
        return token

    return None


def is_checkable(token: Any) -> bool:
    """Return ``True`` when a value can be tested against ``token`` at runtime.

    ``NewType``, ``Any``, unions and string tokens cannot be checked.
    """
    return is_protocol(token) or runtime_class(token) is not None


def is_assignable(value: object, token: Any) -> bool:
    """Return ``True`` when ``value`` provably satisfies the type ``token``.

    - Normal classes and ABCs: ``isinstance``.
    - Runtime-checkable protocols: ``isinstance``.
    - Other protocols: nominal MRO check, then structural conformance.
    - Generic aliases: ``isinstance`` against the origin class.
    - Anything else (``Any``, ``NewType``, unions, strings): rejected.
    """
    if is_protocol(token):
        if is_runtime_checkable_protocol(token):
            return isinstance(value, token)
        try:
            validate_protocol_impl(token, type(value))
        except TypeError:
            return False
        return True

    cls = runtime_class(token)
    if cls is None:
        return False

    return isinstance(value, cls)


def validate_instance(token: Any, value: object) -> None:
    """Raise ``TypeError`` when ``value`` cannot be registered under ``token``."""
    if is_protocol(token):
        validate_protocol_impl(token, type(value))
        if is_runtime_checkable_protocol(token) and not isinstance(value, token):
            msg = f"Instance {type(value).__name__} does not implement runtime protocol {token.__name__}"
            raise TypeError(msg)
        return

    cls = runtime_class(token)
    if cls is not None and not isinstance(value, cls):
        msg = f"Instance {type(value).__name__} is not an instance of {cls.__name__}"
        raise TypeError(msg)


def validate_protocol_impl(proto_cls: type, impl: type) -> None:
    # Try nominal conformance without issubclass
    if proto_cls in getattr(impl, "__mro__", ()):
        return

    # Otherwise, check structural conformance
    _validate_protocol_structural_conformance(proto_cls, impl)


def _validate_protocol_structural_conformance(proto_cls: type, impl: type) -> None:  # noqa: C901
    """Best-effort structural conformance: presence + basic callable arity + return type checks."""
    missing: list[str] = []
    signature_mismatches: list[str] = []

    try:
        proto_hints = get_type_hints(proto_cls, include_extras=True)
    except (TypeError, NameError):
        proto_hints = {}

    # Attributes required by annotations
    for name in proto_hints:
        if name.startswith("_"):
            continue
        if not hasattr(impl, name):
            missing.append(name)

    for name, proto_attr in proto_cls.__dict__.items():
        if name.startswith("_") or not inspect.isfunction(proto_attr):
            continue

        if not hasattr(impl, name):
            missing.append(name)
            continue

        impl_attr = getattr(impl, name)
        if not callable(impl_attr):
            signature_mismatches.append(f"{name}: not Callable on {impl.__name__}")
            continue

        try:
            proto_sig = inspect.signature(proto_attr)
            impl_sig = inspect.signature(impl_attr)
        except (TypeError, ValueError) as e:
            signature_mismatches.append(f"{name}: unable to compare signatures ({e})")
            continue

        proto_params = [p for p in proto_sig.parameters.values() if p.name != "self"]
        impl_params = [p for p in impl_sig.parameters.values() if p.name != "self"]

        if _positional_arity(impl_params) < _positional_arity(proto_params):
            signature_mismatches.append(
                f"{name}: impl has fewer required positional params "
                f"({_positional_arity(impl_params)}) than protocol "
                f"({_positional_arity(proto_params)})"
            )

        proto_ret = proto_sig.return_annotation
        impl_ret = impl_sig.return_annotation

        if (
            proto_ret is not inspect.Signature.empty
            and impl_ret is not inspect.Signature.empty
            and proto_ret is not Any
            and impl_ret is not Any
            and not _is_return_type_compatible(impl_ret, proto_ret)
        ):
            signature_mismatches.append(
                f"{name}: return type {impl_ret!r} is not compatible with protocol return type {proto_ret!r}"
            )

    if missing or signature_mismatches:
        msgs = []
        if missing:
            msgs.append(f"missing members: {', '.join(missing)}")
        if signature_mismatches:
            msgs.append(f"signature mismatches: {', '.join(signature_mismatches)}")

        msg = (
            f"Implementation {impl.__name__} does not structurally conform to protocol "
            f"{proto_cls.__name__}: {'; '.join(msgs)}"
        )
        raise TypeError(msg)


def _positional_arity(params: list[inspect.Parameter]) -> int:
    return sum(
        1
        for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        and p.default is inspect.Parameter.empty
    )


def _is_return_type_compatible(impl_ret: object, proto_ret: object) -> bool:
    # Exact match
    if impl_ret == proto_ret:
        return True

    # Handle class-based covariance
    if isinstance(impl_ret, type) and isinstance(proto_ret, type):
        return issubclass(impl_ret, proto_ret)

    # Everything else (Union, Protocol, TypeVar, etc.) -> conservative failure
    return False
