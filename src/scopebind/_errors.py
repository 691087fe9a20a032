from __future__ import annotations

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from ._scope import Scope


def _type_name(tp: Any) -> str:
    return getattr(tp, "__qualname__", None) or repr(tp)


class DependencyError(Exception):
    """Base class for all scopebind failures.

    Catch this type to handle any registry error without matching each
    concrete subclass.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InstanceNotFoundError(DependencyError, LookupError):
    """Raised when a requested instance cannot be resolved.

    ``find`` raises it after the whole ancestor chain was consulted; ``evict``
    raises it when the scope has no local registration for the key.
    """

    def __init__(self, requested_type: Any, scope: Scope, tag: str | None = None) -> None:
        self.requested_type = requested_type
        self.scope = scope
        self.tag = tag
        super().__init__(f"'{_type_name(requested_type)}' with tag {tag!r} not found in '{scope.name}' scope")


class DuplicateRegistrationError(DependencyError):
    """Raised when registering into an occupied (type, tag) slot.

    Use ``replace`` / ``replace_lazy`` to overwrite a local registration.
    """

    def __init__(
        self,
        registered_type: Any,
        scope: Scope,
        instance_type: Any,
        tag: str | None = None,
    ) -> None:
        self.registered_type = registered_type
        self.scope = scope
        self.instance_type = instance_type
        self.tag = tag
        super().__init__(
            f"{_type_name(registered_type)} (instance: {_type_name(instance_type)}, tag: {tag!r}) "
            f"is already present in '{scope.name}' scope; use replace() instead"
        )


class DuplicateScopeNameError(DependencyError):
    """Raised when opening a scope whose name already exists in the root tree."""

    def __init__(self, name: str, scope: Scope) -> None:
        self.name = name
        self.scope = scope
        super().__init__(f"scope '{name}' is already present in '{scope.name}' scope tree")


class ScopeNotFoundError(DependencyError, LookupError):
    """Raised by ``close_scope`` when no scope has the given name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"scope '{name}' not found")


class IllegalRootCloseError(DependencyError, ValueError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"cannot close root scope '{name}'")


class UseAfterCloseError(DependencyError, RuntimeError):
    """Raised on register/find/evict against a closed scope."""

    def __init__(self, scope_name: str) -> None:
        self.scope_name = scope_name
        super().__init__(f"scope '{scope_name}' already closed")


class EmptyProducerError(DependencyError, RuntimeError):
    """Raised when a lazy producer returns ``None`` instead of a value."""

    def __init__(self, tag: str | None = None) -> None:
        self.tag = tag
        super().__init__(f"lazy producer (tag: {tag!r}) returned None")
