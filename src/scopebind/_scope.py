from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, TypeVar

from ._element import Element
from ._errors import (
    DuplicateRegistrationError,
    DuplicateScopeNameError,
    IllegalRootCloseError,
    InstanceNotFoundError,
    ScopeNotFoundError,
    UseAfterCloseError,
)
from ._typing import is_assignable, is_checkable, validate_instance


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    T = TypeVar("T")

    DisposeCallback = Callable[[T], object]

ROOT_SCOPE_NAME = "RootScope"

_root: Scope | None = None
_root_lock = threading.Lock()


def root_scope() -> Scope:
    """Return the process-wide root scope, creating it on first access.

    Every scope opened without an explicit parent is attached to it directly
    or indirectly. It cannot be closed; use :meth:`Scope.reset` to wipe it
    between tests.
    """
    global _root  # noqa: PLW0603
    with _root_lock:
        if _root is None:
            _root = Scope(ROOT_SCOPE_NAME, None, _from_open=True, _process_root=True)
        return _root


class Scope:
    """A named node of the registry tree.

    Instances are registered by type token (optionally with a tag) and
    resolved by looking in this scope first, then in its ancestors. A child's
    registration therefore shadows the same key in any parent without
    touching the parent.

    Create scopes with :meth:`open`, :meth:`create_scope` or :meth:`new_root`.
    """

    def __init__(
        self,
        name: str,
        parent: Scope | None,
        *,
        _from_open: bool = False,
        _process_root: bool = False,
    ) -> None:
        if not _from_open:
            msg = "Scope instances must be created via Scope.open(), Scope.create_scope() or Scope.new_root()"
            raise RuntimeError(msg)

        self._name = name
        self._parent = parent
        self._instances: dict[Any, dict[str | None, Element[Any]]] = {}
        self._children: list[Scope] = []
        self._closed = False
        self._process_root = _process_root
        self._lock = threading.RLock()

    # --- tree -----------------------------------------------------------------

    @classmethod
    def open(
        cls,
        name: str,
        *,
        parent: Scope | None = None,
        lookup_parent: str | None = None,
    ) -> Scope:
        """Open a new scope and attach it to a parent.

        Parent resolution order:
        1. ``parent`` if provided.
        2. The scope named ``lookup_parent`` under the process root.
        3. The process root.

        Raises ``DuplicateScopeNameError`` if ``name`` already exists in the
        parent's root tree.
        """
        if parent is None:
            process_root = root_scope()
            parent = process_root.locate(lookup_parent) or process_root

        root = parent.root
        with root._lock:
            if root.locate(name) is not None:
                raise DuplicateScopeNameError(name, root)

            scope = cls(name, parent, _from_open=True)
            with parent._lock:
                parent._assert_open()
                parent._children.append(scope)

        logger.debug("Opened scope '%s' under '%s'", name, parent.name)
        return scope

    @classmethod
    def new_root(cls, name: str = ROOT_SCOPE_NAME) -> Scope:
        """Build an isolated root scope, detached from the process root."""
        return cls(name, None, _from_open=True)

    def create_scope(self, name: str) -> Scope:
        """Open a child scope of this scope."""
        return type(self).open(name, parent=self)

    @property
    def name(self) -> str:
        return self._name

    @property
    def parent(self) -> Scope | None:
        return self._parent

    @property
    def children(self) -> tuple[Scope, ...]:
        return tuple(self._children)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def root(self) -> Scope:
        current = self
        while current._parent is not None:
            current = current._parent
        return current

    def locate(self, name: str | None) -> Scope | None:
        """Find a scope by ``name`` in this scope's subtree (depth-first).

        Returns ``None`` when ``name`` is empty, ``None`` or not found.
        """
        if not name:
            return None

        if self._name == name:
            return self

        for child in tuple(self._children):
            found = child.locate(name)
            if found is not None:
                return found

        return None

    @staticmethod
    def close_scope(name: str, *, root: Scope | None = None) -> None:
        """Close the scope called ``name`` found under ``root`` (default: process root)."""
        if root is None:
            root = root_scope()

        if name == root.name:
            raise IllegalRootCloseError(name)

        scope = root.locate(name)
        if scope is None:
            raise ScopeNotFoundError(name)

        scope.close()

    def close(self) -> None:
        """Close this scope and all descendants, disposing owned instances.

        Children are closed before this scope's own instances are disposed.
        Each distinct instance is disposed once even if it was registered
        under several keys. Safe to call multiple times.
        """
        if self._process_root:
            raise IllegalRootCloseError(self._name)

        with self._lock:
            if self._closed:
                return
            self._closed = True
            children = list(self._children)

        parent = self._parent
        if parent is not None:
            with parent._lock:
                if self in parent._children:
                    parent._children.remove(self)

        first_error: Exception | None = None
        for child in children:
            try:
                child.close()
            except Exception as exc:
                logger.warning("Closing scope '%s' under '%s' failed", child.name, self._name, exc_info=True)
                if first_error is None:
                    first_error = exc

        with self._lock:
            elements = self._distinct_elements()
            self._instances.clear()
            self._children.clear()

        for element in elements:
            try:
                element.dispose()
            except Exception as exc:
                logger.warning("Disposing %r in scope '%s' failed", element, self._name, exc_info=True)
                if first_error is None:
                    first_error = exc

        logger.debug("Closed scope '%s' (%d instances disposed)", self._name, len(elements))

        if first_error is not None:
            raise first_error

    def reset(self) -> None:
        """Drop all registrations and children without disposing anything.

        Intended for tests and diagnostics only.
        """
        with self._lock:
            self._closed = False
            self._instances.clear()
            self._children.clear()

    # --- registration ---------------------------------------------------------

    def register(
        self,
        token: type[T],
        value: T,
        *,
        tag: str | None = None,
        on_dispose: DisposeCallback[T] | None = None,
        register_runtime_type: bool = True,
    ) -> T:
        """Register ``value`` under ``token`` in this scope.

        When ``register_runtime_type`` is true and ``type(value)`` differs from
        ``token``, the same registration is also stored under ``type(value)``
        so the instance can be found by its concrete type as well.

        Example:
          scope.register(ApiClient, ProdApiClient())
          scope.register(Database, db, tag="replica", on_dispose=lambda d: d.close())

        Raises ``DuplicateRegistrationError`` when either key is taken.
        """
        validate_instance(token, value)

        with self._lock:
            self._assert_open()
            self._check_free(token, value, tag=tag, register_runtime_type=register_runtime_type)
            self._store(token, value, tag=tag, on_dispose=on_dispose, register_runtime_type=register_runtime_type)

        return value

    def register_lazy(
        self,
        token: type[T],
        producer: Callable[[], T],
        *,
        tag: str | None = None,
        on_dispose: DisposeCallback[T] | None = None,
    ) -> None:
        """Register ``producer`` to build the ``token`` instance on first lookup.

        The produced value is cached for the lifetime of the registration.
        """
        with self._lock:
            self._assert_open()
            if self._element_of(token, tag) is not None:
                raise DuplicateRegistrationError(token, self, token, tag)

            self._instances.setdefault(token, {})[tag] = Element.lazy(producer, tag=tag, on_dispose=on_dispose)

        logger.debug("Registered lazy %s (tag=%r) in scope '%s'", _token_name(token), tag, self._name)

    def replace(
        self,
        token: type[T],
        value: T,
        *,
        tag: str | None = None,
        on_dispose: DisposeCallback[T] | None = None,
        register_runtime_type: bool = True,
    ) -> T:
        """Replace the local ``token`` registration with ``value``.

        The new value is stored before the previous local instance is
        disposed, so a failing disposal callback still leaves ``value``
        registered. Ancestor registrations are left alone.
        """
        validate_instance(token, value)

        with self._lock:
            self._assert_open()
            existing = self._element_of(token, tag)
            self._check_free(
                token,
                value,
                tag=tag,
                register_runtime_type=register_runtime_type,
                ignore=existing,
            )
            if existing is not None:
                self._detach(existing)
            self._store(token, value, tag=tag, on_dispose=on_dispose, register_runtime_type=register_runtime_type)

        if existing is not None:
            existing.dispose()

        return value

    def replace_lazy(
        self,
        token: type[T],
        producer: Callable[[], T],
        *,
        tag: str | None = None,
        on_dispose: DisposeCallback[T] | None = None,
    ) -> None:
        """Lazy counterpart of :meth:`replace`."""
        with self._lock:
            self._assert_open()
            existing = self._element_of(token, tag)
            if existing is not None:
                self._detach(existing)
            self.register_lazy(token, producer, tag=tag, on_dispose=on_dispose)

        if existing is not None:
            existing.dispose()

    def evict(self, token: type[T], *, tag: str | None = None) -> T | None:
        """Remove the local ``token`` registration and dispose its instance.

        Every key pointing at the same registration (e.g. the runtime-type
        alias) is removed too. Returns the instance, or ``None`` for a lazy
        registration that was never built (its callback is not invoked).

        Raises ``InstanceNotFoundError`` if this scope has no such registration.
        """
        with self._lock:
            self._assert_open()
            element = self._element_of(token, tag)
            if element is None:
                raise InstanceNotFoundError(token, self, tag)
            self._detach(element)

        value = element.value if element.is_materialized else None
        element.dispose()

        logger.debug("Evicted %s (tag=%r) from scope '%s'", _token_name(token), tag, self._name)
        return value

    # --- resolution -----------------------------------------------------------

    def find(self, token: type[T], *, tag: str | None = None, exact_type_match: bool = False) -> T:
        """Resolve an instance of ``token``.

        Lookup order, repeated for each scope from this one up to the root:
        1. Registration under exactly ``token``.
        2. Unless ``exact_type_match``: a registration stored under its own
           concrete type whose instance satisfies ``token``.

        Lazy producers run without holding any scope lock.

        Raises ``InstanceNotFoundError`` when no scope in the chain matches.
        """
        scope: Scope | None = self
        while scope is not None:
            found = scope._find_local(token, tag, exact_type_match=exact_type_match)
            if found is not None:
                return found
            scope = scope._parent

        raise InstanceNotFoundError(token, self, tag)

    def __call__(self, token: type[T], *, tag: str | None = None, exact_type_match: bool = False) -> T:
        """Alias for :meth:`find`."""
        return self.find(token, tag=tag, exact_type_match=exact_type_match)

    def contains(self, token: Any, *, tag: str | None = None) -> bool:
        """Return ``True`` if this scope (not its ancestors) has ``token`` registered."""
        with self._lock:
            self._assert_open()
            return self._element_of(token, tag) is not None

    def is_registered(self, token: Any, *, tag: str | None = None) -> bool:
        """Return ``True`` if this scope or any ancestor has ``token`` registered.

        Lazy registrations are not built by this check.
        """
        scope: Scope | None = self
        while scope is not None:
            if scope.contains(token, tag=tag):
                return True
            scope = scope._parent
        return False

    # --- internals ------------------------------------------------------------

    def _element_of(self, token: Any, tag: str | None) -> Element[Any] | None:
        bucket = self._instances.get(token)
        if bucket is None:
            return None
        return bucket.get(tag)

    def _check_free(
        self,
        token: Any,
        value: object,
        *,
        tag: str | None,
        register_runtime_type: bool,
        ignore: Element[Any] | None = None,
    ) -> None:
        instance_type = type(value)
        existing = self._element_of(token, tag)
        if existing is not None and existing is not ignore:
            raise DuplicateRegistrationError(token, self, instance_type, tag)

        if register_runtime_type and instance_type is not token:
            alias = self._element_of(instance_type, tag)
            if alias is not None and alias is not ignore:
                raise DuplicateRegistrationError(instance_type, self, instance_type, tag)

    def _store(
        self,
        token: Any,
        value: Any,
        *,
        tag: str | None,
        on_dispose: Callable[[Any], object] | None,
        register_runtime_type: bool,
    ) -> None:
        element = Element.direct(value, tag=tag, on_dispose=on_dispose)
        self._instances.setdefault(token, {})[tag] = element

        instance_type = type(value)
        if register_runtime_type and instance_type is not token:
            self._instances.setdefault(instance_type, {})[tag] = element

        logger.debug("Registered %s (tag=%r) in scope '%s'", _token_name(token), tag, self._name)

    def _detach(self, element: Element[Any]) -> None:
        empty_tokens = []
        for key, bucket in self._instances.items():
            for bucket_tag in [t for t, e in bucket.items() if e is element]:
                del bucket[bucket_tag]
            if not bucket:
                empty_tokens.append(key)
        for key in empty_tokens:
            del self._instances[key]

    def _find_local(self, token: Any, tag: str | None, *, exact_type_match: bool) -> Any:
        with self._lock:
            self._assert_open()
            element = self._element_of(token, tag)
            candidates: list[tuple[Any, Element[Any]]] = []
            if not exact_type_match:
                candidates = [(key, bucket[tag]) for key, bucket in self._instances.items() if tag in bucket]

        if element is not None:
            value = element.value
            # An exact key needs no proof for tokens isinstance cannot check.
            if not is_checkable(token) or is_assignable(value, token):
                return value

        if exact_type_match:
            return None

        return self._find_descendant(token, candidates)

    def _find_descendant(self, token: Any, candidates: list[tuple[Any, Element[Any]]]) -> Any:
        checked: set[int] = set()
        for key, element in candidates:
            value = element.value
            # Only primary registrations, stored under their own concrete type.
            if key is not type(value):
                continue

            if id(element) in checked:
                continue
            checked.add(id(element))

            if is_assignable(value, token):
                return value

        return None

    def _distinct_elements(self) -> list[Element[Any]]:
        seen: set[int] = set()
        elements = []
        for bucket in self._instances.values():
            for element in bucket.values():
                if id(element) not in seen:
                    seen.add(id(element))
                    elements.append(element)
        return elements

    def _assert_open(self) -> None:
        if self._closed:
            raise UseAfterCloseError(self._name)

    def __enter__(self) -> Scope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        parent = self._parent.name if self._parent is not None else None
        return f"Scope(name={self._name!r}, parent={parent!r}, closed={self._closed})"


close_scope = Scope.close_scope


def _token_name(token: Any) -> str:
    return getattr(token, "__qualname__", None) or repr(token)
