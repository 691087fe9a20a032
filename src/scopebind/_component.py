from __future__ import annotations

from typing import TYPE_CHECKING

from ._scope import Scope


if TYPE_CHECKING:
    from types import TracebackType


class ScopedComponent:
    """Mixin that binds a dedicated scope to a component's lifetime.

    The scope is opened the first time :attr:`scope` is read, named after the
    component class (``"<ClassName>Scope"``). Call :meth:`init_scope` when the
    component is created and :meth:`dispose` when it is torn down; or use the
    component as a context manager.

    Example:
      class CheckoutPage(ScopedComponent):
          def inject_dependencies(self) -> None:
              self.scope.register(Cart, Cart())

    Set ``parent_scope`` (a scope) or ``parent_scope_name`` (looked up from the
    process root) on the class or instance to attach somewhere other than the
    process root.
    """

    parent_scope: Scope | None = None
    parent_scope_name: str | None = None

    _scope: Scope | None = None
    _disposed: bool = False

    @property
    def scope_name(self) -> str:
        return f"{type(self).__name__}Scope"

    @property
    def scope(self) -> Scope:
        if self._scope is None:
            self._scope = Scope.open(
                self.scope_name,
                parent=self.parent_scope,
                lookup_parent=self.parent_scope_name,
            )
        return self._scope

    def init_scope(self) -> Scope:
        """Open the scope and let the component register its dependencies.

        If ``inject_dependencies`` raises, the scope is closed again before the
        error propagates, so the scope name is released.
        """
        scope = self.scope
        try:
            self.inject_dependencies()
        except BaseException:
            self.dispose()
            raise
        return scope

    def inject_dependencies(self) -> None:
        """Register component-local dependencies. Called by :meth:`init_scope`."""

    def dispose(self) -> None:
        """Close the component's scope. Only the first call has any effect."""
        if self._disposed:
            return
        self._disposed = True

        if self._scope is not None:
            self._scope.close()

    def __enter__(self) -> ScopedComponent:
        self.init_scope()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()
