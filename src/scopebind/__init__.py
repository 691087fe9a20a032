"""Hierarchical typed object registry.

This package provides a tree of named scopes in which runtime objects are
registered by type (and an optional tag), resolved with parent fallback, and
disposed exactly once when their scope closes.

Exports:
- `Scope`: A named registry node. Resolves in itself first, then in its
  ancestors, so child registrations shadow parent ones.
- `Element`: A single registration, holding a value or a lazy producer.
- `ScopedComponent`: Mixin that opens a scope when a component is created and
  closes it on teardown.
- `root_scope` / `close_scope`: The process-wide root and close-by-name helper.
- Errors: `DependencyError` and its subclasses.
"""

from ._component import ScopedComponent
from ._element import Element
from ._errors import (
    DependencyError,
    DuplicateRegistrationError,
    DuplicateScopeNameError,
    EmptyProducerError,
    IllegalRootCloseError,
    InstanceNotFoundError,
    ScopeNotFoundError,
    UseAfterCloseError,
)
from ._scope import ROOT_SCOPE_NAME, Scope, close_scope, root_scope


__all__ = [
    "ROOT_SCOPE_NAME",
    "DependencyError",
    "DuplicateRegistrationError",
    "DuplicateScopeNameError",
    "Element",
    "EmptyProducerError",
    "IllegalRootCloseError",
    "InstanceNotFoundError",
    "Scope",
    "ScopeNotFoundError",
    "ScopedComponent",
    "UseAfterCloseError",
    "close_scope",
    "root_scope",
]
