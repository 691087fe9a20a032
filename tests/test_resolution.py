from abc import ABC, abstractmethod
from typing import NewType

import pytest

from scopebind import InstanceNotFoundError, Scope


class Abstraction(ABC):
    @abstractmethod
    def run(self) -> str: ...


class Concrete(Abstraction):
    def run(self) -> str:
        return "concrete"


class OtherConcrete(Abstraction):
    def run(self) -> str:
        return "other"


def test_abstraction_registration_resolves_by_both_types(root: Scope):
    instance = root.register(Abstraction, Concrete())

    assert root.find(Abstraction) is instance
    assert root.find(Concrete) is instance


def test_exact_type_match_only_accepts_exact_keys(root: Scope):
    instance = root.register(Abstraction, Concrete(), register_runtime_type=False)

    assert root.find(Abstraction, exact_type_match=True) is instance
    with pytest.raises(InstanceNotFoundError):
        root.find(Concrete, exact_type_match=True)


def test_exact_type_match_finds_runtime_alias_key(root: Scope):
    # The alias is itself an exact key for the concrete type.
    instance = root.register(Abstraction, Concrete())

    assert root.find(Concrete, exact_type_match=True) is instance


def test_concrete_registration_found_by_abstraction(root: Scope):
    instance = root.register(Concrete, Concrete())

    assert root.find(Abstraction) is instance


def test_concrete_registration_not_found_by_abstraction_with_exact_match(root: Scope):
    root.register(Concrete, Concrete())

    with pytest.raises(InstanceNotFoundError):
        root.find(Abstraction, exact_type_match=True)


def test_descendant_scan_returns_first_registered_match(root: Scope):
    first = root.register(Concrete, Concrete())
    root.register(OtherConcrete, OtherConcrete())

    assert root.find(Abstraction) is first


def test_descendant_scan_ignores_entries_not_keyed_by_own_type(root: Scope):
    class Base: ...

    class Middle(Base): ...

    class Leaf(Middle): ...

    # Stored under Middle only: not a primary concrete registration.
    root.register(Middle, Leaf(), register_runtime_type=False)

    with pytest.raises(InstanceNotFoundError):
        root.find(Base)


def test_descendant_scan_respects_tag(root: Scope):
    tagged = root.register(Concrete, Concrete(), tag="B")

    with pytest.raises(InstanceNotFoundError):
        root.find(Abstraction)
    assert root.find(Abstraction, tag="B") is tagged


def test_descendant_scan_builds_lazy_concrete_registration(root: Scope):
    root.register_lazy(Concrete, Concrete)

    instance = root.find(Abstraction)

    assert isinstance(instance, Concrete)
    assert root.find(Concrete) is instance


def test_child_registration_shadows_parent(root: Scope):
    class Service: ...

    child = root.create_scope("child")
    v1 = root.register(Service, Service())
    v2 = child.register(Service, Service())

    assert child.find(Service) is v2
    assert root.find(Service) is v1


def test_child_falls_back_to_ancestors(root: Scope):
    class Service: ...

    svc = root.register(Service, Service())
    grandchild = root.create_scope("child").create_scope("grandchild")

    assert grandchild.find(Service) is svc
    assert grandchild.is_registered(Service)
    assert not grandchild.contains(Service)


def test_local_alias_scan_runs_before_parent_delegation(root: Scope):
    parent_exact = root.register(Abstraction, OtherConcrete(), register_runtime_type=False)
    child = root.create_scope("child")
    child_concrete = child.register(Concrete, Concrete())

    # Child's concrete registration wins over the parent's exact key.
    assert child.find(Abstraction) is child_concrete
    assert child.find(Abstraction, exact_type_match=True) is parent_exact


def test_alias_scan_is_repeated_at_each_ancestor(root: Scope):
    parent_concrete = root.register(Concrete, Concrete())
    child = root.create_scope("child")

    assert child.find(Abstraction) is parent_concrete


def test_not_found_reports_originating_scope(root: Scope):
    class Service: ...

    child = root.create_scope("child")

    with pytest.raises(InstanceNotFoundError) as exc_info:
        child.find(Service, tag="t")

    err = exc_info.value
    assert err.scope is child
    assert err.requested_type is Service
    assert err.tag == "t"
    assert "child" in err.message
    assert isinstance(err, LookupError)


def test_is_registered_false_when_nowhere(root: Scope):
    class Service: ...

    assert not root.create_scope("child").is_registered(Service)


def test_uncheckable_token_does_not_match_unrelated_registration(root: Scope):
    class Bar: ...

    UserId = NewType("UserId", int)
    root.register(Bar, Bar())

    with pytest.raises(InstanceNotFoundError):
        root.find(UserId)


def test_uncheckable_token_resolves_by_exact_key(root: Scope):
    UserId = NewType("UserId", int)
    root.register(UserId, UserId(5))

    assert root.find(UserId) == 5
    assert root.find(UserId, exact_type_match=True) == 5
    assert root.find(int) == 5


def test_generic_alias_token(root: Scope):
    values = root.register(list[int], [1, 2, 3])

    assert root.find(list[int]) is values
    assert root.find(list) is values
