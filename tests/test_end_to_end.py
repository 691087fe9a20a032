import threading
from abc import ABC, abstractmethod

from scopebind import Scope


class ApiClient(ABC):
    @abstractmethod
    def fetch(self) -> str: ...


class ProdApiClient(ApiClient):
    def fetch(self) -> str:
        return "prod"


class MockApiClient(ApiClient):
    def fetch(self) -> str:
        return "mock"


def test_feature_scope_overrides_root_and_closes_bottom_up():
    disposed = []
    root = Scope.new_root()
    feature = Scope.open("feature", parent=root)

    prod = root.register(ApiClient, ProdApiClient(), on_dispose=lambda c: disposed.append(c.fetch()))
    mock = feature.register(ApiClient, MockApiClient(), on_dispose=lambda c: disposed.append(c.fetch()))

    assert feature.find(ApiClient) is mock
    assert root.find(ApiClient) is prod
    assert feature.find(ProdApiClient) is prod
    assert feature.find(MockApiClient) is mock

    root.close()

    assert disposed == ["mock", "prod"]
    assert feature.closed
    assert root.closed


def test_concurrent_registrations_in_one_scope():
    root = Scope.new_root()
    errors = []

    def worker(n: int) -> None:
        try:
            for i in range(50):
                root.register(int, n * 1000 + i, tag=f"{n}-{i}")
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert root.find(int, tag="3-49") == 3049


def test_lazy_producer_does_not_block_concurrent_open():
    root = Scope.new_root()
    producing = threading.Event()
    opened = threading.Event()

    class Service: ...

    def produce():
        producing.set()
        opened.wait(timeout=2)
        root.create_scope("from-producer")
        return Service()

    root.register_lazy(Service, produce)
    resolver = threading.Thread(target=root.find, args=(Service,), daemon=True)
    resolver.start()

    assert producing.wait(timeout=2)
    root.create_scope("concurrent")
    opened.set()
    resolver.join(timeout=2)

    assert not resolver.is_alive()
    assert root.locate("from-producer") is not None
    assert root.locate("concurrent") is not None
