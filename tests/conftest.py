import pytest

from scopebind import Scope, root_scope


@pytest.fixture(autouse=True)
def _clean_process_root():
    yield
    root_scope().reset()


@pytest.fixture
def root() -> Scope:
    return Scope.new_root()
