from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from marketplace_chat.app import create_app
from tests.conftest import FakeUoW, uow_factory_for


@pytest.fixture
def app_with_uow(codec):
    uow = FakeUoW()
    app = create_app(uow_factory=uow_factory_for(uow), codec=codec)
    return app, uow


@pytest.fixture
def client(app_with_uow):
    app, _ = app_with_uow
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def uow(app_with_uow):
    _, uow = app_with_uow
    return uow
