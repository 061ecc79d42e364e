import pytest
from fastapi.testclient import TestClient

import API_LAYER.app as app_module
from API_LAYER.app import VoiceRuntime, app
from services.contact_store import InMemoryContactStore
from tests.conftest import DAVID


@pytest.fixture
def runtime(monkeypatch):
    # API tests must NOT touch the encrypted store on disk
    rt = VoiceRuntime.create(InMemoryContactStore([DAVID]))
    monkeypatch.setattr(app_module, "runtime", rt)
    return rt


@pytest.fixture
def client(runtime):
    with TestClient(app) as client:
        yield client
