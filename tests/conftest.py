import pytest
from fastapi.testclient import TestClient

import scoresnap.main as main
from scoresnap.memory_store import MemoryStore

TOKEN = "token-1"
USER_ID = "user-1"


@pytest.fixture
def store():
    memory = MemoryStore()
    memory.add_api_token(TOKEN, USER_ID)
    return memory


@pytest.fixture
def client(store):
    main.app.dependency_overrides[main.get_store] = lambda: store
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {TOKEN}"}
