import copy
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from festival_admin.main import app  # noqa: E402
from festival_admin.repositories import content_documents  # noqa: E402


@pytest.fixture(scope="module")
def anyio_backend():
    # Limit tests to asyncio backend so local runs do not require the Trio extra.
    return "asyncio"


@pytest.fixture
async def async_client(anyio_backend) -> AsyncClient:
    if anyio_backend != "asyncio":
        pytest.skip("Backend tests require asyncio")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


class InMemoryDocuments:
    """Stand-in for app.content_documents keyed by (collection, id)."""

    def __init__(self) -> None:
        self.rows: dict[tuple[str, str], dict] = {}
        self.writes: list[tuple[str, str, dict]] = []

    def put(self, collection: str, record_id: str, data: dict) -> None:
        self.rows[(collection, record_id)] = copy.deepcopy(data)

    def get(self, collection: str, record_id: str) -> dict | None:
        return self.rows.get((collection, record_id))

    async def get_document(self, collection: str, record_id: str):
        row = self.rows.get((collection, record_id))
        return copy.deepcopy(row) if row is not None else None

    async def update_media_fields(self, collection: str, record_id: str, fields):
        row = self.rows.get((collection, record_id))
        if row is None:
            return None
        self.writes.append((collection, record_id, dict(fields)))
        for key, value in fields.items():
            if value is None:
                row.pop(key, None)
            else:
                row[key] = copy.deepcopy(value)
        return copy.deepcopy(row)


@pytest.fixture
def documents(monkeypatch) -> InMemoryDocuments:
    store = InMemoryDocuments()
    monkeypatch.setattr(content_documents, "get_document", store.get_document)
    monkeypatch.setattr(content_documents, "update_media_fields", store.update_media_fields)
    return store
