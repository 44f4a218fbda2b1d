import json
import os
import tempfile

# Must be set before anything imports bestofgoa.config
_DB_DIR = tempfile.mkdtemp(prefix="bestofgoa-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"

import httpx
import pytest
import pytest_asyncio
from botocore.exceptions import ClientError
from httpx import ASGITransport, AsyncClient

from bestofgoa import storage
from bestofgoa.db import AsyncSessionLocal, engine
from bestofgoa.extraction.client import AdminApiClient
from bestofgoa.main import app
from bestofgoa.models import Base, Business, BusinessImage, BusinessItem
from bestofgoa.routes import common as routes_common


class DummyS3:
    def __init__(self, fail_keys=()):
        self.fail_keys = set(fail_keys)
        self.deleted = []

    def delete_object(self, **kwargs):
        if kwargs["Key"] in self.fail_keys:
            raise ClientError(
                {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}},
                "DeleteObject",
            )
        self.deleted.append(kwargs["Key"])
        return {}


class DummyTask:
    def __init__(self):
        self.calls = []

    def apply_async(self, args=(), queue=None, **_kwargs):
        self.calls.append(tuple(args))

    def delay(self, *args):
        self.calls.append(tuple(args))


@pytest_asyncio.fixture
async def db_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
def dummy_s3(monkeypatch):
    s3 = DummyS3()
    monkeypatch.setattr(storage, "s3", s3)
    return s3


@pytest.fixture
def dispatch_task(monkeypatch):
    task = DummyTask()
    monkeypatch.setattr(routes_common, "dispatch_extraction_task", task)
    return task


@pytest_asyncio.fixture
async def client(db_tables, dummy_s3, dispatch_task):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def make_business(db_tables):
    async def _make(images=(), items=(), **fields) -> str:
        values = {
            "entity_type": "restaurant",
            "name": "Fisherman's Wharf",
            "slug": "fishermans-wharf-cavelossim",
            "google_place_id": "place-1",
            "area": "Cavelossim",
            "extraction_status": "completed",
            "extraction_progress": {},
            "attributes": {},
        }
        values.update(fields)
        business = Business(
            tags=[],
            images=[BusinessImage(**i) for i in images],
            items=[BusinessItem(**i) for i in items],
            **values,
        )
        async with AsyncSessionLocal() as db:
            db.add(business)
            await db.commit()
            return business.id

    return _make


class FakeAdminApi:
    """
    Scripted admin API behind httpx.MockTransport.

    Each (method, path) maps to a list of (status_code, body) responses served
    in order; the last one repeats once the list is exhausted. An exception
    instance in the list is raised instead, like a transport failure.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, *responses):
        self.routes[(method, path)] = list(responses)
        return self

    def calls(self, method, path):
        return [body for m, p, body in self.requests if (m, p) == (method, path)]

    def handler(self, request):
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, body))
        responses = self.routes.get((request.method, request.url.path))
        if not responses:
            return httpx.Response(404, json={"error": "NOT_FOUND", "message": request.url.path})
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(response, Exception):
            raise response
        status_code, payload = response
        return httpx.Response(status_code, json=payload)


@pytest.fixture
def fake_admin():
    return FakeAdminApi()


@pytest_asyncio.fixture
async def admin_client(fake_admin):
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_admin.handler), base_url="http://admin")
    yield AdminApiClient(http=http)
    await http.aclose()
