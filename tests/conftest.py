import os
from contextlib import redirect_stderr, redirect_stdout
from io import StringIO
from pathlib import Path
from uuid import uuid4

import pytest
from alembic import command
from alembic.config import Config

# Ensure tests run against SQLite when DATABASE_URL is not defined
os.environ.setdefault("DATABASE_URL", "sqlite:////tmp/lemore_test.db")
os.environ.setdefault("OPENAI_API_KEY", "test")

from fastapi.testclient import TestClient

from app import dependencies
from app.main import app
from app.config import Settings
from app.db import init_db
from app.controllers import items as items_controller
from app.controllers import sessions as sessions_controller
from app.services import gpt

API_KEY = Settings().api_key


@pytest.fixture(scope="session", autouse=True)
def apply_migrations():
    """Apply Alembic migrations before running tests."""
    cfg_path = Path(__file__).resolve().parent.parent / "alembic.ini"
    config = Config(str(cfg_path))
    stdout_buf, stderr_buf = StringIO(), StringIO()
    try:
        with redirect_stdout(stdout_buf), redirect_stderr(stderr_buf):
            command.upgrade(config, "head")
    except Exception as exc:
        print("Alembic upgrade failed:", exc)
        print("stdout:\n", stdout_buf.getvalue())
        print("stderr:\n", stderr_buf.getvalue())
        raise
    init_db(Settings())


@pytest.fixture(scope="session", autouse=True)
def remove_test_db():
    """Remove temporary SQLite database after tests finish."""
    yield
    db_url = os.environ.get("DATABASE_URL")
    if db_url and db_url.startswith("sqlite:///"):
        db_path = Path(db_url.replace("sqlite:///", ""))
        if db_path.exists():
            db_path.unlink()


@pytest.fixture(scope="module")
def client(apply_migrations):
    """Yields a TestClient with lifespan events."""
    with TestClient(app) as client:
        yield client


@pytest.fixture(autouse=True)
def mock_redis(monkeypatch):
    class _Pipe:
        def __init__(self, store):
            self.store = store
            self.ops = []

        def incr(self, key):
            self.ops.append(("incr", key))
            return self

        def expire(self, key, ttl):
            self.ops.append(("expire", key, ttl))
            return self

        async def execute(self):
            results = []
            for op in self.ops:
                if op[0] == "incr":
                    key = op[1]
                    self.store[key] = self.store.get(key, 0) + 1
                    results.append(self.store[key])
                else:
                    results.append(True)
            self.ops.clear()
            return results

    class _Redis:
        def __init__(self):
            self.store = {}

        def pipeline(self):
            return _Pipe(self.store)

    fake = _Redis()
    monkeypatch.setattr(dependencies, "redis_client", fake)
    yield


@pytest.fixture(autouse=True)
def fake_storage(monkeypatch):
    """Replace S3 calls made by the controllers with an in-memory bucket."""
    bucket: dict[str, bytes] = {}

    async def _upload(user_id, data, content_type="image/jpeg"):
        key = f"{user_id}/items/{uuid4().hex}.jpg"
        bucket[key] = data
        return key

    async def _delete(keys):
        for key in keys:
            bucket.pop(key, None)

    monkeypatch.setattr(items_controller, "upload_item_photo", _upload)
    monkeypatch.setattr(items_controller, "delete_objects", _delete)
    monkeypatch.setattr(sessions_controller, "delete_objects", _delete)
    return bucket


class FakeGateway:
    """Records AI Gateway calls and returns canned replies."""

    def __init__(self):
        self.calls: list[str] = []
        self.classification = {
            "category": "Electronics",
            "condition": "Good",
            "usage_score": 20,
            "sentiment": "neutral",
            "recommendation": "sell",
            "rationale": "Rarely used and easy to resell",
        }
        self.price = {
            "price_low": 80.0,
            "price_mid": 100.0,
            "price_high": 120.0,
            "confidence": 0.7,
            "rationale": "Comparable listings",
            "market_notes": None,
        }
        self.plan = {
            "timeline": [
                {
                    "week": 1,
                    "start_date": None,
                    "end_date": None,
                    "tasks": ["Sort books", "List electronics"],
                    "priority": "high",
                },
                {
                    "week": 2,
                    "start_date": None,
                    "end_date": None,
                    "tasks": ["Pack kitchen"],
                    "priority": "medium",
                },
            ],
            "action_items": ["Book movers"],
            "tips": ["Label boxes by room"],
            "estimated_boxes": 12,
            "special_considerations": [],
        }
        self.error: Exception | None = None

    def _reply(self, kind, value):
        self.calls.append(kind)
        if self.error is not None:
            raise self.error
        return value

    def classify_item(self, image_urls, **kwargs):
        return dict(self._reply("classify", self.classification))

    def suggest_price(self, image_urls, **kwargs):
        return dict(self._reply("price", self.price))

    def write_listings(self, *, title, condition, features=None, languages=None, tone="friendly"):
        self._reply("listing", None)
        return {
            lang: {
                "title": f"{title} ({lang})",
                "body": f"{title} in {condition} condition, ready for a new home.",
                "hashtags": ["secondhand", "lemore"],
            }
            for lang in languages or ["en"]
        }

    def plan_move(self, **kwargs):
        return self._reply("moving_plan", self.plan)


@pytest.fixture
def fake_gpt(monkeypatch):
    fake = FakeGateway()
    monkeypatch.setattr(gpt, "classify_item", fake.classify_item)
    monkeypatch.setattr(gpt, "suggest_price", fake.suggest_price)
    monkeypatch.setattr(gpt, "write_listings", fake.write_listings)
    monkeypatch.setattr(gpt, "plan_move", fake.plan_move)
    return fake


@pytest.fixture
def user_id():
    return f"user-{uuid4().hex[:12]}"


@pytest.fixture
def headers(user_id):
    return {"X-API-Key": API_KEY, "X-API-Ver": "v1", "X-User-ID": user_id}
