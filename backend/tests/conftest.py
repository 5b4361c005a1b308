import hashlib
import hmac
import json
import os
import tempfile
import time

_TMP_DIR = tempfile.mkdtemp(prefix="styllio-tests-")

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["AWS_ENDPOINT_URL"] = "https://s3.test.local"
os.environ["AWS_ACCESS_KEY_ID"] = "test-key"
os.environ["AWS_SECRET_ACCESS_KEY"] = "test-secret"
os.environ["S3_BUCKET_NAME"] = "styllio-test"
os.environ["S3_PUBLIC_BASE_URL"] = ""
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["WORKER_API_KEY"] = "worker-test-key"
os.environ["STYLE_TRANSFER_TASK"] = "styllio.style_transfer"
os.environ["EMAIL_API_KEY"] = ""
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from styllio.db import AsyncSessionLocal, create_tables, drop_tables, engine
from styllio.main import app

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
WORKER_KEY = os.environ["WORKER_API_KEY"]


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_session(
    session_id: str = "cs_test_123",
    *,
    payment_intent: str | None = "pi_test_123",
    email: str | None = "jane.doe@example.com",
    file_ids=("file-a", "file-b"),
    style: str = "lunora",
    owner_id: str | None = None,
) -> dict:
    metadata = {"selectedStyle": style, "fileIds": json.dumps(list(file_ids))}
    if owner_id:
        metadata["ownerId"] = owner_id
    return {
        "id": session_id,
        "object": "checkout.session",
        "payment_intent": payment_intent,
        "payment_status": "paid",
        "amount_total": 600,
        "currency": "usd",
        "customer_details": {"email": email, "name": "Jane Doe"},
        "metadata": metadata,
    }


class FakeTrigger:
    def __init__(self, error: Exception | None = None):
        self.calls = []
        self.error = error

    def trigger(self, job_id, image_urls, style_name):
        self.calls.append((job_id, list(image_urls), style_name))
        if self.error:
            raise self.error
        return f"exec-{len(self.calls)}"


class FakeNotifier:
    def __init__(self):
        self.sent = []

    async def __call__(self, email, job_id, claim_token=None):
        self.sent.append((email, job_id, claim_token))
        return True


@pytest_asyncio.fixture
async def tables():
    await create_tables()
    yield
    await drop_tables()
    await engine.dispose()


@pytest_asyncio.fixture
async def db(tables):
    async with AsyncSessionLocal() as session:
        yield session


@pytest_asyncio.fixture
async def client(tables):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def fake_trigger():
    return FakeTrigger()


@pytest.fixture
def fake_notifier():
    return FakeNotifier()

