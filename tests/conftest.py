"""Shared fixtures: in-memory MongoDB, a mocked gateway API and seeded catalog data."""

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import mongomock
import pytest
from bson import ObjectId

from storefront.config.database import ensure_indexes
from storefront.config.settings import Settings
from storefront.models.order import LineItem
from storefront.services.gateway import RazorpayGateway, compute_signature
from storefront.services.orders import OrderService

KEY_ID = "rzp_test_key"
KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"
GATEWAY_URL = "https://api.razorpay.test/v1"


class MotorStyleCursor:
    """Chainable cursor exposing Motor's awaitable ``to_list``."""

    def __init__(self, cursor):
        self._cursor = cursor

    def sort(self, *args, **kwargs):
        self._cursor = self._cursor.sort(*args, **kwargs)
        return self

    def skip(self, count):
        self._cursor = self._cursor.skip(count)
        return self

    def limit(self, count):
        self._cursor = self._cursor.limit(count)
        return self

    async def to_list(self, length=None):
        docs = list(self._cursor)
        return docs if length is None else docs[:length]


class MotorStyleCollection:
    """Awaitable view over a mongomock collection, shaped like a Motor collection."""

    def __init__(self, collection):
        self._collection = collection

    def find(self, *args, **kwargs):
        return MotorStyleCursor(self._collection.find(*args, **kwargs))

    def aggregate(self, pipeline, **kwargs):
        return MotorStyleCursor(self._collection.aggregate(pipeline, **kwargs))

    def __getattr__(self, name):
        method = getattr(self._collection, name)

        async def call(*args, **kwargs):
            # Yield like a network round trip so gathered coroutines interleave
            await asyncio.sleep(0)
            return method(*args, **kwargs)

        return call


class MotorStyleDatabase:
    def __init__(self, database):
        self._database = database

    def __getattr__(self, name):
        return MotorStyleCollection(self._database[name])

    def __getitem__(self, name):
        return MotorStyleCollection(self._database[name])


class RecordingNotifier:
    """Notifier that keeps every event instead of sending email."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def notify(self, event, payload):
        self.events.append((event, payload))

    def names(self):
        return [event for event, _ in self.events]


class FakeRazorpay:
    """Request handler standing in for the gateway's REST API."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.fail_status: Optional[int] = None
        self.timeout = False
        self._counter = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.timeout:
            raise httpx.ReadTimeout("gateway too slow", request=request)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"error": {"description": "rejected"}})

        body = json.loads(request.content or b"{}")
        self._counter += 1
        if request.url.path == "/v1/orders":
            return httpx.Response(200, json={
                "id": f"order_test{self._counter}",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body["receipt"],
                "status": "created",
            })
        if request.url.path.endswith("/refund"):
            return httpx.Response(200, json={
                "id": f"rfnd_test{self._counter}",
                "amount": body["amount"],
                "status": "pending",
            })
        return httpx.Response(404, json={"error": {"description": "not found"}})

    def sent_json(self, index=-1):
        return json.loads(self.requests[index].content)


@pytest.fixture
async def db():
    database = MotorStyleDatabase(mongomock.MongoClient()["storefront_test"])
    await ensure_indexes(database)
    return database


@pytest.fixture
def settings():
    return Settings(
        razorpay_key_id=KEY_ID,
        razorpay_key_secret=KEY_SECRET,
        razorpay_webhook_secret=WEBHOOK_SECRET,
        razorpay_base_url=GATEWAY_URL,
        smtp_host="",
    )


@pytest.fixture
def razorpay():
    return FakeRazorpay()


@pytest.fixture
async def gateway(razorpay):
    client = RazorpayGateway(
        key_id=KEY_ID,
        key_secret=KEY_SECRET,
        webhook_secret=WEBHOOK_SECRET,
        base_url=GATEWAY_URL,
        transport=httpx.MockTransport(razorpay),
    )
    yield client
    await client.aclose()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(db, gateway, notifier, settings):
    return OrderService(db, gateway, notifier, settings)


@pytest.fixture
def user_id():
    return str(ObjectId())


@pytest.fixture
async def product(db):
    doc = {
        "name": "Linen Shirt",
        "price": 2499.0,
        "discounted_price": 1999.0,
        "variants": [{"size": "M", "stock": 5}, {"size": "L", "stock": 1}],
    }
    result = await db.products.insert_one(doc)
    return str(result.inserted_id)


@pytest.fixture
async def second_product(db):
    result = await db.products.insert_one({
        "name": "Canvas Tote",
        "price": 499.0,
        "variants": [{"size": "OS", "stock": 2}],
    })
    return str(result.inserted_id)


@pytest.fixture
async def address(db, user_id):
    result = await db.addresses.insert_one({
        "user_id": user_id,
        "first_name": "Asha",
        "last_name": "Rao",
        "mobile_no": 9876543210,
        "flat_no": "12B",
        "area": "Indiranagar",
        "city": "Bengaluru",
        "state": "Karnataka",
        "zip": "560038",
        "country": "India",
    })
    return str(result.inserted_id)


async def stock_of(db, product_id: str, size: str) -> int:
    doc = await db.products.find_one({"_id": ObjectId(product_id)})
    for variant in doc["variants"]:
        if variant["size"] == size:
            return variant["stock"]
    raise AssertionError(f"no variant {size}")


def line(product_id: str, size: str = "M", quantity: int = 1) -> LineItem:
    return LineItem(product_id=product_id, size=size, quantity=quantity)


def client_signature(order_ref: str, payment_ref: str) -> str:
    return compute_signature(KEY_SECRET, f"{order_ref}|{payment_ref}".encode("utf-8"))


def webhook_body(event: str, order_ref: str, payment_ref: str, amount_minor: int) -> Tuple[bytes, str]:
    body = json.dumps({
        "entity": "event",
        "event": event,
        "payload": {
            "payment": {
                "entity": {
                    "id": payment_ref,
                    "order_id": order_ref,
                    "amount": amount_minor,
                    "currency": "INR",
                    "status": "captured",
                    "notes": [],
                }
            }
        },
        "created_at": 1700000000,
    }).encode("utf-8")
    return body, compute_signature(WEBHOOK_SECRET, body)


def refund_webhook_body(event: str, refund_ref: str, payment_ref: str, amount_minor: int) -> Tuple[bytes, str]:
    body = json.dumps({
        "entity": "event",
        "event": event,
        "payload": {
            "refund": {
                "entity": {
                    "id": refund_ref,
                    "payment_id": payment_ref,
                    "amount": amount_minor,
                    "status": "processed",
                }
            }
        },
    }).encode("utf-8")
    return body, compute_signature(WEBHOOK_SECRET, body)
