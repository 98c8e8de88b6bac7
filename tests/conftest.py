import json
import os
from datetime import datetime, timezone

import boto3
import pytest
from moto import mock_aws

os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("TABLE_NAME", "KasyTable")

from models.expense import ExpenseBase  # noqa: E402
from services import dynamodb as dynamodb_service  # noqa: E402
from services import parameter_store  # noqa: E402
from services.dynamodb import KasyTable  # noqa: E402


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("KASY_OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("KASY_OPENAI_TEXT_MODEL", "gpt-4o-mini")
    monkeypatch.setenv("KASY_OPENAI_VISION_MODEL", "gpt-4o")
    monkeypatch.setenv("KASY_SPLIT_REMAINDER_POLICY", "payer")
    parameter_store.clear_cache()
    parameter_store._ssm_client = None
    yield
    parameter_store.clear_cache()
    parameter_store._ssm_client = None


@pytest.fixture
def aws():
    with mock_aws():
        dynamodb_service.reset_dynamodb_resource()
        yield
        dynamodb_service.reset_dynamodb_resource()


@pytest.fixture
def table(aws):
    """An empty KASY table with the inverted index, inside moto."""
    boto3.client("dynamodb").create_table(
        TableName="KasyTable",
        KeySchema=[
            {"AttributeName": "PK", "KeyType": "HASH"},
            {"AttributeName": "SK", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "PK", "AttributeType": "S"},
            {"AttributeName": "SK", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "SK-PK-index",
                "KeySchema": [
                    {"AttributeName": "SK", "KeyType": "HASH"},
                    {"AttributeName": "PK", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            }
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    return KasyTable("KasyTable")


@pytest.fixture
def handler_table(table, monkeypatch):
    """Point every handler module's shared table at the moto table."""
    from handlers import badges, expenses, payments, receipts, settlements, users

    for module in (badges, expenses, payments, receipts, settlements, users):
        monkeypatch.setattr(module, "table", table)
    return table


@pytest.fixture
def now():
    return datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_expense(**overrides) -> ExpenseBase:
    fields = {
        "group_id": "g1",
        "payer_id": "p1",
        "description": "Dinner",
        "amount_cents": 6000,
        "participants": ["p1", "p2", "p3"],
    }
    fields.update(overrides)
    return ExpenseBase(**fields)


def api_event(body=None, path=None, query=None, method="POST"):
    """An API Gateway HTTP API (v2) event."""
    return {
        "version": "2.0",
        "rawPath": "/",
        "requestContext": {"http": {"method": method}},
        "headers": {"content-type": "application/json"},
        "body": json.dumps(body) if body is not None else None,
        "pathParameters": path,
        "queryStringParameters": query,
    }


def response_body(response) -> dict:
    return json.loads(response["body"])


class FakeResponse:
    """Just enough of ``requests.Response`` for the OpenAI client."""

    def __init__(self, payload=None, status_code=200, text=None):
        self._payload = payload
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


def completion(content) -> FakeResponse:
    """A chat completions response whose first choice carries ``content``."""
    return FakeResponse({"choices": [{"message": {"role": "assistant", "content": content}}]})


@pytest.fixture
def fake_post(monkeypatch):
    """Replace requests.post for the OpenAI client; set ``fake_post.response`` to control replies."""
    from services import openai_client

    class FakePost:
        def __init__(self):
            self.response = None
            self.calls = []

        def __call__(self, url, **kwargs):
            self.calls.append((url, kwargs))
            if isinstance(self.response, Exception):
                raise self.response
            return self.response

    fake = FakePost()
    monkeypatch.setattr(openai_client.requests, "post", fake)
    return fake
