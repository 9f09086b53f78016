"""Tests for the HTTP transport."""

import json

import httpx
import pytest

from hyper_sender.errors import ConfigurationError, TransportError
from hyper_sender.records import Action, BatchRecord
from hyper_sender.transport import HttpTransport, normalize_server


def make_transport(handler):
    client = httpx.Client(base_url="http://hmaster:8086", transport=httpx.MockTransport(handler))
    return HttpTransport("hmaster:8086", "users", client=client)


def test_normalize_server():
    assert normalize_server("hmaster:8086") == "http://hmaster:8086"
    assert normalize_server("https://hmaster:8086/") == "https://hmaster:8086"


def test_send_posts_record():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"status": "ok"})

    transport = make_transport(handler)
    record = BatchRecord(Action.UPDATE, "users", 3, ["20|1001"], columns=["age", "id"])

    transport.send(record)

    assert len(requests) == 1
    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/hyper/v1/datasources/users/records"
    assert json.loads(request.content) == {
        "action": "update",
        "dataSource": "users",
        "partitionNum": 3,
        "rows": ["20|1001"],
        "columns": ["age", "id"],
    }


def test_send_error_status_raises_transport_error():
    transport = make_transport(lambda request: httpx.Response(503))

    with pytest.raises(TransportError) as exc_info:
        transport.send(BatchRecord(Action.ADD, "users", 0, ["1001|a"]))

    assert exc_info.value.status_code == 503


def test_send_connection_error_raises_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    transport = make_transport(handler)

    with pytest.raises(TransportError) as exc_info:
        transport.send(BatchRecord(Action.DELETE, "users", 0, ["1001"]))

    assert exc_info.value.status_code is None


def test_partition_count():
    def handler(request):
        assert request.url.path == "/hyper/v1/datasources/users/partitions"
        return httpx.Response(200, json={"partitions": 4})

    assert make_transport(handler).partition_count() == 4


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"partitions": 0}),
        httpx.Response(200, json={"count": 4}),
        httpx.Response(200, json=[4]),
        httpx.Response(200, text="not json"),
        httpx.Response(404),
    ],
)
def test_partition_count_invalid(response):
    transport = make_transport(lambda request: response)

    with pytest.raises(ConfigurationError):
        transport.partition_count()


def test_close_closes_client():
    transport = make_transport(lambda request: httpx.Response(200))
    transport.close()
    assert transport.client.is_closed
