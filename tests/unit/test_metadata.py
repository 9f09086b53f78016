"""Tests for the data source spec loader."""

import httpx
import pytest

from hyper_sender.errors import ConfigurationError
from hyper_sender.metadata import DataSourceSpec, DataSourceSpecLoader

SPEC = {"delimiter": "|", "columns": ["id", "name", "gender", "age"], "primaryColumn": "id"}


def make_loader(handler):
    client = httpx.Client(base_url="http://hmaster:8086", transport=httpx.MockTransport(handler))
    return DataSourceSpecLoader("hmaster:8086", "users", client=client)


def test_loads_spec_once():
    calls = []

    def handler(request):
        calls.append(request)
        assert request.url.path == "/hyper/v1/datasources/users/spec"
        return httpx.Response(200, json=SPEC)

    loader = make_loader(handler)

    assert loader.delimiter() == "|"
    assert loader.columns() == ["id", "name", "gender", "age"]
    assert loader.primary_column_name() == "id"
    assert loader.primary_column_index() == 0
    assert len(calls) == 1


def test_refresh_reloads_spec():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=SPEC)

    loader = make_loader(handler)
    loader.delimiter()
    loader.refresh()
    loader.delimiter()

    assert len(calls) == 2


def test_failed_load_is_retried():
    responses = [httpx.Response(500), httpx.Response(200, json=SPEC)]
    loader = make_loader(lambda request: responses.pop(0))

    with pytest.raises(ConfigurationError):
        loader.columns()
    assert loader.columns() == ["id", "name", "gender", "age"]


@pytest.mark.parametrize(
    "payload",
    [
        {"columns": ["id"], "primaryColumn": "id"},
        {"delimiter": "|", "primaryColumn": "id"},
        {"delimiter": "|", "columns": ["id"]},
        {"delimiter": "|", "columns": ["name"], "primaryColumn": "id"},
        ["id"],
    ],
)
def test_inconsistent_spec(payload):
    with pytest.raises(ConfigurationError):
        DataSourceSpec.from_dict("users", payload)


def test_primary_index():
    spec = DataSourceSpec.from_dict(
        "users", {"delimiter": ",", "columns": ["name", "id"], "primaryColumn": "id"}
    )
    assert spec.primary_index == 1
