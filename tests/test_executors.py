"""Tests for dispatching compiled operations over HTTP."""

from __future__ import annotations

import json
from typing import Any, Dict

import httpx
import pytest

from statsig_adapter.compiler import JSON_MEDIA_TYPE, OperationCompiler
from statsig_adapter.config import Settings
from statsig_adapter.executors import DispatchError, RestExecutor
from statsig_adapter.models import RegistryEntry
from statsig_adapter.tool_registry import ToolRegistry


GATE_DOCUMENT = {
    "paths": {
        "/gates/{id}": {
            "get": {
                "summary": "Read gate",
                "parameters": [
                    {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}},
                ],
            }
        }
    }
}


def _entry(settings: Settings, document: Dict[str, Any], tool_name: str) -> RegistryEntry:
    registry = ToolRegistry(settings)
    registry.register(OperationCompiler().compile(document))
    return registry.get(tool_name)


def _executor(settings: Settings, transport: httpx.MockTransport) -> RestExecutor:
    return RestExecutor(
        base_url=settings.base_url(),
        headers=settings.api_headers(),
        transport=transport,
    )


async def test_get_with_path_parameter_returns_text_unmodified(settings, make_transport) -> None:
    transport = make_transport(lambda request: httpx.Response(200, text="gate abc\n"))
    entry = _entry(settings, GATE_DOCUMENT, "-gates--id-")

    result = await _executor(settings, transport).execute(entry, "get", {"id": "abc"})

    assert result == "gate abc\n"
    (request,) = transport.requests
    assert request.method == "GET"
    assert str(request.url) == "https://api.example.test/gates/abc"
    assert request.headers["STATSIG-API-KEY"] == "secret-key"
    assert request.headers["STATSIG-API-VERSION"] == "20240601"
    assert request.headers["Content-Type"] == "application/json"


async def test_upstream_404_raises_dispatch_error(settings, make_transport) -> None:
    transport = make_transport(lambda request: httpx.Response(404, text="gate not found"))
    entry = _entry(settings, GATE_DOCUMENT, "-gates--id-")

    with pytest.raises(DispatchError) as exc_info:
        await _executor(settings, transport).execute(entry, "get", {"id": "abc"})

    assert exc_info.value.status_code == 404
    assert exc_info.value.body == "gate not found"
    assert "404" in str(exc_info.value)
    assert "gate not found" in str(exc_info.value)


async def test_numeric_path_parameter_is_substituted(settings, make_transport) -> None:
    document = {
        "paths": {
            "/items/{id}/history": {
                "get": {
                    "parameters": [
                        {"name": "id", "in": "path", "required": True, "schema": {"type": "integer"}},
                    ]
                }
            }
        }
    }
    transport = make_transport(lambda request: httpx.Response(200, text="ok"))
    entry = _entry(settings, document, "-items--id--history")

    await _executor(settings, transport).execute(entry, None, {"id": 42})

    path = transport.requests[0].url.path
    assert "{" not in path
    assert path == "/items/42/history"


async def test_path_values_are_percent_encoded(settings, make_transport) -> None:
    transport = make_transport(lambda request: httpx.Response(200, text="ok"))
    entry = _entry(settings, GATE_DOCUMENT, "-gates--id-")

    await _executor(settings, transport).execute(entry, "get", {"id": "a/b c"})

    assert transport.requests[0].url.raw_path == b"/gates/a%2Fb%20c"


async def test_leftover_placeholder_is_a_dispatch_error(settings, make_transport) -> None:
    document = {
        "paths": {
            "/gates/{id}/rules/{ruleID}": {
                "get": {
                    "parameters": [
                        {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}},
                        {"name": "ruleID", "in": "path", "schema": {"type": "string"}},
                    ]
                }
            }
        }
    }
    transport = make_transport(lambda request: httpx.Response(200, text="ok"))
    entry = _entry(settings, document, "-gates--id--rules--ruleID-")

    with pytest.raises(DispatchError, match="ruleID"):
        await _executor(settings, transport).execute(entry, "get", {"id": "g"})
    assert transport.requests == []


async def test_query_parameters_are_encoded(settings, document, make_transport) -> None:
    transport = make_transport(lambda request: httpx.Response(200, text="ok"))
    entry = _entry(settings, document, "-console-v1-gates")

    await _executor(settings, transport).execute(
        entry, "get", {"limit": 5, "tags": ["a b", "c"]}
    )

    url = transport.requests[0].url
    assert url.params["limit"] == "5"
    assert url.params.get_list("tags") == ["a b", "c"]
    assert transport.requests[0].content == b""


async def test_null_and_unknown_arguments_are_not_sent(settings, document, make_transport) -> None:
    transport = make_transport(lambda request: httpx.Response(200, text="ok"))
    entry = _entry(settings, document, "-console-v1-gates")

    await _executor(settings, transport).execute(entry, "get", {"limit": None, "bogus": "x"})

    assert transport.requests[0].url.query == b""


async def test_boolean_query_values_are_lowercase(settings, make_transport) -> None:
    document = {
        "paths": {
            "/gates": {"get": {"parameters": [{"name": "enabled", "in": "query", "schema": {"type": "boolean"}}]}}
        }
    }
    transport = make_transport(lambda request: httpx.Response(200, text="ok"))
    entry = _entry(settings, document, "-gates")

    await _executor(settings, transport).execute(entry, "get", {"enabled": True})

    assert transport.requests[0].url.params["enabled"] == "true"


async def test_header_parameters_are_sent_as_headers(settings, document, make_transport) -> None:
    transport = make_transport(lambda request: httpx.Response(200, text="ok"))
    entry = _entry(settings, document, "-console-v1-experiments--id--pulse")

    await _executor(settings, transport).execute(
        entry, "get", {"id": "exp", "STATSIG-TRACE": "t-1"}
    )

    request = transport.requests[0]
    assert request.headers["STATSIG-TRACE"] == "t-1"
    assert "STATSIG-TRACE" not in request.url.params


async def test_post_sends_json_body(settings, document, make_transport) -> None:
    transport = make_transport(
        lambda request: httpx.Response(201, json={"data": {"id": "new_gate"}})
    )
    entry = _entry(settings, document, "-console-v1-gates")

    result = await _executor(settings, transport).execute(
        entry, "post", {JSON_MEDIA_TYPE: {"name": "new_gate", "isEnabled": True}}
    )

    assert result == {"data": {"id": "new_gate"}}
    request = transport.requests[0]
    assert request.method == "POST"
    assert json.loads(request.content) == {"name": "new_gate", "isEnabled": True}
    assert request.url.query == b""


async def test_optional_body_may_be_omitted(settings, document, make_transport) -> None:
    transport = make_transport(lambda request: httpx.Response(200, text="ok"))
    entry = _entry(settings, document, "-console-v1-gates--id-")

    await _executor(settings, transport).execute(entry, "patch", {"id": "g"})

    request = transport.requests[0]
    assert request.method == "PATCH"
    assert request.content == b""


async def test_invalid_arguments_are_a_dispatch_error(settings, document, make_transport) -> None:
    transport = make_transport(lambda request: httpx.Response(200, text="ok"))
    entry = _entry(settings, document, "-console-v1-gates")

    with pytest.raises(DispatchError, match="Invalid arguments"):
        await _executor(settings, transport).execute(entry, "post", {JSON_MEDIA_TYPE: {"isEnabled": True}})
    assert transport.requests == []


async def test_method_defaults_to_first_declared(settings, document, make_transport) -> None:
    transport = make_transport(lambda request: httpx.Response(200, text="ok"))
    entry = _entry(settings, document, "-console-v1-gates")

    await _executor(settings, transport).execute(entry, None, {})

    assert transport.requests[0].method == "GET"


async def test_unknown_method_is_a_dispatch_error(settings, make_transport) -> None:
    transport = make_transport(lambda request: httpx.Response(200, text="ok"))
    entry = _entry(settings, GATE_DOCUMENT, "-gates--id-")

    with pytest.raises(DispatchError, match="not available"):
        await _executor(settings, transport).execute(entry, "delete", {"id": "g"})


async def test_network_failure_is_a_dispatch_error(settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    entry = _entry(settings, GATE_DOCUMENT, "-gates--id-")

    with pytest.raises(DispatchError) as exc_info:
        await _executor(settings, httpx.MockTransport(handler)).execute(entry, "get", {"id": "g"})

    assert exc_info.value.status_code is None
