"""Shared fixtures for adapter tests."""

from __future__ import annotations

from typing import Any, Callable, Dict, List

import httpx
import pytest

from statsig_adapter.compiler import OperationCompiler
from statsig_adapter.config import Settings
from statsig_adapter.tool_registry import ToolRegistry


BASE_URL = "https://api.example.test"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        statsig_host=BASE_URL,
        statsig_api_key="secret-key",
        adapter_include_only_tagged=False,
    )


@pytest.fixture
def document() -> Dict[str, Any]:
    return {
        "openapi": "3.0.0",
        "paths": {
            "/console/v1/gates": {
                "get": {
                    "summary": "List gates",
                    "tags": ["MCP", "Feature Gates"],
                    "parameters": [
                        {"$ref": "#/components/parameters/Limit"},
                        {"name": "tags", "in": "query", "schema": {"type": "array", "items": {"type": "string"}}},
                    ],
                },
                "post": {
                    "summary": "Create gate",
                    "tags": ["MCP", "Feature Gates"],
                    "parameters": [
                        {"name": "limit", "in": "query", "schema": {"type": "string"}},
                    ],
                    "requestBody": {
                        "required": True,
                        "content": {
                            "application/json": {"schema": {"$ref": "#/components/schemas/GateCreate"}}
                        },
                    },
                },
            },
            "/console/v1/gates/{id}": {
                "parameters": [
                    {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}},
                ],
                "get": {"summary": "Read gate", "tags": ["MCP"]},
                "patch": {
                    "summary": "Update gate",
                    "tags": ["MCP"],
                    "requestBody": {"$ref": "#/components/requestBodies/GatePatch"},
                },
            },
            "/console/v1/experiments/{id}/pulse": {
                "get": {
                    "summary": "Pulse results",
                    "tags": ["MCP", "Experiments (Warehouse Native)"],
                    "parameters": [
                        {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}},
                        {"name": "STATSIG-TRACE", "in": "header", "schema": {"type": "string"}},
                    ],
                },
            },
            "/console/v1/internal": {
                "get": {"summary": "Untagged", "tags": ["Internal"]},
            },
        },
        "components": {
            "parameters": {
                "Limit": {
                    "name": "limit",
                    "in": "query",
                    "description": "Page size",
                    "schema": {"$ref": "#/components/schemas/PageSize"},
                },
            },
            "schemas": {
                "PageSize": {"type": "integer"},
                "GateCreate": {
                    "type": "object",
                    "required": ["name"],
                    "properties": {
                        "name": {"type": "string"},
                        "description": {"type": "string", "nullable": True},
                        "isEnabled": {"type": "boolean"},
                    },
                },
            },
            "requestBodies": {
                "GatePatch": {
                    "required": False,
                    "content": {
                        "application/json": {
                            "schema": {
                                "type": "object",
                                "properties": {"isEnabled": {"type": "boolean"}},
                            }
                        },
                        "text/plain": {"schema": {"type": "string"}},
                    },
                },
            },
        },
    }


@pytest.fixture
def compile_registry(settings: Settings) -> Callable[..., ToolRegistry]:
    def _compile(doc: Dict[str, Any], **compiler_kwargs: Any) -> ToolRegistry:
        registry = ToolRegistry(settings)
        registry.register(OperationCompiler(**compiler_kwargs).compile(doc))
        return registry

    return _compile


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: List[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture
def make_transport() -> Callable[[Callable[[httpx.Request], httpx.Response]], RecordingTransport]:
    return RecordingTransport
