"""MCP server setup for the Statsig MCP Adapter."""

import inspect
import logging
from typing import Annotated, Any, Awaitable, Callable, Dict, Optional

import httpx
from fastmcp import FastMCP
from pydantic import BaseModel, Field

from .compiler import OperationCompiler
from .config import Settings
from .executors import RestExecutor
from .models import RegistryEntry
from .openapi import OpenAPILoader
from .service import AdapterService
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


async def build_server(
    settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
) -> tuple[FastMCP, object | None]:
    openapi_url = settings.openapi_url()
    logger.info("Using API spec from %s", openapi_url)
    loader = OpenAPILoader(
        timeout_seconds=settings.statsig_api_timeout_seconds, transport=transport
    )
    document = await loader.load_spec(openapi_url)

    compiler = OperationCompiler(
        include_only_tagged=settings.adapter_include_only_tagged,
        include_tag=settings.adapter_include_tag,
        warehouse_native_tag=settings.adapter_warehouse_native_tag,
        policy=settings.adapter_schema_policy,
    )
    registry = ToolRegistry(settings)
    entries = registry.register(compiler.compile(document))

    executor = RestExecutor(
        base_url=settings.base_url(),
        headers=settings.api_headers(),
        timeout_seconds=settings.statsig_api_timeout_seconds,
        transport=transport,
    )
    service = AdapterService(settings, registry, executor)

    mcp = FastMCP(settings.service_name, instructions=_instructions())
    app = _get_http_app(mcp, settings)
    _attach_healthcheck(app, len(entries))

    for entry in entries.values():
        handler = _tool_handler(service, entry)
        mcp.tool(name=entry.tool_name, description=entry.description)(handler)
        logger.info("Registered tool: %s", entry.tool_name)

    return mcp, app


def _tool_handler(service: AdapterService, entry: RegistryEntry) -> Callable[..., Awaitable[str]]:
    """Expose ``method`` and each ``<verb>_params`` as top-level tool arguments."""

    async def handler(**arguments: Any) -> str:
        payload: Dict[str, Any] = {}
        for name, value in arguments.items():
            if isinstance(value, BaseModel):
                value = value.model_dump(by_alias=True, exclude_unset=True)
            if value is not None:
                payload[name] = value
        return await service.execute_tool(entry, payload)

    parameters = []
    annotations: Dict[str, Any] = {}
    for name, field in entry.input_model.model_fields.items():
        annotation = Annotated[field.annotation, Field(description=field.description)]
        parameters.append(
            inspect.Parameter(
                name, inspect.Parameter.KEYWORD_ONLY, default=None, annotation=annotation
            )
        )
        annotations[name] = annotation
    annotations["return"] = str

    handler.__signature__ = inspect.Signature(parameters, return_annotation=str)  # type: ignore[attr-defined]
    handler.__annotations__ = annotations
    handler.__name__ = entry.tool_name.replace("-", "_")
    return handler


def _attach_healthcheck(app, tool_count: int) -> None:  # type: ignore[no-untyped-def]
    if not app:
        return

    async def healthcheck(_request):  # type: ignore[no-untyped-def]
        from starlette.responses import JSONResponse

        return JSONResponse({"status": "ok", "tools": tool_count})

    app.add_route("/health", healthcheck, methods=["GET"])


def _instructions() -> str:
    return (
        "Statsig Console API tools. "
        "Each tool is one API path; pick an HTTP method and pass that method's parameters."
    )


def _get_http_app(mcp: FastMCP, settings: Settings):  # type: ignore[no-untyped-def]
    transport = settings.adapter_transport.lower()
    if transport in {"http"}:
        return mcp.http_app(transport="http", stateless_http=True, json_response=True)
    if transport in {"streamable-http", "streamablehttp"}:
        return mcp.http_app(
            transport="streamable-http", stateless_http=True, json_response=True
        )
    if transport in {"sse"}:
        return mcp.http_app(transport="sse")
    return None
