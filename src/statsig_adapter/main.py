"""CLI entry point for the Statsig MCP Adapter."""

from __future__ import annotations

import asyncio
import logging
import sys

import uvicorn

from .config import get_settings
from .logging import configure_logging
from .openapi import LoadError
from .server import build_server

logger = logging.getLogger(__name__)


async def _run() -> None:
    settings = get_settings()
    configure_logging(settings.adapter_log_level)

    mcp, app = await build_server(settings)
    transport = settings.adapter_transport.lower()

    if transport in {"http", "streamable-http", "streamablehttp", "sse"}:
        if not app:
            raise RuntimeError(f"HTTP app unavailable for transport={transport}")
        config = uvicorn.Config(app, host=settings.adapter_host, port=settings.adapter_port)
        server = uvicorn.Server(config)
        await server.serve()
        return
    logger.info("Statsig MCP Server running on stdio")
    await mcp.run_stdio_async()


def main() -> None:
    try:
        asyncio.run(_run())
    except LoadError as exc:
        logger.error("Fatal error loading OpenAPI spec: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
