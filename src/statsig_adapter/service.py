"""Core adapter service logic."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastmcp.exceptions import ToolError

from .config import Settings
from .executors import DispatchError, RestExecutor
from .logging import redact_payload
from .models import RegistryEntry
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class AdapterService:
    """
    Runs tool calls against the upstream API.

    The registry is only read here, so any number of calls may be in flight;
    the semaphore caps how many hit the upstream at once.
    """

    def __init__(
        self,
        settings: Settings,
        tool_registry: ToolRegistry,
        executor: Optional[RestExecutor] = None,
    ) -> None:
        self.settings = settings
        self.tool_registry = tool_registry
        self.executor = executor or RestExecutor(
            base_url=settings.base_url(),
            headers=settings.api_headers(),
            timeout_seconds=settings.statsig_api_timeout_seconds,
        )
        self.semaphore = asyncio.Semaphore(settings.adapter_max_concurrency)

    async def invoke(
        self, tool_name: str, method: Optional[str], args: Optional[Dict[str, Any]]
    ) -> Any:
        """Dispatch one call with a flat parameter bag; raises DispatchError."""
        entry = self.tool_registry.get(tool_name)
        async with self.semaphore:
            return await self.executor.execute(entry, method, args)

    async def execute_tool(self, entry: RegistryEntry, payload: Dict[str, Any]) -> str:
        """
        Execute a tool call coming from the MCP transport.

        Args:
            entry: The registered tool
            payload: ``method`` plus the ``<method>_params`` sub-object

        Returns:
            The upstream body; JSON responses are pretty-printed

        Raises:
            ToolError: the dispatch failed, so the MCP result is an error
        """
        method = str(payload.get("method") or entry.methods[0]).lower()
        params = payload.get(f"{method}_params") or {}
        logger.info(
            "Executing tool=%s method=%s params=%s",
            entry.tool_name,
            method,
            redact_payload(params),
        )

        try:
            async with self.semaphore:
                result = await self.executor.execute(entry, method, params)
        except DispatchError as exc:
            logger.error("Tool execution failed: %s", exc)
            raise ToolError(f"Error calling the API: {exc}") from exc

        return self._format_result(result)

    def _format_result(self, result: Any) -> str:
        if isinstance(result, str):
            return result
        return json.dumps(result, indent=2)
