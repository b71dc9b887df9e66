"""OpenAPI document loader."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import httpx


logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class LoadError(Exception):
    def __init__(
        self,
        url: str,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.body = body


class OpenAPILoader:
    def __init__(
        self,
        timeout_seconds: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def load_spec(self, url: str) -> Document:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self.transport
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            raise LoadError(url, f"Error fetching OpenAPI spec from {url}: {exc}") from exc

        if not response.is_success:
            raise LoadError(
                url,
                f"Error fetching OpenAPI spec. Status: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            document = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise LoadError(
                url,
                f"OpenAPI spec from {url} is not valid JSON: {exc}",
                status_code=response.status_code,
                body=response.text,
            ) from exc

        if not isinstance(document, dict):
            raise LoadError(
                url,
                f"OpenAPI spec from {url} is not a JSON object",
                status_code=response.status_code,
                body=response.text,
            )

        logger.info(
            "Loaded OpenAPI spec %s (%s paths)", url, len(document.get("paths") or {})
        )
        return document
