"""Dispatches compiled operations to the upstream REST API."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Type, Union
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from .compiler import JSON_MEDIA_TYPE
from .logging import redact_payload
from .models import CompiledOperation, RegistryEntry

logger = logging.getLogger(__name__)

BODY_METHODS = frozenset({"post", "put", "patch"})
_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


class DispatchError(Exception):
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RestExecutor:
    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout_seconds: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers or {})
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def execute(
        self,
        entry: RegistryEntry,
        method: Optional[str],
        args: Optional[Dict[str, Any]],
    ) -> Any:
        method_to_use = (method or entry.methods[0]).lower()
        operation = entry.operations.get(method_to_use)
        if operation is None:
            raise DispatchError(
                f"Method {method_to_use.upper()} is not available for {entry.path}. "
                f"Available methods: {', '.join(m.upper() for m in entry.methods)}"
            )

        values = self._validate(entry.params_models[method_to_use], operation, args or {})
        body = values.pop(JSON_MEDIA_TYPE, None)
        path = self._interpolate_path(operation, values)

        headers = dict(self.headers)
        query: Dict[str, Union[str, List[str]]] = {}
        for name, value in values.items():
            if name in operation.path_parameters or value is None:
                continue
            if operation.location_of(name) == "header":
                headers[name] = _stringify(value)
            elif isinstance(value, list):
                query[name] = [_stringify(item) for item in value if item is not None]
            else:
                query[name] = _stringify(value)

        content: Optional[str] = None
        if method_to_use in BODY_METHODS and operation.request_body and body is not None:
            content = json.dumps(body)

        url = f"{self.base_url}{path}"
        logger.info(
            "Sending %s request to %s query=%s", method_to_use.upper(), url, redact_payload(query)
        )

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self.transport
            ) as client:
                response = await client.request(
                    method_to_use.upper(),
                    url,
                    headers=headers,
                    params=query,
                    content=content,
                )
        except httpx.HTTPError as exc:
            raise DispatchError(f"Error calling the API: {exc}") from exc

        if not response.is_success:
            raise DispatchError(
                f"API Error ({response.status_code}): {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type and response.content:
            try:
                return response.json()
            except ValueError:
                logger.warning("Response from %s declared JSON but did not parse", url)
        return response.text

    def _validate(
        self, params_model: Type[BaseModel], operation: CompiledOperation, args: Dict[str, Any]
    ) -> Dict[str, Any]:
        try:
            params = params_model.model_validate(args)
        except ValidationError as exc:
            raise DispatchError(
                f"Invalid arguments for {operation.method.upper()} {operation.path}: {exc}"
            ) from exc
        return params.model_dump(mode="json", by_alias=True, exclude_unset=True)

    def _interpolate_path(self, operation: CompiledOperation, values: Dict[str, Any]) -> str:
        path = operation.path
        for name in operation.path_parameters:
            value = values.get(name)
            if value is None:
                continue
            path = path.replace(f"{{{name}}}", quote(_stringify(value), safe=""))

        missing = _PLACEHOLDER.findall(path)
        if missing:
            raise DispatchError(
                f"Missing path parameters for {operation.path}: {', '.join(missing)}"
            )
        return path


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)
