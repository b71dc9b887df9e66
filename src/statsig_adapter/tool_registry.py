"""Tool registry for the Statsig MCP Adapter."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, create_model

from .compiler import JSON_MEDIA_TYPE, CompiledDocument
from .config import Settings
from .executors import DispatchError
from .models import CompiledOperation, RegistryEntry
from .schema import build_model, sanitize_name


logger = logging.getLogger(__name__)

_TOOL_NAME_CHARS = re.compile(r"[^A-Za-z0-9]")


class ToolRegistry:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._entries: Dict[str, RegistryEntry] = {}

    def register(self, compiled: CompiledDocument) -> Dict[str, RegistryEntry]:
        """Build one entry per path, in document order."""
        entries: Dict[str, RegistryEntry] = {}
        mode = self.settings.adapter_deployment_mode

        for path, operations in compiled.items():
            exposed = {
                method: operation
                for method, operation in operations.items()
                if self._is_exposed(operation, mode)
            }
            if not exposed:
                logger.debug("No operations exposed for %s in mode %s", path, mode)
                continue

            tool_name = self._format_tool_name(path, entries)
            merged = self._merged_fields(exposed)
            params_models = self._params_models(tool_name, exposed, merged)
            entries[tool_name] = RegistryEntry(
                tool_name=tool_name,
                path=path,
                description=self._describe(path, exposed),
                methods=tuple(exposed),
                operations=exposed,
                params_models=params_models,
                input_model=self._input_model(tool_name, path, params_models),
                merged_parameters=self._merged_parameters(tool_name, merged),
            )

        self._entries = entries
        logger.info("Registered %s tools", len(entries))
        return entries

    def get(self, tool_name: str) -> RegistryEntry:
        entry = self._entries.get(tool_name)
        if entry is None:
            raise DispatchError(f"Unknown tool: {tool_name}")
        return entry

    def entries(self) -> List[RegistryEntry]:
        return list(self._entries.values())

    def _is_exposed(self, operation: CompiledOperation, mode: str) -> bool:
        if mode == "cloud":
            return not operation.is_warehouse_native
        if mode == "warehouse_native":
            return operation.is_warehouse_native
        return True

    def _format_tool_name(self, path: str, taken: Dict[str, Any]) -> str:
        base = _TOOL_NAME_CHARS.sub("-", path)[: self.settings.adapter_tool_name_max_length]
        tool_name = base
        suffix = len(taken)
        while tool_name in taken:
            tool_name = f"{base}-{suffix}"
            suffix += 1
        return tool_name

    def _describe(self, path: str, operations: Dict[str, CompiledOperation]) -> str:
        lines = [
            f"API endpoint: {path}",
            f"Available methods: {', '.join(method.upper() for method in operations)}",
            "---",
        ]
        for method, operation in operations.items():
            lines.append(f"{method.upper()}: {operation.summary or 'No summary available'}")
        return "\n".join(lines)

    def _input_model(
        self, tool_name: str, path: str, params_models: Dict[str, type[BaseModel]]
    ) -> type[BaseModel]:
        methods = tuple(params_models)
        fields: Dict[str, Any] = {
            "method": (
                Optional[Literal[methods]],
                Field(
                    None,
                    description=f"HTTP method to use. Available methods: {', '.join(methods)}",
                ),
            )
        }
        for method, params_model in params_models.items():
            fields[f"{method}_params"] = (
                Optional[params_model],
                Field(None, description=f"Parameters for {method.upper()} {path}"),
            )

        model_config = ConfigDict(extra="forbid")
        return create_model(f"{sanitize_name(tool_name)}Input", __config__=model_config, **fields)

    def _merged_fields(
        self, operations: Dict[str, CompiledOperation]
    ) -> Dict[str, Tuple[Any, Optional[str]]]:
        """Any one verb's validator is enough for a parameter shared across verbs."""
        variants: Dict[str, List[Any]] = {}
        descriptions: Dict[str, Optional[str]] = {}
        for operation in operations.values():
            for name, parameter in operation.parameters.items():
                variants.setdefault(name, []).append(parameter.annotation)
                if not descriptions.get(name):
                    descriptions[name] = parameter.description

        return {
            name: (
                annotations[0] if len(annotations) == 1 else Union[tuple(annotations)],
                descriptions.get(name),
            )
            for name, annotations in variants.items()
        }

    def _merged_parameters(
        self, tool_name: str, merged: Dict[str, Tuple[Any, Optional[str]]]
    ) -> type[BaseModel]:
        fields = {
            name: (annotation, False, description)
            for name, (annotation, description) in merged.items()
        }
        return build_model(f"{tool_name}Parameters", fields, extra="ignore")

    def _params_models(
        self,
        tool_name: str,
        operations: Dict[str, CompiledOperation],
        merged: Dict[str, Tuple[Any, Optional[str]]],
    ) -> Dict[str, type[BaseModel]]:
        """Per-verb validators; shared parameter names accept the merged union."""
        models: Dict[str, type[BaseModel]] = {}
        for method, operation in operations.items():
            fields: Dict[str, Tuple[Any, bool, Optional[str]]] = {
                name: (merged[name][0], parameter.required, merged[name][1])
                for name, parameter in operation.parameters.items()
            }
            if operation.request_body:
                fields[JSON_MEDIA_TYPE] = (
                    operation.request_body[JSON_MEDIA_TYPE],
                    operation.request_body_required,
                    "JSON request body",
                )
            models[method] = build_model(f"{tool_name}_{method}_Params", fields, extra="ignore")
        return models
