"""Internal models for compiled operations and registered tools."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Type

from pydantic import BaseModel


@dataclass(frozen=True)
class CompiledParameter:
    name: str
    location: str
    required: bool
    annotation: Any
    description: Optional[str] = None


@dataclass(frozen=True)
class CompiledOperation:
    method: str
    path: str
    summary: Optional[str]
    description: Optional[str]
    tags: Tuple[str, ...]
    parameters: Dict[str, CompiledParameter]
    path_parameters: Tuple[str, ...]
    request_body: Optional[Dict[str, Any]]
    request_body_required: bool
    is_warehouse_native: bool
    params_model: Type[BaseModel]

    def location_of(self, name: str) -> str:
        parameter = self.parameters.get(name)
        return parameter.location if parameter else "query"


@dataclass(frozen=True)
class RegistryEntry:
    tool_name: str
    path: str
    description: str
    methods: Tuple[str, ...]
    operations: Dict[str, CompiledOperation]
    params_models: Dict[str, Type[BaseModel]]
    input_model: Type[BaseModel]
    merged_parameters: Type[BaseModel]
