"""Compiles an OpenAPI document into validated per-path operations."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from .models import CompiledOperation, CompiledParameter
from .openapi import Document
from .schema import (
    ObjectNode,
    PrimitiveNode,
    ReferenceResolver,
    ResolutionError,
    SchemaParser,
    SchemaPolicy,
    build_annotation,
    build_model,
    sanitize_name,
)


logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "post", "put", "delete", "patch", "options", "head", "trace")
JSON_MEDIA_TYPE = "application/json"

CompiledDocument = Dict[str, Dict[str, CompiledOperation]]


class OperationCompiler:
    def __init__(
        self,
        include_only_tagged: bool = False,
        include_tag: str = "MCP",
        warehouse_native_tag: str = "(Warehouse Native)",
        policy: SchemaPolicy | str = SchemaPolicy.PERMISSIVE,
    ) -> None:
        self.include_only_tagged = include_only_tagged
        self.include_tag = include_tag
        self.warehouse_native_tag = warehouse_native_tag
        self.policy = SchemaPolicy(policy)

    def compile(self, document: Document) -> CompiledDocument:
        resolver = ReferenceResolver(document.get("components"))
        parser = SchemaParser(resolver, self.policy)
        compiled: CompiledDocument = {}
        skipped = 0

        for path, path_item in (document.get("paths") or {}).items():
            if not isinstance(path_item, dict):
                logger.warning("Skipping path with invalid item: %s", path)
                continue

            operations: Dict[str, CompiledOperation] = {}
            for method in HTTP_METHODS:
                operation = path_item.get(method)
                if not isinstance(operation, dict):
                    continue
                tags = tuple(str(tag) for tag in operation.get("tags") or [])
                if self.include_only_tagged and self.include_tag not in tags:
                    continue

                try:
                    operations[method] = self._compile_operation(
                        path, method, path_item, operation, tags, resolver, parser
                    )
                except ResolutionError as exc:
                    skipped += 1
                    logger.warning("Skipping %s %s: %s", method.upper(), path, exc)

            if operations:
                compiled[path] = operations

        logger.info(
            "Compiled %s operations across %s paths (%s skipped)",
            sum(len(ops) for ops in compiled.values()),
            len(compiled),
            skipped,
        )
        return compiled

    def _compile_operation(
        self,
        path: str,
        method: str,
        path_item: Dict[str, Any],
        operation: Dict[str, Any],
        tags: Tuple[str, ...],
        resolver: ReferenceResolver,
        parser: SchemaParser,
    ) -> CompiledOperation:
        model_name = f"{sanitize_name(method)}{sanitize_name(path)}"

        parameters: Dict[str, CompiledParameter] = {}
        for raw in self._merge_parameters(path_item, operation, resolver):
            parameter = self._compile_parameter(raw, parser, model_name)
            if parameter is not None:
                parameters[parameter.name] = parameter

        path_parameters = tuple(
            name for name, parameter in parameters.items() if parameter.location == "path"
        )
        request_body, body_required = self._compile_request_body(
            operation.get("requestBody"), resolver, parser, model_name
        )

        fields: Dict[str, Tuple[Any, bool, Optional[str]]] = {
            name: (parameter.annotation, parameter.required, parameter.description)
            for name, parameter in parameters.items()
        }
        if request_body:
            fields[JSON_MEDIA_TYPE] = (
                request_body[JSON_MEDIA_TYPE],
                body_required,
                "JSON request body",
            )

        return CompiledOperation(
            method=method,
            path=path,
            summary=operation.get("summary"),
            description=operation.get("description"),
            tags=tags,
            parameters=parameters,
            path_parameters=path_parameters,
            request_body=request_body,
            request_body_required=body_required,
            is_warehouse_native=any(self.warehouse_native_tag in tag for tag in tags),
            params_model=build_model(f"{model_name}_Params", fields, extra="ignore"),
        )

    def _merge_parameters(
        self,
        path_item: Dict[str, Any],
        operation: Dict[str, Any],
        resolver: ReferenceResolver,
    ) -> List[Dict[str, Any]]:
        """Path-level parameters first; operation-level ones replace them by name and location."""
        merged: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for raw in [*(path_item.get("parameters") or []), *(operation.get("parameters") or [])]:
            parameter, _ = resolver.resolve(raw)
            if not isinstance(parameter, dict) or not parameter.get("name"):
                raise ResolutionError(f"Parameter without a name: {raw!r}")
            merged[(parameter["name"], parameter.get("in", "query"))] = parameter

        locations: Dict[str, str] = {}
        for name, location in merged:
            if name in locations:
                raise ResolutionError(
                    f"Parameter {name} is declared in both {locations[name]} and {location}"
                )
            locations[name] = location
        return list(merged.values())

    def _compile_parameter(
        self, parameter: Dict[str, Any], parser: SchemaParser, model_name: str
    ) -> Optional[CompiledParameter]:
        name = parameter["name"]
        schema = parameter.get("schema")
        if schema is None:
            return None

        node = parser.parse(schema)
        if isinstance(node, ObjectNode):
            raise ResolutionError(f"object param not supported: {name}")
        if isinstance(node, PrimitiveNode) and node.kind == "null":
            raise ResolutionError(f"null param not supported: {name}")

        return CompiledParameter(
            name=name,
            location=parameter.get("in", "query"),
            required=bool(parameter.get("required")),
            annotation=build_annotation(node, f"{model_name}_{name}"),
            description=parameter.get("description"),
        )

    def _compile_request_body(
        self,
        request_body: Any,
        resolver: ReferenceResolver,
        parser: SchemaParser,
        model_name: str,
    ) -> Tuple[Optional[Dict[str, Any]], bool]:
        if not request_body:
            return None, False

        body, _ = resolver.resolve(request_body)
        if not isinstance(body, dict):
            raise ResolutionError(f"Request body must be an object, got {type(body).__name__}")

        media_type = (body.get("content") or {}).get(JSON_MEDIA_TYPE) or {}
        schema = media_type.get("schema")
        if schema is None:
            return None, False

        required = bool(body.get("required"))
        annotation = build_annotation(parser.parse(schema), f"{model_name}_Body")
        if not required:
            annotation = Optional[annotation]
        return {JSON_MEDIA_TYPE: annotation}, required
