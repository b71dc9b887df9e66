"""OpenAPI schema nodes, reference resolution and pydantic validators."""

from __future__ import annotations

import keyword
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, FrozenSet, List, Literal, Optional, Tuple, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    create_model,
)


logger = logging.getLogger(__name__)

# integer and number share one validator; integer-only constraints are not kept
Numeric = Union[StrictInt, StrictFloat]

_REF_PREFIX = "#/components/"
_INVALID_FIELD_CHARS = re.compile(r"[^A-Za-z0-9_]")


class ResolutionError(Exception):
    def __init__(self, message: str, pointer: Optional[str] = None) -> None:
        super().__init__(message)
        self.pointer = pointer


class SchemaPolicy(str, Enum):
    """How to treat schema nodes the compiler does not recognize."""

    PERMISSIVE = "permissive"
    STRICT = "strict"


@dataclass(frozen=True, kw_only=True)
class SchemaNode:
    nullable: bool = False
    description: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class PrimitiveNode(SchemaNode):
    kind: str  # string, number, boolean or null


@dataclass(frozen=True, kw_only=True)
class ArrayNode(SchemaNode):
    items: SchemaNode


@dataclass(frozen=True, kw_only=True)
class ObjectNode(SchemaNode):
    properties: Dict[str, SchemaNode] = field(default_factory=dict)
    required: FrozenSet[str] = frozenset()
    title: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class EnumNode(SchemaNode):
    values: Tuple[Any, ...]


@dataclass(frozen=True, kw_only=True)
class UnionNode(SchemaNode):
    members: Tuple[SchemaNode, ...]


@dataclass(frozen=True, kw_only=True)
class IntersectionNode(SchemaNode):
    members: Tuple[SchemaNode, ...]


@dataclass(frozen=True, kw_only=True)
class AnyNode(SchemaNode):
    pass


class ReferenceResolver:
    """Looks up local ``#/components/...`` pointers in a document."""

    def __init__(self, components: Optional[Dict[str, Any]]) -> None:
        self.components = components or {}

    def lookup(self, ref: Any) -> Any:
        if not isinstance(ref, str) or not ref.startswith(_REF_PREFIX):
            raise ResolutionError(f"Unsupported reference: {ref}", pointer=str(ref))

        result: Any = self.components
        for part in ref[len(_REF_PREFIX):].split("/"):
            part = part.replace("~1", "/").replace("~0", "~")
            if not isinstance(result, dict) or part not in result:
                raise ResolutionError(f"Could not resolve reference: {ref}", pointer=ref)
            result = result[part]
        return result

    def resolve(self, obj: Any) -> Tuple[Any, Tuple[str, ...]]:
        """Follow ``$ref`` hops until a terminal object.

        Returns the terminal object and the chain of pointers that led to it.
        """
        chain: List[str] = []
        while isinstance(obj, dict) and "$ref" in obj:
            ref = obj["$ref"]
            if ref in chain:
                raise ResolutionError(
                    f"Cyclic reference: {' -> '.join([*chain, ref])}", pointer=ref
                )
            chain.append(ref)
            obj = self.lookup(ref)
        return obj, tuple(chain)


class SchemaParser:
    """Turns raw OpenAPI schema objects into ``SchemaNode`` trees.

    Precedence: reference, enum, allOf, oneOf, anyOf, type, then the
    untyped fallback decided by the policy.
    """

    def __init__(
        self, resolver: ReferenceResolver, policy: SchemaPolicy = SchemaPolicy.PERMISSIVE
    ) -> None:
        self.resolver = resolver
        self.policy = SchemaPolicy(policy)

    def parse(self, schema: Any) -> SchemaNode:
        return self._parse(schema, ())

    def _parse(
        self, schema: Any, expanding: Tuple[str, ...], title: Optional[str] = None
    ) -> SchemaNode:
        if isinstance(schema, dict) and "$ref" in schema:
            target, chain = self.resolver.resolve(schema)
            for ref in chain:
                if ref in expanding:
                    raise ResolutionError(
                        f"Cyclic reference: {' -> '.join([*expanding, ref])}", pointer=ref
                    )
            return self._parse(target, expanding + chain, title=chain[-1].rsplit("/", 1)[-1])

        if not isinstance(schema, dict):
            raise ResolutionError(f"Schema must be an object, got {type(schema).__name__}")

        modifiers: Dict[str, Any] = {
            "nullable": bool(schema.get("nullable")),
            "description": schema.get("description"),
        }
        title = schema.get("title") or title

        enum_values = schema.get("enum")
        if isinstance(enum_values, list) and enum_values:
            return EnumNode(values=tuple(enum_values), **modifiers)

        if "allOf" in schema:
            members = self._parse_members(schema, "allOf", expanding, title)
            if members is not None:
                return IntersectionNode(members=members, **modifiers)
            return self._unsupported("allOf must be a non-empty list", modifiers)

        for keyword_name in ("oneOf", "anyOf"):
            if keyword_name in schema:
                members = self._parse_members(schema, keyword_name, expanding, title)
                if members is not None:
                    return UnionNode(members=members, **modifiers)
                return self._unsupported(f"{keyword_name} must be a non-empty list", modifiers)

        schema_type = schema.get("type")
        if isinstance(schema_type, list):
            raise ResolutionError("array type not supported")
        if schema_type in ("string", "boolean", "null"):
            return PrimitiveNode(kind=schema_type, **modifiers)
        if schema_type in ("number", "integer"):
            return PrimitiveNode(kind="number", **modifiers)
        if schema_type == "array":
            items = schema.get("items")
            if items is None:
                return self._unsupported("array type schema does not have items", modifiers, array=True)
            item_title = f"{title}Item" if title else None
            return ArrayNode(items=self._parse(items, expanding, item_title), **modifiers)
        if schema_type == "object":
            properties = {
                name: self._parse(prop, expanding, f"{title}_{name}" if title else None)
                for name, prop in (schema.get("properties") or {}).items()
            }
            return ObjectNode(
                properties=properties,
                required=frozenset(schema.get("required") or []),
                title=title,
                **modifiers,
            )
        if schema_type is None:
            return self._unsupported("unsupported schema object", modifiers)
        return self._unsupported(f"Unsupported type: {schema_type}", modifiers)

    def _parse_members(
        self,
        schema: Dict[str, Any],
        keyword_name: str,
        expanding: Tuple[str, ...],
        title: Optional[str],
    ) -> Optional[Tuple[SchemaNode, ...]]:
        raw_members = schema.get(keyword_name)
        if not isinstance(raw_members, list) or not raw_members:
            return None
        return tuple(
            self._parse(member, expanding, f"{title}{index}" if title else None)
            for index, member in enumerate(raw_members)
        )

    def _unsupported(
        self, message: str, modifiers: Dict[str, Any], array: bool = False
    ) -> SchemaNode:
        if self.policy is SchemaPolicy.STRICT:
            raise ResolutionError(message)
        logger.debug("Accepting any value for schema: %s", message)
        if array:
            return ArrayNode(items=AnyNode(), **modifiers)
        return AnyNode(**modifiers)


def build_annotation(node: SchemaNode, name: str = "Schema") -> Any:
    """Convert a ``SchemaNode`` into a pydantic-validatable annotation."""
    annotation = _base_annotation(node, name)
    if node.nullable:
        annotation = Optional[annotation]
    if node.description:
        annotation = Annotated[annotation, Field(description=node.description)]
    return annotation


def _base_annotation(node: SchemaNode, name: str) -> Any:
    if isinstance(node, PrimitiveNode):
        if node.kind == "string":
            return StrictStr
        if node.kind == "number":
            return Numeric
        if node.kind == "boolean":
            return StrictBool
        return None
    if isinstance(node, EnumNode):
        try:
            return Literal[node.values]
        except TypeError as exc:
            raise ResolutionError(f"Unsupported enum values: {node.values!r}") from exc
    if isinstance(node, UnionNode):
        members = [
            build_annotation(member, f"{name}Option{index}")
            for index, member in enumerate(node.members)
        ]
        if len(members) == 1:
            return members[0]
        return Union[tuple(members)]
    if isinstance(node, IntersectionNode):
        adapters = [
            TypeAdapter(build_annotation(member, f"{name}Part{index}"))
            for index, member in enumerate(node.members)
        ]
        return Annotated[Any, AfterValidator(_all_of(adapters))]
    if isinstance(node, ArrayNode):
        return List[build_annotation(node.items, f"{name}Item")]
    if isinstance(node, ObjectNode):
        if not node.properties:
            return Dict[str, Any]
        model_name = node.title or name
        fields = {
            prop: (
                build_annotation(child, f"{model_name}_{prop}"),
                prop in node.required,
                None,
            )
            for prop, child in node.properties.items()
        }
        return build_model(model_name, fields)
    return Any


def _all_of(adapters: List[TypeAdapter]) -> Any:
    def validate(value: Any) -> Any:
        for adapter in adapters:
            try:
                adapter.validate_python(value)
            except ValidationError as exc:
                raise ValueError(f"value does not satisfy every allOf member: {exc}") from exc
        return value

    return validate


def build_model(
    name: str,
    fields: Dict[str, Tuple[Any, bool, Optional[str]]],
    extra: str = "allow",
) -> type[BaseModel]:
    """Create a model keyed by the original names, used as field aliases.

    ``fields`` maps an original name to ``(annotation, required, description)``;
    fields that are not required default to ``None``.
    """
    definitions: Dict[str, Any] = {}
    taken: set[str] = set()
    for alias, (annotation, required, description) in fields.items():
        attribute = field_name(alias, taken)
        if required:
            definitions[attribute] = (annotation, Field(..., alias=alias, description=description))
        else:
            definitions[attribute] = (
                Optional[annotation],
                Field(None, alias=alias, description=description),
            )

    model_config = ConfigDict(extra=extra, populate_by_name=True)
    return create_model(sanitize_name(name), __config__=model_config, **definitions)


def field_name(name: str, taken: set[str]) -> str:
    candidate = _INVALID_FIELD_CHARS.sub("_", name) or "field"
    if (
        candidate[0].isdigit()
        or candidate.startswith("_")
        or candidate.startswith("model_")
        or keyword.iskeyword(candidate)
        or hasattr(BaseModel, candidate)
    ):
        candidate = f"f_{candidate}"

    base = candidate
    index = 2
    while candidate in taken:
        candidate = f"{base}_{index}"
        index += 1
    taken.add(candidate)
    return candidate


def sanitize_name(name: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in name) or "Schema"
