"""Print the tools the adapter would register for an OpenAPI document."""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any, Dict

from statsig_adapter.compiler import OperationCompiler
from statsig_adapter.config import get_settings
from statsig_adapter.logging import configure_logging
from statsig_adapter.openapi import OpenAPILoader
from statsig_adapter.tool_registry import ToolRegistry


def _load_file(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="List tools compiled from an OpenAPI document")
    parser.add_argument(
        "--url",
        default=settings.openapi_url(),
        help="OpenAPI document URL (default: the configured Statsig document)",
    )
    parser.add_argument("--file", default="", help="Read the document from a local JSON file")
    parser.add_argument(
        "--all-operations",
        action="store_true",
        help="Compile every operation instead of only the tagged ones",
    )
    parser.add_argument(
        "--schema-policy",
        default=settings.adapter_schema_policy,
        choices=["permissive", "strict"],
    )
    parser.add_argument("--log-level", default="WARNING")

    args = parser.parse_args()
    configure_logging(args.log_level)

    if args.file:
        doc_path = Path(args.file).expanduser().resolve()
        if not doc_path.exists():
            raise SystemExit(f"Document not found: {doc_path}")
        document = _load_file(doc_path)
    else:
        loader = OpenAPILoader(timeout_seconds=settings.statsig_api_timeout_seconds)
        document = asyncio.run(loader.load_spec(args.url))

    compiler = OperationCompiler(
        include_only_tagged=settings.adapter_include_only_tagged and not args.all_operations,
        include_tag=settings.adapter_include_tag,
        warehouse_native_tag=settings.adapter_warehouse_native_tag,
        policy=args.schema_policy,
    )
    entries = ToolRegistry(settings).register(compiler.compile(document))

    for entry in entries.values():
        print(f"{entry.tool_name}\t{','.join(m.upper() for m in entry.methods)}\t{entry.path}")
    print(f"{len(entries)} tools")


if __name__ == "__main__":
    main()
