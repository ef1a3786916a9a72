#!/usr/bin/env python3
"""
Run a two-pass content import from a JSON import file.

Usage:
  python scripts/import_content.py --file export.json --slug api::article.article \
      [--id-field slug] [--schema content-types.json] [--user-id 1]

Loads content-type descriptors from --schema (default: settings.schema_path),
imports every group of the file against the configured database and prints
the failures as JSON. Exit codes: 0 batch completed (even with record
failures), 1 batch aborted, 2 missing input.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

import structlog

# Ensure src is on the import path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from Contentorator.config import load_settings  # type: ignore
from Contentorator.content_schema import SchemaRegistry  # type: ignore
from Contentorator.errors import ImporterError  # type: ignore
from Contentorator.importer import import_data  # type: ignore
from Contentorator.interfaces import Actor  # type: ignore
from Contentorator.logging import redact_settings, setup_logging  # type: ignore


def main() -> int:
    ap = argparse.ArgumentParser(description="Import content entries from a JSON file")
    ap.add_argument("--file", type=Path, required=True, help="Path to the import file")
    ap.add_argument("--slug", required=True, help="Content type the import targets")
    ap.add_argument("--id-field", default=None, help="Identity field for the target content type")
    ap.add_argument("--schema", type=Path, default=None, help="Content-type definitions (JSON)")
    ap.add_argument("--user-id", default="importer", help="Actor recorded on written entries")
    args = ap.parse_args()

    settings = load_settings()
    setup_logging(settings)
    log = structlog.get_logger()
    log.info("import.startup", config=redact_settings(settings), file=str(args.file), slug=args.slug)

    schema_path = args.schema or Path(settings.schema_path)
    for path in (args.file, schema_path):
        if not path.exists():
            print(f"Error: file not found: {path}")
            return 2

    try:
        registry = SchemaRegistry.from_file(schema_path)
        result = asyncio.run(
            import_data(
                args.file.read_bytes(),
                slug=args.slug,
                user=Actor(id=args.user_id),
                id_field=args.id_field,
                registry=registry,
                settings=settings,
            )
        )
    except ImporterError as exc:
        print(f"ImporterError: {exc}")
        return 1

    print("=== Import Summary ===")
    print(json.dumps({"failure_count": len(result.failures), **result.to_dict()}, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
