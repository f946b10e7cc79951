#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import yaml

# Ensure project root is on sys.path when running from scripts/
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from allyhub.api.routes import app  # noqa: E402


def generate_schema_dict() -> dict:
    """Return the OpenAPI schema dict from the FastAPI app."""
    return app.openapi()


def render(schema: dict, fmt: str) -> str:
    if fmt == "yaml":
        return yaml.safe_dump(schema, sort_keys=False, allow_unicode=True)
    return json.dumps(schema, indent=2, ensure_ascii=False)


def write_output(schema: dict, out_path: Path, fmt: str) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(render(schema, fmt), encoding="utf-8")


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate the OpenAPI schema of the alliance hub API.")
    parser.add_argument(
        "--out",
        type=Path,
        default=Path("openapi.yaml"),
        help="Output file path (default: openapi.yaml)",
    )
    parser.add_argument(
        "--format",
        choices=["yaml", "json"],
        default="yaml",
        help="Output format (default: yaml)",
    )
    args = parser.parse_args()

    write_output(generate_schema_dict(), args.out, args.format)
    print(f"OpenAPI schema written to {args.out} in {args.format.upper()} format")


if __name__ == "__main__":
    main()
