"""``catalogue-console`` command line.

Usage:
    catalogue-console serve [--host HOST] [--port PORT]
    catalogue-console export [--kind catalogue|dictionary] [-o FILE]
    catalogue-console import FILE
    catalogue-console reseed --target catalogue|dictionary [--secret SECRET]
    catalogue-console generate-key [--prefix PREFIX] [--id KEY_ID] [--name NAME] [--roles ROLES]

export/import/reseed talk to a running server (``--url``, default
``http://localhost:$CONSOLE_PORT``) authenticating with ``--api-key`` or
``CONSOLE_API_KEY``.
"""

import argparse
import asyncio
import json
import os
import secrets
import sys
from pathlib import Path

from catalogue_console.auth.api_key import BCRYPT_COST_FACTOR, hash_api_key
from catalogue_console.client import ConsoleAPIError, ConsoleClient


def generate_api_key(prefix: str = "console") -> str:
    """A random API key; the prefix identifies the key's origin."""
    return f"{prefix}-{secrets.token_urlsafe(24)}"


def _client(args) -> ConsoleClient:
    return ConsoleClient(args.url, api_key=args.api_key)


async def _export(args) -> int:
    async with _client(args) as client:
        if args.kind == "dictionary":
            document = await client.export_dictionary()
        else:
            document = await client.export_catalogue()

    text = json.dumps(document, indent=2)
    if args.output:
        Path(args.output).write_text(text + "\n", encoding="utf-8")
        print(f"Exported {args.kind} to {args.output}")
    else:
        print(text)
    return 0


async def _import(args) -> int:
    export = json.loads(Path(args.file).read_text(encoding="utf-8"))
    async with _client(args) as client:
        counts = await client.import_catalogue(export)

    for collection, tally in counts.items():
        print(f"{collection}: {tally['created']} created, {tally['skipped']} skipped")
    return 0


async def _reseed(args) -> int:
    secret = args.secret or os.getenv("ADMIN_SECRET")
    if not secret:
        print("Error: --secret or ADMIN_SECRET is required", file=sys.stderr)
        return 2

    async with _client(args) as client:
        if args.target == "dictionary":
            result = await client.reseed_dictionary(secret)
        else:
            result = await client.reseed_catalogue(secret)

    print(json.dumps(result, indent=2))
    return 0


def _generate_key(args) -> int:
    raw_key = generate_api_key(args.prefix)
    key_hash = hash_api_key(raw_key, args.cost)

    key_id = args.key_id or f"{args.prefix}-key-{secrets.token_hex(4)}"
    name = args.name or f"{args.prefix.title()} API Key"
    roles = [r.strip() for r in args.roles.split(",") if r.strip()]

    print("RAW API KEY (keep secret, use in X-API-Key header):")
    print(f"  {raw_key}")
    print()
    print("JSON CONFIG (paste into api_keys.json 'keys' array):")
    print(json.dumps(
        {"id": key_id, "name": name, "hash": key_hash, "roles": roles, "revoked": False},
        indent=2,
    ))
    return 0


def _serve(args) -> int:
    import uvicorn

    uvicorn.run("catalogue_console.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    from catalogue_console.config import SERVICE_PORT

    parser = argparse.ArgumentParser(
        prog="catalogue-console",
        description="Catalogue Console service and tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    remote = argparse.ArgumentParser(add_help=False)
    remote.add_argument(
        "--url",
        default=os.getenv("CONSOLE_URL", f"http://localhost:{SERVICE_PORT}"),
        help="Server base URL",
    )
    remote.add_argument(
        "--api-key",
        default=os.getenv("CONSOLE_API_KEY"),
        help="API key (default: $CONSOLE_API_KEY)",
    )

    serve = sub.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=SERVICE_PORT)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")
    serve.set_defaults(handler=_serve)

    export = sub.add_parser("export", parents=[remote], help="Export the catalogue or dictionary")
    export.add_argument("--kind", choices=("catalogue", "dictionary"), default="catalogue")
    export.add_argument("-o", "--output", help="Write to this file instead of stdout")
    export.set_defaults(handler=_export)

    imp = sub.add_parser("import", parents=[remote], help="Import a catalogue export")
    imp.add_argument("file", help="Catalogue export JSON file")
    imp.set_defaults(handler=_import)

    reseed = sub.add_parser("reseed", parents=[remote], help="Reset documents from the bundled seeds")
    reseed.add_argument("--target", choices=("catalogue", "dictionary"), required=True)
    reseed.add_argument("--secret", help="Admin secret (default: $ADMIN_SECRET)")
    reseed.set_defaults(handler=_reseed)

    keygen = sub.add_parser("generate-key", help="Generate an API key and its config entry")
    keygen.add_argument("--prefix", default="console", help="Key prefix (default: console)")
    keygen.add_argument("--id", dest="key_id", help="Key ID (default: generated from prefix)")
    keygen.add_argument("--name", help="Human-readable name")
    keygen.add_argument(
        "--roles",
        default="console:readonly",
        help="Comma-separated roles (default: console:readonly)",
    )
    keygen.add_argument(
        "--cost",
        type=int,
        default=BCRYPT_COST_FACTOR,
        help=f"bcrypt cost factor (default: {BCRYPT_COST_FACTOR})",
    )
    keygen.set_defaults(handler=_generate_key)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        result = args.handler(args)
        if asyncio.iscoroutine(result):
            result = asyncio.run(result)
    except ConsoleAPIError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return result


if __name__ == "__main__":
    sys.exit(main())
