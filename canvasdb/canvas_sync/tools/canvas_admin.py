"""
Admin CLI for Canvas Sync.

Inspects and maintains canvases using the same environment configuration
as the service (see config.py).

Usage:
    canvas-admin head <canvas_id>
    canvas-admin versions <canvas_id>
    canvas-admin show <canvas_id> [--version N]
    canvas-admin transactions <canvas_id> --since <unix_ms> [--version N]
    canvas-admin migrate <canvas_id>
    canvas-admin purge <canvas_id> --yes

Invariants:
    - Read commands never write (except migrate, which is the legacy migration)
    - purge refuses to run without --yes

How to change safely:
    - Add new commands additively; scripts depend on the JSON output shape
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from typing import Any

from ..config import SyncConfig
from ..errors import CanvasSyncError
from ..main import CanvasSyncServer
from ..sync import CanvasSyncService

logger = logging.getLogger(__name__)


async def cmd_head(service: CanvasSyncService, args: argparse.Namespace) -> dict[str, Any]:
    canvas = await service.catalog.get_canvas(args.canvas_id, include_deleted=True)
    if canvas is None:
        return {"canvas_id": args.canvas_id, "found": False}
    return {"found": True, **asdict(canvas)}


async def cmd_versions(service: CanvasSyncService, args: argparse.Namespace) -> dict[str, Any]:
    versions = await service.list_versions(args.canvas_id)
    return {"canvas_id": args.canvas_id, "versions": [asdict(v) for v in versions]}


async def cmd_show(service: CanvasSyncService, args: argparse.Namespace) -> dict[str, Any]:
    state = await service.get_state(args.canvas_id, version=args.version)
    return state.to_dict()


async def cmd_transactions(service: CanvasSyncService, args: argparse.Namespace) -> dict[str, Any]:
    transactions = await service.get_transactions(args.canvas_id, args.since, version=args.version)
    return {"canvas_id": args.canvas_id, "transactions": [tx.to_dict() for tx in transactions]}


async def cmd_migrate(service: CanvasSyncService, args: argparse.Namespace) -> dict[str, Any]:
    before = await service.catalog.get_canvas(args.canvas_id)
    state = await service.get_state(args.canvas_id)
    return {
        "canvas_id": args.canvas_id,
        "previous_head": before.head_version if before else None,
        "version": state.version,
        "nodes": len(state.nodes),
        "edges": len(state.edges),
    }


async def cmd_purge(service: CanvasSyncService, args: argparse.Namespace) -> dict[str, Any]:
    if not args.yes:
        raise CanvasSyncError("Refusing to purge without --yes", code="CONFIRMATION_REQUIRED")
    removed = await service.purge_canvas(args.canvas_id)
    return {"canvas_id": args.canvas_id, "removed_blobs": removed}


COMMANDS = {
    "head": cmd_head,
    "versions": cmd_versions,
    "show": cmd_show,
    "transactions": cmd_transactions,
    "migrate": cmd_migrate,
    "purge": cmd_purge,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="canvas-admin", description="Canvas Sync admin tool")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    head = subparsers.add_parser("head", help="Show the catalog row of a canvas")
    head.add_argument("canvas_id")

    versions = subparsers.add_parser("versions", help="List versions of a canvas")
    versions.add_argument("canvas_id")

    show = subparsers.add_parser("show", help="Print a canvas snapshot")
    show.add_argument("canvas_id")
    show.add_argument("--version", type=int, help="Version to show (default: head)")

    transactions = subparsers.add_parser("transactions", help="Print log transactions")
    transactions.add_argument("canvas_id")
    transactions.add_argument("--since", type=int, required=True, help="Unix ms (exclusive)")
    transactions.add_argument("--version", type=int, help="Version to read (default: head)")

    migrate = subparsers.add_parser("migrate", help="Materialize a legacy canvas as version 1")
    migrate.add_argument("canvas_id")

    purge = subparsers.add_parser("purge", help="Remove a canvas and all its versions")
    purge.add_argument("canvas_id")
    purge.add_argument("--yes", action="store_true", help="Confirm the purge")

    return parser


async def run(config: SyncConfig, args: argparse.Namespace) -> dict[str, Any]:
    """Run one command against a started server."""
    server = CanvasSyncServer(config)
    await server.start()
    try:
        return await COMMANDS[args.command](server.service, args)
    finally:
        await server.stop()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the admin tool."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        config = SyncConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        result = asyncio.run(run(config, args))
    except CanvasSyncError as e:
        print(f"{e.code}: {e.message}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(result, indent=2, sort_keys=True))
    sys.exit(0)


if __name__ == "__main__":
    main()
