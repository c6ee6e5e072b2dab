"""Command-line runner for a single node invocation.

Usage:
    gemini-nodes types
    gemini-nodes run gemini-generate-content --config cfg.json --message msg.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.pretty import Pretty

from .core.host import InMemoryScope, LocalHost
from .core.logging import setup_logging
from .nodes.registry import NodeRegistry, default_registry
from .settings import get_settings, is_development_mode

console = Console()

CLI_CREDENTIAL_ID = "cli-api-key"


def _load_json(path: Path | None, what: str) -> dict[str, Any]:
    if path is None:
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise SystemExit(f"Could not read {what} from {path}: {e}") from e
    if not isinstance(data, dict):
        raise SystemExit(f"{what.capitalize()} in {path} must be a JSON object")
    return data


def _printable(value: Any) -> Any:
    """Replace byte payloads with a short description before printing."""
    if isinstance(value, bytes | bytearray):
        return f"<{len(value)} bytes>"
    if isinstance(value, dict):
        return {k: _printable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_printable(v) for v in value]
    return value


async def run_node(
    registry: NodeRegistry,
    node_type: str,
    config: dict[str, Any],
    message: dict[str, Any],
    *,
    flow_vars: dict[str, Any] | None = None,
    global_vars: dict[str, Any] | None = None,
) -> tuple[LocalHost, list[list[Any]]]:
    """Run one invocation on a ``LocalHost`` and return every send."""
    settings = get_settings()
    host = LocalHost(flow_scope=InMemoryScope(flow_vars), global_scope=InMemoryScope(global_vars))
    if settings.gemini_api_key and not config.get("apiKey"):
        host.add_credentials(CLI_CREDENTIAL_ID, apikey=settings.gemini_api_key)
        config = {**config, "apiKey": CLI_CREDENTIAL_ID}

    node = registry.create(node_type, config, host)
    sent: list[list[Any]] = []
    finished = asyncio.Event()

    def done(error: BaseException | None = None) -> None:
        finished.set()

    try:
        await node.on_input(message, sent.append, done)
        await finished.wait()
    finally:
        await node.close()
    return host, sent


def _print_sends(sent: list[list[Any]]) -> None:
    for index, outputs in enumerate(sent, start=1):
        success, failure = (list(outputs) + [None, None])[:2]
        if success is not None:
            console.print(
                Panel(Pretty(_printable(success)), title=f"[green]output 1 (success) #{index}", border_style="green")
            )
        if failure is not None:
            console.print(
                Panel(Pretty(_printable(failure)), title=f"[red]output 2 (error) #{index}", border_style="red")
            )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gemini-nodes", description="Run Gemini flow nodes locally")
    parser.add_argument("--log-level", type=str, default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("types", help="List registered node types")

    run = sub.add_parser("run", help="Run one invocation of a node")
    run.add_argument("node_type", type=str, help="Node type, e.g. gemini-generate-content")
    run.add_argument("--config", type=Path, required=True, help="Node configuration JSON file")
    run.add_argument("--message", type=Path, required=True, help="Inbound message JSON file")
    run.add_argument("--flow-vars", type=Path, default=None, help="Flow-scope variables JSON file")
    run.add_argument("--global-vars", type=Path, default=None, help="Global-scope variables JSON file")
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    default_level = "DEBUG" if is_development_mode() else get_settings().log_level
    setup_logging(args.log_level or default_level)
    registry = default_registry()

    if args.command == "types":
        for node_type in registry.list_types():
            console.print(f"• {node_type}")
        return 0

    if not registry.has(args.node_type):
        console.print(f"[red]Unknown node type: {args.node_type}[/red]")
        console.print(f"Known types: {', '.join(registry.list_types())}")
        return 2

    config = _load_json(args.config, "config")
    message = _load_json(args.message, "message")
    flow_vars = _load_json(args.flow_vars, "flow variables")
    global_vars = _load_json(args.global_vars, "global variables")

    try:
        host, sent = asyncio.run(
            run_node(
                registry,
                args.node_type,
                config,
                message,
                flow_vars=flow_vars,
                global_vars=global_vars,
            )
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130

    _print_sends(sent)
    last_status = next((s for s in reversed(host.status_history) if s), None)
    if last_status:
        console.print(f"[dim]status: {last_status.get('text', '')}[/dim]")
    return 1 if host.errors else 0


if __name__ == "__main__":
    sys.exit(main())
