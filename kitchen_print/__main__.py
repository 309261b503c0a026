"""Command line entry point for the kitchen-print server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from kitchen_print.config import Settings
from kitchen_print.diagnostics import sample_order, send_test_page
from kitchen_print.destinations import DestinationResolver
from kitchen_print.dispatcher import SlipDispatcher
from kitchen_print.errors import KitchenPrintError
from kitchen_print.logs import configure_logging
from kitchen_print.preview import save_preview
from kitchen_print.service import PrintService
from kitchen_print.sinks import EscposDeviceSink, check_printer_dependencies
from kitchen_print.store import SqliteOrderStore

logger = logging.getLogger("kitchen_print.cli")


def _banner(console: Console, settings: Settings) -> None:
    table = Table.grid(padding=(0, 2))
    table.add_row("Default printer", settings.default_printer)
    for kitchen, printer in settings.kitchen_printers.items():
        table.add_row(f"Kitchen {kitchen} printer", printer)
    table.add_row("Order store", settings.db_path)
    table.add_row("Sound alerts", "enabled" if settings.play_sound else "disabled")
    table.add_row("Auto-print", "enabled" if settings.auto_print else "disabled")
    table.add_row("Print trigger", f'{settings.trigger_field} = "{settings.trigger_value}"')
    table.add_row("Slips per order", "1 per kitchen_number in order_items")
    console.print(Panel(table, title="Kitchen Print - Auto Print Server", border_style="cyan"))


def _build_service(settings: Settings, console: Console) -> PrintService:
    store = SqliteOrderStore(settings.db_path)
    store.bootstrap_schema()
    return PrintService(settings, store, EscposDeviceSink(), alert=lambda _message: console.bell())


async def _serve(service: PrintService, test_print: bool) -> int:
    try:
        await service.check_store()
    except KitchenPrintError as exc:
        logger.error("store_unavailable error=%s", exc)
        return 1
    ok, message = check_printer_dependencies()
    if not ok:
        logger.warning("printer_dependencies %s", message)
    if not await service.check_printers(print_test_page=test_print):
        logger.warning("printer_test_failed continuing=true")
    await service.run()
    return 0


def cmd_serve(args: argparse.Namespace, settings: Settings, console: Console) -> int:
    _banner(console, settings)
    service = _build_service(settings, console)
    try:
        return asyncio.run(_serve(service, args.test_print))
    except KeyboardInterrupt:
        logger.info("server_stopped")
        return 0


def cmd_monitor(args: argparse.Namespace, settings: Settings, console: Console) -> int:
    from kitchen_print.monitor import PrintMonitorApp

    store = SqliteOrderStore(settings.db_path)
    store.bootstrap_schema()
    PrintMonitorApp(settings, store, EscposDeviceSink()).run()
    return 0


def cmd_test_print(args: argparse.Namespace, settings: Settings, console: Console) -> int:
    service = _build_service(settings, console)
    if args.destination:
        ok = asyncio.run(send_test_page(service.sink, args.destination, settings.shop))
    else:
        ok = asyncio.run(service.check_printers(print_test_page=True))
    console.print("[green]Printer test successful[/]" if ok else "[red]Printer test failed[/]")
    return 0 if ok else 1


def cmd_sample(args: argparse.Namespace, settings: Settings, console: Console) -> int:
    if args.preview:
        order, items = sample_order()
        dispatcher = SlipDispatcher(
            EscposDeviceSink(),
            DestinationResolver(settings.default_printer, settings.kitchen_printers),
            open_cash_drawer=settings.open_cash_drawer,
            shop=settings.shop,
            rate=settings.service_charge_rate,
        )
        documents = [document for _, document in dispatcher.render(order, items)]
        path = save_preview(documents, args.preview)
        console.print(f"Preview of {len(documents)} slip(s) written to {path}")
        return 0

    service = _build_service(settings, console)
    outcome = asyncio.run(service.print_sample())
    if outcome.success:
        console.print(f"[green]Sample order printed ({len(outcome.attempted)} kitchen slips)[/]")
        return 0
    console.print("[red]One or more kitchen slips failed[/]")
    return 1


def cmd_printers(args: argparse.Namespace, settings: Settings, console: Console) -> int:
    available = EscposDeviceSink().list_available_destinations()
    table = Table(title="Printers")
    table.add_column("#", justify="right")
    table.add_column("Available printer")
    for index, name in enumerate(available, start=1):
        table.add_row(str(index), name)
    console.print(table if available else "No printers found")

    resolver = DestinationResolver(settings.default_printer, settings.kitchen_printers)
    configured = Table(title="Configured destinations")
    configured.add_column("Printer")
    configured.add_column("First kitchen")
    for destination, kitchen in resolver.all_configured_destinations().items():
        configured.add_row(destination, "default" if kitchen is None else str(kitchen))
    console.print(configured)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kitchen-print", description="Print one slip per kitchen for paid orders.")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="run the auto-print server")
    serve.add_argument("--test-print", action="store_true", help="print a test page on every printer at startup")
    serve.set_defaults(func=cmd_serve)

    monitor = sub.add_parser("monitor", help="run the server inside the terminal monitor")
    monitor.set_defaults(func=cmd_monitor)

    test_print = sub.add_parser("test-print", help="print a connection test page")
    test_print.add_argument("--destination", help="printer to test (default: all configured printers)")
    test_print.set_defaults(func=cmd_test_print)

    sample = sub.add_parser("sample", help="print the multi-kitchen sample order")
    sample.add_argument("--preview", metavar="PATH", help="render the slips to an image instead of printing")
    sample.set_defaults(func=cmd_sample)

    printers = sub.add_parser("printers", help="list available and configured printers")
    printers.set_defaults(func=cmd_printers)
    return parser


COMMANDS = ("serve", "monitor", "test-print", "sample", "printers")


def with_default_command(argv: Sequence[str]) -> list[str]:
    """Prefix `serve` when no subcommand is given, so `kitchen-print --test-print` works."""
    args = list(argv)
    if args and (args[0] in COMMANDS or args[0] in ("-h", "--help")):
        return args
    return ["serve", *args]


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(with_default_command(sys.argv[1:] if argv is None else argv))

    console = Console()
    try:
        settings = Settings.from_env()
    except KitchenPrintError as exc:
        console.print(f"[red]Configuration error:[/] {exc}")
        return 2

    if args.command == "monitor":
        # Console output would draw over the monitor screen; log to file only.
        configure_logging(
            settings.log_level,
            settings.log_file or "/tmp/kitchen-print.log",
            console=Console(stderr=True, quiet=True),
        )
    else:
        configure_logging(settings.log_level, settings.log_file, console=Console(stderr=True))
    return args.func(args, settings, console)


if __name__ == "__main__":
    sys.exit(main())
