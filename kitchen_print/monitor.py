"""Textual monitor screen for the auto-print server."""

from __future__ import annotations

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.css.query import NoMatches
from textual.reactive import reactive
from textual.widgets import Header, Static

from kitchen_print.config import Settings
from kitchen_print.errors import KitchenPrintError
from kitchen_print.models import DispatchOutcome, partition_label
from kitchen_print.service import PrintService
from kitchen_print.sinks import DeviceSink
from kitchen_print.store import OrderStore

MAX_OUTCOMES = 50


def outcome_style(outcome: DispatchOutcome) -> str:
    """Return a consistent badge style for dispatch results."""
    if not outcome.attempted:
        return "bold #0b1f0f on #c9c9c9"
    if outcome.success:
        return "bold #0b1f0f on #5fbf72"
    return "bold #ffffff on #b23a48"


def format_outcome(outcome: DispatchOutcome) -> Text:
    """Render one dispatch as `[OK] #101  1 ✓  2 ✗ (Kitchen Printer)`."""
    text = Text()
    if not outcome.attempted:
        badge = "EMPTY"
    else:
        badge = "OK" if outcome.success else "PARTIAL"
    text.append(f" {badge} ", style=outcome_style(outcome))
    text.append(f" #{outcome.order_number if outcome.order_number is not None else outcome.order_id}")
    for slip in outcome.slips:
        mark = "✓" if slip.ok else "✗"
        text.append(f"  {partition_label(slip.key)} {mark}", style="green" if slip.ok else "red")
        if not slip.ok:
            text.append(f" ({slip.destination})", style="dim")
    return text


class PrintMonitorApp(App):
    """Live view of the auto-print server: mode, printers and recent slips."""

    TITLE = "Kitchen Print"
    SUB_TITLE = "Auto Print Server"

    CSS = """
    #outcomes-pane {
        width: 3fr;
        border: round $primary;
    }

    #status-pane {
        width: 2fr;
        border: round $secondary;
    }

    .pane-title {
        text-style: bold;
    }
    """

    mode = reactive("connecting")

    BINDINGS = [
        Binding("p", "print_sample", "Print sample"),
        Binding("t", "test_printers", "Test printers"),
        ("ctrl+q", "quit", "Quit"),
    ]

    def __init__(self, settings: Settings, store: OrderStore, sink: DeviceSink) -> None:
        super().__init__()
        self.settings = settings
        self.outcomes: list[DispatchOutcome] = []
        self.system_status = ""
        self.service = PrintService(settings, store, sink, alert=self._alert, on_outcome=self._record_outcome)

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="main-layout"):
            with Vertical(id="outcomes-pane"):
                yield Static("Recent Orders", classes="pane-title")
                yield Static("(waiting for paid orders)", id="outcomes-list")
            with Vertical(id="status-pane"):
                yield Static("Server", classes="pane-title")
                yield Static(id="status")

    def on_mount(self) -> None:
        self._refresh_all()
        self.run_worker(self._run_service(), exclusive=True, group="service")

    async def _run_service(self) -> None:
        try:
            await self.service.check_store()
        except KitchenPrintError as exc:
            self.mode = "stopped"
            self.system_status = f"Store unavailable: {exc}"
            self._refresh_status()
            return
        run = self.service.run()
        # The source reports its mode once started; show it before blocking.
        self.set_timer(0.2, self._sync_mode)
        await run

    def _sync_mode(self) -> None:
        self.mode = self.service.source.mode or "connecting"
        if self.mode == "connecting":
            self.set_timer(0.5, self._sync_mode)

    def watch_mode(self, _old: str, _new: str) -> None:
        self._refresh_status()

    def _alert(self, message: str) -> None:
        self.bell()
        self.notify(message, title="New paid order")

    def _record_outcome(self, outcome: DispatchOutcome) -> None:
        self.outcomes.insert(0, outcome)
        del self.outcomes[MAX_OUTCOMES:]
        self._refresh_outcomes()
        self._refresh_status()

    async def action_print_sample(self) -> None:
        self.system_status = "Printing sample order..."
        self._refresh_status()
        outcome = await self.service.print_sample()
        self._record_outcome(outcome)
        self.system_status = "Sample printed" if outcome.success else "Sample order: some slips failed"
        self._refresh_status()

    async def action_test_printers(self) -> None:
        self.system_status = "Testing printers..."
        self._refresh_status()
        ok = await self.service.check_printers(print_test_page=True)
        self.system_status = "All printers OK" if ok else "Printer test failed (see log)"
        self._refresh_status()

    def _refresh_all(self) -> None:
        self._refresh_outcomes()
        self._refresh_status()

    def _refresh_outcomes(self) -> None:
        try:
            widget = self.query_one("#outcomes-list", Static)
        except NoMatches:
            return
        if not self.outcomes:
            widget.update("(waiting for paid orders)")
            return
        lines = Text()
        for idx, outcome in enumerate(self.outcomes):
            if idx > 0:
                lines.append("\n")
            lines.append_text(format_outcome(outcome))
        widget.update(lines)

    def _refresh_status(self) -> None:
        try:
            widget = self.query_one("#status", Static)
        except NoMatches:
            return
        settings = self.settings
        text = Text()
        text.append("Mode: ")
        text.append(self.mode, style="bold")
        text.append(f"\nTrigger: {settings.trigger_field} = {settings.trigger_value!r}")
        text.append("\nAuto-print: ")
        text.append("on" if settings.auto_print else "off", style="green" if settings.auto_print else "red")
        text.append(f"\nPrinted orders: {len(self.service.engine.ledger)}")
        text.append("\n\nPrinters:")
        for destination, kitchen in self.service.resolver.all_configured_destinations().items():
            owner = "default" if kitchen is None else f"kitchen {kitchen}"
            text.append(f"\n  {destination} ({owner})")
        if self.system_status:
            text.append(f"\n\n{self.system_status}", style="italic")
        widget.update(text)
