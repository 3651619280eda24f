import json
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from destiq.domain.interfaces.user_interface import UserInterface
from destiq.domain.models.common import CacheStats, CreditSnapshot
from destiq.domain.models.fallback import FallbackResult

logger = logging.getLogger(__name__)

TIER_STYLES = {1: "green", 2: "cyan", 3: "yellow", 4: "red"}
TIER_LABELS = {
    "tier1_research": "1 - Research provider",
    "tier2_api": "2 - Free APIs",
    "tier3_scraper": "3 - Web scrapers",
    "tier4_cache": "4 - Cache / mock data",
}
MAX_SECTION_CHARS = 1500


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_result(self, result: FallbackResult, **kwargs: Any) -> None:
        """Displays a fallback result as panels, or as raw JSON.

        Args:
            result: The confidence-scored result.
            **kwargs: ``as_json=True`` prints the serialized result only.
        """
        if kwargs.get("as_json"):
            # Plain print keeps the output machine-readable (no rich markup)
            print(json.dumps(result.to_dict(), indent=2, default=str))
            return

        style = TIER_STYLES.get(result.tier, "white")
        timestamp = datetime.fromtimestamp(result.timestamp).strftime("%H:%M:%S")
        header = (
            f"[bold {style}]Tier {result.tier} - {result.source}[/bold {style}] "
            f"[dim]confidence[/dim] [bold]{result.confidence:.2f}[/bold] [dim]{timestamp}[/dim]"
        )
        summary = Table(show_header=False, box=SIMPLE, padding=(0, 1))
        summary.add_column("Field", style="dim")
        summary.add_column("Value")
        summary.add_row("Source", result.source)
        summary.add_row("Confidence", f"{result.confidence:.2f}")
        if result.fallback_reason:
            summary.add_row("Fallback reason", result.fallback_reason)
        if result.cache_key:
            summary.add_row("Cache key", str(result.cache_key))
        self.console.print(Panel(summary, title=header, title_align="left", border_style=style, box=ROUNDED))

        if result.attempts:
            attempts = Table(title="Failed tiers", box=SIMPLE, show_header=True)
            attempts.add_column("Tier", justify="right")
            attempts.add_column("Source")
            attempts.add_column("Provider")
            attempts.add_column("Kind", style="red")
            attempts.add_column("Message", overflow="fold")
            for attempt in result.attempts:
                attempts.add_row(str(attempt.tier), attempt.source, attempt.provider or "-", attempt.kind, attempt.message)
            self.console.print(attempts)

        self._display_payload(result.data)

    def _display_payload(self, data: Any) -> None:
        if not isinstance(data, dict):
            self.console.print(Panel(Text(str(data)), title="Data", box=SIMPLE))
            return
        for section, value in data.items():
            if isinstance(value, str):
                text = value if len(value) <= MAX_SECTION_CHARS else value[:MAX_SECTION_CHARS] + "\n\n..."
                body = Markdown(text)
            else:
                body = Text(json.dumps(value, indent=2, default=str)[:MAX_SECTION_CHARS])
            self.console.print(Panel(body, title=f"[bold]{section}[/bold]", title_align="left", box=SIMPLE))

    def display_cache_stats(self, stats: Mapping[str, CacheStats]) -> None:
        table = Table(title="Cache statistics", box=ROUNDED, border_style="cyan")
        table.add_column("Namespace", style="bold")
        table.add_column("Size", justify="right")
        table.add_column("Capacity", justify="right")
        table.add_column("Hits", justify="right")
        table.add_column("Misses", justify="right")
        table.add_column("Hit rate", justify="right")
        for namespace, s in sorted(stats.items()):
            table.add_row(
                namespace,
                str(s["size"]),
                str(s["capacity"]),
                str(s["hits"]),
                str(s["misses"]),
                f"{s['hit_rate']:.1%}",
            )
        self.console.print(table)

    def display_credits(self, credits: Mapping[str, CreditSnapshot]) -> None:
        table = Table(title="Scraper credits", box=ROUNDED, border_style="cyan")
        table.add_column("Provider", style="bold")
        table.add_column("Remaining", justify="right")
        table.add_column("Used", justify="right")
        table.add_column("Total", justify="right")
        for provider, c in credits.items():
            style = "red" if c["remaining"] == 0 else "green"
            table.add_row(provider, f"[{style}]{c['remaining']}[/{style}]", str(c["used"]), str(c["total"]))
        self.console.print(table)

    def display_tiers(self, availability: Dict[str, bool]) -> None:
        table = Table(title="Fallback tiers", box=ROUNDED, border_style="cyan")
        table.add_column("Tier")
        table.add_column("Status")
        for key, available in availability.items():
            status = "[green]available[/green]" if available else "[red]unavailable[/red]"
            table.add_row(TIER_LABELS.get(key, key), status)
        self.console.print(table)

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message in a distinct style."""
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        logger.warning(f"Display warning: {warning_message}")
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)
