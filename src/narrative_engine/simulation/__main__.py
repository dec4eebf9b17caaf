"""
Run a headless season from the command line.

    python -m narrative_engine.simulation --days 90 --seed 7 --persona firebrand
"""

import argparse
import logging
import random
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..config import load_config
from ..engine import NarrativeEngine
from ..state.event_bus import EventBus
from .personas import PERSONAS
from .runner import SimulationReport, run_simulation

console = Console()


def render_report(report: SimulationReport) -> None:
    wins = report.record.count("W")
    console.print(
        f"[bold]{report.persona}[/bold] season: {report.days} days, "
        f"record {wins}-{len(report.record) - wins}, seed {report.seed}"
    )

    table = Table(title="Drama by category")
    table.add_column("Category")
    table.add_column("Events", justify="right")
    for category, count in report.by_category.most_common():
        table.add_row(category, str(count))
    table.add_row("[dim]escalated[/dim]", str(report.escalated))
    table.add_row("[dim]expired[/dim]", str(report.expired))
    table.add_row("[dim]chained[/dim]", str(report.chained))
    console.print(table)

    tones = Table(title="Interview answers")
    tones.add_column("Tone")
    tones.add_column("Count", justify="right")
    for tone, count in report.tones.most_common():
        tones.add_row(tone, str(count))
    console.print(tones)

    final = Table(title="Final state", show_header=False)
    final.add_column("Key", style="dim")
    final.add_column("Value")
    for key, value in report.final.items():
        final.add_row(key, str(value))
    console.print(final)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Simulate a season of narrative events")
    parser.add_argument("--days", "-d", type=int, default=90, help="Days to simulate")
    parser.add_argument("--seed", "-s", type=int, default=None, help="Seed for reproducible runs")
    parser.add_argument(
        "--persona", "-p",
        choices=sorted(PERSONAS),
        default="diplomat",
        help="How the automated manager answers",
    )
    parser.add_argument("--config", type=Path, default=None, help="JSON file overriding engine config")
    parser.add_argument("--save", type=Path, default=None, help="Directory to write a markdown report")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log engine decisions")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    engine = NarrativeEngine(
        rng=random.Random(args.seed),
        config=load_config(args.config),
        bus=EventBus(),
    )
    report = run_simulation(engine, persona=args.persona, days=args.days, seed=args.seed)
    render_report(report)

    if args.save:
        path = report.save(args.save)
        console.print(f"[dim]Report written to {path}[/dim]")


if __name__ == "__main__":
    main()
